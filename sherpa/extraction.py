"""Best-effort extraction of structured fields from markdown LLM responses.

Nothing in this module raises on malformed input. Each field is pulled out by
an ordered list of named strategies; the first strategy that yields a value
wins, and when none does the field degrades to a documented default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Sequence, TypeVar

from sherpa.models import BasicSolution, DebugReport, OptimizedAnalysis, StageAnalysis

T = TypeVar("T")

DEFAULT_NOTATION = "O(n)"
DEFAULT_RATIONALE = "Explanation not found in response"
DEFAULT_THOUGHT = "Solution approach based on efficiency and readability"
DEFAULT_OPTIMIZATION = "Optimization analysis not found in response"
DEFAULT_DEBUG_THOUGHT = "Debug analysis based on your screenshots"
DEBUG_CODE_PLACEHOLDER = "// Debug mode - see analysis below"
EMPTY_CODE_PLACEHOLDER = "// No code found in response"
MAX_DEBUG_THOUGHTS = 5


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """One named heuristic. ``extract`` returns None when it does not apply."""

    name: str
    extract: Callable[..., T | None]


def first_match(strategies: Sequence[Strategy[T]], *args) -> tuple[str, T] | None:
    """Run *strategies* in order and return ``(name, value)`` of the first hit."""
    for strategy in strategies:
        value = strategy.extract(*args)
        if value is not None:
            return strategy.name, value
    return None


# ---------------------------------------------------------------------------
# Line-level helpers
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```[\w+#.-]*[ \t]*\n?(.*?)```", re.DOTALL)

# Optional markdown decoration in front of a section label:
# "### ", "- ", "1. ", "**"
_DECORATION = r"[ \t]*(?:#{1,6}[ \t]*|(?:[-*+•]|\d+[.)])[ \t]+)?(?:\*\*|__)?[ \t]*"

_TIME = r"time[ \t-]complexity"
_SPACE = r"space[ \t-]complexity"
_DRY_RUN = (
    r"dry[ \t-]run(?:[ \t]*(?:&|and)[ \t]*visuali[sz]ation)?"
    r"|visuali[sz]ation|trace|walk-through"
)
_THOUGHTS = r"thoughts|key insights|reasoning|approach"
_OPTIMIZATION = r"optimization analysis|improvements|how to optimize"
_OPTIMIZED_CODE = r"optimized code|optimal solution"

_KNOWN_SECTIONS = "|".join(
    (
        _TIME,
        _SPACE,
        _DRY_RUN,
        _THOUGHTS,
        _OPTIMIZATION,
        _OPTIMIZED_CODE,
        r"complexity analysis|complexity|code|solution|explanation|key points",
        r"issues identified|problem analysis|brute[ \t-]force(?: approach| solution)?",
    )
)


def _header_re(names: str) -> re.Pattern:
    return re.compile(
        rf"^{_DECORATION}(?P<name>{names})\b[ \t]*(?:\*\*|__)?[ \t]*(?P<sep>:)?"
        rf"[ \t]*(?:\*\*|__)?[ \t]*(?P<rest>.*)$",
        re.IGNORECASE,
    )


_KNOWN_HEADER_RE = _header_re(_KNOWN_SECTIONS)
_COMPLEXITY_HEADER_RE = _header_re(f"{_TIME}|{_SPACE}")
_MARKDOWN_HEADER_RE = re.compile(r"^[ \t]*#{1,6}[ \t]+\S")


def _header_match(pattern: re.Pattern, line: str) -> re.Match | None:
    """Match *line* as a section label.

    A label counts when it is followed by a colon, written as a markdown
    header, or stands alone on its line.
    """
    m = pattern.match(line)
    if m is None:
        return None
    if m.group("sep") or line.lstrip().startswith("#") or not m.group("rest").strip():
        return m
    return None


def _is_fence(line: str) -> bool:
    return line.lstrip().startswith("```")


def _outside_code(lines: list[str]) -> Iterator[tuple[int, str]]:
    """Yield ``(index, line)`` for lines that are not inside a fenced block."""
    in_code = False
    for i, line in enumerate(lines):
        if _is_fence(line):
            in_code = not in_code
            continue
        if not in_code:
            yield i, line


def _without_code(text: str) -> str:
    return _FENCE_RE.sub("", text)


def _find_section(
    text: str,
    start: re.Pattern,
    stop: Callable[[str], bool],
    paragraph: bool = False,
) -> str | None:
    """Return the body of the first section whose label matches *start*.

    The body is the remainder of the label line plus the following lines up to
    the first line for which *stop* is true. With *paragraph* set the body
    also ends at the first blank line after some content.
    """
    lines = text.splitlines()
    for i, line in _outside_code(lines):
        m = _header_match(start, line)
        if m is None:
            continue
        rest = m.group("rest").strip()
        body = [rest] if rest else []
        for nxt in lines[i + 1:]:
            if stop(nxt):
                break
            if paragraph and not nxt.strip():
                if body:
                    break
                continue
            body.append(nxt)
        return "\n".join(body).strip()
    return None


def _stops_at_complexity(line: str) -> bool:
    return _header_match(_COMPLEXITY_HEADER_RE, line) is not None


def _stops_at_any_section(line: str) -> bool:
    return (
        _is_fence(line)
        or _MARKDOWN_HEADER_RE.match(line) is not None
        or _header_match(_KNOWN_HEADER_RE, line) is not None
    )


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------

def _fenced_code(text: str) -> str | None:
    m = _FENCE_RE.search(text)
    if m and m.group(1).strip():
        return m.group(1).strip()
    return None


def _raw_code(text: str) -> str | None:
    stripped = text.strip()
    return stripped or None


def _empty_placeholder(text: str) -> str:
    return EMPTY_CODE_PLACEHOLDER


CODE_STRATEGIES: tuple[Strategy[str], ...] = (
    Strategy("fenced_block", _fenced_code),
    Strategy("raw_text", _raw_code),
    Strategy("placeholder", _empty_placeholder),
)

DEBUG_CODE_STRATEGIES: tuple[Strategy[str], ...] = (
    Strategy("fenced_block", _fenced_code),
    Strategy("placeholder", lambda text: DEBUG_CODE_PLACEHOLDER),
)


def extract_code(text: str) -> str:
    """Extract code from the first fenced block, falling back to the full text.

    Always returns a non-empty string.
    """
    _, code = first_match(CODE_STRATEGIES, text or "")
    return code


# ---------------------------------------------------------------------------
# Complexity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Complexity:
    notation: str
    rationale: str
    found: bool = False  # whether a label was present at all

    def formatted(self) -> str:
        if self.rationale and self.rationale != DEFAULT_RATIONALE:
            return f"{self.notation} - {self.rationale}"
        return self.notation


_NOTATION_START_RE = re.compile(r"\b[Oo]\(")
_RATIONALE_LEAD_RE = re.compile(r"^[-:–—,]\s*")
# bold, italic and inline-code markers; underscores inside words are kept
_EMPHASIS_RE = re.compile(r"[*`]+|(?<!\w)_+|_+(?!\w)")
_LABEL_PATTERNS = {"time": _TIME, "space": _SPACE}
_LABEL_HEADERS = {kind: _header_re(p) for kind, p in _LABEL_PATTERNS.items()}
_SHORT_LABELS = {
    kind: re.compile(rf"^{_DECORATION}{kind}\b(?:\*\*|__)?[ \t]*:[ \t]*(?:\*\*|__)?(?P<body>.*)$", re.I | re.M)
    for kind in _LABEL_PATTERNS
}
_ANY_COMPLEXITY_RE = re.compile(rf",?[ \t]*(?:and[ \t]+)?(?:the[ \t]+)?(?:{_TIME}|{_SPACE})", re.I)


def find_notation(text: str) -> tuple[int, int] | None:
    """Locate the first balanced ``O(...)`` span in *text*."""
    for m in _NOTATION_START_RE.finditer(text):
        depth = 0
        for j in range(m.end() - 1, len(text)):
            ch = text[j]
            if ch == "\n":
                break
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    if j - m.end() >= 1:
                        return m.start(), j + 1
                    break
    return None


def _complexity_from_line_label(text: str, kind: str) -> str | None:
    body = _find_section(text, _LABEL_HEADERS[kind], _stops_at_any_section, paragraph=True)
    if not body:
        return None
    # "Time complexity: O(n), Space complexity: O(1)" on one line
    other = _ANY_COMPLEXITY_RE.search(body)
    if other and other.start() > 0:
        body = body[: other.start()]
    return body.strip() or None


def _complexity_from_inline_label(text: str, kind: str) -> str | None:
    pattern = re.compile(
        rf"{_LABEL_PATTERNS[kind]}(?:\*\*|__)?[ \t]*(?:is|:)[ \t]*(?:\*\*|__)?[ \t]*(?P<body>[^\n]*)",
        re.IGNORECASE,
    )
    m = pattern.search(_without_code(text))
    if m is None:
        return None
    body = m.group("body")
    other = _ANY_COMPLEXITY_RE.search(body)
    if other and other.start() > 0:
        body = body[: other.start()]
    return body.strip() or None


def _complexity_from_short_label(text: str, kind: str) -> str | None:
    # "- Time: O(n log n) for the sort" under a "Complexity" heading
    for m in _SHORT_LABELS[kind].finditer(_without_code(text)):
        body = m.group("body").strip()
        if find_notation(body):
            return body
    return None


COMPLEXITY_STRATEGIES: tuple[Strategy[str], ...] = (
    Strategy("line_label", _complexity_from_line_label),
    Strategy("inline_label", _complexity_from_inline_label),
    Strategy("short_label", _complexity_from_short_label),
)


def _clean_rationale(text: str) -> str:
    return _RATIONALE_LEAD_RE.sub("", text.strip()).strip()


def extract_complexity(text: str, kind: str) -> Complexity:
    """Extract the ``time`` or ``space`` complexity from *text*.

    Never fails: a missing label yields ``O(n)`` with the default rationale,
    and a label without big-O notation keeps ``O(n)`` with the captured text
    as rationale.
    """
    hit = first_match(COMPLEXITY_STRATEGIES, text or "", kind)
    if hit is None:
        return Complexity(DEFAULT_NOTATION, DEFAULT_RATIONALE)
    captured = _EMPHASIS_RE.sub("", hit[1]).strip()
    span = find_notation(captured)
    if span is None:
        return Complexity(DEFAULT_NOTATION, _clean_rationale(captured) or DEFAULT_RATIONALE, True)
    start, end = span
    rationale = _clean_rationale(captured[:start] + " " + captured[end:])
    return Complexity(captured[start:end], rationale or DEFAULT_RATIONALE, True)


def _combined_rationale(time: Complexity, space: Complexity) -> str:
    if time.rationale != DEFAULT_RATIONALE:
        return time.rationale
    return space.rationale


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------

_DRY_RUN_HEADER_RE = _header_re(_DRY_RUN)
_NARRATIVE_DRY_RUN_RE = re.compile(
    rf"(?:step[ -]by[ -]step|walkthrough|following the execution)"
    rf".*?(?=^{_DECORATION}(?:{_TIME}|{_SPACE})|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)


def _labeled_dry_run(text: str) -> str | None:
    body = _find_section(text, _DRY_RUN_HEADER_RE, _stops_at_complexity)
    return body or None


def _narrative_dry_run(text: str) -> str | None:
    m = _NARRATIVE_DRY_RUN_RE.search(_without_code(text))
    if m is None:
        return None
    return m.group(0).strip() or None


DRY_RUN_STRATEGIES: tuple[Strategy[str], ...] = (
    Strategy("labeled_section", _labeled_dry_run),
    Strategy("narrative_phrase", _narrative_dry_run),
)


def extract_dry_run(text: str) -> str | None:
    """Extract a dry-run trace, or None when the response has none."""
    hit = first_match(DRY_RUN_STRATEGIES, text or "")
    return hit[1] if hit else None


# ---------------------------------------------------------------------------
# Bullets
# ---------------------------------------------------------------------------

_BULLET_RE = re.compile(r"^[ \t]*(?:[-*•]|\d+[.)])[ \t]+(?P<item>\S.*)$")


def extract_bullets(text: str | None, placeholder: str = DEFAULT_THOUGHT) -> tuple[str, ...]:
    """Split *text* into bullet items; never returns an empty tuple."""
    lines = (text or "").splitlines()
    items = []
    for line in lines:
        m = _BULLET_RE.match(line)
        if m:
            items.append(m.group("item").strip())
    if not items:
        items = [line.strip() for line in lines if line.strip()]
    return tuple(items) if items else (placeholder,)


def _thoughts_section(text: str) -> str | None:
    return _find_section(text, _header_re(_THOUGHTS), _stops_at_any_section)


def _optimization_section(text: str) -> str | None:
    stop = _header_re(f"{_OPTIMIZED_CODE}|{_TIME}|{_SPACE}")

    def stops(line: str) -> bool:
        return _is_fence(line) or _header_match(stop, line) is not None

    return _find_section(text, _header_re(_OPTIMIZATION), stops)


# ---------------------------------------------------------------------------
# Response shapes
# ---------------------------------------------------------------------------

def _stage(text: str) -> StageAnalysis:
    time = extract_complexity(text, "time")
    space = extract_complexity(text, "space")
    return StageAnalysis(
        code=extract_code(text),
        time_complexity=time.notation,
        space_complexity=space.notation,
        complexity_rationale=_combined_rationale(time, space),
        dry_run_visualization=extract_dry_run(text),
    )


def parse_brute_force_response(text: str) -> StageAnalysis:
    return _stage(text)


def parse_optimized_response(text: str) -> OptimizedAnalysis:
    analysis = extract_bullets(_optimization_section(text or ""), DEFAULT_OPTIMIZATION)
    return OptimizedAnalysis(optimization_analysis=analysis, stage=_stage(text))


def parse_standard_response(text: str) -> BasicSolution:
    """Parse the one-shot markdown answer used by the fallback path."""
    text = text or ""
    return BasicSolution(
        code=extract_code(text),
        thoughts=extract_bullets(_thoughts_section(text), DEFAULT_THOUGHT),
        time_complexity=extract_complexity(text, "time").formatted(),
        space_complexity=extract_complexity(text, "space").formatted(),
        dry_run_visualization=extract_dry_run(text),
    )


_DEBUG_HEADER_PROMOTIONS = (
    (r"issues identified|problems found|bugs found", "## Issues Identified"),
    (r"code improvements|improvements|suggested changes", "## Code Improvements"),
    (r"optimizations|performance improvements", "## Optimizations"),
    (r"explanation|detailed analysis", "## Explanation"),
)


def _promote_debug_headers(text: str) -> str:
    """Turn known plain-text labels into markdown headers.

    Only applies when the analysis has no markdown headers of its own, and
    only to labels that start a line.
    """
    if re.search(r"^[ \t]*#{1,6}[ \t]", text, re.MULTILINE):
        return text
    for phrases, header in _DEBUG_HEADER_PROMOTIONS:
        text = re.sub(
            rf"^[ \t]*(?:\*\*)?(?:{phrases})(?:\*\*)?[ \t]*:?[ \t]*(?:\*\*)?",
            header + "\n",
            text,
            count=1,
            flags=re.IGNORECASE | re.MULTILINE,
        )
    return text


def parse_debug_response(text: str) -> DebugReport:
    text = text or ""
    _, code = first_match(DEBUG_CODE_STRATEGIES, text)
    analysis = _promote_debug_headers(text)
    bullets = [
        m.group("item").strip()
        for m in map(_BULLET_RE.match, _without_code(analysis).splitlines())
        if m
    ]
    thoughts = tuple(bullets[:MAX_DEBUG_THOUGHTS]) or (DEFAULT_DEBUG_THOUGHT,)
    return DebugReport(code=code, analysis=analysis, thoughts=thoughts)
