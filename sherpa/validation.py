"""Validation of LLM responses that were asked to be a single JSON value.

Two policies live here. Strict parsers raise ``ResponseValidationError`` naming
the expected structure as soon as a required key is missing or mistyped.
The lenient four-quadrant parser substitutes a labeled placeholder for each
bad section and never raises once the text is a JSON object.
"""

from __future__ import annotations

import json
import re
from typing import Any

from sherpa.errors import ResponseValidationError
from sherpa.models import (
    AnticipatedFollowUp,
    ExamplesPresent,
    FourQuadrantSolution,
    InitialAnalysis,
    NarrativeBruteForce,
    NarrativeSolution,
    OptimalImplementation,
    OptimizationStrategy,
    ProblemExample,
    ProblemInfo,
    ProblemUnderstanding,
    QuadrantImplementation,
    StorySelection,
)

_LEADING_FENCE_RE = re.compile(r"^\s*```[\w-]*[ \t]*\n?")
_TRAILING_FENCE_RE = re.compile(r"\n?[ \t]*```\s*$")


def strip_fences(text: str) -> str:
    """Remove a surrounding markdown code fence and whitespace."""
    cleaned = (text or "").strip()
    cleaned = _LEADING_FENCE_RE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def _load(text: str, schema: str, opener: str, closer: str, kind: str) -> Any:
    cleaned = strip_fences(text)
    if not (cleaned.startswith(opener) and cleaned.endswith(closer)):
        raise ResponseValidationError(schema, f"response is not a valid JSON {kind}", text or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ResponseValidationError(schema, f"invalid JSON ({exc.msg} at line {exc.lineno})", text) from exc


def load_json_object(text: str, schema: str) -> dict:
    return _load(text, schema, "{", "}", "object")


def load_json_array(text: str, schema: str) -> list:
    return _load(text, schema, "[", "]", "array")


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _require(data: dict, key: str, schema: str, raw: str, kind: type | tuple = str) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        expected = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise ResponseValidationError(
            schema,
            f"expected {key!r} to be {expected}, got {type(value).__name__}",
            raw,
        )
    return value


def _require_text(data: dict, key: str, schema: str, raw: str) -> str:
    """A required, non-empty string field."""
    value = _require(data, key, schema, raw)
    if not value.strip():
        raise ResponseValidationError(schema, f"{key!r} is empty", raw)
    return value


def _optional_text(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return _as_text(value)


def _parse_examples(items: list, schema: str, raw: str) -> tuple[ProblemExample, ...]:
    examples = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or "input" not in item or "output" not in item:
            raise ResponseValidationError(
                schema, f"generatedExamples[{index}] must be an object with input and output", raw
            )
        explanation = item.get("explanation")
        examples.append(
            ProblemExample(
                input=_as_text(item["input"]),
                output=_as_text(item["output"]),
                explanation=None if explanation is None else _as_text(explanation),
            )
        )
    return tuple(examples)


# ---------------------------------------------------------------------------
# Strict parsers
# ---------------------------------------------------------------------------

def parse_problem_info(text: str) -> ProblemInfo:
    """Parse the screenshot extraction response."""
    schema = "ProblemInfo"
    data = load_json_object(text, schema)
    statement = data.get("problem_statement")
    if statement is not None and not isinstance(statement, str):
        raise ResponseValidationError(schema, "expected 'problem_statement' to be str", text)

    def optional(key: str) -> str | None:
        value = data.get(key)
        return None if value is None else _as_text(value)

    return ProblemInfo(
        problem_statement=statement or "",
        constraints=optional("constraints"),
        example_input=optional("example_input"),
        example_output=optional("example_output"),
    )


def _understanding_from(data: dict, schema: str, raw: str) -> ProblemUnderstanding:
    statement = _require(data, "understandingStatement", schema, raw)
    examples = _require(data, "generatedExamples", schema, raw, list)
    questions = _require(data, "clarifyingQuestions", schema, raw, list)
    return ProblemUnderstanding(
        understanding_statement=statement,
        generated_examples=_parse_examples(examples, schema, raw),
        clarifying_questions=tuple(_as_text(q) for q in questions),
    )


def parse_initial_analysis(text: str) -> InitialAnalysis:
    """Parse the first analysis response.

    ``{"examplesPresent": true}`` is its own terminal answer and is recognised
    before any schema check.
    """
    data = load_json_object(text, "ProblemUnderstandingData")
    if data.get("examplesPresent") is True:
        return ExamplesPresent()
    return _understanding_from(data, "ProblemUnderstandingData", text)


def parse_refined_understanding(text: str) -> ProblemUnderstanding:
    data = load_json_object(text, "ProblemUnderstandingData")
    return _understanding_from(data, "ProblemUnderstandingData", text)


def _implementation_from(data: dict, schema: str, raw: str) -> OptimalImplementation:
    impl = _require(data, "optimalImplementation", schema, raw, dict)
    return OptimalImplementation(
        code=_require_text(impl, "code", schema, raw),
        dry_run=_require_text(impl, "dryRun", schema, raw),
    )


def parse_narrative(text: str) -> NarrativeSolution:
    schema = "NarrativeSolutionData"
    data = load_json_object(text, schema)
    brute = _require(data, "bruteForce", schema, text, dict)
    strategy = _require(data, "optimizationStrategy", schema, text, dict)
    implementation = _implementation_from(data, schema, text)
    return NarrativeSolution(
        problem_analysis=_optional_text(data, "problemAnalysis"),
        brute_force=NarrativeBruteForce(
            explanation=_optional_text(brute, "explanation"),
            code_or_pseudocode=_optional_text(brute, "codeOrPseudocode"),
            time_complexity=_optional_text(brute, "timeComplexity"),
            space_complexity=_optional_text(brute, "spaceComplexity"),
            inefficiency_reason=_optional_text(brute, "inefficiencyReason"),
        ),
        optimization_strategy=OptimizationStrategy(
            explanation=_optional_text(strategy, "explanation"),
            pseudocode=_optional_text(strategy, "pseudocode"),
            time_complexity=_optional_text(strategy, "timeComplexity"),
            space_complexity=_optional_text(strategy, "spaceComplexity"),
        ),
        optimal_implementation=implementation,
    )


def parse_follow_up(text: str) -> OptimalImplementation:
    schema = "FollowUpResponse"
    return _implementation_from(load_json_object(text, schema), schema, text)


# ---------------------------------------------------------------------------
# Lenient parser
# ---------------------------------------------------------------------------

def _section_or_placeholder(data: dict, key: str, label: str) -> str:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return f"Missing: {label}."


def parse_four_quadrant(text: str) -> FourQuadrantSolution:
    """Parse the four-section analysis, filling bad sections with placeholders.

    Only a response that is not a JSON object at all raises.
    """
    data = load_json_object(text, "FourQuadrantData")
    impl = data.get("optimalSolutionImplementation")
    if not isinstance(impl, dict):
        impl = {}
    return FourQuadrantSolution(
        problem_understanding=_section_or_placeholder(data, "problemUnderstanding", "Problem Understanding"),
        brute_force_approach=_section_or_placeholder(data, "bruteForceApproach", "Brute Force Approach"),
        optimal_solution_pseudocode=_section_or_placeholder(
            data, "optimalSolutionPseudocode", "Optimal Solution Pseudocode"
        ),
        optimal_solution_implementation=QuadrantImplementation(
            code=_section_or_placeholder(impl, "code", "Code"),
            time_complexity=_section_or_placeholder(impl, "timeComplexity", "Time Complexity"),
            space_complexity=_section_or_placeholder(impl, "spaceComplexity", "Space Complexity"),
            thinking_process=_section_or_placeholder(impl, "thinkingProcess", "Thinking Process"),
        ),
    )


# ---------------------------------------------------------------------------
# Behavioral responses
# ---------------------------------------------------------------------------

def parse_principle_list(text: str) -> tuple[str, ...]:
    schema = "LeadershipPrincipleList"
    items = load_json_array(text, schema)
    if not all(isinstance(item, str) for item in items):
        raise ResponseValidationError(schema, "every entry must be a principle name string", text)
    return tuple(item.strip() for item in items if item.strip())


def parse_story_selection(text: str) -> StorySelection:
    schema = "StorySelection"
    data = load_json_object(text, schema)
    story_id = data.get("selectedStoryId")
    if story_id is not None and not isinstance(story_id, (str, int)):
        raise ResponseValidationError(schema, "expected 'selectedStoryId' to be a string or null", text)
    return StorySelection(
        story_id=None if story_id in (None, "") else str(story_id),
        reasoning=_require(data, "reasoning", schema, text),
    )


def parse_explanation(text: str) -> str:
    schema = "BehavioralFollowUp"
    return _require_text(load_json_object(text, schema), "explanation", schema, text)


def parse_anticipated_follow_ups(text: str) -> tuple[AnticipatedFollowUp, ...]:
    schema = "AnticipatedFollowUps"
    items = load_json_array(text, schema)
    result = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ResponseValidationError(schema, f"entry {index} is not an object", text)
        result.append(
            AnticipatedFollowUp(
                question=_require_text(item, "question", schema, text),
                answer=_require_text(item, "answer", schema, text),
            )
        )
    return tuple(result)


def parse_generated_story(text: str) -> str:
    schema = "GeneratedStory"
    return _require_text(load_json_object(text, schema), "generatedStoryText", schema, text)
