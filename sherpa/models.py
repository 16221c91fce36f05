"""Data models for Sherpa."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Iterator, Union


class SolutionKind(enum.Enum):
    BASIC = "basic"
    DETAILED = "detailed"
    NARRATIVE = "narrative"
    FOUR_QUADRANT = "four_quadrant"


# ---------------------------------------------------------------------------
# Problem extraction and understanding
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProblemInfo:
    problem_statement: str = ""
    constraints: str | None = None
    example_input: str | None = None
    example_output: str | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ProblemExample:
    input: str
    output: str
    explanation: str | None = None

    def to_dict(self) -> dict:
        data = {"input": self.input, "output": self.output}
        if self.explanation is not None:
            data["explanation"] = self.explanation
        return data


@dataclass(frozen=True)
class ProblemUnderstanding:
    understanding_statement: str
    generated_examples: tuple[ProblemExample, ...] = ()
    clarifying_questions: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "understandingStatement": self.understanding_statement,
            "generatedExamples": [e.to_dict() for e in self.generated_examples],
            "clarifyingQuestions": list(self.clarifying_questions),
        }


@dataclass(frozen=True)
class ExamplesPresent:
    """The screenshots already held enough examples; confirmation is skipped."""


InitialAnalysis = Union[ProblemUnderstanding, ExamplesPresent]


# ---------------------------------------------------------------------------
# Solution records. Each carries a `kind` tag set by whichever parser built it.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BasicSolution:
    code: str
    thoughts: tuple[str, ...]
    time_complexity: str
    space_complexity: str
    dry_run_visualization: str | None = None
    kind: SolutionKind = field(default=SolutionKind.BASIC, init=False)


@dataclass(frozen=True)
class StageAnalysis:
    """One parsed stage (brute force or optimized) of the two-stage flow."""

    code: str
    time_complexity: str
    space_complexity: str
    complexity_rationale: str
    dry_run_visualization: str | None = None


@dataclass(frozen=True)
class OptimizedAnalysis:
    optimization_analysis: tuple[str, ...]
    stage: StageAnalysis


@dataclass(frozen=True)
class DetailedSolution:
    problem_statement: str
    brute_force: StageAnalysis
    optimization_analysis: tuple[str, ...]
    optimized: StageAnalysis
    raw_brute_force_response: str = ""
    raw_optimized_response: str = ""
    kind: SolutionKind = field(default=SolutionKind.DETAILED, init=False)


@dataclass(frozen=True)
class NarrativeBruteForce:
    explanation: str
    code_or_pseudocode: str
    time_complexity: str
    space_complexity: str
    inefficiency_reason: str


@dataclass(frozen=True)
class OptimizationStrategy:
    explanation: str
    pseudocode: str
    time_complexity: str
    space_complexity: str


@dataclass(frozen=True)
class OptimalImplementation:
    code: str
    dry_run: str


@dataclass(frozen=True)
class NarrativeSolution:
    problem_analysis: str
    brute_force: NarrativeBruteForce
    optimization_strategy: OptimizationStrategy
    optimal_implementation: OptimalImplementation
    kind: SolutionKind = field(default=SolutionKind.NARRATIVE, init=False)

    def to_dict(self) -> dict:
        bf, st, impl = self.brute_force, self.optimization_strategy, self.optimal_implementation
        return {
            "problemAnalysis": self.problem_analysis,
            "bruteForce": {
                "explanation": bf.explanation,
                "codeOrPseudocode": bf.code_or_pseudocode,
                "timeComplexity": bf.time_complexity,
                "spaceComplexity": bf.space_complexity,
                "inefficiencyReason": bf.inefficiency_reason,
            },
            "optimizationStrategy": {
                "explanation": st.explanation,
                "pseudocode": st.pseudocode,
                "timeComplexity": st.time_complexity,
                "spaceComplexity": st.space_complexity,
            },
            "optimalImplementation": {"code": impl.code, "dryRun": impl.dry_run},
        }


@dataclass(frozen=True)
class QuadrantImplementation:
    code: str
    time_complexity: str
    space_complexity: str
    thinking_process: str


@dataclass(frozen=True)
class FourQuadrantSolution:
    problem_understanding: str
    brute_force_approach: str
    optimal_solution_pseudocode: str
    optimal_solution_implementation: QuadrantImplementation
    kind: SolutionKind = field(default=SolutionKind.FOUR_QUADRANT, init=False)

    def to_dict(self) -> dict:
        impl = self.optimal_solution_implementation
        return {
            "problemUnderstanding": self.problem_understanding,
            "bruteForceApproach": self.brute_force_approach,
            "optimalSolutionPseudocode": self.optimal_solution_pseudocode,
            "optimalSolutionImplementation": {
                "code": impl.code,
                "timeComplexity": impl.time_complexity,
                "spaceComplexity": impl.space_complexity,
                "thinkingProcess": impl.thinking_process,
            },
        }


Solution = Union[BasicSolution, DetailedSolution, NarrativeSolution, FourQuadrantSolution]


@dataclass(frozen=True)
class DebugReport:
    code: str
    analysis: str
    thoughts: tuple[str, ...]
    time_complexity: str = "N/A - Debug mode"
    space_complexity: str = "N/A - Debug mode"


class ImplementationHistory:
    """Append-only record of optimal implementations.

    Entry 0 is the implementation from the original solution; every follow-up
    question adds one entry and never rewrites an earlier one.
    """

    def __init__(self, initial: OptimalImplementation) -> None:
        self._entries: list[OptimalImplementation] = [initial]

    @classmethod
    def for_solution(cls, solution: Solution) -> ImplementationHistory:
        return cls(initial_implementation(solution))

    def append(self, entry: OptimalImplementation) -> None:
        self._entries.append(entry)

    @property
    def latest(self) -> OptimalImplementation:
        return self._entries[-1]

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> OptimalImplementation:
        return self._entries[index]

    def __iter__(self) -> Iterator[OptimalImplementation]:
        return iter(tuple(self._entries))

    def to_list(self) -> list[dict]:
        return [{"code": e.code, "dryRun": e.dry_run} for e in self._entries]


def initial_implementation(solution: Solution) -> OptimalImplementation:
    """Pick the implementation a follow-up question should start from."""
    if solution.kind is SolutionKind.NARRATIVE:
        return solution.optimal_implementation
    if solution.kind is SolutionKind.DETAILED:
        return OptimalImplementation(
            code=solution.optimized.code,
            dry_run=solution.optimized.dry_run_visualization or "",
        )
    if solution.kind is SolutionKind.FOUR_QUADRANT:
        impl = solution.optimal_solution_implementation
        return OptimalImplementation(code=impl.code, dry_run=impl.thinking_process)
    return OptimalImplementation(
        code=solution.code, dry_run=solution.dry_run_visualization or ""
    )


def problem_analysis_of(solution: Solution, fallback: str = "") -> str:
    """Return the problem restatement a solution carries, if it has one."""
    if solution.kind is SolutionKind.NARRATIVE:
        return solution.problem_analysis or fallback
    if solution.kind is SolutionKind.FOUR_QUADRANT:
        return solution.problem_understanding or fallback
    if solution.kind is SolutionKind.DETAILED:
        return solution.problem_statement or fallback
    return fallback


def to_payload(record) -> dict:
    """Convert a record to a JSON-friendly dict (enums become their values)."""

    def factory(items):
        return {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in items}

    return asdict(record, dict_factory=factory)


# ---------------------------------------------------------------------------
# Behavioral interviews
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LeadershipPrinciple:
    name: str
    description: str


@dataclass(frozen=True)
class BehavioralStory:
    id: str
    title: str
    principles: tuple[str, ...]
    situation: str
    task: str
    action: str
    result: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["principles"] = list(self.principles)
        return data


@dataclass(frozen=True)
class StorySelection:
    story_id: str | None
    reasoning: str


@dataclass(frozen=True)
class BehavioralAnswer:
    principles: tuple[str, ...]
    story: BehavioralStory | None
    reasoning: str


@dataclass(frozen=True)
class AnticipatedFollowUp:
    question: str
    answer: str
