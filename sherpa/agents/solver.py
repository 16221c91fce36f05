"""Solver agent: one LLM call per solution shape."""

from __future__ import annotations

from typing import Sequence

from sherpa.agents.base import BaseAgent
from sherpa.cancellation import CancellationToken
from sherpa.errors import PreconditionError
from sherpa.extraction import (
    parse_brute_force_response,
    parse_optimized_response,
    parse_standard_response,
)
from sherpa.models import (
    BasicSolution,
    FourQuadrantSolution,
    NarrativeSolution,
    OptimalImplementation,
    OptimizedAnalysis,
    ProblemExample,
    ProblemInfo,
    StageAnalysis,
)
from sherpa.prompts import (
    BRUTE_FORCE_SYSTEM,
    FOLLOW_UP_SYSTEM,
    FOUR_QUADRANT_SYSTEM,
    NARRATIVE_SYSTEM,
    OPTIMIZE_SYSTEM,
    STANDARD_SYSTEM,
    brute_force_user_prompt,
    follow_up_user_prompt,
    four_quadrant_user_prompt,
    narrative_user_prompt,
    optimize_user_prompt,
    standard_user_prompt,
)
from sherpa.validation import parse_follow_up, parse_four_quadrant, parse_narrative


class SolverAgent(BaseAgent):
    async def narrative(
        self,
        problem: ProblemInfo,
        language: str,
        understanding: str,
        examples: Sequence[ProblemExample],
        token: CancellationToken | None = None,
    ) -> NarrativeSolution:
        raw = await self._call_llm(
            system=NARRATIVE_SYSTEM,
            user=narrative_user_prompt(language, problem, understanding, examples),
            token=token,
        )
        return parse_narrative(raw)

    async def four_quadrant(
        self,
        problem: ProblemInfo,
        language: str,
        understanding: str,
        examples: Sequence[ProblemExample],
        token: CancellationToken | None = None,
    ) -> FourQuadrantSolution:
        raw = await self._call_llm(
            system=FOUR_QUADRANT_SYSTEM,
            user=four_quadrant_user_prompt(language, problem, understanding, examples),
            token=token,
        )
        return parse_four_quadrant(raw)

    async def brute_force(
        self,
        problem: ProblemInfo,
        language: str,
        token: CancellationToken | None = None,
    ) -> tuple[StageAnalysis, str]:
        raw = await self._call_llm(
            system=BRUTE_FORCE_SYSTEM,
            user=brute_force_user_prompt(language, problem),
            token=token,
        )
        return parse_brute_force_response(raw), raw

    async def optimize(
        self,
        problem: ProblemInfo,
        language: str,
        brute_force: StageAnalysis,
        token: CancellationToken | None = None,
    ) -> tuple[OptimizedAnalysis, str]:
        raw = await self._call_llm(
            system=OPTIMIZE_SYSTEM,
            user=optimize_user_prompt(
                language,
                problem,
                brute_force.code,
                brute_force.time_complexity,
                brute_force.space_complexity,
            ),
            token=token,
        )
        return parse_optimized_response(raw), raw

    async def standard(
        self,
        problem: ProblemInfo,
        language: str,
        token: CancellationToken | None = None,
    ) -> BasicSolution:
        raw = await self._call_llm(
            system=STANDARD_SYSTEM,
            user=standard_user_prompt(language, problem),
            token=token,
        )
        return parse_standard_response(raw)

    async def follow_up(
        self,
        language: str,
        problem_analysis: str,
        latest: OptimalImplementation | None,
        question: str,
        token: CancellationToken | None = None,
    ) -> OptimalImplementation:
        if latest is None:
            raise PreconditionError("No solution to ask a follow-up question about")
        if not question.strip():
            raise PreconditionError("Follow-up question is empty")
        raw = await self._call_llm(
            system=FOLLOW_UP_SYSTEM,
            user=follow_up_user_prompt(
                language, problem_analysis, latest.code, latest.dry_run, question
            ),
            token=token,
        )
        return parse_follow_up(raw)
