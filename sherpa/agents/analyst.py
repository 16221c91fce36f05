"""Analyst agent: reads the problem from screenshots and confirms understanding."""

from __future__ import annotations

from typing import Sequence

from sherpa.agents.base import BaseAgent
from sherpa.cancellation import CancellationToken
from sherpa.errors import PreconditionError
from sherpa.models import InitialAnalysis, ProblemInfo, ProblemUnderstanding
from sherpa.prompts import (
    EXTRACTION_SYSTEM,
    REFINE_SYSTEM,
    UNDERSTANDING_SYSTEM,
    extraction_user_prompt,
    refine_user_prompt,
    understanding_user_prompt,
)
from sherpa.validation import (
    parse_initial_analysis,
    parse_problem_info,
    parse_refined_understanding,
)


class AnalystAgent(BaseAgent):
    async def extract_problem(
        self,
        images: Sequence[str],
        language: str | None = None,
        token: CancellationToken | None = None,
    ) -> ProblemInfo:
        if not images:
            raise PreconditionError("No screenshots to extract a problem from")
        raw = await self._call_llm(
            system=EXTRACTION_SYSTEM,
            user=extraction_user_prompt(language or self.language),
            token=token,
            images=images,
        )
        return parse_problem_info(raw)

    async def understand(
        self,
        problem: ProblemInfo | None,
        token: CancellationToken | None = None,
    ) -> InitialAnalysis:
        if problem is None:
            raise PreconditionError("No problem info available to analyze")
        raw = await self._call_llm(
            system=UNDERSTANDING_SYSTEM,
            user=understanding_user_prompt(problem),
            token=token,
        )
        return parse_initial_analysis(raw)

    async def refine(
        self,
        problem: ProblemInfo | None,
        previous: ProblemUnderstanding | None,
        clarification: str,
        token: CancellationToken | None = None,
    ) -> ProblemUnderstanding:
        if problem is None:
            raise PreconditionError("No problem info available to refine")
        if previous is None:
            raise PreconditionError("No understanding to refine; run the analysis first")
        if not clarification.strip():
            raise PreconditionError("Clarification text is empty")
        raw = await self._call_llm(
            system=REFINE_SYSTEM,
            user=refine_user_prompt(problem, previous, clarification),
            token=token,
        )
        return parse_refined_understanding(raw)
