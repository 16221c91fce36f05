"""Multi-stage solution generation with one fallback layer."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Sequence

from sherpa.agents.base import ProgressCallback, notify_progress
from sherpa.agents.solver import SolverAgent
from sherpa.cancellation import CancellationToken
from sherpa.errors import OperationCancelled, PreconditionError
from sherpa.llm import AIService
from sherpa.models import (
    DetailedSolution,
    ProblemExample,
    ProblemInfo,
    Solution,
)

NARRATIVE = "narrative"
TWO_STAGE = "two_stage"
FOUR_QUADRANT = "four_quadrant"


@dataclass
class SolveResult:
    success: bool
    solution: Solution | None = None
    error: str | None = None
    used_fallback: bool = False


class SolutionOrchestrator:
    """Runs the primary solve path for a mode and, if it fails, the standard prompt.

    At most two attempts are made per request. Cancellation is never treated
    as a failure: ``OperationCancelled`` propagates and the fallback is
    skipped. Progress callbacks run before and after each call and have
    returned before ``generate`` does.
    """

    def __init__(self, ai: AIService, solver: SolverAgent | None = None) -> None:
        self.ai = ai
        self.solver = solver or SolverAgent(ai)

    async def generate(
        self,
        problem: ProblemInfo | None,
        language: str | None = None,
        token: CancellationToken | None = None,
        understanding: str | None = None,
        examples: Sequence[ProblemExample] = (),
        mode: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> SolveResult:
        if problem is None:
            raise PreconditionError("No problem info available to generate a solution")
        config = self.ai.current_config()
        language = language or config.language
        mode = mode or config.solve_mode
        if mode not in (NARRATIVE, TWO_STAGE, FOUR_QUADRANT):
            raise PreconditionError(f"Unknown solve mode {mode!r}")
        if mode != TWO_STAGE and not (understanding or "").strip():
            raise PreconditionError("No confirmed understanding available to generate a solution")

        self._log(f"Solving in {mode} mode ({language})")
        try:
            solution = await self._primary(mode, problem, language, token, understanding or "", examples, progress)
            self._notify(progress, "Solution generated.", 100)
            return SolveResult(success=True, solution=solution)
        except OperationCancelled:
            raise
        except Exception as exc:
            if token is not None and token.cancelled:
                raise OperationCancelled("solution generation was cancelled") from exc
            self._log(f"Primary {mode} generation failed: {exc}. Falling back to the standard prompt.")

        self._notify(progress, "Retrying with a simpler prompt...", 70)
        try:
            solution = await self.solver.standard(problem, language, token)
        except OperationCancelled:
            raise
        except Exception as exc:
            if token is not None and token.cancelled:
                raise OperationCancelled("solution generation was cancelled") from exc
            self._log(f"Fallback generation failed: {exc}")
            return SolveResult(
                success=False,
                error=f"Failed to generate a solution: {exc}",
                used_fallback=True,
            )
        self._notify(progress, "Solution generated.", 100)
        return SolveResult(success=True, solution=solution, used_fallback=True)

    async def _primary(
        self,
        mode: str,
        problem: ProblemInfo,
        language: str,
        token: CancellationToken | None,
        understanding: str,
        examples: Sequence[ProblemExample],
        progress: ProgressCallback | None,
    ) -> Solution:
        if mode == TWO_STAGE:
            return await self._two_stage(problem, language, token, progress)
        if mode == FOUR_QUADRANT:
            self._notify(progress, "Generating four-part analysis...", 60)
            return await self.solver.four_quadrant(problem, language, understanding, examples, token)
        self._notify(progress, "Generating solution...", 60)
        return await self.solver.narrative(problem, language, understanding, examples, token)

    async def _two_stage(
        self,
        problem: ProblemInfo,
        language: str,
        token: CancellationToken | None,
        progress: ProgressCallback | None,
    ) -> DetailedSolution:
        self._notify(progress, "Generating brute force solution...", 40)
        brute, brute_raw = await self.solver.brute_force(problem, language, token)
        self._log(f"Brute force: time {brute.time_complexity}, space {brute.space_complexity}")

        self._notify(progress, "Optimizing solution...", 60)
        optimized, optimized_raw = await self.solver.optimize(problem, language, brute, token)
        self._log(
            f"Optimized: time {optimized.stage.time_complexity}, "
            f"space {optimized.stage.space_complexity}"
        )

        self._notify(progress, "Finalizing solution...", 80)
        return DetailedSolution(
            problem_statement=problem.problem_statement,
            brute_force=brute,
            optimization_analysis=optimized.optimization_analysis,
            optimized=optimized.stage,
            raw_brute_force_response=brute_raw,
            raw_optimized_response=optimized_raw,
        )

    def _notify(self, progress: ProgressCallback | None, message: str, percent: int) -> None:
        notify_progress(progress, message, percent, self._log)

    def _log(self, message: str) -> None:
        print(message, file=sys.stderr)
