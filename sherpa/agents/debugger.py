"""Debugger agent: reviews the candidate's code and errors from extra screenshots."""

from __future__ import annotations

from typing import Sequence

from sherpa.agents.base import BaseAgent
from sherpa.cancellation import CancellationToken
from sherpa.errors import PreconditionError
from sherpa.extraction import parse_debug_response
from sherpa.models import DebugReport, ProblemInfo
from sherpa.prompts import DEBUG_SYSTEM, debug_user_prompt


class DebuggerAgent(BaseAgent):
    async def debug(
        self,
        problem: ProblemInfo | None,
        images: Sequence[str],
        language: str | None = None,
        token: CancellationToken | None = None,
    ) -> DebugReport:
        if problem is None:
            raise PreconditionError("No problem info available to debug against")
        if not images:
            raise PreconditionError("No screenshots to debug")
        raw = await self._call_llm(
            system=DEBUG_SYSTEM,
            user=debug_user_prompt(language or self.language, problem),
            token=token,
            images=images,
        )
        return parse_debug_response(raw)
