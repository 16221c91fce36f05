"""Base agent with shared LLM calling logic."""

from __future__ import annotations

import sys
from typing import Callable, Sequence

from sherpa.cancellation import CancellationToken
from sherpa.llm import AIService

# progress(message, percent)
ProgressCallback = Callable[[str, int], None]


def notify_progress(
    progress: ProgressCallback | None,
    message: str,
    percent: int,
    log: Callable[[str], None],
) -> None:
    """Deliver a progress update; a failing callback is logged, never raised."""
    if progress is None:
        return
    try:
        progress(message, percent)
    except Exception as exc:
        log(f"Progress update {message!r} could not be delivered: {exc}")


class BaseAgent:
    def __init__(self, ai: AIService) -> None:
        self.ai = ai

    @property
    def language(self) -> str:
        return self.ai.current_config().language

    async def _call_llm(
        self,
        system: str,
        user: str,
        token: CancellationToken | None = None,
        model: str | None = None,
        images: Sequence[str] | None = None,
    ) -> str:
        if images:
            return await self.ai.complete_vision(
                user, images, system_prompt=system, model=model, token=token
            )
        return await self.ai.complete(user, system_prompt=system, model=model, token=token)

    def _log(self, msg: str) -> None:
        print(msg, file=sys.stderr)
