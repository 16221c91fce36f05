"""Cancellation tokens shared by every LLM call in one pipeline phase."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from sherpa.errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """A one-shot cancel signal.

    Once cancelled a token stays cancelled; a new pipeline run gets a new
    token. ``run`` races an awaitable against the signal so an in-flight call
    is torn down as soon as ``cancel`` is invoked.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Fire the signal. Must be called from the token's event loop thread."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled(f"{self.label or 'operation'} was cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, aborting it with ``OperationCancelled`` on cancel."""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        if self._event is None:
            self._event = asyncio.Event()

        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if call.done():
            return call.result()

        call.cancel()
        await asyncio.wait({call})
        raise OperationCancelled(f"{self.label or 'operation'} was cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken({self.label!r}, cancelled={self._cancelled})"
