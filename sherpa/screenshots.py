"""Screenshot queues and fault-tolerant batch loading."""

from __future__ import annotations

import asyncio
import base64
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from sherpa.errors import NoScreenshotDataError

MAX_QUEUE = 5


@dataclass(frozen=True)
class Screenshot:
    path: str
    data: str  # base64


class ScreenshotStore(Protocol):
    def get_queue(self) -> list[str]: ...

    def get_extra_queue(self) -> list[str]: ...

    def exists(self, path: str) -> bool: ...

    def read_base64(self, path: str) -> str: ...


class ScreenshotQueue:
    """File-backed main and extra (debug) screenshot queues.

    Each queue keeps at most ``max_size`` paths; adding beyond that drops the
    oldest entry. Files themselves are never deleted here.
    """

    def __init__(self, max_size: int = MAX_QUEUE) -> None:
        self.max_size = max_size
        self._queue: list[str] = []
        self._extra: list[str] = []

    def add(self, path: str | Path) -> None:
        self._push(self._queue, str(path))

    def add_extra(self, path: str | Path) -> None:
        self._push(self._extra, str(path))

    def _push(self, queue: list[str], path: str) -> None:
        queue.append(path)
        del queue[: max(0, len(queue) - self.max_size)]

    def get_queue(self) -> list[str]:
        return list(self._queue)

    def get_extra_queue(self) -> list[str]:
        return list(self._extra)

    def clear(self) -> None:
        self._queue.clear()
        self._extra.clear()

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def read_base64(self, path: str) -> str:
        return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def _log(msg: str) -> None:
    print(msg, file=sys.stderr)


async def existing_paths(store: ScreenshotStore, paths: Sequence[str]) -> list[str]:
    """Return the subset of *paths* that exist, checked off the event loop."""
    checks = await asyncio.gather(*(asyncio.to_thread(store.exists, p) for p in paths))
    return [p for p, ok in zip(paths, checks) if ok]


async def load_screenshots(store: ScreenshotStore, paths: Sequence[str]) -> list[Screenshot]:
    """Read every path in parallel, dropping the ones that fail.

    Raises ``NoScreenshotDataError`` when none of them could be read.
    """

    async def read(path: str) -> Screenshot | None:
        try:
            data = await asyncio.to_thread(store.read_base64, path)
        except OSError as exc:
            _log(f"Skipping unreadable screenshot {path}: {exc}")
            return None
        if not data:
            _log(f"Skipping empty screenshot {path}")
            return None
        return Screenshot(path=path, data=data)

    results = await asyncio.gather(*(read(p) for p in paths))
    shots = [s for s in results if s is not None]
    if not shots:
        raise NoScreenshotDataError()
    return shots
