"""Tests for screenshot queues and batch loading."""

from __future__ import annotations

import asyncio
import base64

import pytest

from sherpa.errors import NoScreenshotDataError
from sherpa.screenshots import ScreenshotQueue, existing_paths, load_screenshots


class TestScreenshotQueue:
    def test_keeps_newest(self):
        store = ScreenshotQueue(max_size=2)
        for name in ("a.png", "b.png", "c.png"):
            store.add(name)
        assert store.get_queue() == ["b.png", "c.png"]

    def test_extra_queue_is_separate(self):
        store = ScreenshotQueue()
        store.add("main.png")
        store.add_extra("code.png")
        assert store.get_queue() == ["main.png"]
        assert store.get_extra_queue() == ["code.png"]
        store.clear()
        assert store.get_queue() == [] and store.get_extra_queue() == []

    def test_returns_copies(self):
        store = ScreenshotQueue()
        store.add("a.png")
        store.get_queue().append("b.png")
        assert store.get_queue() == ["a.png"]


class TestLoading:
    def test_existing_paths(self, tmp_path):
        present = tmp_path / "a.png"
        present.write_bytes(b"data")
        paths = [str(present), str(tmp_path / "missing.png")]
        assert asyncio.run(existing_paths(ScreenshotQueue(), paths)) == [str(present)]

    def test_load_skips_unreadable_and_empty(self, tmp_path):
        good = tmp_path / "good.png"
        good.write_bytes(b"image bytes")
        empty = tmp_path / "empty.png"
        empty.write_bytes(b"")
        paths = [str(good), str(empty), str(tmp_path / "gone.png")]

        shots = asyncio.run(load_screenshots(ScreenshotQueue(), paths))
        assert [s.path for s in shots] == [str(good)]
        assert base64.b64decode(shots[0].data) == b"image bytes"

    def test_nothing_readable(self, tmp_path):
        with pytest.raises(NoScreenshotDataError, match="No valid screenshot data"):
            asyncio.run(load_screenshots(ScreenshotQueue(), [str(tmp_path / "gone.png")]))
