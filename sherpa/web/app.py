"""Flask web application for Sherpa."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import os
import queue
import re
import shutil
import sys
import threading
import uuid
from pathlib import Path

from flask import Flask, Response, jsonify, request, stream_with_context

from sherpa.agents.behavioral import (
    BehavioralAssistant,
    load_principles,
    load_stories,
    parse_principles,
    parse_stories,
)
from sherpa.config import JsonFileConfigSource, env_config_source
from sherpa.errors import ConfigError, ProviderError, SherpaError
from sherpa.llm import AIService
from sherpa.models import to_payload
from sherpa.screenshots import ScreenshotQueue
from sherpa.session import InterviewSession, SessionEvent

app = Flask(__name__)

UPLOADS_DIR = Path(os.environ.get(
    "SHERPA_UPLOADS_DIR",
    Path(__file__).resolve().parent.parent.parent / "instance" / "uploads",
))

ALLOWED_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"}

# Seconds a request waits on the session loop before giving up
CALL_TIMEOUT = 30
# Seconds between SSE keep-alive comments
KEEPALIVE = 15
# Events buffered per session while no SSE reader drains them
EVENT_QUEUE_SIZE = 500
# Oldest sessions are evicted past this count
MAX_SESSIONS = 100


def _make_config_source():
    settings = os.environ.get("SHERPA_SETTINGS_FILE")
    if settings:
        return JsonFileConfigSource(settings)
    return env_config_source


ai = AIService(_make_config_source())


# ---------------------------------------------------------------------------
# Background event loop: every session coroutine runs here
# ---------------------------------------------------------------------------

_loop: asyncio.AbstractEventLoop | None = None
_loop_lock = threading.Lock()


def _get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    with _loop_lock:
        if _loop is None:
            _loop = asyncio.new_event_loop()
            threading.Thread(target=_loop.run_forever, name="sherpa-loop", daemon=True).start()
        return _loop


def _submit(coro):
    """Schedule *coro* on the session loop and return its concurrent future."""
    return asyncio.run_coroutine_threadsafe(coro, _get_loop())


def _call_on_loop(fn, *args):
    """Run a plain callable on the session loop and wait for its result."""

    async def call():
        return fn(*args)

    return _submit(call()).result(timeout=CALL_TIMEOUT)


def _log_failure(future) -> None:
    exc = future.exception()
    if exc is not None:
        print(f"[web] session task failed: {type(exc).__name__}: {exc}", file=sys.stderr)


# ---------------------------------------------------------------------------
# StreamingSession
# ---------------------------------------------------------------------------

def _jsonable(payload):
    if dataclasses.is_dataclass(payload):
        return to_payload(payload)
    return payload


class StreamingSession(InterviewSession):
    """Session that mirrors every event and log line into a queue for SSE."""

    def __init__(self, ai: AIService, store: ScreenshotQueue, event_queue: queue.Queue) -> None:
        super().__init__(ai, store)
        self._queue = event_queue
        self.dropped_events = 0

    def _push(self, item: dict) -> None:
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            self.dropped_events += 1

    def _emit(self, event: SessionEvent, payload=None) -> None:
        super()._emit(event, payload)
        self._push({"type": event.value, "payload": _jsonable(payload)})

    def _log(self, message: str) -> None:
        super()._log(message)
        self._push({"type": "log", "message": message})


@dataclasses.dataclass
class SessionHandle:
    session: StreamingSession
    store: ScreenshotQueue
    events: queue.Queue
    reader_attached: bool = False


_sessions: dict[str, SessionHandle] = {}
_sessions_lock = threading.Lock()


def _get_handle(session_id: str) -> SessionHandle | None:
    with _sessions_lock:
        return _sessions.get(session_id)


def _discard(session_id: str, handle: SessionHandle) -> None:
    """Cancel a removed session's work and delete its uploads."""
    _call_on_loop(handle.session.cancel)
    upload_dir = UPLOADS_DIR / session_id
    if upload_dir.is_dir():
        shutil.rmtree(upload_dir)


def _save_uploaded_images(session_id: str) -> list[str]:
    """Save uploaded image files and return their absolute paths."""
    files = request.files.getlist("images")
    upload_dir = UPLOADS_DIR / session_id
    upload_dir.mkdir(parents=True, exist_ok=True)
    saved: list[str] = []
    for f in files:
        if not f.filename:
            continue
        ext = Path(f.filename).suffix.lower()
        if ext not in ALLOWED_IMAGE_EXTENSIONS:
            continue
        safe_name = re.sub(r"[^\w.\-]", "_", f.filename)
        dest = upload_dir / f"{uuid.uuid4().hex[:8]}-{safe_name}"
        f.save(str(dest))
        saved.append(str(dest))
    return saved


def _not_found():
    return jsonify({"error": "Session not found"}), 404


# ---------------------------------------------------------------------------
# Session routes
# ---------------------------------------------------------------------------

@app.route("/sessions", methods=["POST"])
def create_session():
    session_id = uuid.uuid4().hex
    events: queue.Queue = queue.Queue(maxsize=EVENT_QUEUE_SIZE)
    store = ScreenshotQueue()
    handle = SessionHandle(StreamingSession(ai, store, events), store, events)
    evicted = []
    with _sessions_lock:
        _sessions[session_id] = handle
        while len(_sessions) > MAX_SESSIONS:
            oldest = next(iter(_sessions))
            evicted.append((oldest, _sessions.pop(oldest)))
    for old_id, old_handle in evicted:
        _discard(old_id, old_handle)
    return jsonify({"id": session_id, "state": handle.session.state.value}), 201


@app.route("/sessions/<session_id>", methods=["DELETE"])
def delete_session(session_id: str):
    with _sessions_lock:
        handle = _sessions.pop(session_id, None)
    if handle is None:
        return _not_found()
    _discard(session_id, handle)
    return jsonify({"deleted": session_id})


@app.route("/sessions/<session_id>", methods=["GET"])
def get_session(session_id: str):
    handle = _get_handle(session_id)
    if handle is None:
        return _not_found()
    return jsonify(_call_on_loop(handle.session.snapshot))


def _add_screenshots(session_id: str, extra: bool):
    handle = _get_handle(session_id)
    if handle is None:
        return _not_found()
    saved = _save_uploaded_images(session_id)
    if not saved:
        return jsonify({"error": "No images uploaded"}), 400
    add = handle.store.add_extra if extra else handle.store.add
    for path in saved:
        _call_on_loop(add, path)
    return jsonify({
        "queue": handle.store.get_queue(),
        "extraQueue": handle.store.get_extra_queue(),
    })


@app.route("/sessions/<session_id>/screenshots", methods=["POST"])
def add_screenshots(session_id: str):
    return _add_screenshots(session_id, extra=False)


@app.route("/sessions/<session_id>/extra-screenshots", methods=["POST"])
def add_extra_screenshots(session_id: str):
    return _add_screenshots(session_id, extra=True)


def _start(session_id: str, method_name: str, *args):
    handle = _get_handle(session_id)
    if handle is None:
        return _not_found()
    future = _submit(getattr(handle.session, method_name)(*args))
    future.add_done_callback(_log_failure)
    return jsonify({"status": "accepted"}), 202


@app.route("/sessions/<session_id>/process", methods=["POST"])
def process(session_id: str):
    return _start(session_id, "process_screenshots")


@app.route("/sessions/<session_id>/debug", methods=["POST"])
def debug(session_id: str):
    return _start(session_id, "process_debug_screenshots")


@app.route("/sessions/<session_id>/confirm", methods=["POST"])
def confirm(session_id: str):
    return _start(session_id, "confirm_understanding")


@app.route("/sessions/<session_id>/clarify", methods=["POST"])
def clarify(session_id: str):
    data = request.get_json(silent=True) or {}
    clarification = str(data.get("clarification", "")).strip()
    if not clarification:
        return jsonify({"error": "No clarification provided"}), 400
    return _start(session_id, "clarify", clarification)


@app.route("/sessions/<session_id>/follow-up", methods=["POST"])
def follow_up(session_id: str):
    data = request.get_json(silent=True) or {}
    question = str(data.get("question", "")).strip()
    if not question:
        return jsonify({"error": "No question provided"}), 400
    return _start(session_id, "ask_follow_up", question)


@app.route("/sessions/<session_id>/cancel", methods=["POST"])
def cancel(session_id: str):
    handle = _get_handle(session_id)
    if handle is None:
        return _not_found()
    _call_on_loop(handle.session.cancel)
    return jsonify({"state": handle.session.state.value})


@app.route("/sessions/<session_id>/reset", methods=["POST"])
def reset(session_id: str):
    handle = _get_handle(session_id)
    if handle is None:
        return _not_found()
    _call_on_loop(handle.session.reset)
    _call_on_loop(handle.store.clear)
    return jsonify({"state": handle.session.state.value})


@app.route("/sessions/<session_id>/events")
def session_events(session_id: str):
    handle = _get_handle(session_id)
    if handle is None:
        return _not_found()
    with _sessions_lock:
        if handle.reader_attached:
            return jsonify({"error": "Session already has an event stream"}), 409
        handle.reader_attached = True

    def generate():
        while True:
            try:
                msg = handle.events.get(timeout=KEEPALIVE)
            except queue.Empty:
                yield ": keepalive\n\n"
                continue
            yield f"data: {json.dumps(msg)}\n\n"

    def release():
        with _sessions_lock:
            handle.reader_attached = False

    response = Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    response.call_on_close(release)
    return response


# ---------------------------------------------------------------------------
# Behavioral
# ---------------------------------------------------------------------------

def _behavioral_records(data: dict):
    """Principles and stories from the request body, else the server's files.

    Clients may send the records inline but never a path; file locations come
    only from ``SHERPA_PRINCIPLES_FILE`` and ``SHERPA_STORIES_FILE``.
    """
    principles_file = os.environ.get("SHERPA_PRINCIPLES_FILE")
    stories_file = os.environ.get("SHERPA_STORIES_FILE")
    if "principles" in data:
        principles = parse_principles(data["principles"])
    elif principles_file:
        principles = load_principles(principles_file)
    else:
        raise ConfigError("Leadership Principles are required")
    if "stories" in data:
        stories = parse_stories(data["stories"])
    elif stories_file:
        stories = load_stories(stories_file)
    else:
        raise ConfigError("Behavioral stories are required")
    return principles, stories


@app.route("/behavioral", methods=["POST"])
def behavioral():
    data = request.get_json(silent=True) or {}
    question = str(data.get("question", "")).strip()
    if not question:
        return jsonify({"error": "No question provided"}), 400
    try:
        principles, stories = _behavioral_records(data)
    except ConfigError as e:
        return jsonify({"error": str(e)}), 400
    if not ai.has_valid_client():
        return jsonify({"error": "No API key configured"}), 401

    async def run():
        assistant = BehavioralAssistant(ai)
        answer = await assistant.answer(question, principles, stories)
        result = {
            "principles": list(answer.principles),
            "story": answer.story.to_dict() if answer.story else None,
            "reasoning": answer.reasoning,
        }
        if answer.story is not None and data.get("anticipate"):
            result["followUps"] = [
                {"question": f.question, "answer": f.answer}
                for f in await assistant.anticipate_follow_ups(question, answer.story)
            ]
        if answer.story is not None and data.get("expand"):
            result["narrative"] = await assistant.expand_story(answer.story)
        if answer.story is None and data.get("generateIfMissing"):
            result["generatedStory"] = await assistant.generate_story(question, answer.principles)
        return result

    try:
        result = _submit(run()).result()
    except ProviderError as e:
        return jsonify({"error": str(e)}), 502
    except SherpaError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        return jsonify({"error": f"LLM call failed: {e}"}), 500
    return jsonify(result)


def main() -> None:
    app.run(
        host=os.environ.get("SHERPA_HOST", "127.0.0.1"),
        port=int(os.environ.get("SHERPA_PORT", "5000")),
        threaded=True,
    )
