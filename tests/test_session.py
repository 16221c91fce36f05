"""Tests for the interview session state machine."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from sherpa.config import Config
from sherpa.errors import InvalidTransitionError
from sherpa.screenshots import ScreenshotQueue
from sherpa.session import InterviewSession, SessionEvent, SessionState

PROBLEM_JSON = json.dumps({
    "problem_statement": "Return indices of two numbers adding to target.",
    "example_input": "[2,7], 9",
    "example_output": "[0,1]",
})

UNDERSTANDING_JSON = json.dumps({
    "understandingStatement": "Find i != j with nums[i] + nums[j] == target.",
    "generatedExamples": [{"input": "[3,3], 6", "output": "[0,1]"}],
    "clarifyingQuestions": ["Is there always exactly one answer?"],
})

REFINED_JSON = json.dumps({
    "understandingStatement": "Same, but indices are 1-based.",
    "generatedExamples": [{"input": "[3,3], 6", "output": "[1,2]"}],
    "clarifyingQuestions": [],
})

NARRATIVE_JSON = json.dumps({
    "problemAnalysis": "Pair lookup.",
    "bruteForce": {"explanation": "pairs"},
    "optimizationStrategy": {"explanation": "hash"},
    "optimalImplementation": {"code": "def two_sum(): ...", "dryRun": "i=0"},
})

EXAMPLES_PRESENT_JSON = '{"examplesPresent": true}'


def _follow_up_json(code: str) -> str:
    return json.dumps({"optimalImplementation": {"code": code, "dryRun": f"ran {code}"}})


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    @property
    def names(self):
        return [event for event, _ in self.events]


def _store(tmp_path, n=1, missing=0) -> ScreenshotQueue:
    store = ScreenshotQueue()
    for i in range(n):
        path = tmp_path / f"shot{i}.png"
        path.write_bytes(b"\x89PNG fake image")
        store.add(path)
    for i in range(missing):
        store.add(tmp_path / f"gone{i}.png")
    return store


def _make_ai(vision=(), text=(), has_key=True) -> MagicMock:
    ai = MagicMock()
    ai.current_config.return_value = Config(api_key="test-key")
    ai.has_valid_client.return_value = has_key
    ai.complete_vision = AsyncMock(side_effect=list(vision))
    ai.complete = AsyncMock(side_effect=list(text))
    return ai


def _session(ai, store):
    recorder = Recorder()
    return InterviewSession(ai, store, listener=recorder), recorder


async def _wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition never became true")


class TestExtraction:
    def test_examples_present_skips_confirmation(self, tmp_path):
        ai = _make_ai(vision=[PROBLEM_JSON], text=[EXAMPLES_PRESENT_JSON, NARRATIVE_JSON])
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())

        assert session.state is SessionState.SOLUTION_READY
        assert SessionEvent.UNDERSTANDING_GENERATED not in rec.names
        assert SessionEvent.SOLUTION_SUCCESS in rec.names
        assert session.confirmed_understanding == "Return indices of two numbers adding to target."
        assert session.confirmed_examples[0].input == "[2,7], 9"
        assert session.confirmed_examples[0].output == "[0,1]"
        assert len(session.history) == 1

    def test_examples_present_uses_na_for_missing_examples(self, tmp_path):
        problem = json.dumps({"problem_statement": "Reverse a list."})
        ai = _make_ai(vision=[problem], text=[EXAMPLES_PRESENT_JSON, NARRATIVE_JSON])
        session, _ = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())
        assert session.confirmed_examples[0].input == "N/A"
        assert session.confirmed_examples[0].output == "N/A"

    def test_understanding_waits_for_confirmation(self, tmp_path):
        ai = _make_ai(vision=[PROBLEM_JSON], text=[UNDERSTANDING_JSON])
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())

        assert session.state is SessionState.AWAITING_CONFIRMATION
        assert rec.names[:3] == [
            SessionEvent.INITIAL_START,
            SessionEvent.PROCESSING_STATUS,
            SessionEvent.PROBLEM_EXTRACTED,
        ]
        assert rec.names[-1] is SessionEvent.UNDERSTANDING_GENERATED
        assert session.understanding.clarifying_questions == ("Is there always exactly one answer?",)

    def test_malformed_extraction_stops_before_understanding(self, tmp_path):
        ai = _make_ai(vision=["I see a screenshot of a problem"])
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())

        assert session.state is SessionState.ERROR
        assert SessionEvent.INITIAL_SOLUTION_ERROR in rec.names
        assert "ProblemInfo" in session.last_error
        ai.complete.assert_not_awaited()

    def test_missing_screenshot_is_skipped(self, tmp_path):
        ai = _make_ai(vision=[PROBLEM_JSON], text=[UNDERSTANDING_JSON])
        session, _ = _session(ai, _store(tmp_path, n=2, missing=1))
        asyncio.run(session.process_screenshots())

        images = ai.complete_vision.await_args.args[1]
        assert len(images) == 2
        assert session.state is SessionState.AWAITING_CONFIRMATION

    def test_no_screenshots(self, tmp_path):
        ai = _make_ai()
        session, rec = _session(ai, _store(tmp_path, n=0, missing=2))
        asyncio.run(session.process_screenshots())
        assert rec.names == [SessionEvent.NO_SCREENSHOTS]
        assert session.state is SessionState.IDLE

    def test_api_key_gate(self, tmp_path):
        ai = _make_ai(has_key=False)
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())
        assert rec.names == [SessionEvent.API_KEY_INVALID]
        assert session.state is SessionState.IDLE
        ai.complete_vision.assert_not_awaited()

    def test_error_state_requires_reset(self, tmp_path):
        ai = _make_ai(vision=["garbage", PROBLEM_JSON], text=[UNDERSTANDING_JSON])
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())
        assert session.state is SessionState.ERROR

        asyncio.run(session.process_screenshots())
        assert session.state is SessionState.ERROR
        assert ai.complete_vision.await_count == 1

        session.reset()
        assert session.state is SessionState.IDLE
        assert rec.names[-1] is SessionEvent.RESET
        asyncio.run(session.process_screenshots())
        assert session.state is SessionState.AWAITING_CONFIRMATION


class TestConfirmAndClarify:
    def test_clarification_replaces_understanding(self, tmp_path):
        ai = _make_ai(vision=[PROBLEM_JSON], text=[UNDERSTANDING_JSON, REFINED_JSON, NARRATIVE_JSON])
        session, rec = _session(ai, _store(tmp_path))

        async def scenario():
            await session.process_screenshots()
            await session.clarify("Indices are 1-based.")
            assert session.state is SessionState.AWAITING_CONFIRMATION
            assert session.understanding.understanding_statement == "Same, but indices are 1-based."
            await session.confirm_understanding()

        asyncio.run(scenario())
        assert "Indices are 1-based." in ai.complete.await_args_list[1].args[0]
        assert rec.names.count(SessionEvent.UNDERSTANDING_GENERATED) == 2
        assert session.state is SessionState.SOLUTION_READY
        assert session.confirmed_understanding == "Same, but indices are 1-based."
        assert session.confirmed_examples[0].output == "[1,2]"

    def test_failed_clarification_keeps_previous_understanding(self, tmp_path):
        ai = _make_ai(vision=[PROBLEM_JSON], text=[UNDERSTANDING_JSON, "not json"])
        session, rec = _session(ai, _store(tmp_path))

        async def scenario():
            await session.process_screenshots()
            await session.clarify("What about negatives?")

        asyncio.run(scenario())
        assert session.state is SessionState.AWAITING_CONFIRMATION
        assert rec.names[-1] is SessionEvent.CLARIFICATION_ERROR
        assert session.understanding.understanding_statement.startswith("Find i != j")

    def test_confirm_outside_awaiting_confirmation(self, tmp_path):
        ai = _make_ai()
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.confirm_understanding())
        assert rec.names == [SessionEvent.INITIAL_SOLUTION_ERROR]
        assert session.state is SessionState.IDLE

    def test_solve_failure_moves_to_error(self, tmp_path):
        ai = _make_ai(
            vision=[PROBLEM_JSON],
            text=[UNDERSTANDING_JSON, "not json", RuntimeError("provider down")],
        )
        session, rec = _session(ai, _store(tmp_path))

        async def scenario():
            await session.process_screenshots()
            await session.confirm_understanding()

        asyncio.run(scenario())
        assert session.state is SessionState.ERROR
        assert rec.names[-1] is SessionEvent.INITIAL_SOLUTION_ERROR
        assert "provider down" in rec.events[-1][1]


class TestFollowUp:
    def _solved(self, tmp_path, *follow_ups):
        ai = _make_ai(
            vision=[PROBLEM_JSON],
            text=[EXAMPLES_PRESENT_JSON, NARRATIVE_JSON, *follow_ups],
        )
        session, rec = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())
        return ai, session, rec

    def test_history_is_append_only(self, tmp_path):
        ai, session, rec = self._solved(tmp_path, _follow_up_json("v1"), _follow_up_json("v2"))

        async def scenario():
            await session.ask_follow_up("Can you use less memory?")
            await session.ask_follow_up("Now handle duplicates.")

        asyncio.run(scenario())
        assert len(session.history) == 3
        assert session.history[0].code == "def two_sum(): ..."
        assert session.history[1].code == "v1"
        assert session.history.latest.code == "v2"
        assert session.state is SessionState.SOLUTION_READY
        # the second question builds on the first answer
        assert "v1" in ai.complete.await_args_list[3].args[0]
        assert rec.names.count(SessionEvent.FOLLOW_UP_SUCCESS) == 2

    def test_failed_follow_up_keeps_history(self, tmp_path):
        _, session, rec = self._solved(tmp_path, "no json here")
        asyncio.run(session.ask_follow_up("Why a hashmap?"))
        assert len(session.history) == 1
        assert session.state is SessionState.SOLUTION_READY
        assert rec.names[-1] is SessionEvent.FOLLOW_UP_ERROR

    def test_follow_up_without_solution(self, tmp_path):
        session, rec = _session(_make_ai(), _store(tmp_path))
        asyncio.run(session.ask_follow_up("Why?"))
        assert rec.names == [SessionEvent.FOLLOW_UP_ERROR]


class TestCancellation:
    def test_cancel_discards_in_flight_results(self, tmp_path):
        async def hang(prompt, system_prompt="", model=None, token=None):
            return await token.run(asyncio.sleep(10, result=UNDERSTANDING_JSON))

        ai = _make_ai(vision=[PROBLEM_JSON])
        ai.complete = AsyncMock(side_effect=hang)
        session, rec = _session(ai, _store(tmp_path))

        async def scenario():
            task = asyncio.ensure_future(session.process_screenshots())
            await _wait_for(lambda: ai.complete.await_count == 1)
            session.cancel()
            await task

        asyncio.run(scenario())
        assert session.state is SessionState.CANCELLED
        assert session.understanding is None
        assert SessionEvent.UNDERSTANDING_GENERATED not in rec.names
        assert SessionEvent.INITIAL_SOLUTION_ERROR not in rec.names
        assert rec.names[-1] is SessionEvent.NO_SCREENSHOTS

    def test_new_request_preempts_the_old_one(self, tmp_path):
        tokens = []
        stale = json.dumps(dict(json.loads(UNDERSTANDING_JSON), understandingStatement="stale"))

        async def complete(prompt, system_prompt="", model=None, token=None):
            tokens.append(token)
            if len(tokens) == 1:
                return await token.run(asyncio.sleep(10, result=stale))
            return UNDERSTANDING_JSON

        ai = _make_ai(vision=[PROBLEM_JSON, PROBLEM_JSON])
        ai.complete = AsyncMock(side_effect=complete)
        session, rec = _session(ai, _store(tmp_path))

        async def scenario():
            first = asyncio.ensure_future(session.process_screenshots())
            await _wait_for(lambda: len(tokens) == 1)
            await session.process_screenshots()
            await first

        asyncio.run(scenario())
        assert tokens[0].cancelled
        assert not tokens[1].cancelled
        assert session.state is SessionState.AWAITING_CONFIRMATION
        assert session.understanding.understanding_statement.startswith("Find i != j")
        assert rec.names.count(SessionEvent.UNDERSTANDING_GENERATED) == 1

    def test_reset_clears_everything(self, tmp_path):
        ai = _make_ai(vision=[PROBLEM_JSON], text=[EXAMPLES_PRESENT_JSON, NARRATIVE_JSON])
        session, _ = _session(ai, _store(tmp_path))
        asyncio.run(session.process_screenshots())
        session.reset()
        assert session.state is SessionState.IDLE
        assert session.solution is None
        assert session.history is None
        assert session.snapshot()["state"] == "idle"


class TestDebug:
    DEBUG_TEXT = "### Issues Identified\n- off by one\n```python\nfixed()\n```"

    def test_debug_runs_alongside_solution(self, tmp_path):
        ai = _make_ai(
            vision=[PROBLEM_JSON, self.DEBUG_TEXT],
            text=[EXAMPLES_PRESENT_JSON, NARRATIVE_JSON],
        )
        store = _store(tmp_path)
        extra = tmp_path / "code.png"
        extra.write_bytes(b"\x89PNG code")
        store.add_extra(extra)
        session, rec = _session(ai, store)

        async def scenario():
            await session.process_screenshots()
            await session.process_debug_screenshots()

        asyncio.run(scenario())
        assert session.state is SessionState.SOLUTION_READY
        assert session.has_debugged
        assert session.debug_report.code == "fixed()"
        assert session.debug_report.thoughts == ("off by one",)
        assert len(ai.complete_vision.await_args.args[1]) == 2
        assert rec.names[-1] is SessionEvent.DEBUG_SUCCESS

    def test_debug_without_problem(self, tmp_path):
        store = _store(tmp_path)
        store.add_extra(tmp_path / "shot0.png")
        session, rec = _session(_make_ai(), store)
        asyncio.run(session.process_debug_screenshots())
        assert rec.names == [SessionEvent.DEBUG_START, SessionEvent.DEBUG_ERROR]
        assert not session.has_debugged

    def test_debug_with_empty_extra_queue(self, tmp_path):
        session, rec = _session(_make_ai(), _store(tmp_path))
        asyncio.run(session.process_debug_screenshots())
        assert rec.names == [SessionEvent.NO_SCREENSHOTS]


class TestTransitions:
    def test_illegal_transition_raises(self, tmp_path):
        session, _ = _session(_make_ai(), _store(tmp_path))
        with pytest.raises(InvalidTransitionError):
            session._transition(SessionState.SOLVING)

    def test_error_has_no_exits(self, tmp_path):
        session, _ = _session(_make_ai(), _store(tmp_path))
        session.state = SessionState.ERROR
        assert not any(session.can_transition(s) for s in SessionState)
