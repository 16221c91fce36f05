"""Interview session state machine: extract, confirm, solve, follow up, debug."""

from __future__ import annotations

import enum
import sys
from typing import Any, Callable

from sherpa.agents.analyst import AnalystAgent
from sherpa.agents.debugger import DebuggerAgent
from sherpa.cancellation import CancellationToken
from sherpa.errors import InvalidTransitionError, OperationCancelled, PreconditionError
from sherpa.llm import AIService
from sherpa.models import (
    DebugReport,
    ExamplesPresent,
    ImplementationHistory,
    ProblemExample,
    ProblemInfo,
    ProblemUnderstanding,
    Solution,
    problem_analysis_of,
    to_payload,
)
from sherpa.orchestrator import SolutionOrchestrator
from sherpa.screenshots import ScreenshotStore, existing_paths, load_screenshots


class SessionState(enum.Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    EXAMPLES_PRESENT_SKIP = "examples_present_skip"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CLARIFYING = "clarifying"
    SOLVING = "solving"
    SOLUTION_READY = "solution_ready"
    FOLLOW_UP = "follow_up"
    ERROR = "error"
    CANCELLED = "cancelled"


class SessionEvent(enum.Enum):
    INITIAL_START = "initial-start"
    PROBLEM_EXTRACTED = "problem-extracted"
    UNDERSTANDING_GENERATED = "understanding-generated"
    SOLUTION_SUCCESS = "solution-success"
    INITIAL_SOLUTION_ERROR = "initial-solution-error"
    CLARIFICATION_ERROR = "clarification-error"
    FOLLOW_UP_SUCCESS = "follow-up-success"
    FOLLOW_UP_ERROR = "follow-up-error"
    DEBUG_START = "debug-start"
    DEBUG_SUCCESS = "debug-success"
    DEBUG_ERROR = "debug-error"
    NO_SCREENSHOTS = "no-screenshots"
    API_KEY_INVALID = "api-key-invalid"
    PROCESSING_STATUS = "processing-status"
    RESET = "reset"


S = SessionState

# A new extraction may preempt any state except ERROR, whose only exit is reset().
TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    S.IDLE: frozenset({S.EXTRACTING}),
    S.EXTRACTING: frozenset({S.EXAMPLES_PRESENT_SKIP, S.AWAITING_CONFIRMATION, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.EXAMPLES_PRESENT_SKIP: frozenset({S.SOLVING, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.AWAITING_CONFIRMATION: frozenset({S.CLARIFYING, S.SOLVING, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.CLARIFYING: frozenset({S.AWAITING_CONFIRMATION, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.SOLVING: frozenset({S.SOLUTION_READY, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.SOLUTION_READY: frozenset({S.FOLLOW_UP, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.FOLLOW_UP: frozenset({S.SOLUTION_READY, S.EXTRACTING, S.ERROR, S.CANCELLED}),
    S.ERROR: frozenset(),
    S.CANCELLED: frozenset({S.EXTRACTING}),
}

EventListener = Callable[[SessionEvent, Any], None]


class InterviewSession:
    """One end-to-end interaction from screenshot submission to solution.

    The coding pipeline (extract, understand, clarify, solve, follow up) owns
    one cancellation token; the debug pipeline owns another. Starting a new
    coding request cancels and replaces the active coding token, and a chain
    whose token is no longer current never touches session state again.
    """

    def __init__(
        self,
        ai: AIService,
        store: ScreenshotStore,
        listener: EventListener | None = None,
        orchestrator: SolutionOrchestrator | None = None,
        analyst: AnalystAgent | None = None,
        debugger: DebuggerAgent | None = None,
        language: str | None = None,
        mode: str | None = None,
    ) -> None:
        self.ai = ai
        self.store = store
        self.listener = listener
        self.orchestrator = orchestrator or SolutionOrchestrator(ai)
        self.analyst = analyst or AnalystAgent(ai)
        self.debugger = debugger or DebuggerAgent(ai)
        self.language_override = language
        self.mode_override = mode

        self.state = SessionState.IDLE
        self._primary_token: CancellationToken | None = None
        self._debug_token: CancellationToken | None = None
        self._clear()

    def _clear(self) -> None:
        self.problem_info: ProblemInfo | None = None
        self.understanding: ProblemUnderstanding | None = None
        self.confirmed_understanding: str | None = None
        self.confirmed_examples: tuple[ProblemExample, ...] = ()
        self.solution: Solution | None = None
        self.history: ImplementationHistory | None = None
        self.debug_report: DebugReport | None = None
        self.has_debugged = False
        self.last_error: str | None = None

    @property
    def language(self) -> str:
        return self.language_override or self.ai.current_config().language

    # ------------------------------------------------------------------
    # State and token bookkeeping
    # ------------------------------------------------------------------

    def can_transition(self, target: SessionState) -> bool:
        return target in TRANSITIONS[self.state]

    def _transition(self, target: SessionState) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Cannot move from {self.state.value} to {target.value}"
            )
        self._log(f"[session] {self.state.value} -> {target.value}")
        self.state = target

    def _begin_primary(self, label: str) -> CancellationToken:
        if self._primary_token is not None:
            self._primary_token.cancel()
        self._primary_token = CancellationToken(label)
        return self._primary_token

    def _begin_debug(self) -> CancellationToken:
        if self._debug_token is not None:
            self._debug_token.cancel()
        self._debug_token = CancellationToken("debug")
        return self._debug_token

    def _is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and token in (self._primary_token, self._debug_token)

    def _emit(self, event: SessionEvent, payload: Any = None) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event, payload)
        except Exception as exc:
            self._log(f"[session] listener failed on {event.value}: {exc}")

    def _progress(self, message: str, percent: int) -> None:
        self._emit(SessionEvent.PROCESSING_STATUS, {"message": message, "progress": percent})

    def _fail(self, message: str) -> None:
        self._log(f"[session] error: {message}")
        self.last_error = message
        self._transition(SessionState.ERROR)
        self._emit(SessionEvent.INITIAL_SOLUTION_ERROR, message)

    def _log(self, message: str) -> None:
        print(message, file=sys.stderr)

    # ------------------------------------------------------------------
    # Coding pipeline
    # ------------------------------------------------------------------

    async def process_screenshots(self) -> None:
        """Extract the problem from the main queue and analyze it."""
        if not self.ai.has_valid_client():
            self._emit(SessionEvent.API_KEY_INVALID)
            return
        if not self.can_transition(SessionState.EXTRACTING):
            self._emit(
                SessionEvent.INITIAL_SOLUTION_ERROR,
                f"Cannot process screenshots while {self.state.value}; reset the session first",
            )
            return
        paths = await existing_paths(self.store, self.store.get_queue())
        if not paths:
            self._log("[session] no screenshots to process")
            self._emit(SessionEvent.NO_SCREENSHOTS)
            return

        token = self._begin_primary("screenshot processing")
        self._transition(SessionState.EXTRACTING)
        self._clear()
        self._emit(SessionEvent.INITIAL_START)
        try:
            shots = await load_screenshots(self.store, paths)
            self._progress("Extracting problem from screenshots...", 20)
            problem = await self.analyst.extract_problem(
                [s.data for s in shots], self.language, token
            )
            if not self._is_current(token):
                return
            self.problem_info = problem
            self._emit(SessionEvent.PROBLEM_EXTRACTED, problem)

            self._progress("Analyzing problem understanding...", 40)
            analysis = await self.analyst.understand(problem, token)
            if not self._is_current(token):
                return

            if isinstance(analysis, ExamplesPresent):
                self._transition(SessionState.EXAMPLES_PRESENT_SKIP)
                self._progress("Examples found in the screenshots, generating solution...", 45)
                self.confirmed_understanding = problem.problem_statement
                self.confirmed_examples = (
                    ProblemExample(
                        input=problem.example_input or "N/A",
                        output=problem.example_output or "N/A",
                    ),
                )
                await self._solve(token)
            else:
                self.understanding = analysis
                self._transition(SessionState.AWAITING_CONFIRMATION)
                self._progress("Waiting for confirmation of the problem understanding...", 45)
                self._emit(SessionEvent.UNDERSTANDING_GENERATED, analysis)
        except OperationCancelled:
            self._log("[session] screenshot processing cancelled; results discarded")
        except Exception as exc:
            if self._is_current(token):
                self._fail(str(exc))

    async def confirm_understanding(self, understanding: ProblemUnderstanding | None = None) -> None:
        """Accept the current (or an edited) understanding and solve."""
        if self.state is not SessionState.AWAITING_CONFIRMATION:
            self._emit(
                SessionEvent.INITIAL_SOLUTION_ERROR,
                f"Nothing to confirm while {self.state.value}",
            )
            return
        if understanding is not None:
            self.understanding = understanding
        token = self._begin_primary("solution generation")
        try:
            if self.understanding is None:
                raise PreconditionError("No problem understanding to confirm")
            self.confirmed_understanding = self.understanding.understanding_statement
            self.confirmed_examples = self.understanding.generated_examples
            self._transition(SessionState.SOLVING)
            self._progress("Understanding confirmed, generating solution...", 50)
            await self._solve(token)
        except OperationCancelled:
            self._log("[session] solution generation cancelled; results discarded")
        except Exception as exc:
            if self._is_current(token):
                self._fail(str(exc))

    async def clarify(self, clarification: str) -> None:
        """Regenerate the understanding from the user's clarification.

        The new understanding replaces the retained one. On failure the
        previous understanding stays and the session keeps waiting for
        confirmation.
        """
        if self.state is not SessionState.AWAITING_CONFIRMATION:
            self._emit(
                SessionEvent.CLARIFICATION_ERROR,
                f"Nothing to clarify while {self.state.value}",
            )
            return
        token = self._begin_primary("clarification")
        self._transition(SessionState.CLARIFYING)
        self._progress("Refining understanding based on your clarification...", 55)
        try:
            refined = await self.analyst.refine(
                self.problem_info, self.understanding, clarification, token
            )
            if not self._is_current(token):
                return
            self.understanding = refined
            self._transition(SessionState.AWAITING_CONFIRMATION)
            self._emit(SessionEvent.UNDERSTANDING_GENERATED, refined)
        except OperationCancelled:
            self._log("[session] clarification cancelled; results discarded")
        except Exception as exc:
            if self._is_current(token):
                self._log(f"[session] clarification failed: {exc}")
                self._transition(SessionState.AWAITING_CONFIRMATION)
                self._emit(SessionEvent.CLARIFICATION_ERROR, str(exc))

    async def _solve(self, token: CancellationToken) -> None:
        if self.state is not SessionState.SOLVING:
            self._transition(SessionState.SOLVING)
        result = await self.orchestrator.generate(
            self.problem_info,
            language=self.language,
            token=token,
            understanding=self.confirmed_understanding,
            examples=self.confirmed_examples,
            mode=self.mode_override,
            progress=self._progress,
        )
        if not self._is_current(token):
            return
        if not result.success or result.solution is None:
            self._fail(result.error or "Failed to generate a solution")
            return
        self.solution = result.solution
        self.history = ImplementationHistory.for_solution(result.solution)
        self._transition(SessionState.SOLUTION_READY)
        self._emit(SessionEvent.SOLUTION_SUCCESS, result.solution)

    async def ask_follow_up(self, question: str) -> None:
        """Ask about the current solution; appends one history entry."""
        if self.state is not SessionState.SOLUTION_READY or self.history is None:
            self._emit(SessionEvent.FOLLOW_UP_ERROR, "No solution to ask a follow-up question about")
            return
        token = self._begin_primary("follow-up")
        self._transition(SessionState.FOLLOW_UP)
        self._progress("Processing follow-up question...", 50)
        try:
            entry = await self.orchestrator.solver.follow_up(
                self.language,
                problem_analysis_of(self.solution, self.confirmed_understanding or ""),
                self.history.latest,
                question,
                token,
            )
            if not self._is_current(token):
                return
            self.history.append(entry)
            self._transition(SessionState.SOLUTION_READY)
            self._progress("Follow-up processed.", 100)
            self._emit(SessionEvent.FOLLOW_UP_SUCCESS, entry)
        except OperationCancelled:
            self._log("[session] follow-up cancelled; results discarded")
        except Exception as exc:
            if self._is_current(token):
                self._log(f"[session] follow-up failed: {exc}")
                self._transition(SessionState.SOLUTION_READY)
                self._emit(SessionEvent.FOLLOW_UP_ERROR, str(exc))

    # ------------------------------------------------------------------
    # Debug pipeline
    # ------------------------------------------------------------------

    async def process_debug_screenshots(self) -> None:
        """Review the candidate's code from the main and extra queues."""
        if not self.ai.has_valid_client():
            self._emit(SessionEvent.API_KEY_INVALID)
            return
        if not self.store.get_extra_queue():
            self._emit(SessionEvent.NO_SCREENSHOTS)
            return

        token = self._begin_debug()
        self._emit(SessionEvent.DEBUG_START)
        try:
            if self.problem_info is None:
                raise PreconditionError("No problem info available; process the problem screenshots first")
            paths = await existing_paths(
                self.store, self.store.get_queue() + self.store.get_extra_queue()
            )
            shots = await load_screenshots(self.store, paths)
            self._progress("Analyzing your code and the errors...", 30)
            report = await self.debugger.debug(
                self.problem_info, [s.data for s in shots], self.language, token
            )
            if not self._is_current(token):
                return
            self._progress("Debug analysis ready.", 100)
            self.debug_report = report
            self.has_debugged = True
            self._emit(SessionEvent.DEBUG_SUCCESS, report)
        except OperationCancelled:
            self._log("[session] debug cancelled; results discarded")
        except Exception as exc:
            if self._is_current(token):
                self._log(f"[session] debug failed: {exc}")
                self._emit(SessionEvent.DEBUG_ERROR, str(exc))

    # ------------------------------------------------------------------
    # Cancel / reset
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Abort every in-flight call; their results are discarded."""
        for token in (self._primary_token, self._debug_token):
            if token is not None:
                token.cancel()
        self._primary_token = None
        self._debug_token = None
        if self.can_transition(SessionState.CANCELLED):
            self._transition(SessionState.CANCELLED)
        self._emit(SessionEvent.NO_SCREENSHOTS)

    def reset(self) -> None:
        """Cancel everything and return to IDLE with no session data."""
        for token in (self._primary_token, self._debug_token):
            if token is not None:
                token.cancel()
        self._primary_token = None
        self._debug_token = None
        self._clear()
        self._log(f"[session] {self.state.value} -> {SessionState.IDLE.value} (reset)")
        self.state = SessionState.IDLE
        self._emit(SessionEvent.RESET)

    def snapshot(self) -> dict:
        """JSON-friendly view of the session for UIs."""
        return {
            "state": self.state.value,
            "problemInfo": self.problem_info.to_dict() if self.problem_info else None,
            "understanding": self.understanding.to_dict() if self.understanding else None,
            "solution": to_payload(self.solution) if self.solution else None,
            "history": self.history.to_list() if self.history else [],
            "debug": to_payload(self.debug_report) if self.debug_report else None,
            "hasDebugged": self.has_debugged,
            "lastError": self.last_error,
        }
