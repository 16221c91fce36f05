"""CLI interface for Sherpa."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from sherpa.agents.analyst import AnalystAgent
from sherpa.agents.behavioral import BehavioralAssistant, load_principles, load_stories
from sherpa.agents.debugger import DebuggerAgent
from sherpa.config import PROVIDERS, SOLVE_MODES, Config, static_config_source
from sherpa.errors import SherpaError
from sherpa.llm import AIService
from sherpa.models import (
    DebugReport,
    ProblemUnderstanding,
    initial_implementation,
    to_payload,
)
from sherpa.screenshots import ScreenshotQueue, existing_paths, load_screenshots
from sherpa.session import InterviewSession, SessionEvent, SessionState

_AFFIRMATIVE = ("", "y", "yes")


def _err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_event(event: SessionEvent, payload) -> None:
    if event is SessionEvent.PROCESSING_STATUS:
        _err(f"[{payload['progress']:>3}%] {payload['message']}")
    elif event in (
        SessionEvent.INITIAL_SOLUTION_ERROR,
        SessionEvent.CLARIFICATION_ERROR,
        SessionEvent.FOLLOW_UP_ERROR,
        SessionEvent.DEBUG_ERROR,
    ):
        _err(f"Error: {payload}")
    elif event is SessionEvent.API_KEY_INVALID:
        _err("Error: no API key configured for the selected provider")
    elif event is SessionEvent.NO_SCREENSHOTS:
        _err("No screenshots to process.")
    elif event is SessionEvent.PROBLEM_EXTRACTED:
        _err(f"Problem: {payload.problem_statement}")


def _print_understanding(understanding: ProblemUnderstanding) -> None:
    print("\nUnderstanding:")
    print(understanding.understanding_statement)
    for i, ex in enumerate(understanding.generated_examples, 1):
        print(f"  Example {i}: {ex.input} -> {ex.output}")
        if ex.explanation:
            print(f"    {ex.explanation}")
    if understanding.clarifying_questions:
        print("Questions worth asking:")
        for q in understanding.clarifying_questions:
            print(f"  - {q}")


def _print_debug(report: DebugReport) -> None:
    print(report.code)
    print()
    print(report.analysis)
    for thought in report.thoughts:
        print(f"  - {thought}")


def _build_config(args: argparse.Namespace) -> Config:
    overrides: dict = {}
    if getattr(args, "provider", None):
        overrides["api_provider"] = args.provider
    if getattr(args, "model", None):
        overrides["model"] = args.model
    if getattr(args, "language", None):
        overrides["language"] = args.language
    if getattr(args, "mode", None):
        overrides["solve_mode"] = args.mode
    return Config.from_env(**overrides)


async def _run_solve(args: argparse.Namespace, ai: AIService) -> int:
    store = ScreenshotQueue(max_size=max(len(args.screenshots), 1))
    for path in args.screenshots:
        store.add(path)
    session = InterviewSession(ai, store, listener=_print_event)

    await session.process_screenshots()
    while session.state is SessionState.AWAITING_CONFIRMATION:
        _print_understanding(session.understanding)
        if args.yes:
            await session.confirm_understanding()
            break
        answer = await asyncio.to_thread(
            input, "\nConfirm this understanding? [Y/n, or type a clarification]: "
        )
        if answer.strip().lower() in _AFFIRMATIVE:
            await session.confirm_understanding()
        elif answer.strip().lower() in ("n", "no"):
            session.cancel()
        else:
            await session.clarify(answer.strip())

    if session.state is not SessionState.SOLUTION_READY:
        return 1

    if args.json:
        print(json.dumps(to_payload(session.solution), indent=2))
    else:
        impl = initial_implementation(session.solution)
        print(impl.code)
        if impl.dry_run:
            print(f"\n{impl.dry_run}")

    for question in args.follow_up or []:
        _err(f"\nFollow-up: {question}")
        before = len(session.history)
        await session.ask_follow_up(question)
        if len(session.history) > before:
            print(f"\n{session.history.latest.code}")
            if session.history.latest.dry_run:
                print(f"\n{session.history.latest.dry_run}")
    return 0


async def _run_debug(args: argparse.Namespace, ai: AIService) -> int:
    store = ScreenshotQueue(max_size=max(len(args.screenshots), len(args.extra), 1))
    paths = await existing_paths(store, args.screenshots)
    extra = await existing_paths(store, args.extra)
    if not paths or not extra:
        _err("Error: need at least one problem screenshot and one --extra screenshot")
        return 1

    problem_shots, all_shots = await asyncio.gather(
        load_screenshots(store, paths), load_screenshots(store, paths + extra)
    )
    problem = await AnalystAgent(ai).extract_problem([s.data for s in problem_shots])
    _err(f"Problem: {problem.problem_statement}")
    report = await DebuggerAgent(ai).debug(problem, [s.data for s in all_shots])
    _print_debug(report)
    return 0


async def _run_behavioral(args: argparse.Namespace, ai: AIService) -> int:
    principles = load_principles(args.principles)
    stories = load_stories(args.stories)
    assistant = BehavioralAssistant(ai)

    answer = await assistant.answer(
        args.question,
        principles,
        stories,
        progress=lambda message, percent: _err(f"[{percent:>3}%] {message}"),
    )
    print(f"Principles: {', '.join(answer.principles)}")
    print(f"Reasoning: {answer.reasoning}")

    if answer.story is None:
        if args.generate_if_missing:
            print("\nGenerated story:")
            print(await assistant.generate_story(args.question, answer.principles))
            return 0
        return 1

    print(f"\nStory: {answer.story.title} ({answer.story.id})")
    if args.expand:
        print()
        print(await assistant.expand_story(answer.story))
    if args.anticipate:
        print("\nLikely follow-ups:")
        for item in await assistant.anticipate_follow_ups(args.question, answer.story):
            print(f"  Q: {item.question}")
            print(f"  A: {item.answer}")
    return 0


def _add_llm_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--provider", choices=PROVIDERS, default=None, help="LLM provider")
    p.add_argument("--model", type=str, default=None, help="Model for every call")
    p.add_argument("--language", type=str, default=None, help="Solution language")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="sherpa",
        description="Sherpa: screenshot-driven interview coach",
    )
    subparsers = parser.add_subparsers(dest="command")

    solve_parser = subparsers.add_parser("solve", help="Solve a problem from screenshots")
    solve_parser.add_argument("screenshots", nargs="+", help="Problem screenshot files")
    solve_parser.add_argument("-y", "--yes", action="store_true", help="Accept the understanding as-is")
    solve_parser.add_argument(
        "--follow-up", action="append", default=None, help="Follow-up question (repeatable)"
    )
    solve_parser.add_argument("--mode", choices=SOLVE_MODES, default=None, help="Solve mode")
    solve_parser.add_argument("--json", action="store_true", help="Print the full solution as JSON")
    _add_llm_options(solve_parser)

    debug_parser = subparsers.add_parser("debug", help="Review your code against the problem")
    debug_parser.add_argument("screenshots", nargs="+", help="Problem screenshot files")
    debug_parser.add_argument(
        "--extra", nargs="+", required=True, help="Screenshots of your code and errors"
    )
    _add_llm_options(debug_parser)

    behavioral_parser = subparsers.add_parser("behavioral", help="Pick a STAR story for a question")
    behavioral_parser.add_argument("question", help="The behavioral question")
    behavioral_parser.add_argument("--principles", required=True, help="Leadership principles JSON file")
    behavioral_parser.add_argument("--stories", required=True, help="Stories JSON file")
    behavioral_parser.add_argument("--anticipate", action="store_true", help="Show likely follow-ups")
    behavioral_parser.add_argument("--expand", action="store_true", help="Expand the story into a narrative")
    behavioral_parser.add_argument(
        "--generate-if-missing", action="store_true", help="Draft a story when none fits"
    )
    _add_llm_options(behavioral_parser)

    args = parser.parse_args(argv)

    runners = {"solve": _run_solve, "debug": _run_debug, "behavioral": _run_behavioral}
    if args.command not in runners:
        parser.print_help()
        sys.exit(1)

    try:
        config = _build_config(args)
    except ValueError as e:
        _err(f"Error: {e}")
        sys.exit(1)
    if not config.has_api_key():
        _err(f"Error: no API key configured for provider {config.api_provider!r}")
        sys.exit(1)

    ai = AIService(static_config_source(config))
    try:
        code = asyncio.run(runners[args.command](args, ai))
    except SherpaError as e:
        _err(f"Error: {e}")
        sys.exit(1)
    if code:
        sys.exit(code)
