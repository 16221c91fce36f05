"""Behavioral agent: matches interview questions to pre-written STAR stories."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence

from sherpa.agents.base import BaseAgent, ProgressCallback, notify_progress
from sherpa.cancellation import CancellationToken
from sherpa.errors import ConfigError, OperationCancelled, PreconditionError
from sherpa.models import (
    AnticipatedFollowUp,
    BehavioralAnswer,
    BehavioralStory,
    LeadershipPrinciple,
    StorySelection,
)
from sherpa.prompts import (
    ANTICIPATE_SYSTEM,
    BEHAVIORAL_FOLLOW_UP_SYSTEM,
    PRINCIPLE_EXTRACTION_SYSTEM,
    STORY_DETAIL_SYSTEM,
    STORY_GENERATION_SYSTEM,
    STORY_SELECTION_SYSTEM,
    anticipate_user_prompt,
    behavioral_follow_up_user_prompt,
    principle_extraction_user_prompt,
    story_detail_user_prompt,
    story_generation_user_prompt,
    story_selection_user_prompt,
)
from sherpa.validation import (
    parse_anticipated_follow_ups,
    parse_explanation,
    parse_generated_story,
    parse_principle_list,
    parse_story_selection,
)

_STORY_FIELDS = ("situation", "task", "action", "result")


def _read_json_list(path: str | Path, what: str) -> list:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to load {what} data from {p}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{what} file {p} is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise ConfigError(f"{what} file {p} must hold a JSON array")
    return data


def parse_principles(items) -> tuple[LeadershipPrinciple, ...]:
    if not isinstance(items, list):
        raise ConfigError("Leadership Principles must be a JSON array")
    principles = []
    for i, item in enumerate(items):
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise ConfigError(f"Leadership principle #{i} needs a string 'name'")
        principles.append(LeadershipPrinciple(item["name"], str(item.get("description", ""))))
    return tuple(principles)


def parse_stories(items) -> tuple[BehavioralStory, ...]:
    if not isinstance(items, list):
        raise ConfigError("Behavioral stories must be a JSON array")
    stories = []
    for i, item in enumerate(items):
        if not isinstance(item, dict) or item.get("id") in (None, ""):
            raise ConfigError(f"Behavioral story #{i} needs an 'id'")
        stories.append(
            BehavioralStory(
                id=str(item["id"]),
                title=str(item.get("title", "")),
                principles=tuple(str(p) for p in item.get("principles", [])),
                **{name: str(item.get(name, "")) for name in _STORY_FIELDS},
            )
        )
    return tuple(stories)


def load_principles(path: str | Path) -> tuple[LeadershipPrinciple, ...]:
    return parse_principles(_read_json_list(path, "Leadership Principles"))


def load_stories(path: str | Path) -> tuple[BehavioralStory, ...]:
    return parse_stories(_read_json_list(path, "Behavioral stories"))


class BehavioralAssistant(BaseAgent):
    async def answer(
        self,
        question: str,
        principles: Sequence[LeadershipPrinciple],
        stories: Sequence[BehavioralStory],
        progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> BehavioralAnswer:
        """Pick the principles a question targets and the story that fits best.

        A failed or unusable story selection is reported in ``reasoning``
        rather than raised; a failed principle extraction is raised.
        """
        if not question.strip():
            raise PreconditionError("Behavioral question is empty")

        notify_progress(progress, "Analyzing question for relevant principles...", 30, self._log)
        targeted = await self.extract_principles(question, principles, token)

        notify_progress(progress, "Selecting relevant story...", 60, self._log)
        selection = await self._select(question, targeted, stories, token)

        story = None
        reasoning = selection.reasoning
        if selection.story_id is not None:
            story = next((s for s in stories if s.id == selection.story_id), None)
            if story is None:
                self._log(f"Selected story {selection.story_id!r} is not among the loaded stories")
                reasoning += " (Error: Selected story ID not found internally)."

        notify_progress(
            progress,
            "Story selection complete." if story else "No suitable story found.",
            100,
            self._log,
        )
        return BehavioralAnswer(principles=targeted, story=story, reasoning=reasoning)

    async def extract_principles(
        self,
        question: str,
        principles: Sequence[LeadershipPrinciple],
        token: CancellationToken | None = None,
    ) -> tuple[str, ...]:
        raw = await self._call_llm(
            system=PRINCIPLE_EXTRACTION_SYSTEM,
            user=principle_extraction_user_prompt(question, principles),
            token=token,
        )
        names = parse_principle_list(raw)
        if names:
            return names
        if not principles:
            raise PreconditionError("No principles extracted and none loaded to use as default")
        self._log(f"No principles extracted; defaulting to {principles[0].name!r}")
        return (principles[0].name,)

    async def _select(
        self,
        question: str,
        targeted: Sequence[str],
        stories: Sequence[BehavioralStory],
        token: CancellationToken | None,
    ) -> StorySelection:
        if not stories:
            return StorySelection(None, "No stories available to select from.")
        try:
            raw = await self._call_llm(
                system=STORY_SELECTION_SYSTEM,
                user=story_selection_user_prompt(question, targeted, stories),
                token=token,
            )
            return parse_story_selection(raw)
        except OperationCancelled:
            raise
        except Exception as exc:
            self._log(f"Story selection failed: {exc}")
            return StorySelection(None, f"Error during selection: {exc}.")

    async def follow_up(
        self,
        original_question: str,
        story: BehavioralStory | None,
        follow_up_question: str,
        token: CancellationToken | None = None,
    ) -> str:
        if not original_question.strip() or story is None or not follow_up_question.strip():
            raise PreconditionError("Missing required arguments for follow-up")
        raw = await self._call_llm(
            system=BEHAVIORAL_FOLLOW_UP_SYSTEM,
            user=behavioral_follow_up_user_prompt(original_question, story, follow_up_question),
            token=token,
        )
        return parse_explanation(raw)

    async def anticipate_follow_ups(
        self,
        original_question: str,
        story: BehavioralStory | None,
        token: CancellationToken | None = None,
    ) -> tuple[AnticipatedFollowUp, ...]:
        if not original_question.strip() or story is None:
            raise PreconditionError("Missing required arguments for anticipated follow-ups")
        raw = await self._call_llm(
            system=ANTICIPATE_SYSTEM,
            user=anticipate_user_prompt(original_question, story),
            token=token,
        )
        return parse_anticipated_follow_ups(raw)

    async def expand_story(
        self,
        story: BehavioralStory | None,
        token: CancellationToken | None = None,
    ) -> str:
        """Expand a story outline into a first-person markdown narrative."""
        if story is None:
            raise PreconditionError("No story to expand")
        raw = await self._call_llm(
            system=STORY_DETAIL_SYSTEM,
            user=story_detail_user_prompt(story),
            token=token,
        )
        return raw.strip()

    async def generate_story(
        self,
        question: str,
        principles: Sequence[str],
        token: CancellationToken | None = None,
    ) -> str:
        if not question.strip():
            raise PreconditionError("Behavioral question is empty")
        raw = await self._call_llm(
            system=STORY_GENERATION_SYSTEM,
            user=story_generation_user_prompt(question, principles),
            token=token,
        )
        return parse_generated_story(raw)
