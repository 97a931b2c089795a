"""Turn raw backend text into a strict ``TurnPayload``.

Locating and parsing the JSON object, and checking its required fields, can
fail (``MalformedResponse`` / ``InvalidShape``). Everything after that is
repair: oversized story or choice text is truncated and the choice list is
padded or cut to exactly four entries.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from src.utils.errors import InvalidShape, MalformedResponse

logger = logging.getLogger(__name__)

NUM_CHOICES = 4
STORY_MAX_CHARS = 400
STORY_TRUNCATE_AT = 380
CHOICE_MAX_CHARS = 35
CHOICE_TRUNCATE_AT = 32
ELLIPSIS = "..."

DEFAULT_CHOICES: List[str] = ["Continue forward", "Look around", "Wait and listen", "Go back"]

# greedy: first "{" through last "}"
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class RecoveryAction(str, Enum):
    """Special choices routed by the orchestrator instead of being narrated."""

    TRY_AGAIN = "try_again"
    RESTART = "restart"
    DEMO_MODE = "demo_mode"
    UPDATE_SETTINGS = "update_settings"
    CHECK_CONNECTION = "check_connection"


@dataclass(frozen=True)
class Choice:
    """A single player choice."""
    id: str
    text: str
    action: Optional[RecoveryAction] = None


@dataclass(frozen=True)
class TurnPayload:
    story: str
    choices: List[Choice] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "story": self.story,
            "choices": [{"id": c.id, "text": c.text} for c in self.choices],
        }


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Find, parse and shape-check the JSON object embedded in *raw*.

    Raises ``MalformedResponse`` when there is no parseable object and
    ``InvalidShape`` when ``story``/``choices`` are missing or mistyped.
    """
    match = _JSON_OBJECT_RE.search(raw or "")
    if not match:
        raise MalformedResponse("No JSON object found in response")
    try:
        data = json.loads(match.group(0))
    except (json.JSONDecodeError, RecursionError) as exc:
        raise MalformedResponse(f"Response JSON did not parse: {exc}") from exc

    story = data.get("story")
    if not isinstance(story, str) or not story:
        raise InvalidShape("Response is missing a non-empty 'story'")
    if not isinstance(data.get("choices"), list):
        raise InvalidShape("Response 'choices' is missing or not a list")
    return data


def _truncate(text: str, limit: int, keep: int) -> str:
    if len(text) > limit:
        return text[:keep] + ELLIPSIS
    return text


def _as_mapping(entry: Any) -> Dict[str, Any]:
    if isinstance(entry, dict):
        return entry
    if isinstance(entry, str):
        return {"text": entry}
    return {}


def _repair_choices(raw_choices: List[Any]) -> List[Choice]:
    entries = [_as_mapping(c) for c in raw_choices]

    if len(entries) != NUM_CHOICES:
        logger.warning("Response has %d choices, expected %d", len(entries), NUM_CHOICES)
    while len(entries) < NUM_CHOICES:
        position = len(entries)
        entries.append({"id": str(position + 1), "text": DEFAULT_CHOICES[position]})
    entries = entries[:NUM_CHOICES]

    choices: List[Choice] = []
    for index, entry in enumerate(entries, start=1):
        choice_id = entry.get("id")
        choice_id = str(choice_id) if choice_id not in (None, "") else str(index)
        text = entry.get("text")
        text = str(text) if text not in (None, "") else f"Option {index}"
        choices.append(Choice(id=choice_id, text=_truncate(text, CHOICE_MAX_CHARS, CHOICE_TRUNCATE_AT)))
    return choices


def normalize_response(raw: str) -> TurnPayload:
    """Return a conformant ``TurnPayload`` for *raw* backend text."""
    data = extract_json_object(raw)

    story = data["story"]
    if len(story) > STORY_MAX_CHARS:
        logger.warning("Story too long (%d chars), truncating", len(story))
        story = _truncate(story, STORY_MAX_CHARS, STORY_TRUNCATE_AT)

    return TurnPayload(story=story, choices=_repair_choices(data["choices"]))
