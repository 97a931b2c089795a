"""Pre-authored turns served when the backend is unavailable or unusable."""
from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from src.nlg.response_normalizer import Choice, TurnPayload

logger = logging.getLogger(__name__)


def _payload(story: str, *choices: str) -> TurnPayload:
    return TurnPayload(
        story=story,
        choices=[Choice(id=str(i), text=text) for i, text in enumerate(choices, start=1)],
    )


# Hardcoded safety net; each entry already satisfies the payload invariants
FALLBACK_POOL: List[TurnPayload] = [
    _payload(
        "Static fills the air. You stand at a digital crossroads where three paths "
        "converge. Each route pulses with different energy.",
        "Take the glowing path", "Follow the dark route", "Choose the middle way", "Step back and observe",
    ),
    _payload(
        "Connection unstable. Reality flickers around you like a broken screen. "
        "Through the static, you glimpse movement ahead.",
        "Move toward the movement", "Wait for static to clear", "Touch the flickering air", "Call out loudly",
    ),
    _payload(
        "Demo mode active. You find yourself in a liminal space between worlds. "
        "Shadows dance at the periphery of vision.",
        "Approach the shadows", "Stand perfectly still", "Search for light", "Listen carefully",
    ),
    _payload(
        "The narrative engine stutters. You're caught between story beats, suspended "
        "in potential. What happens next depends on you.",
        "Force the story forward", "Embrace the uncertainty", "Look for an exit", "Reset everything",
    ),
    _payload(
        "Connection lost. In this void, you sense opportunity hiding in the darkness. "
        "Your next choice will shape everything.",
        "Reach into the darkness", "Create your own light", "Wait for revelation", "Embrace the void",
    ),
    _payload(
        "You are running in offline mode. A single lantern sways above a door you do "
        "not remember opening. Somewhere beyond it, footsteps stop.",
        "Open the door", "Raise the lantern", "Hold your breath", "Retreat into the dark",
    ),
]


class FallbackProvider:
    """Pick a canned turn uniformly at random.

    Pass a seeded ``random.Random`` (or any object with ``choice``) to make
    the selection deterministic.
    """

    def __init__(
        self,
        pool: Optional[Sequence[TurnPayload]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.pool: List[TurnPayload] = list(pool if pool is not None else FALLBACK_POOL)
        if not self.pool:
            raise ValueError("fallback pool must not be empty")
        self._rng = rng or random.Random()

    def next(self) -> TurnPayload:
        payload = self._rng.choice(self.pool)
        logger.debug("Serving fallback turn: %.40s", payload.story)
        return payload
