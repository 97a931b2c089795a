"""Session state data structures for the adventure engine."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, List, Optional

from src.nlg.response_normalizer import Choice

HISTORY_MAX_ENTRIES = 10


class MessageKind(str, Enum):
    NARRATOR = "narrator"
    USER = "user"
    SYSTEM = "system"
    ERROR = "error"


class Mode(str, Enum):
    """Where turns are coming from: the backend, or the local canned pool."""

    LIVE = "live"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class Message:
    """One transcript line. Never mutated after creation."""

    kind: MessageKind
    text: str
    # narrator lines only: served from the canned pool rather than the backend
    from_fallback: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class HistoryEntry:
    player_action: str
    narrator_response: str

    def serialize(self) -> str:
        return f"Player: {self.player_action}\nNarrator: {self.narrator_response}"


@dataclass
class SessionState:
    """Everything a single adventure carries across turns."""

    generation: int = 0
    topic: str = ""
    started: bool = False
    transcript: List[Message] = field(default_factory=list)
    history: Deque[HistoryEntry] = field(
        default_factory=lambda: deque(maxlen=HISTORY_MAX_ENTRIES)
    )
    choices: List[Choice] = field(default_factory=list)
    awaiting_response: bool = False
    mode: Mode = Mode.LIVE
    demo_mode: bool = False
    last_error: Optional[str] = None
    awaiting_credential: bool = False
    # what "Try again" replays
    last_action: Optional[str] = None
    last_was_first_turn: bool = False

    def add_message(self, kind: MessageKind, text: str, from_fallback: bool = False) -> Message:
        message = Message(kind, text, from_fallback)
        self.transcript.append(message)
        return message

    def push_history(self, player_action: str, narrator_response: str) -> None:
        """Record a turn; the deque drops the oldest entry past capacity."""
        self.history.append(HistoryEntry(player_action, narrator_response))

    def recent_history(self, n: int = 2) -> List[str]:
        """Return the last *n* entries serialized for prompt context."""
        if n <= 0:
            return []
        return [e.serialize() for e in list(self.history)[-n:]]
