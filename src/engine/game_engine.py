"""Turn orchestrator for the adventure engine.

Pipeline per turn:
1. Build the prompt from topic, recent history and the player's action
2. Call the generation backend (skipped when unconfigured or in demo mode)
3. Normalize the reply, or fall back to a canned turn
4. Append narrator output to the transcript and history

Failures never escape a turn: every path ends with a narrator message and
exactly four choices. Only transport failures are shown to the player, as an
error message plus the recovery menu.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from src.engine.state import Mode, MessageKind, SessionState
from src.nlg.fallback import FallbackProvider
from src.nlg.prompt_builder import PROMPT_HISTORY_WINDOW, build_prompt
from src.nlg.response_normalizer import (
    Choice,
    RecoveryAction,
    TurnPayload,
    normalize_response,
)
from src.utils.api_client import CredentialStatus, GenerationClient
from src.utils.errors import ResponseError, TransportError

logger = logging.getLogger(__name__)

RECOVERY_MENU: List[Choice] = [
    Choice("1", "Try again", RecoveryAction.TRY_AGAIN),
    Choice("2", "Restart adventure", RecoveryAction.RESTART),
    Choice("3", "Continue with demo mode", RecoveryAction.DEMO_MODE),
    Choice("4", "Update API settings", RecoveryAction.UPDATE_SETTINGS),
]

ENGINE_ERROR_MESSAGE = (
    "NARRATIVE ENGINE ERROR: Unable to process request. "
    "The AI narrator is experiencing difficulties."
)
NO_KEY_ADVISORY = "No API key configured. Using demo mode."
DEMO_ADVISORY = "Demo mode active - limited story variations"
OFFLINE_ADVISORY = "Using offline mode - stories may be limited"
CONNECTIVITY_FAILED_ADVISORY = "AI service connection failed. Using fallback responses."
BAD_KEY_ADVISORY = "Invalid API key or connection failed"

DEMO_ACTION = "continue in demo mode"
RECONNECT_ACTION = "check surroundings"
DEFAULT_RETRY_ACTION = "continue"

_OFFLINE_MARKERS = ("offline", "fallback")


@dataclass
class TurnResult:
    """Container returned after every resolved turn."""
    story: str
    choices: List[Choice]
    mode: Mode
    from_fallback: bool = False
    error: Optional[str] = None


@dataclass
class _Outcome:
    payload: TurnPayload
    from_fallback: bool = False
    transport_error: Optional[str] = None
    advisory: Optional[str] = None


class TurnOrchestrator:
    """Coordinates prompt → backend → normalize/fallback → session update."""

    def __init__(
        self,
        client: Optional[GenerationClient] = None,
        fallback: Optional[FallbackProvider] = None,
    ):
        self.client = client or GenerationClient()
        self.fallback = fallback or FallbackProvider()
        self.state = SessionState()

    @property
    def is_busy(self) -> bool:
        return self.state.awaiting_response

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def run_startup_check(self) -> bool:
        """Startup check: decide whether the session starts live or in fallback."""
        state = self.state
        if self.client.credential_status() is CredentialStatus.UNCONFIGURED:
            state.mode = Mode.FALLBACK
            state.last_error = NO_KEY_ADVISORY
            return False

        connected = await self.client.test_connectivity()
        if connected:
            state.mode = Mode.LIVE
            state.last_error = None
        else:
            state.mode = Mode.FALLBACK
            state.last_error = CONNECTIVITY_FAILED_ADVISORY
        return connected

    async def start_session(self, topic: str) -> Optional[TurnResult]:
        """Begin a new adventure on *topic* and return the opening turn."""
        if not topic or not topic.strip():
            raise ValueError("story topic must not be empty")
        topic = topic.strip()

        self.restart()
        state = self.state
        state.topic = topic
        state.started = True

        state.add_message(MessageKind.SYSTEM, f"INITIALIZING ADVENTURE: {topic.upper()}")
        if state.mode is Mode.FALLBACK:
            state.add_message(MessageKind.SYSTEM, "RUNNING IN DEMO MODE...")
        else:
            state.add_message(MessageKind.SYSTEM, "CONNECTING TO AI NARRATOR...")
        state.add_message(MessageKind.SYSTEM, "LOADING NARRATIVE ENGINE...")
        state.add_message(MessageKind.SYSTEM, "REALITY MATRIX ESTABLISHED.")
        state.add_message(MessageKind.SYSTEM, "===== ADVENTURE BEGINS =====")

        return await self.take_turn("", is_first_turn=True)

    def restart(self) -> None:
        """Discard the session. Connectivity mode and advisory survive."""
        old = self.state
        self.state = SessionState(
            generation=old.generation + 1,
            mode=old.mode,
            demo_mode=old.demo_mode,
            last_error=old.last_error,
        )
        logger.info("Session reset (generation %d)", self.state.generation)

    # ------------------------------------------------------------------
    # Player input
    # ------------------------------------------------------------------

    async def submit_action(self, action: str) -> Optional[TurnResult]:
        """Free-text or ordinary choice: echo it, then take a turn."""
        action = (action or "").strip()
        if not action or self.state.awaiting_response:
            return None
        self.state.add_message(MessageKind.USER, f"> {action}")
        return await self.take_turn(action)

    async def select_choice(self, choice: Choice) -> Optional[TurnResult]:
        """Route recovery-menu entries by tag; everything else is a normal action."""
        if choice.action is RecoveryAction.RESTART:
            self.restart()
            return None

        state = self.state
        if state.awaiting_response:
            logger.info("Choice %r ignored: a response is still pending", choice.text)
            return None

        if choice.action is RecoveryAction.TRY_AGAIN:
            state.add_message(MessageKind.USER, f"> {choice.text}")
            if state.last_was_first_turn:
                return await self.take_turn(state.last_action or "", is_first_turn=True)
            return await self.take_turn(state.last_action or DEFAULT_RETRY_ACTION)

        if choice.action is RecoveryAction.DEMO_MODE:
            state.add_message(MessageKind.USER, f"> {choice.text}")
            state.add_message(MessageKind.SYSTEM, "SWITCHING TO DEMO MODE...")
            state.demo_mode = True
            state.mode = Mode.FALLBACK
            return await self.take_turn(DEMO_ACTION)

        if choice.action is RecoveryAction.UPDATE_SETTINGS:
            state.awaiting_credential = True
            state.add_message(MessageKind.SYSTEM, "ENTER YOUR GOOGLE AI STUDIO API KEY TO RECONNECT.")
            return None

        if choice.action is RecoveryAction.CHECK_CONNECTION:
            state.add_message(MessageKind.USER, f"> {choice.text}")
            return await self.check_connection()

        return await self.submit_action(choice.text)

    async def update_credential(self, value: str) -> bool:
        """Install a new API key and re-check the backend with it."""
        value = (value or "").strip()
        if not value:
            return False

        self.client.update_config(credential=value)
        state = self.state
        state.awaiting_credential = False
        state.last_error = None
        state.add_message(MessageKind.SYSTEM, "API KEY UPDATED. TESTING CONNECTION...")

        connected = await self.client.test_connectivity()
        state = self.state
        if connected:
            state.add_message(MessageKind.SYSTEM, "CONNECTION SUCCESSFUL! AI NARRATOR ONLINE.")
            state.mode = Mode.LIVE
            state.demo_mode = False
        else:
            state.add_message(MessageKind.SYSTEM, "CONNECTION FAILED. CHECK YOUR API KEY.")
            state.last_error = BAD_KEY_ADVISORY
            state.mode = Mode.FALLBACK
        return connected

    async def check_connection(self) -> Optional[TurnResult]:
        """Re-check the backend; on success resume live play with a fresh turn."""
        if self.state.awaiting_response:
            return None
        self.state.add_message(MessageKind.SYSTEM, "TESTING AI CONNECTION...")
        connected = await self.client.test_connectivity()

        state = self.state
        if not connected:
            state.add_message(MessageKind.SYSTEM, "CONNECTION FAILED. USING LOCAL FALLBACK MODE.")
            state.last_error = "Using offline mode"
            state.mode = Mode.FALLBACK
            return None

        state.add_message(MessageKind.SYSTEM, "CONNECTION RESTORED. CONTINUING ADVENTURE...")
        state.last_error = None
        state.mode = Mode.LIVE
        state.demo_mode = False
        return await self.take_turn(RECONNECT_ACTION)

    # ------------------------------------------------------------------
    # Core turn
    # ------------------------------------------------------------------

    async def take_turn(self, action: str, is_first_turn: bool = False) -> Optional[TurnResult]:
        """Run one turn. Returns ``None`` if rejected (busy) or stale (reset mid-flight)."""
        state = self.state
        if state.awaiting_response:
            logger.info("Turn rejected: a response is still pending")
            return None

        generation = state.generation
        state.awaiting_response = True
        state.choices = []
        state.last_error = None
        state.last_action = action
        state.last_was_first_turn = is_first_turn

        prompt = build_prompt(
            state.topic,
            state.recent_history(PROMPT_HISTORY_WINDOW),
            action,
            is_first_turn,
        )
        try:
            outcome = await self._serve(state, prompt)
        finally:
            state.awaiting_response = False

        if self.state.generation != generation:
            logger.info("Dropping stale turn result from session generation %d", generation)
            return None
        return self._apply(state, outcome, action, is_first_turn)

    async def _serve(self, state: SessionState, prompt: str) -> _Outcome:
        if self.client.credential_status() is CredentialStatus.UNCONFIGURED:
            logger.debug("No credential configured; serving fallback turn")
            return _Outcome(self.fallback.next(), from_fallback=True, advisory=NO_KEY_ADVISORY)
        if state.demo_mode:
            return _Outcome(self.fallback.next(), from_fallback=True, advisory=DEMO_ADVISORY)

        try:
            raw = await self.client.generate(prompt)
        except TransportError as exc:
            logger.error("Generation failed, serving fallback: %s", exc)
            return _Outcome(self.fallback.next(), from_fallback=True, transport_error=str(exc))

        try:
            return _Outcome(normalize_response(raw))
        except ResponseError as exc:
            logger.warning("Unusable backend response (%s) – using fallback.", exc)
            return _Outcome(self.fallback.next(), from_fallback=True)

    def _apply(
        self,
        state: SessionState,
        outcome: _Outcome,
        action: str,
        is_first_turn: bool,
    ) -> TurnResult:
        payload = outcome.payload
        if outcome.from_fallback:
            state.mode = Mode.FALLBACK

        if outcome.transport_error:
            state.last_error = f"Failed to generate response: {outcome.transport_error}"
            state.add_message(MessageKind.ERROR, ENGINE_ERROR_MESSAGE)
            choices = list(RECOVERY_MENU)
        else:
            state.last_error = outcome.advisory
            choices = list(payload.choices)

        state.add_message(MessageKind.NARRATOR, payload.story, from_fallback=outcome.from_fallback)
        if not is_first_turn:
            state.push_history(action, payload.story)

        if state.mode is Mode.FALLBACK and state.last_error is None:
            story = payload.story.lower()
            if any(marker in story for marker in _OFFLINE_MARKERS):
                state.last_error = OFFLINE_ADVISORY

        state.choices = choices
        return TurnResult(
            story=payload.story,
            choices=choices,
            mode=state.mode,
            from_fallback=outcome.from_fallback,
            error=state.last_error,
        )
