"""Async generation-backend client with usage tracking and a connectivity self-check."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
)
from pydantic import BaseModel, ConfigDict

from config import UNSET_CREDENTIAL, Settings, settings
from src.nlg.prompt_templates import CONNECTIVITY_TEST_PROMPT
from src.nlg.response_normalizer import NUM_CHOICES, extract_json_object
from src.utils.errors import NarrativeError, TransportError

logger = logging.getLogger(__name__)

SAFETY_CATEGORIES: List[str] = [
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]


class CredentialStatus(str, Enum):
    VALID = "valid"
    UNCONFIGURED = "unconfigured"


class GenerationConfig(BaseModel):
    """Endpoint and credential for the backend, plus the fixed sampling policy.

    Frozen: ``update_config`` swaps in a new instance, so a call that already
    holds a reference keeps the values it started with.
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str
    credential: str = UNSET_CREDENTIAL
    model: str = "gemini-1.5-flash-latest"
    temperature: float = 0.9
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int = 1024
    safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE"
    timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationConfig":
        return cls(
            endpoint=settings.GENERATION_BASE_URL,
            credential=settings.GENERATION_API_KEY,
            model=settings.GENERATION_MODEL,
            temperature=settings.GENERATION_TEMPERATURE,
            top_p=settings.GENERATION_TOP_P,
            top_k=settings.GENERATION_TOP_K,
            max_output_tokens=settings.GENERATION_MAX_TOKENS,
            safety_threshold=settings.SAFETY_THRESHOLD,
            timeout=settings.REQUEST_TIMEOUT,
        )


class GenerationClient:
    """Boundary adapter for the text-generation backend.

    * ``generate()``          → raw completion text, or ``TransportError``
    * ``test_connectivity()`` → ``True`` only for a well-formed self-check reply
    * ``update_config()``     → replace endpoint / credential at runtime
    * Per-session token tracking

    It never substitutes fallback content; that is the orchestrator's job.
    """

    def __init__(self, config: Optional[GenerationConfig] = None) -> None:
        self._config = config or GenerationConfig.from_settings(settings)
        self._client: Any = None
        self._client_config: Optional[GenerationConfig] = None
        # replaced SDK clients, closed once no call is using them
        self._retired: List[Any] = []
        self._in_flight: Dict[int, int] = {}
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0

    # ── configuration ─────────────────────────────────────
    @property
    def config(self) -> GenerationConfig:
        return self._config

    def update_config(self, **changes: Any) -> None:
        """Replace config fields (e.g. ``credential``, ``endpoint``) for later calls."""
        self._config = self._config.model_copy(update=changes)
        logger.info("Generation config updated: %s", ", ".join(sorted(changes)) or "nothing")

    def credential_status(self) -> CredentialStatus:
        """Format check only; says nothing about whether the key works."""
        credential = (self._config.credential or "").strip()
        if not credential or credential == UNSET_CREDENTIAL:
            return CredentialStatus.UNCONFIGURED
        return CredentialStatus.VALID

    # ── lazy SDK client, rebuilt when the config object changes ──
    def _client_for(self, config: GenerationConfig) -> Any:
        if self._client is None or self._client_config is not config:
            if self._client is not None:
                self._retired.append(self._client)
            self._client = AsyncOpenAI(
                api_key=config.credential,
                base_url=config.endpoint,
                timeout=config.timeout,
                max_retries=0,
            )
            self._client_config = config
        return self._client

    async def _close_retired(self) -> None:
        for client in list(self._retired):
            if self._in_flight.get(id(client)):
                continue
            self._retired.remove(client)
            await client.close()

    async def aclose(self) -> None:
        """Close every SDK client this instance has opened."""
        if self._client is not None:
            self._retired.append(self._client)
            self._client = None
            self._client_config = None
        await self._close_retired()

    @staticmethod
    def _request_kwargs(config: GenerationConfig, prompt: str) -> Dict[str, Any]:
        return {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "top_p": config.top_p,
            "max_tokens": config.max_output_tokens,
            "extra_body": {
                "top_k": config.top_k,
                "safety_settings": [
                    {"category": category, "threshold": config.safety_threshold}
                    for category in SAFETY_CATEGORIES
                ],
            },
        }

    # ── public API ────────────────────────────────────────
    async def generate(self, prompt: str) -> str:
        """Send one completion request and return the generated text."""
        config = self._config
        client = self._client_for(config)
        self._in_flight[id(client)] = self._in_flight.get(id(client), 0) + 1
        try:
            response = await self._complete(client, config, prompt)
        finally:
            remaining = self._in_flight.pop(id(client)) - 1
            if remaining:
                self._in_flight[id(client)] = remaining
            await self._close_retired()

        usage = getattr(response, "usage", None)
        if usage:
            self._total_input_tokens += usage.prompt_tokens or 0
            self._total_output_tokens += usage.completion_tokens or 0

        choices = getattr(response, "choices", None) or []
        text = choices[0].message.content if choices and choices[0].message else None
        if not text:
            logger.error("Backend response carried no text")
            raise TransportError("Invalid API response format: missing text")
        return text

    async def _complete(self, client: Any, config: GenerationConfig, prompt: str) -> Any:
        try:
            return await client.chat.completions.create(**self._request_kwargs(config, prompt))
        except APIStatusError as exc:
            logger.error("Backend returned %s: %s", exc.status_code, exc.message)
            raise TransportError(exc.message, status=exc.status_code) from exc
        except APITimeoutError as exc:
            logger.error("Backend request timed out")
            raise TransportError("Request to generation backend timed out") from exc
        except APIConnectionError as exc:
            logger.error("Cannot connect to generation backend: %s", exc)
            raise TransportError(f"Cannot connect to generation backend: {exc}") from exc
        except OpenAIError as exc:
            logger.error("Generation request failed: %s", exc)
            raise TransportError(str(exc)) from exc

    async def test_connectivity(self) -> bool:
        """Send the canned self-check prompt; never raises."""
        if self.credential_status() is CredentialStatus.UNCONFIGURED:
            return False
        try:
            raw = await self.generate(CONNECTIVITY_TEST_PROMPT)
            data = extract_json_object(raw)
        except NarrativeError as exc:
            logger.warning("Connectivity test failed: %s", exc)
            return False
        return len(data["choices"]) == NUM_CHOICES

    # ── usage tracking ────────────────────────────────────
    @property
    def total_input_tokens(self) -> int:
        return self._total_input_tokens

    @property
    def total_output_tokens(self) -> int:
        return self._total_output_tokens

    def reset_usage(self) -> None:
        self._total_input_tokens = 0
        self._total_output_tokens = 0
