"""Global configuration for the AI Adventure Engine."""
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

# Placeholder shipped in place of a real key; treated as "unconfigured"
UNSET_CREDENTIAL = "YOUR_GOOGLE_AI_STUDIO_API_KEY_HERE"


class Settings(BaseSettings):
    """Centralised settings read from .env file automatically."""

    # ── Paths ──────────────────────────────────────────────
    PROJECT_ROOT: Path = Path(__file__).parent

    # ── Generation backend ────────────────────────────────
    GENERATION_API_KEY: str = Field(default=UNSET_CREDENTIAL, description="Google AI Studio API key")
    GENERATION_BASE_URL: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        description="OpenAI-compatible API base URL",
    )
    GENERATION_MODEL: str = "gemini-1.5-flash-latest"
    GENERATION_MAX_TOKENS: int = 1024
    GENERATION_TEMPERATURE: float = 0.9
    GENERATION_TOP_P: float = 0.95
    GENERATION_TOP_K: int = 40
    SAFETY_THRESHOLD: str = "BLOCK_MEDIUM_AND_ABOVE"
    REQUEST_TIMEOUT: float = 60.0

    # ── Logging ───────────────────────────────────────────
    LOG_LEVEL: str = "INFO"

    # ── Gradio ────────────────────────────────────────────
    GRADIO_PORT: int = 7860

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


# Singleton settings instance used by every module
settings = Settings()
