import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_BOARD_DENYLIST = ["b", "r9k", "pol", "bant", "r", "s4s", "soc", "qa"]


class Settings(BaseSettings):
    """Narration settings loaded from environment variables or `.env` file."""

    log_level: str = Field(default="INFO", description="Logging level")

    # Remote TTS
    openai_api_key: str | None = None
    eleven_labs_api_key: str | None = None
    remote_tts_enabled: bool = Field(default=False, description="Try the remote backend first")
    remote_provider: Literal["openai", "eleven"] = Field(default="openai")
    remote_voice: str = Field(default="alloy", description="Fallback remote voice id")
    remote_model: str = Field(default="tts-1")
    remote_text_limit: int = Field(default=3000, gt=0)
    max_remote_failures: int = Field(default=3, ge=1, description="Circuit breaker threshold")
    remote_min_interval_ms: int = Field(default=2000, ge=0)
    remote_max_interval_ms: int = Field(default=32000, ge=0)

    # Text normalization
    summary_threshold: int = Field(
        default=500, gt=0, description="Summarize posts longer than this"
    )

    # Pacing
    post_delay_ms: int = Field(default=2000, ge=0, description="Pause between posts")
    cue_enabled: bool = True
    cue_frequency_hz: int = Field(default=800, gt=0)
    cue_duration_ms: int = Field(default=100, gt=0)
    cancel_timeout_s: float = Field(default=2.0, gt=0.0)

    # Voices
    voice_mode: Literal["author", "thread"] = Field(default="author")
    voice_selection: Literal["rotate", "random"] = Field(default="rotate")
    speech_rate: float = Field(default=1.0, gt=0.0)

    # Auto-advance
    auto_advance_boards: bool = False
    board_denylist: list[str] = Field(default_factory=lambda: list(DEFAULT_BOARD_DENYLIST))

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
        "extra": "ignore",
    }

    @field_validator("remote_max_interval_ms", mode="after")
    @classmethod
    def validate_max_interval(cls, v: int, info) -> int:
        """The backoff ceiling can never sit below the base spacing."""
        minimum = info.data.get("remote_min_interval_ms", 0)
        return max(v, minimum)

    @property
    def remote_api_key(self) -> str | None:
        """API key for the configured remote provider."""
        if self.remote_provider == "eleven":
            return self.eleven_labs_api_key
        return self.openai_api_key

    @property
    def remote_available(self) -> bool:
        """Capability flag: remote TTS is enabled and has credentials."""
        return self.remote_tts_enabled and bool(self.remote_api_key)


@lru_cache
def get_settings() -> Settings:  # pragma: no cover
    """Return a cached instance of Settings."""
    s = Settings()
    logging.basicConfig(level=s.log_level)
    logger = logging.getLogger(__name__)
    logger.info(
        f"Settings loaded: remote_tts={'on' if s.remote_available else 'off'} "
        f"({s.remote_provider}), voice_mode={s.voice_mode}, "
        f"auto_advance_boards={s.auto_advance_boards}"
    )
    return s
