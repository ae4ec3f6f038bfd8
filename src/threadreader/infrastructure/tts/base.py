from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

ResponseFormat = Literal["mp3", "opus", "aac", "flac", "wav", "pcm"]


@dataclass(frozen=True)
class Voice:
    """A voice offered by a local engine or a remote provider."""

    id: str
    name: str
    gender: str | None = None
    language: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


class TTSProvider(ABC):
    """Abstract base class for remote synthesis providers."""

    #: Longest input a single request accepts.
    max_chars: int = 4096

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the (unique) short-name for this provider (e.g. 'openai')."""

    @abstractmethod
    def list_voices(self) -> list[Voice]:
        """Return all available voices for this provider."""

    @abstractmethod
    def synth(
        self,
        *,  # force keyword-only args
        text: str,
        voice: str,  # voice ID
        format: ResponseFormat = "mp3",
        out_path: Path,
    ) -> None:
        """Synthesise *text* to *out_path* using *voice*."""
