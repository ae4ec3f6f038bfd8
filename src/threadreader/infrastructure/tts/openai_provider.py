from __future__ import annotations

import logging
from pathlib import Path

from openai import OpenAI

from threadreader.infrastructure.tts.base import ResponseFormat, TTSProvider, Voice

logger = logging.getLogger(__name__)

# Standard OpenAI TTS voices; the API exposes no listing endpoint.
OPENAI_VOICES = [
    Voice(id="alloy", name="Alloy", gender="neutral", language="en"),
    Voice(id="echo", name="Echo", gender="male", language="en"),
    Voice(id="fable", name="Fable", gender="male", language="en"),
    Voice(id="onyx", name="Onyx", gender="male", language="en"),
    Voice(id="nova", name="Nova", gender="female", language="en"),
    Voice(id="shimmer", name="Shimmer", gender="female", language="en"),
]


class OpenAIProvider(TTSProvider):
    """TTS provider for the OpenAI speech API."""

    name: str = "openai"
    max_chars: int = 4096

    def __init__(self, api_key: str, model: str = "tts-1", client: OpenAI | None = None) -> None:
        if not api_key and client is None:
            raise ValueError("OpenAI API key not found. Set OPENAI_API_KEY or pass api_key.")
        # Retries are left to the circuit breaker in front of this provider.
        self.client = client or OpenAI(api_key=api_key, max_retries=0)
        self.model = model

    def list_voices(self) -> list[Voice]:
        return list(OPENAI_VOICES)

    def synth(
        self,
        *,
        text: str,
        voice: str,
        format: ResponseFormat = "mp3",
        out_path: Path,
    ) -> None:
        """Synthesize audio using the OpenAI TTS API."""
        logger.debug(f"OpenAI synth: model={self.model} voice={voice} chars={len(text)}")
        with self.client.audio.speech.with_streaming_response.create(
            model=self.model,
            voice=voice,  # type: ignore[arg-type]
            input=text,
            response_format=format,
        ) as response:
            response.stream_to_file(out_path)
