from __future__ import annotations

import logging
from pathlib import Path

from elevenlabs import ElevenLabs
from elevenlabs import Voice as ElevenVoice

from threadreader.infrastructure.tts.base import ResponseFormat, TTSProvider, Voice

logger = logging.getLogger(__name__)

ELEVEN_OUTPUT_FORMATS = {"mp3": "mp3_44100_128", "pcm": "pcm_22050"}


class ElevenLabsProvider(TTSProvider):
    """TTS provider for the ElevenLabs API."""

    name: str = "eleven"
    max_chars: int = 5000

    def __init__(
        self,
        api_key: str,
        model_id: str = "eleven_multilingual_v2",
        client: ElevenLabs | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ValueError(
                "ElevenLabs API key not found. Set ELEVEN_LABS_API_KEY or pass api_key."
            )
        self.client = client or ElevenLabs(api_key=api_key)
        self.model_id = model_id
        self._voices: list[Voice] | None = None

    def list_voices(self) -> list[Voice]:
        """Return account voices, fetched once per provider instance."""
        if self._voices is None:
            self._voices = [self._map_voice(v) for v in self.client.voices.search().voices]
        return list(self._voices)

    def synth(
        self,
        *,
        text: str,
        voice: str,
        format: ResponseFormat = "mp3",
        out_path: Path,
    ) -> None:
        """Synthesize audio using the ElevenLabs streaming endpoint."""
        output_format = ELEVEN_OUTPUT_FORMATS.get(format)
        if output_format is None:
            logger.warning(f"ElevenLabs does not serve '{format}', falling back to mp3")
            output_format = ELEVEN_OUTPUT_FORMATS["mp3"]

        audio_stream = self.client.text_to_speech.stream(
            text=text,
            voice_id=voice,
            model_id=self.model_id,
            output_format=output_format,
        )
        with open(out_path, "wb") as f:
            for chunk in audio_stream:
                if isinstance(chunk, bytes):
                    f.write(chunk)

    def _map_voice(self, eleven_voice: ElevenVoice) -> Voice:
        """Convert an ElevenLabs voice object to our internal `Voice` dataclass."""
        voice_id = getattr(eleven_voice, "voice_id", None) or getattr(eleven_voice, "id", None)
        labels = getattr(eleven_voice, "labels", None) or {}
        return Voice(
            id=str(voice_id or "unknown"),
            name=getattr(eleven_voice, "name", None) or "Unknown ElevenLabs Voice",
            gender=labels.get("gender"),
            language=labels.get("language"),
            tags=tuple(labels.keys()),
        )
