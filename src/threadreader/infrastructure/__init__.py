"""I/O boundary adapters (remote TTS providers, audio output)."""

from .audio import AudioPlayer, SilentCue, ToneCue
from .tts import (
    ElevenLabsProvider,
    OpenAIProvider,
    ResponseFormat,
    TTSProvider,
    Voice,
)

__all__ = [
    "AudioPlayer",
    "ElevenLabsProvider",
    "OpenAIProvider",
    "ResponseFormat",
    "SilentCue",
    "TTSProvider",
    "ToneCue",
    "Voice",
]
