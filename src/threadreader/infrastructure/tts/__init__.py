"""Remote TTS provider implementations (OpenAI, ElevenLabs)."""

from .base import ResponseFormat, TTSProvider, Voice
from .elevenlabs_provider import ElevenLabsProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "ElevenLabsProvider",
    "OpenAIProvider",
    "ResponseFormat",
    "TTSProvider",
    "Voice",
]
