"""Narration pipeline: text normalization, voices, backends and playback."""

from .backend_selector import BackendHealth, BackendSelector
from .content_source import ContentSource, InMemoryContentSource
from .narration_session import NarrationSession
from .playback_controller import PlaybackController
from .speech_backends import LocalSpeechBackend, RemoteSpeechBackend, SpeechBackend
from .text_normalizer import TextNormalizer
from .voice_assigner import DEFAULT_VOICE, VoiceAssigner

__all__ = [
    "DEFAULT_VOICE",
    "BackendHealth",
    "BackendSelector",
    "ContentSource",
    "InMemoryContentSource",
    "LocalSpeechBackend",
    "NarrationSession",
    "PlaybackController",
    "RemoteSpeechBackend",
    "SpeechBackend",
    "TextNormalizer",
    "VoiceAssigner",
]
