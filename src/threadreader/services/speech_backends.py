from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx
import openai
import pyttsx3
from pydub import AudioSegment

from threadreader.exceptions import EmptyUtterance, SpeechBackendFailure
from threadreader.infrastructure.audio import AudioPlayer
from threadreader.infrastructure.tts.base import TTSProvider, Voice
from threadreader.infrastructure.voice_utils import english_voices, map_voice_id
from threadreader.models import FailureKind, SpeechOutcome, SpeechParams
from threadreader.services.voice_assigner import DEFAULT_VOICE

logger = logging.getLogger(__name__)


def classify_failure(exc: BaseException) -> FailureKind:
    """Partition a backend exception into rate-limit, auth, connectivity or unknown."""
    if isinstance(exc, SpeechBackendFailure):
        return exc.kind
    if isinstance(exc, openai.RateLimitError):
        return FailureKind.RATE_LIMIT
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return FailureKind.AUTH
    if isinstance(exc, openai.APIConnectionError):
        return FailureKind.CONNECTIVITY

    # ElevenLabs (and other httpx-based SDKs) expose the HTTP status directly.
    status = getattr(exc, "status_code", None)
    if status == 429:
        return FailureKind.RATE_LIMIT
    if status in (401, 403):
        return FailureKind.AUTH
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return FailureKind.CONNECTIVITY

    message = str(exc).lower()
    if "rate limit" in message or "too many requests" in message:
        return FailureKind.RATE_LIMIT
    return FailureKind.UNKNOWN


class SpeechBackend(ABC):
    """Speaks one utterance at a time and reports exactly one outcome per call."""

    name: str = "backend"

    @abstractmethod
    async def speak(self, text: str, voice: str, params: SpeechParams) -> SpeechOutcome:
        """Speak *text* to the end, or until `cancel()` is requested."""

    @abstractmethod
    def cancel(self) -> None:
        """Request that the utterance in progress stops. May take effect later."""

    def list_voices(self) -> list[Voice]:
        """Voices this backend can speak with."""
        return []


class LocalSpeechBackend(SpeechBackend):
    """Platform speech engine driven through pyttsx3.

    The engine is not thread-safe, so every call runs on one dedicated worker
    thread. The exception is `cancel()`: `engine.stop()` is called from the
    event loop thread, because the worker is blocked in `runAndWait()` until
    the engine stops.
    """

    name = "local"

    def __init__(self, engine_factory: Callable[[], object] = pyttsx3.init) -> None:
        self._engine_factory = engine_factory
        self._engine = None
        self._base_rate: int | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="local-tts")
        self._cancelled = False

    async def speak(self, text: str, voice: str, params: SpeechParams) -> SpeechOutcome:
        if not text.strip():
            raise EmptyUtterance("Local backend was given an empty utterance")

        self._cancelled = False
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, self._say, text, voice, params)
        except Exception as e:
            kind = classify_failure(e)
            logger.warning(f"Local speech failed ({kind.value}): {e}")
            return SpeechOutcome.failed(kind, str(e), backend=self.name)

        if self._cancelled:
            return SpeechOutcome.cancelled(backend=self.name)
        return SpeechOutcome.completed(backend=self.name)

    def cancel(self) -> None:
        self._cancelled = True
        if self._engine is not None:
            # Only cross-thread call; it ends the runAndWait() loop on the worker.
            self._engine.stop()

    def list_voices(self) -> list[Voice]:
        engine = self._get_engine()
        voices = [
            Voice(
                id=v.id,
                name=v.name or v.id,
                gender=getattr(v, "gender", None),
                language=_first_language(getattr(v, "languages", None)),
            )
            for v in engine.getProperty("voices")
        ]
        return english_voices(voices)

    def _get_engine(self):
        if self._engine is None:
            self._engine = self._engine_factory()
            self._base_rate = int(self._engine.getProperty("rate") or 200)
        return self._engine

    def _say(self, text: str, voice: str, params: SpeechParams) -> None:
        engine = self._get_engine()
        if voice != DEFAULT_VOICE:
            engine.setProperty("voice", voice)
        engine.setProperty("rate", int(self._base_rate * params.rate))
        engine.setProperty("volume", params.volume)
        engine.say(text)
        engine.runAndWait()


class RemoteSpeechBackend(SpeechBackend):
    """Synthesizes with a remote `TTSProvider` and plays the result locally.

    Calls are spaced at least `interval_ms` apart; a call that comes early is
    delayed, not rejected. A rate-limited failure doubles the spacing (up to
    `max_interval_ms`), and the next success restores `min_interval_ms`.
    """

    name = "remote"

    def __init__(
        self,
        provider: TTSProvider,
        player: AudioPlayer,
        default_voice: str = "alloy",
        min_interval_ms: int = 2000,
        max_interval_ms: int = 32000,
        text_limit: int = 3000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.player = player
        self.default_voice = default_voice
        self.min_interval_ms = min_interval_ms
        self.max_interval_ms = max(max_interval_ms, min_interval_ms)
        self.interval_ms = min_interval_ms
        self.text_limit = min(text_limit, provider.max_chars)
        self.last_call_at: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._cancelled = False

    async def speak(self, text: str, voice: str, params: SpeechParams) -> SpeechOutcome:
        if not text.strip():
            raise EmptyUtterance("Remote backend was given an empty utterance")

        self._cancelled = False
        await self._respect_spacing()
        if self._cancelled:
            return SpeechOutcome.cancelled(backend=self.name)

        self.last_call_at = self._clock()
        remote_voice = map_voice_id(voice, self.list_voices(), self.default_voice)
        try:
            segment = await asyncio.to_thread(
                self._synthesize, text[: self.text_limit], remote_voice
            )
        except Exception as e:
            return self._failure(e)

        self.interval_ms = self.min_interval_ms
        if self._cancelled:
            return SpeechOutcome.cancelled(backend=self.name)

        # pydub can only speed up; slower rates play at normal speed.
        if params.rate > 1.0:
            segment = segment.speedup(playback_speed=params.rate)
        try:
            finished = await self.player.play(segment)
        except Exception as e:
            return self._failure(e)

        if not finished or self._cancelled:
            return SpeechOutcome.cancelled(backend=self.name)
        return SpeechOutcome.completed(backend=self.name)

    def cancel(self) -> None:
        self._cancelled = True
        self.player.stop()

    def list_voices(self) -> list[Voice]:
        return self.provider.list_voices()

    async def _respect_spacing(self) -> None:
        if self.last_call_at is None:
            return
        elapsed_ms = (self._clock() - self.last_call_at) * 1000
        wait_ms = self.interval_ms - elapsed_ms
        if wait_ms > 0:
            logger.debug(f"Remote TTS spacing: waiting {wait_ms:.0f}ms before next call")
            await self._sleep(wait_ms / 1000)

    def _failure(self, exc: Exception) -> SpeechOutcome:
        kind = classify_failure(exc)
        if kind == FailureKind.RATE_LIMIT:
            self.interval_ms = min(self.interval_ms * 2, self.max_interval_ms)
            logger.warning(f"Remote TTS rate limited, spacing now {self.interval_ms}ms")
        else:
            logger.warning(f"Remote TTS failed ({kind.value}): {exc}")
        return SpeechOutcome.failed(kind, str(exc) or kind.value, backend=self.name)

    def _synthesize(self, text: str, voice: str) -> AudioSegment:
        """Synthesize *text* through the provider and decode the result."""
        with tempfile.NamedTemporaryFile(suffix=".mp3", delete=False) as tmp_file:
            out_path = Path(tmp_file.name)
        try:
            self.provider.synth(text=text, voice=voice, format="mp3", out_path=out_path)
            return AudioSegment.from_file(out_path, format="mp3")
        finally:
            try:
                os.unlink(out_path)
            except OSError as e:
                logger.warning(f"Failed to delete temp file {out_path}: {e}")


def _first_language(languages) -> str | None:
    if not languages:
        return None
    first = languages[0]
    if isinstance(first, bytes):
        # espeak reports languages as bytes prefixed with a priority byte.
        first = first[1:].decode("utf-8", errors="ignore")
    return str(first)
