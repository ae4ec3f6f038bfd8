from __future__ import annotations

import logging
import random
from collections.abc import Callable

from threadreader.infrastructure.audio import AudioPlayer, SilentCue, ToneCue
from threadreader.infrastructure.tts import ElevenLabsProvider, OpenAIProvider, TTSProvider
from threadreader.models import (
    NarrationCursor,
    Notice,
    PlaybackState,
    ProgressEvent,
    SpeechParams,
    Thread,
)
from threadreader.services.backend_selector import BackendHealth, BackendSelector
from threadreader.services.content_source import ContentSource
from threadreader.services.playback_controller import Cue, PlaybackController
from threadreader.services.speech_backends import (
    LocalSpeechBackend,
    RemoteSpeechBackend,
    SpeechBackend,
)
from threadreader.services.text_normalizer import TextNormalizer
from threadreader.services.voice_assigner import VoiceAssigner
from threadreader.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_provider(settings: Settings) -> TTSProvider:
    """Instantiate the configured remote provider."""
    if settings.remote_provider == "eleven":
        return ElevenLabsProvider(api_key=settings.eleven_labs_api_key or "")
    return OpenAIProvider(api_key=settings.openai_api_key or "", model=settings.remote_model)


class NarrationSession:
    """Control surface of one listening session.

    Playback controls return ``True`` when the request was acted on. They
    never raise; problems arrive through `on_notice` listeners. Loading
    content raises `ContentUnavailable` so the caller can retry.
    """

    def __init__(self, controller: PlaybackController) -> None:
        self.controller = controller

    @classmethod
    def from_settings(
        cls,
        content: ContentSource,
        settings: Settings | None = None,
        *,
        local: SpeechBackend | None = None,
        remote: SpeechBackend | None = None,
        cue: Cue | None = None,
        rng: random.Random | None = None,
    ) -> NarrationSession:
        """Wire a session from settings; backends and cue may be injected."""
        settings = settings or get_settings()
        rng = rng or random.Random()

        # Capability flag: resolved once here, never re-probed later.
        remote_available = (
            settings.remote_available if remote is None else settings.remote_tts_enabled
        )
        player = AudioPlayer()
        local = local or LocalSpeechBackend()
        if remote is None and remote_available:
            remote = RemoteSpeechBackend(
                provider=build_provider(settings),
                player=player,
                default_voice=settings.remote_voice,
                min_interval_ms=settings.remote_min_interval_ms,
                max_interval_ms=settings.remote_max_interval_ms,
                text_limit=settings.remote_text_limit,
            )
        if cue is None:
            cue = (
                ToneCue(player, settings.cue_frequency_hz, settings.cue_duration_ms)
                if settings.cue_enabled
                else SilentCue()
            )

        selector = BackendSelector(
            local=local,
            remote=remote,
            remote_available=remote_available,
            max_failures=settings.max_remote_failures,
        )
        controller = PlaybackController(
            content=content,
            normalizer=TextNormalizer(summary_threshold=settings.summary_threshold),
            voices=VoiceAssigner(
                local.list_voices,
                mode=settings.voice_mode,
                selection=settings.voice_selection,
                rng=rng,
            ),
            selector=selector,
            cue=cue,
            post_delay_s=settings.post_delay_ms / 1000,
            auto_advance_boards=settings.auto_advance_boards,
            board_denylist=settings.board_denylist,
            speech_params=SpeechParams(rate=settings.speech_rate),
            cancel_timeout_s=settings.cancel_timeout_s,
            rng=rng,
        )
        logger.info(
            f"Narration session ready (remote={'on' if selector.use_remote else 'off'}, "
            f"voices by {settings.voice_mode})"
        )
        return cls(controller)

    # Controls

    async def start(self) -> bool:
        return await self.controller.start()

    async def pause(self) -> bool:
        return await self.controller.pause()

    async def stop(self) -> bool:
        return await self.controller.stop()

    async def skip(self) -> bool:
        return await self.controller.skip()

    async def load_board(self, board_id: str) -> list[Thread]:
        return await self.controller.load_board(board_id)

    async def load_thread(self, thread_id: str, board_id: str | None = None) -> Thread:
        """Load a thread, first switching boards when *board_id* differs."""
        if board_id is not None and board_id != self.controller.board_id:
            await self.controller.load_board(board_id)
        return await self.controller.load_thread(thread_id)

    def set_auto_advance(self, enabled: bool) -> None:
        self.controller.set_auto_advance(enabled)

    def reset_remote(self) -> None:
        """Re-enable the remote voice after the circuit breaker opened."""
        self.controller.selector.reset_remote()

    async def wait_until_settled(self) -> None:
        await self.controller.wait_until_settled()

    # Observers

    def on_progress(self, callback: Callable[[ProgressEvent], None]) -> None:
        self.controller.on_progress(callback)

    def on_notice(self, callback: Callable[[Notice], None]) -> None:
        self.controller.on_notice(callback)
        self.controller.selector.on_notice(callback)

    # State

    @property
    def state(self) -> PlaybackState:
        return self.controller.state

    @property
    def cursor(self) -> NarrationCursor:
        return self.controller.cursor

    @property
    def health(self) -> BackendHealth:
        return self.controller.selector.health
