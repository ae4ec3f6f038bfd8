"""Audio playback for synthesized speech and the inter-post cue."""

from __future__ import annotations

import asyncio
import logging

import numpy as np
from pydub import AudioSegment
from pydub.generators import Sine

logger = logging.getLogger(__name__)


class AudioPlayer:
    """Plays decoded audio on the default output device; `stop()` interrupts it.

    Playback runs in a worker thread so the event loop stays responsive.
    `sounddevice` is imported on first use because it loads PortAudio at
    import time.
    """

    def __init__(self) -> None:
        self._active = False
        self._stopped = False

    @property
    def playing(self) -> bool:
        return self._active

    async def play(self, segment: AudioSegment) -> bool:
        """Play *segment* to the end. Returns False if `stop()` interrupted it."""
        self._stopped = False
        samples = np.array(segment.get_array_of_samples())
        if segment.channels > 1:
            samples = samples.reshape((-1, segment.channels))
        self._active = True
        try:
            await asyncio.to_thread(self._play_blocking, samples, segment.frame_rate)
        finally:
            self._active = False
        return not self._stopped

    def stop(self) -> None:
        self._stopped = True
        if not self._active:
            return
        import sounddevice as sd

        sd.stop()

    @staticmethod
    def _play_blocking(samples: np.ndarray, sample_rate: int) -> None:
        import sounddevice as sd

        sd.play(samples, sample_rate)
        sd.wait()


class ToneCue:
    """Short sine beep played between posts."""

    def __init__(
        self,
        player: AudioPlayer,
        frequency_hz: int = 800,
        duration_ms: int = 100,
        volume_db: float = -20.0,
    ) -> None:
        self.player = player
        self.segment = (
            Sine(frequency_hz)
            .to_audio_segment(duration=duration_ms, volume=volume_db)
            .fade_out(duration_ms // 2)
        )

    async def play(self) -> None:
        try:
            await self.player.play(self.segment)
        except Exception as e:
            # A missing audio device must not stop narration.
            logger.warning(f"Could not play inter-post cue: {e}")


class SilentCue:
    """Cue that plays nothing, used when cues are disabled."""

    async def play(self) -> None:
        return None
