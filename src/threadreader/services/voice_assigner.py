from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Literal

from threadreader.infrastructure.tts.base import Voice
from threadreader.models import Post, Thread

logger = logging.getLogger(__name__)

#: Sentinel handle meaning "let the engine use its platform default voice".
DEFAULT_VOICE = "default"

VoiceMode = Literal["author", "thread"]
SelectionPolicy = Literal["rotate", "random"]


class VoiceAssigner:
    """Assigns voices to authors or threads and keeps them for the session.

    Two memo tables exist, one per identity kind; they are never merged. The
    pool is read lazily through *list_voices* on every new assignment, so a
    refreshed pool is picked up without caching voice objects. A key keeps
    the voice id it was first given, even after the pool changes.
    """

    def __init__(
        self,
        list_voices: Callable[[], list[Voice]],
        mode: VoiceMode = "author",
        selection: SelectionPolicy = "rotate",
        rng: random.Random | None = None,
    ) -> None:
        self.list_voices = list_voices
        self.mode = mode
        self.selection = selection
        self.rng = rng or random.Random()

        self.thread_voices: dict[str, str] = {}
        self.author_voices: dict[str, str] = {}
        self._rotation = 0

    def assign(self, identity_key: str, table: VoiceMode | None = None) -> str:
        """Return the voice id for *identity_key*, choosing one on first use."""
        memo = self._table(table or self.mode)
        if identity_key in memo:
            return memo[identity_key]

        voices = self.list_voices()
        if not voices:
            # Not memoized: the key gets a real voice once the pool fills.
            return DEFAULT_VOICE

        if self.selection == "random":
            index = self.rng.randrange(len(voices))
        else:
            index = self._rotation % len(voices)
            self._rotation += 1

        voice_id = voices[index].id
        memo[identity_key] = voice_id
        logger.debug(f"Assigned voice {voice_id} to {table or self.mode} '{identity_key}'")
        return voice_id

    def voice_for(self, post: Post, thread: Thread | None) -> str:
        """Pick the identity key for *post* according to the configured mode."""
        if self.mode == "thread" and thread is not None:
            return self.assign(thread.id, "thread")
        return self.assign(post.author_key or "anonymous", "author")

    def _table(self, kind: VoiceMode) -> dict[str, str]:
        return self.thread_voices if kind == "thread" else self.author_voices
