from __future__ import annotations

import zlib

from threadreader.infrastructure.tts.base import Voice


def english_voices(voices: list[Voice], limit: int = 10) -> list[Voice]:
    """Prefer English voices; otherwise keep the first *limit* of whatever exists."""

    english = [v for v in voices if (v.language or "").lower().startswith("en")]
    return english or voices[:limit]


def map_voice_id(handle: str, voices: list[Voice], default: str) -> str:
    """Map a voice handle from another engine onto *voices*, stably.

    A handle that already names one of *voices* is returned as is; any other
    handle is hashed onto the list so the same handle always lands on the same
    voice.
    """

    if not voices:
        return default
    ids = [v.id for v in voices]
    if handle in ids:
        return handle
    return ids[zlib.crc32(handle.encode("utf-8")) % len(ids)]
