"""
Threadreader – reads board threads aloud, one post at a time.

This top-level package exposes the content models and the narration
session façade.
"""

from .models import (
    Board,
    NarrationCursor,
    Notice,
    NoticeKind,
    PlaybackState,
    Post,
    ProgressEvent,
    Thread,
)
from .services.narration_session import NarrationSession

__all__ = [
    "Board",
    "NarrationCursor",
    "NarrationSession",
    "Notice",
    "NoticeKind",
    "PlaybackState",
    "Post",
    "ProgressEvent",
    "Thread",
]
