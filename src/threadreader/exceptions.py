"""Error taxonomy for the narration core."""

from __future__ import annotations

from threadreader.models import FailureKind


class NarrationError(Exception):
    """Base class for all narration errors."""


class ContentUnavailable(NarrationError):
    """No posts or threads to read, or the content source failed to deliver them."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class SpeechBackendFailure(NarrationError):
    """A speech backend could not speak an utterance."""

    def __init__(self, kind: FailureKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class EmptyUtterance(NarrationError):
    """A backend was asked to speak blank text."""
