from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Content Models
# =============================================================================


class AttachmentRef(BaseModel):
    """Pointer to a post's media attachment (board + upload timestamp + extension)."""

    model_config = ConfigDict(frozen=True)

    board: str = Field(..., description="Board the attachment was uploaded to")
    timestamp: str = Field(..., description="Upload timestamp used as the file name")
    extension: str = Field(..., description="File extension including the dot, e.g. '.jpg'")

    @property
    def kind(self) -> str:
        """Spoken media class of the attachment: 'image', 'video' or 'file'."""
        ext = self.extension.lower().lstrip(".")
        if ext in IMAGE_EXTENSIONS:
            return "image"
        if ext in VIDEO_EXTENSIONS:
            return "video"
        return "file"


IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})
VIDEO_EXTENSIONS = frozenset({"mp4", "webm", "mov", "avi"})


class Post(BaseModel):
    """A single narrated unit of a thread. Immutable once fetched."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Board-unique post id")
    author_key: str = Field("", description="Author identity; empty for anonymous posters")
    raw_body: str = Field("", description="Post body markup")
    attachment: AttachmentRef | None = Field(None, description="Optional media attachment")


class Thread(BaseModel):
    """An ordered, append-only list of posts."""

    id: str
    board_id: str | None = None
    subject: str | None = None
    posts: list[Post] = Field(default_factory=list)

    def position_of(self, post_id: str) -> int | None:
        """Return the zero-based position of *post_id* in this thread, if loaded."""
        for index, post in enumerate(self.posts):
            if post.id == post_id:
                return index
        return None


class Board(BaseModel):
    """A board and the threads loaded for it so far."""

    id: str
    title: str | None = None
    threads: list[Thread] = Field(default_factory=list)


class NarrationCursor(BaseModel):
    """The only mutable pointer into the board -> thread -> post hierarchy."""

    board_index: int = Field(0, ge=0)
    thread_index: int = Field(0, ge=0)
    post_index: int = Field(0, ge=0)


# =============================================================================
# Playback / Speech Models
# =============================================================================


class PlaybackState(str, Enum):
    """Playback controller states."""

    IDLE = "IDLE"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"
    TRANSITIONING = "TRANSITIONING"
    STOPPED = "STOPPED"


class FailureKind(str, Enum):
    """Classification of speech backend failures."""

    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    CONNECTIVITY = "connectivity"
    UNKNOWN = "unknown"


class OutcomeStatus(str, Enum):
    """How a single utterance ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SpeechOutcome(BaseModel):
    """Result of exactly one `speak()` call."""

    status: OutcomeStatus
    failure_kind: FailureKind | None = None
    reason: str | None = None
    backend: str | None = Field(None, description="Name of the backend that produced it")

    @classmethod
    def completed(cls, backend: str | None = None) -> SpeechOutcome:
        return cls(status=OutcomeStatus.COMPLETED, backend=backend)

    @classmethod
    def cancelled(cls, backend: str | None = None) -> SpeechOutcome:
        return cls(status=OutcomeStatus.CANCELLED, backend=backend)

    @classmethod
    def failed(
        cls, kind: FailureKind, reason: str, backend: str | None = None
    ) -> SpeechOutcome:
        return cls(status=OutcomeStatus.FAILED, failure_kind=kind, reason=reason, backend=backend)

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED


class SpeechParams(BaseModel):
    """Per-utterance speech parameters."""

    rate: float = Field(1.0, gt=0.0, description="Speed multiplier (1.0 = normal)")
    volume: float = Field(1.0, ge=0.0, le=1.0)


# =============================================================================
# Observer Events
# =============================================================================


class ProgressEvent(BaseModel):
    """Emitted on every cursor change."""

    post_index: int
    total_posts: int
    board_id: str | None = None
    thread_id: str | None = None


class NoticeKind(str, Enum):
    """User-facing notices raised by the narration core."""

    NOTHING_TO_READ = "nothing_to_read"
    END_OF_CONTENT = "end_of_content"
    CONTENT_UNAVAILABLE = "content_unavailable"
    BACKEND_FAILURE = "backend_failure"
    BACKEND_DISABLED = "backend_disabled"
    BACKEND_ENABLED = "backend_enabled"


class Notice(BaseModel):
    """Passive notice for the UI layer; `action` is an optional recovery callback."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: NoticeKind
    message: str
    failure_kind: FailureKind | None = None
    action: Callable[[], None] | None = Field(None, exclude=True)
