from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from threadreader.models import (
    FailureKind,
    Notice,
    NoticeKind,
    OutcomeStatus,
    SpeechOutcome,
    SpeechParams,
)
from threadreader.services.speech_backends import SpeechBackend, classify_failure

logger = logging.getLogger(__name__)

EMPTY_UTTERANCE_PLACEHOLDER = "Empty post."

FAILURE_MESSAGES = {
    FailureKind.RATE_LIMIT: "Remote voice is rate limited, using the local voice for this post.",
    FailureKind.AUTH: "Remote voice rejected the credentials, using the local voice.",
    FailureKind.CONNECTIVITY: "Remote voice is unreachable, using the local voice.",
    FailureKind.UNKNOWN: "Remote voice failed, using the local voice.",
}


@dataclass
class BackendHealth:
    """Circuit breaker record for the remote backend."""

    consecutive_failures: int = 0
    disabled: bool = False
    last_invocation_timestamp: float | None = None


class BackendSelector:
    """Routes utterances to the remote backend with local fallback.

    Every remote failure falls back to the local backend for the same
    utterance. After `max_failures` consecutive failures the remote backend is
    disabled until `reset_remote()` is called.
    """

    def __init__(
        self,
        local: SpeechBackend,
        remote: SpeechBackend | None = None,
        remote_available: bool = False,
        max_failures: int = 3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.local = local
        self.remote = remote
        # Capability flag, resolved once by whoever builds the selector.
        self.remote_enabled = remote_available and remote is not None
        self.max_failures = max_failures
        self.health = BackendHealth()

        self._clock = clock
        self._active: SpeechBackend | None = None
        self._cancel_requested = False
        self._listeners: list[Callable[[Notice], None]] = []

    def on_notice(self, callback: Callable[[Notice], None]) -> None:
        self._listeners.append(callback)

    @property
    def use_remote(self) -> bool:
        return self.remote_enabled and not self.health.disabled

    @property
    def active_backend(self) -> SpeechBackend | None:
        return self._active

    async def speak(self, text: str, voice: str, params: SpeechParams) -> SpeechOutcome:
        """Speak *text*, returning exactly one outcome."""
        if not text.strip():
            logger.warning("Empty utterance reached the backend selector, using placeholder")
            text = EMPTY_UTTERANCE_PLACEHOLDER

        self._cancel_requested = False
        if self.use_remote:
            self.health.last_invocation_timestamp = self._clock()
            outcome = await self._run(self.remote, text, voice, params)
            if outcome.status == OutcomeStatus.COMPLETED:
                self._record_success()
                return outcome
            if outcome.status == OutcomeStatus.CANCELLED:
                return outcome

            self._record_failure(outcome)
            if self._cancel_requested:
                return SpeechOutcome.cancelled(backend=self.local.name)
        elif self.remote_enabled:
            logger.debug("Remote TTS disabled, speaking with the local backend")

        return await self._run(self.local, text, voice, params)

    def cancel(self) -> None:
        """Forward a cancel request to whichever backend is speaking."""
        self._cancel_requested = True
        if self._active is not None:
            self._active.cancel()

    def reset_remote(self) -> None:
        """Explicit user action: close the circuit and clear the failure count."""
        was_disabled = self.health.disabled
        self.health.consecutive_failures = 0
        self.health.disabled = False
        logger.info("Remote TTS re-enabled, failure count reset")
        if was_disabled:
            self._notify(
                Notice(kind=NoticeKind.BACKEND_ENABLED, message="Remote voice re-enabled.")
            )

    async def _run(
        self, backend: SpeechBackend, text: str, voice: str, params: SpeechParams
    ) -> SpeechOutcome:
        self._active = backend
        try:
            return await backend.speak(text, voice, params)
        except Exception as e:
            logger.exception(f"{backend.name} backend raised instead of reporting an outcome")
            return SpeechOutcome.failed(classify_failure(e), str(e), backend=backend.name)
        finally:
            if self._active is backend:
                self._active = None

    def _record_success(self) -> None:
        if self.health.consecutive_failures:
            logger.info("Remote TTS working again, resetting failure count")
        self.health.consecutive_failures = 0

    def _record_failure(self, outcome: SpeechOutcome) -> None:
        kind = outcome.failure_kind or FailureKind.UNKNOWN
        self.health.consecutive_failures += 1
        logger.warning(
            f"Remote TTS failure #{self.health.consecutive_failures} ({kind.value}): "
            f"{outcome.reason}"
        )
        self._notify(
            Notice(
                kind=NoticeKind.BACKEND_FAILURE,
                message=FAILURE_MESSAGES[kind],
                failure_kind=kind,
            )
        )

        if self.health.consecutive_failures >= self.max_failures and not self.health.disabled:
            self.health.disabled = True
            logger.error(
                f"Remote TTS disabled after {self.max_failures} consecutive failures"
            )
            self._notify(
                Notice(
                    kind=NoticeKind.BACKEND_DISABLED,
                    message=(
                        f"Remote voice disabled after {self.max_failures} failures. "
                        "Using the local voice only."
                    ),
                    failure_kind=kind,
                    action=self.reset_remote,
                )
            )

    def _notify(self, notice: Notice) -> None:
        for callback in self._listeners:
            try:
                callback(notice)
            except Exception:
                logger.exception("Notice listener failed")
