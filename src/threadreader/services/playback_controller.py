"""Playback state machine: what to read next, and when.

States and transitions::

    IDLE/STOPPED --start--> PLAYING         (nothing loaded: stays put, notice)
    PLAYING      --pause--> PAUSED          (in-flight utterance cancelled)
    PAUSED       --start--> PLAYING         (current post spoken again from the top)
    any active   --stop---> STOPPED         (cursor back to the first post)
    PLAYING      --skip---> TRANSITIONING --> PLAYING | STOPPED
    PLAYING      --utterance done--> TRANSITIONING (cue, delay) --> PLAYING | STOPPED

TRANSITIONING ignores further skip or completion signals, so overlapping
callbacks advance the cursor once. Every utterance carries a sequence number;
a completion whose number is not the latest is stale and dropped.

Only one utterance is ever in flight: before a new one starts the previous one
has completed, or was cancelled and drained.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from threadreader.exceptions import ContentUnavailable
from threadreader.models import (
    Board,
    NarrationCursor,
    Notice,
    NoticeKind,
    OutcomeStatus,
    PlaybackState,
    Post,
    ProgressEvent,
    SpeechOutcome,
    SpeechParams,
    Thread,
)
from threadreader.services.backend_selector import BackendSelector
from threadreader.services.content_source import ContentSource
from threadreader.services.speech_backends import classify_failure
from threadreader.services.text_normalizer import TextNormalizer
from threadreader.services.voice_assigner import VoiceAssigner

logger = logging.getLogger(__name__)

ACTIVE_STATES = frozenset({PlaybackState.PLAYING, PlaybackState.TRANSITIONING})


class Cue(Protocol):
    async def play(self) -> None: ...


class PlaybackController:
    """Owns the narration cursor and drives the speech backends post by post."""

    def __init__(
        self,
        content: ContentSource,
        normalizer: TextNormalizer,
        voices: VoiceAssigner,
        selector: BackendSelector,
        cue: Cue,
        post_delay_s: float = 2.0,
        auto_advance_boards: bool = False,
        board_denylist: Sequence[str] = (),
        speech_params: SpeechParams | None = None,
        cancel_timeout_s: float = 2.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.content = content
        self.normalizer = normalizer
        self.voices = voices
        self.selector = selector
        self.cue = cue
        self.post_delay_s = post_delay_s
        self.auto_advance_boards = auto_advance_boards
        self.board_denylist = set(board_denylist)
        self.speech_params = speech_params or SpeechParams()
        self.cancel_timeout_s = cancel_timeout_s
        self.rng = rng or random.Random()
        self._sleep = sleep

        self.state = PlaybackState.IDLE
        self.boards: list[Board] = []
        self.threads: list[Thread] = []
        self.thread: Thread | None = None
        self._cursor = NarrationCursor()

        self._utterance_seq = 0
        self._utterance_task: asyncio.Task | None = None
        self._draining: set[asyncio.Task] = set()
        self._transition_task: asyncio.Task | None = None
        self._pending_advance = False
        self._settled = asyncio.Event()
        self._settled.set()

        self._progress_listeners: list[Callable[[ProgressEvent], None]] = []
        self._notice_listeners: list[Callable[[Notice], None]] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def cursor(self) -> NarrationCursor:
        return self._cursor.model_copy()

    @property
    def posts(self) -> list[Post]:
        return self.thread.posts if self.thread is not None else []

    @property
    def board_id(self) -> str | None:
        if self._cursor.board_index < len(self.boards):
            return self.boards[self._cursor.board_index].id
        return None

    @property
    def utterance_seq(self) -> int:
        return self._utterance_seq

    def on_progress(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._progress_listeners.append(callback)

    def on_notice(self, callback: Callable[[Notice], None]) -> None:
        self._notice_listeners.append(callback)

    async def wait_until_settled(self) -> None:
        """Wait until playback is no longer PLAYING or TRANSITIONING."""
        await self._settled.wait()

    # ------------------------------------------------------------------
    # Content loading
    # ------------------------------------------------------------------

    async def load_board(self, board_id: str) -> list[Thread]:
        """Load the thread list of *board_id*. Raises `ContentUnavailable`."""
        await self._halt_for_load()
        threads = await self.content.get_threads(board_id)
        board_index = self._ensure_board(board_id)
        self.boards[board_index].threads = threads
        self.threads = threads
        self.thread = None
        self._set_cursor(board_index=board_index, thread_index=0, post_index=0)
        logger.info(f"Loaded {len(threads)} threads for /{board_id}/")
        return threads

    async def load_thread(self, thread_id: str) -> Thread:
        """Load the posts of *thread_id* and point the cursor at its first post."""
        await self._halt_for_load()
        posts = await self.content.get_posts(thread_id)

        thread_index = next((i for i, t in enumerate(self.threads) if t.id == thread_id), None)
        if thread_index is None:
            self.threads.append(Thread(id=thread_id, board_id=self.board_id))
            thread_index = len(self.threads) - 1
        thread = self.threads[thread_index]
        _merge_posts(thread, posts)

        self.thread = thread
        self._set_cursor(thread_index=thread_index, post_index=0)
        logger.info(f"Loaded thread {thread_id} with {len(thread.posts)} posts")
        return thread

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        await self._wait_for_drain()
        if self.state in ACTIVE_STATES:
            return False
        if not self.posts:
            logger.info("Start requested with nothing loaded")
            self._notify(
                Notice(
                    kind=NoticeKind.NOTHING_TO_READ,
                    message="No posts loaded. Please select a thread first.",
                )
            )
            return False

        if self.state == PlaybackState.PAUSED and self._pending_advance:
            self._pending_advance = False
            self._set_state(PlaybackState.TRANSITIONING)
            self._transition_task = asyncio.create_task(self._transition(play_cue=False))
            return True

        if self._cursor.post_index >= len(self.posts):
            self._set_cursor(post_index=0)
        self._set_state(PlaybackState.PLAYING)
        self._start_utterance()
        return True

    async def pause(self) -> bool:
        if self.state not in ACTIVE_STATES:
            return False
        self._pending_advance = self.state == PlaybackState.TRANSITIONING
        self._set_state(PlaybackState.PAUSED)
        await self._halt()
        return True

    async def stop(self) -> bool:
        if self.state in (PlaybackState.IDLE, PlaybackState.STOPPED):
            return False
        self._set_state(PlaybackState.STOPPED)
        await self._halt()
        self._pending_advance = False
        self._set_cursor(post_index=0)
        return True

    async def skip(self) -> bool:
        """Cancel the current post and move on. Ignored unless PLAYING."""
        if self.state != PlaybackState.PLAYING:
            logger.debug(f"Skip ignored in state {self.state.value}")
            return False
        self._set_state(PlaybackState.TRANSITIONING)
        await self._cancel_utterance()
        if self.state != PlaybackState.TRANSITIONING:
            # Paused or stopped while the utterance drained.
            return False

        task = asyncio.create_task(self._transition(play_cue=False))
        self._transition_task = task
        await asyncio.wait({task})
        return True

    def set_auto_advance(self, enabled: bool) -> None:
        self.auto_advance_boards = enabled
        logger.info(f"Board auto-advance {'enabled' if enabled else 'disabled'}")

    # ------------------------------------------------------------------
    # Utterances
    # ------------------------------------------------------------------

    def _start_utterance(self) -> None:
        self._utterance_seq += 1
        post = self.posts[self._cursor.post_index]
        self._utterance_task = asyncio.create_task(self._speak(self._utterance_seq, post))

    async def _speak(self, seq: int, post: Post) -> None:
        if seq != self._utterance_seq:
            # Cancelled before it got to run.
            return
        try:
            text = self.normalizer.normalize(post, self.posts)
            voice = self.voices.voice_for(post, self.thread)
            logger.debug(
                f"Utterance #{seq}: post {self._cursor.post_index + 1}/{len(self.posts)} "
                f"voice={voice} chars={len(text)}"
            )
            outcome = await self.selector.speak(text, voice, self.speech_params)
        except Exception as e:
            logger.exception(f"Utterance #{seq} failed before reaching a backend")
            outcome = SpeechOutcome.failed(classify_failure(e), str(e))
        self._on_utterance_finished(seq, outcome)

    def _on_utterance_finished(self, seq: int, outcome: SpeechOutcome) -> None:
        if seq != self._utterance_seq or self.state != PlaybackState.PLAYING:
            logger.debug(f"Ignoring stale completion of utterance #{seq}")
            return

        if outcome.status == OutcomeStatus.FAILED:
            logger.warning(f"Could not speak post {self._cursor.post_index + 1}: {outcome.reason}")
            self._notify(
                Notice(
                    kind=NoticeKind.BACKEND_FAILURE,
                    message=f"Could not speak post {self._cursor.post_index + 1}, moving on.",
                    failure_kind=outcome.failure_kind,
                )
            )
        self._begin_transition(play_cue=True)

    async def _cancel_utterance(self) -> None:
        """Cancel the in-flight utterance and wait for it to drain."""
        self._utterance_seq += 1
        task = self._utterance_task
        self._utterance_task = None
        if task is None or task.done():
            return

        self.selector.cancel()
        self._draining.add(task)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.cancel_timeout_s)
            if not done:
                logger.warning("Speech backend ignored cancel, cancelling the utterance task")
                task.cancel()
                await asyncio.wait({task})
        finally:
            self._draining.discard(task)

    async def _wait_for_drain(self) -> None:
        """Wait until no cancelled utterance is still winding down."""
        while self._draining:
            await asyncio.wait(set(self._draining))

    async def _halt(self) -> None:
        task = self._transition_task
        self._transition_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})
        await self._cancel_utterance()

    async def _halt_for_load(self) -> None:
        if self.state in ACTIVE_STATES or self.state == PlaybackState.PAUSED:
            await self.stop()

    # ------------------------------------------------------------------
    # Transitions and auto-advance
    # ------------------------------------------------------------------

    def _begin_transition(self, play_cue: bool) -> bool:
        if self.state == PlaybackState.TRANSITIONING:
            return False
        self._set_state(PlaybackState.TRANSITIONING)
        self._transition_task = asyncio.create_task(self._transition(play_cue))
        return True

    async def _transition(self, play_cue: bool) -> None:
        try:
            if play_cue:
                await self.cue.play()
                await self._sleep(self.post_delay_s)
            await self._advance()
        except Exception as e:
            logger.exception("Transition to the next post failed")
            self._finish(
                Notice(
                    kind=NoticeKind.CONTENT_UNAVAILABLE,
                    message=f"Could not move on to the next post: {e}.",
                )
            )

    async def _advance(self) -> None:
        next_index = self._cursor.post_index + 1
        if next_index < len(self.posts):
            self._set_cursor(post_index=next_index)
            self._play_current()
            return

        try:
            if await self._advance_thread() or await self._advance_board():
                self._play_current()
                return
        except ContentUnavailable as e:
            logger.error(f"Auto-advance could not load content: {e}")
            self._finish(
                Notice(
                    kind=NoticeKind.CONTENT_UNAVAILABLE,
                    message=f"Could not load the next content: {e}. Press play to retry."
                    if e.retryable
                    else f"Could not load the next content: {e}.",
                )
            )
            return

        self._finish(
            Notice(
                kind=NoticeKind.END_OF_CONTENT,
                message="Reached end of thread. No more threads available.",
            )
        )

    async def _advance_thread(self) -> bool:
        """Move to the next thread of the current board that has posts."""
        for thread_index in range(self._cursor.thread_index + 1, len(self.threads)):
            thread = self.threads[thread_index]
            posts = await self.content.get_posts(thread.id)
            if not posts:
                logger.info(f"Thread {thread.id} has no posts, skipping")
                continue
            _merge_posts(thread, posts)
            self.thread = thread
            logger.info(f"Auto-advancing to thread {thread.id}")
            self._set_cursor(thread_index=thread_index, post_index=0)
            return True
        return False

    async def _advance_board(self) -> bool:
        """Jump to a random board outside the denylist and read its first thread."""
        if not self.auto_advance_boards:
            return False

        catalog = await self.content.get_boards()
        current = self.board_id
        eligible = [
            b for b in catalog if b.id not in self.board_denylist and b.id != current
        ]
        if not eligible:
            logger.info("No eligible boards left for auto-advance")
            return False

        board = self.rng.choice(eligible)
        logger.info(f"Auto-advancing to board /{board.id}/")
        threads = await self.content.get_threads(board.id)
        board_index = self._ensure_board(board.id)
        self.boards[board_index].threads = threads

        for thread_index, thread in enumerate(threads):
            posts = await self.content.get_posts(thread.id)
            if posts:
                _merge_posts(thread, posts)
                self.threads = threads
                self.thread = thread
                self._set_cursor(board_index=board_index, thread_index=thread_index, post_index=0)
                return True
        logger.info(f"Board /{board.id}/ has nothing to read")
        return False

    def _play_current(self) -> None:
        self._set_state(PlaybackState.PLAYING)
        self._start_utterance()

    def _finish(self, notice: Notice) -> None:
        self._set_state(PlaybackState.STOPPED)
        self._transition_task = None
        self._set_cursor(post_index=0)
        self._notify(notice)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _ensure_board(self, board_id: str) -> int:
        for index, board in enumerate(self.boards):
            if board.id == board_id:
                return index
        self.boards.append(Board(id=board_id))
        return len(self.boards) - 1

    def _set_state(self, state: PlaybackState) -> None:
        if state == self.state:
            return
        logger.info(f"Playback {self.state.value} -> {state.value}")
        self.state = state
        if state in ACTIVE_STATES:
            self._settled.clear()
        else:
            self._settled.set()

    def _set_cursor(
        self,
        *,
        board_index: int | None = None,
        thread_index: int | None = None,
        post_index: int | None = None,
    ) -> None:
        if board_index is not None:
            self._cursor.board_index = board_index
        if thread_index is not None:
            self._cursor.thread_index = thread_index
        if post_index is not None:
            self._cursor.post_index = post_index

        event = ProgressEvent(
            post_index=self._cursor.post_index,
            total_posts=len(self.posts),
            board_id=self.board_id,
            thread_id=self.thread.id if self.thread is not None else None,
        )
        for callback in self._progress_listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("Progress listener failed")

    def _notify(self, notice: Notice) -> None:
        logger.info(f"Notice [{notice.kind.value}]: {notice.message}")
        for callback in self._notice_listeners:
            try:
                callback(notice)
            except Exception:
                logger.exception("Notice listener failed")


def _merge_posts(thread: Thread, posts: list[Post]) -> None:
    """Append newly fetched posts; known posts keep their position."""
    known = {post.id for post in thread.posts}
    thread.posts.extend(post for post in posts if post.id not in known)
