from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from threadreader.exceptions import ContentUnavailable
from threadreader.models import Board, Post, Thread

logger = logging.getLogger(__name__)


class ContentSource(ABC):
    """Asynchronous supplier of boards, threads and posts.

    Implementations raise `ContentUnavailable(retryable=True)` on transient
    fetch failures; retrying is up to the caller.
    """

    @abstractmethod
    async def get_boards(self) -> list[Board]:
        """Return the boards available for auto-advance."""

    @abstractmethod
    async def get_threads(self, board_id: str) -> list[Thread]:
        """Return the threads of *board_id* in catalog order."""

    @abstractmethod
    async def get_posts(self, thread_id: str) -> list[Post]:
        """Return the posts of *thread_id* in arrival order."""


class InMemoryContentSource(ContentSource):
    """Content held in memory, e.g. loaded from a JSON export."""

    def __init__(self, boards: list[Board]) -> None:
        self.boards = boards

    @classmethod
    def from_json(cls, path: str | Path) -> InMemoryContentSource:
        """Load boards from a JSON file shaped like `{"boards": [Board, ...]}`.

        A file holding a single board (`{"id": ..., "threads": [...]}`) is
        accepted too.
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ContentUnavailable(f"Could not read content file {path}: {e}") from e

        raw_boards = data.get("boards", [data]) if isinstance(data, dict) else data
        try:
            boards = [Board.model_validate(raw) for raw in raw_boards]
        except ValidationError as e:
            raise ContentUnavailable(f"Malformed content file {path}: {e}") from e

        for board in boards:
            for thread in board.threads:
                thread.board_id = thread.board_id or board.id
        logger.info(f"Loaded {len(boards)} board(s) from {path}")
        return cls(boards)

    async def get_boards(self) -> list[Board]:
        return [Board(id=b.id, title=b.title) for b in self.boards]

    async def get_threads(self, board_id: str) -> list[Thread]:
        for board in self.boards:
            if board.id == board_id:
                return [
                    Thread(id=t.id, board_id=board.id, subject=t.subject) for t in board.threads
                ]
        raise ContentUnavailable(f"Board /{board_id}/ not found")

    async def get_posts(self, thread_id: str) -> list[Post]:
        for board in self.boards:
            for thread in board.threads:
                if thread.id == thread_id:
                    return list(thread.posts)
        raise ContentUnavailable(f"Thread {thread_id} not found")
