"""Narrate a thread from a JSON export.

Usage:
    python -m threadreader content.json --board g --thread 123 [--auto-advance]
"""

import argparse
import asyncio
import logging

from threadreader.exceptions import ContentUnavailable
from threadreader.models import Notice, ProgressEvent
from threadreader.services.content_source import InMemoryContentSource
from threadreader.services.narration_session import NarrationSession
from threadreader.settings import get_settings

logger = logging.getLogger("threadreader")


def _print_progress(event: ProgressEvent) -> None:
    if event.total_posts:
        print(f"Reading post {event.post_index + 1} of {event.total_posts}")


def _print_notice(notice: Notice) -> None:
    print(f"[{notice.kind.value}] {notice.message}")


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    content = InMemoryContentSource.from_json(args.content)
    session = NarrationSession.from_settings(content, settings)
    session.on_progress(_print_progress)
    session.on_notice(_print_notice)
    if args.auto_advance:
        session.set_auto_advance(True)

    board_id = args.board or content.boards[0].id
    threads = await session.load_board(board_id)
    if not threads:
        print(f"/{board_id}/ has no threads")
        return 1
    await session.load_thread(args.thread or threads[0].id)

    if not await session.start():
        return 1
    try:
        await session.wait_until_settled()
    finally:
        await session.stop()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Read board threads aloud")
    parser.add_argument("content", help="JSON file with boards, threads and posts")
    parser.add_argument("--board", help="Board id (default: first board in the file)")
    parser.add_argument("--thread", help="Thread id (default: first thread of the board)")
    parser.add_argument(
        "--auto-advance", action="store_true", help="Continue on a random board when done"
    )
    args = parser.parse_args()

    try:
        code = asyncio.run(run(args))
    except ContentUnavailable as e:
        logger.error(f"Content unavailable: {e}")
        code = 2
    except KeyboardInterrupt:
        code = 130
    raise SystemExit(code)


if __name__ == "__main__":
    main()
