import asyncio
import json
import random

import pytest
from conftest import MockSpeechBackend, RecordingCue, failed, settle

from threadreader import NarrationSession, NoticeKind, PlaybackState
from threadreader.exceptions import ContentUnavailable
from threadreader.models import FailureKind
from threadreader.services.content_source import InMemoryContentSource
from threadreader.settings import Settings


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        remote_tts_enabled=False,
        openai_api_key="sk-test",
        post_delay_ms=0,
        cue_enabled=False,
        cancel_timeout_s=0.5,
    )


@pytest.fixture
def make_session(content, local_backend, settings):
    def _make(remote=None, **overrides):
        if remote is not None:
            overrides.setdefault("remote_tts_enabled", True)
        return NarrationSession.from_settings(
            content,
            settings.model_copy(update=overrides) if overrides else settings,
            local=local_backend,
            remote=remote,
            cue=RecordingCue(),
            rng=random.Random(3),
        )

    return _make


@pytest.mark.asyncio
async def test_session_reads_thread_with_remote_voice(make_session, local_backend):
    remote = MockSpeechBackend(name="remote")
    session = make_session(remote=remote)
    progress = []
    session.on_progress(progress.append)

    await session.load_thread("1000", board_id="g")
    assert await session.start()
    await settle(session.controller)

    assert remote.texts[:2] == ["Original post with an image.", "replying to post 1. Hello"]
    assert local_backend.spoken == []
    assert {e.post_index for e in progress if e.thread_id == "1000"} == {0, 1, 2}
    assert session.state == PlaybackState.STOPPED


@pytest.mark.asyncio
async def test_session_forwards_backend_notices(make_session, local_backend):
    remote = MockSpeechBackend(name="remote", outcomes=[failed(FailureKind.AUTH)] * 3)
    session = make_session(remote=remote)
    notices = []
    session.on_notice(notices.append)

    await session.load_thread("1000", board_id="g")
    await session.start()
    await settle(session.controller)

    kinds = [n.kind for n in notices]
    assert kinds.count(NoticeKind.BACKEND_FAILURE) == 3
    assert NoticeKind.BACKEND_DISABLED in kinds
    assert session.health.disabled
    assert local_backend.texts[0] == "Original post with an image."

    session.reset_remote()

    assert not session.health.disabled
    assert notices[-1].kind == NoticeKind.BACKEND_ENABLED


@pytest.mark.asyncio
async def test_remote_stays_off_when_disabled_in_settings(make_session, local_backend):
    remote = MockSpeechBackend(name="remote")
    session = make_session(remote=remote, remote_tts_enabled=False)

    await session.load_thread("2000", board_id="g")
    await session.start()
    await settle(session.controller)

    assert remote.spoken == []
    assert local_backend.texts == ["Second thread opener."]


@pytest.mark.asyncio
async def test_load_thread_switches_board(make_session):
    session = make_session()
    await session.load_board("g")

    thread = await session.load_thread("3000", board_id="ck")

    assert thread.id == "3000"
    assert session.controller.board_id == "ck"
    assert session.cursor.thread_index == 0


@pytest.mark.asyncio
async def test_load_unknown_thread_raises(make_session):
    session = make_session()
    await session.load_board("g")

    with pytest.raises(ContentUnavailable):
        await session.load_thread("9999")


@pytest.mark.asyncio
async def test_controls_before_loading_do_nothing(make_session):
    session = make_session()
    notices = []
    session.on_notice(notices.append)

    assert not await session.start()
    assert not await session.pause()
    assert not await session.skip()
    assert session.state == PlaybackState.IDLE
    assert notices[0].kind == NoticeKind.NOTHING_TO_READ


@pytest.mark.asyncio
async def test_set_auto_advance_reaches_other_boards(make_session, local_backend):
    session = make_session(board_denylist=["b"])
    session.set_auto_advance(True)
    await session.load_thread("2000", board_id="g")

    await session.start()
    for _ in range(200):
        await asyncio.sleep(0)
        if "Recipe time." in local_backend.texts:
            break
    await session.stop()

    assert "Recipe time." in local_backend.texts
    assert "Never read." not in local_backend.texts




def test_content_from_json(tmp_path):
    path = tmp_path / "content.json"
    path.write_text(
        json.dumps(
            {
                "boards": [
                    {
                        "id": "g",
                        "title": "Technology",
                        "threads": [
                            {
                                "id": "1",
                                "posts": [
                                    {"id": "1", "raw_body": "first"},
                                    {
                                        "id": "2",
                                        "author_key": "abc",
                                        "attachment": {
                                            "board": "g",
                                            "timestamp": "170",
                                            "extension": ".png",
                                        },
                                    },
                                ],
                            }
                        ],
                    }
                ]
            }
        )
    )

    source = InMemoryContentSource.from_json(path)

    assert source.boards[0].threads[0].board_id == "g"
    assert source.boards[0].threads[0].posts[1].attachment.kind == "image"


def test_content_from_json_accepts_single_board(tmp_path):
    path = tmp_path / "board.json"
    path.write_text(json.dumps({"id": "ck", "threads": []}))

    source = InMemoryContentSource.from_json(path)

    assert [b.id for b in source.boards] == ["ck"]


@pytest.mark.parametrize("payload", ["not json", json.dumps({"boards": [{"title": "no id"}]})])
def test_content_from_bad_json_raises(tmp_path, payload):
    path = tmp_path / "bad.json"
    path.write_text(payload)

    with pytest.raises(ContentUnavailable):
        InMemoryContentSource.from_json(path)


def test_missing_content_file_raises(tmp_path):
    with pytest.raises(ContentUnavailable):
        InMemoryContentSource.from_json(tmp_path / "missing.json")


@pytest.mark.asyncio
async def test_session_without_injected_remote_speaks_locally(make_session, local_backend):
    session = make_session()

    assert session.controller.selector.remote is None
    assert not session.controller.selector.use_remote

    await session.load_thread("2000", board_id="g")
    await session.start()
    await settle(session.controller)

    assert local_backend.texts == ["Second thread opener."]
