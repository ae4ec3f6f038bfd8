import asyncio
import random

import pytest

from threadreader.infrastructure.tts import Voice
from threadreader.models import (
    AttachmentRef,
    Board,
    OutcomeStatus,
    Post,
    SpeechOutcome,
    SpeechParams,
    Thread,
)
from threadreader.services.backend_selector import BackendSelector
from threadreader.services.content_source import InMemoryContentSource
from threadreader.services.playback_controller import PlaybackController
from threadreader.services.speech_backends import SpeechBackend
from threadreader.services.text_normalizer import TextNormalizer
from threadreader.services.voice_assigner import VoiceAssigner


class MockSpeechBackend(SpeechBackend):
    """Records what it is asked to say.

    With ``block=True`` every utterance waits until `finish()` or `cancel()`.
    Scripted outcomes are consumed one per call; afterwards calls complete.
    """

    def __init__(
        self,
        name: str = "local",
        outcomes: list[SpeechOutcome] | None = None,
        block: bool = False,
        voices: list[Voice] | None = None,
    ):
        self.name = name
        self.outcomes = list(outcomes or [])
        self.block = block
        self.voices = list(voices or [])
        self.spoken: list[tuple[str, str]] = []
        self.cancel_calls = 0
        self._gate: asyncio.Event | None = None
        self._cancelled = False

    async def speak(self, text: str, voice: str, params: SpeechParams) -> SpeechOutcome:
        self.spoken.append((text, voice))
        outcome = self.outcomes.pop(0) if self.outcomes else SpeechOutcome.completed(self.name)
        if self.block:
            self._cancelled = False
            self._gate = asyncio.Event()
            await self._gate.wait()
            if self._cancelled:
                return SpeechOutcome.cancelled(self.name)
        return outcome

    def cancel(self) -> None:
        self.cancel_calls += 1
        self._cancelled = True
        if self._gate is not None:
            self._gate.set()

    def finish(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def list_voices(self) -> list[Voice]:
        return list(self.voices)

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.spoken]


class RecordingCue:
    def __init__(self):
        self.plays = 0

    async def play(self) -> None:
        self.plays += 1


async def no_sleep(_seconds: float) -> None:
    return None


def failed(kind) -> SpeechOutcome:
    return SpeechOutcome(status=OutcomeStatus.FAILED, failure_kind=kind, reason="boom")


async def settle(controller: PlaybackController) -> None:
    """Let scheduled tasks run, then wait for playback to come to rest."""
    await asyncio.sleep(0)
    await asyncio.wait_for(controller.wait_until_settled(), timeout=5)


@pytest.fixture
def sample_voices():
    """Sample voices for testing."""
    return [
        Voice(id="voice_a", name="Ava", gender="female", language="en-US"),
        Voice(id="voice_b", name="Brian", gender="male", language="en-US"),
        Voice(id="voice_c", name="Clara", gender="female", language="en-CA"),
    ]


@pytest.fixture
def long_body():
    """A body well over the summary threshold, with eight sentences."""
    sentences = [
        f"Sentence number {i} talks about the weather and the state of the garden in spring"
        for i in range(1, 9)
    ]
    body = ". ".join(sentences) + "."
    assert len(body) > 600
    return body


@pytest.fixture
def scenario_thread(long_body):
    """[P0 attachment only, P1 replying to P0, P2 long post]."""
    return Thread(
        id="1000",
        board_id="g",
        posts=[
            Post(
                id="100",
                author_key="op",
                raw_body="",
                attachment=AttachmentRef(board="g", timestamp="1700000000", extension=".jpg"),
            ),
            Post(id="101", author_key="anon1", raw_body="&gt;&gt;100<br>Hello"),
            Post(id="102", author_key="anon2", raw_body=long_body),
        ],
    )


@pytest.fixture
def content(scenario_thread):
    second = Thread(
        id="2000",
        board_id="g",
        posts=[Post(id="200", raw_body="Second thread opener.")],
    )
    other_board = Board(
        id="ck",
        threads=[Thread(id="3000", posts=[Post(id="300", raw_body="Recipe time.")])],
    )
    denied_board = Board(
        id="b",
        threads=[Thread(id="4000", posts=[Post(id="400", raw_body="Never read.")])],
    )
    return InMemoryContentSource(
        [Board(id="g", threads=[scenario_thread, second]), other_board, denied_board]
    )


@pytest.fixture
def local_backend(sample_voices):
    return MockSpeechBackend(name="local", voices=sample_voices)


@pytest.fixture
def make_controller(content, local_backend):
    """Build a controller around mock collaborators; overrides via kwargs."""

    def _make(**overrides) -> PlaybackController:
        local = overrides.pop("local", local_backend)
        remote = overrides.pop("remote", None)
        selector = BackendSelector(local=local, remote=remote, remote_available=remote is not None)
        params = dict(
            content=overrides.pop("content", content),
            normalizer=TextNormalizer(),
            voices=VoiceAssigner(local.list_voices),
            selector=selector,
            cue=RecordingCue(),
            post_delay_s=0,
            cancel_timeout_s=0.5,
            rng=random.Random(7),
            sleep=no_sleep,
        )
        params.update(overrides)
        return PlaybackController(**params)

    return _make
