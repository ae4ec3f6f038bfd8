import random

from threadreader.infrastructure.tts import Voice
from threadreader.models import Post, Thread
from threadreader.services.voice_assigner import DEFAULT_VOICE, VoiceAssigner


def test_voice_is_stable_after_other_keys_are_assigned(sample_voices):
    assigner = VoiceAssigner(lambda: sample_voices)

    first = assigner.assign("alice")
    for key in ("bob", "carol", "dave", "erin"):
        assigner.assign(key)

    assert assigner.assign("alice") == first


def test_rotation_walks_the_pool(sample_voices):
    assigner = VoiceAssigner(lambda: sample_voices, selection="rotate")

    ids = [assigner.assign(key) for key in ("a", "b", "c", "d")]

    assert ids == ["voice_a", "voice_b", "voice_c", "voice_a"]


def test_random_selection_uses_injected_rng(sample_voices):
    first = VoiceAssigner(lambda: sample_voices, selection="random", rng=random.Random(42))
    second = VoiceAssigner(lambda: sample_voices, selection="random", rng=random.Random(42))

    keys = [f"author-{i}" for i in range(10)]

    assert [first.assign(k) for k in keys] == [second.assign(k) for k in keys]
    assert {first.assign(k) for k in keys} <= {v.id for v in sample_voices}


def test_author_and_thread_tables_are_separate(sample_voices):
    assigner = VoiceAssigner(lambda: sample_voices)

    assigner.assign("1000", "thread")
    author_voice = assigner.assign("1000", "author")

    assert "1000" in assigner.thread_voices
    assert "1000" in assigner.author_voices
    assert author_voice == "voice_b"


def test_empty_pool_returns_default_without_memoizing(sample_voices):
    pool: list[Voice] = []
    assigner = VoiceAssigner(lambda: pool)

    assert assigner.assign("alice") == DEFAULT_VOICE
    assert assigner.author_voices == {}

    pool.extend(sample_voices)
    assert assigner.assign("alice") == "voice_a"


def test_pool_is_read_lazily_and_existing_keys_keep_their_voice(sample_voices):
    pool = list(sample_voices[:1])
    calls = []

    def list_voices():
        calls.append(1)
        return pool

    assigner = VoiceAssigner(list_voices)
    assert calls == []

    assert assigner.assign("alice") == "voice_a"
    pool[:] = sample_voices[1:]

    assert assigner.assign("alice") == "voice_a"
    assert assigner.assign("bob") == "voice_c"
    assert len(calls) == 2


def test_voice_for_uses_author_key_by_default(sample_voices):
    assigner = VoiceAssigner(lambda: sample_voices)
    thread = Thread(id="1", posts=[])

    op = assigner.voice_for(Post(id="1", author_key="op"), thread)
    again = assigner.voice_for(Post(id="2", author_key="op"), thread)
    anon = assigner.voice_for(Post(id="3"), thread)

    assert op == again
    assert anon != op
    assert "anonymous" in assigner.author_voices


def test_thread_mode_gives_every_post_the_thread_voice(sample_voices):
    assigner = VoiceAssigner(lambda: sample_voices, mode="thread")
    thread = Thread(id="77", posts=[])

    voices = {assigner.voice_for(Post(id=str(i), author_key=f"a{i}"), thread) for i in range(5)}

    assert voices == {"voice_a"}
    assert assigner.author_voices == {}
