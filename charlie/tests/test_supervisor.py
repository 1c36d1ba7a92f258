"""Tests for startup sequencing, periodic restart, corpus refresh and cleanup."""
import asyncio
import json
from types import SimpleNamespace

import pytest

from answers.corpus import AnswerEntry, AnswerGroup, Corpus, CorpusStore
from audio.recognition import RecognitionSession
from core.config import AppConfig, HotwordConfig, TimingConfig
from core.controller import ConversationController, Hotwords
from core.main import DING_PATH, stop_after_interrupt
from core.speech import SpeechOutput
from core.state import SessionState
from core.supervisor import SessionSupervisor
from net.latency import LatencyProbeError


def response(transcript):
    alternative = SimpleNamespace(transcript=transcript)
    return SimpleNamespace(results=[SimpleNamespace(alternatives=[alternative], is_final=True)])


class FakeCapture:
    def __init__(self):
        self.opens = 0
        self.stops = 0

    async def stream(self):
        self.opens += 1
        while True:
            yield b"\x00\x00"
            await asyncio.sleep(0)

    async def stop(self):
        self.stops += 1


class FakeRecognizer:
    def __init__(self, transcripts=()):
        self.transcripts = list(transcripts)

    async def stream(self, chunks):
        for t in self.transcripts:
            yield response(t)
        await asyncio.Event().wait()


class FakeTTS:
    async def synthesize(self, text):
        return b"ID3"


class FakePlayer:
    def __init__(self):
        self.plays = []

    async def play_file(self, path):
        self.plays.append(path.name)
        return True

    async def stop(self):
        pass


class FakeRemote:
    def __init__(self, corpus=None, error=None, failures=0):
        self.corpus = corpus
        self.error = error
        self.failures = failures
        self.fetches = 0

    async def fetch(self):
        self.fetches += 1
        if self.error:
            raise self.error
        if self.fetches <= self.failures:
            raise RuntimeError("503")
        return self.corpus


def remote_corpus(name="Emma"):
    return Corpus(name=name, books=[
        AnswerGroup(is_activated=True, questions=[AnswerEntry(pattern="weather", answer="It is sunny")]),
    ])


def make_supervisor(tmp_path, transcripts=(), latency=50.0, probe_error=None,
                    remote=None, corpus_path=None, config=None):
    state = SessionState()
    utterances: asyncio.Queue = asyncio.Queue()
    capture = FakeCapture()
    session = RecognitionSession(capture, FakeRecognizer(transcripts), utterances)
    player = FakePlayer()
    speech = SpeechOutput(
        tts=FakeTTS(), player=player, state=state,
        output_path=tmp_path / "output.mp3", ding_path=tmp_path / "ding.mp3",
    )
    store = CorpusStore()
    controller = ConversationController(
        state=state, corpus_store=store, speech=speech, hotwords=Hotwords(HotwordConfig()),
    )
    probes = []

    async def probe(host, min_replies=4):
        probes.append((host, min_replies))
        if probe_error:
            raise probe_error
        return latency

    supervisor = SessionSupervisor(
        config=config or AppConfig(),
        state=state,
        session=session,
        controller=controller,
        speech=speech,
        corpus_store=store,
        utterances=utterances,
        probe=probe,
        corpus_path=corpus_path,
        remote=remote,
    )
    return SimpleNamespace(
        supervisor=supervisor, state=state, capture=capture, player=player,
        speech=speech, store=store, probes=probes, utterances=utterances,
    )


class TestStartup:
    @pytest.mark.asyncio
    async def test_probe_failure_exits_with_1(self, tmp_path):
        env = make_supervisor(tmp_path, probe_error=LatencyProbeError("unreachable"))
        code = await asyncio.wait_for(env.supervisor.run(), timeout=2.0)
        assert code == 1
        assert env.state.exit_code == 1
        assert not env.state.recording
        assert env.player.plays == []

    @pytest.mark.asyncio
    async def test_exit_hotword_ends_run_with_0(self, tmp_path):
        env = make_supervisor(tmp_path, transcripts=["Exit"], latency=200.0)
        code = await asyncio.wait_for(env.supervisor.run(), timeout=2.0)

        assert code == 0
        assert env.probes == [("35.186.221.153", 4)]
        assert env.speech.delay.delay_ms == 3000
        assert env.player.plays[0] == "ding.mp3"
        assert not env.state.recording
        assert env.state.stream is None
        assert env.capture.stops == 1

    @pytest.mark.asyncio
    async def test_fast_link_keeps_default_delay(self, tmp_path):
        env = make_supervisor(tmp_path, transcripts=["restart"], latency=20.0)
        await asyncio.wait_for(env.supervisor.run(), timeout=2.0)
        assert env.speech.delay.delay_ms == 2000

    @pytest.mark.asyncio
    async def test_loads_local_corpus(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text(json.dumps({
            "name": "Local",
            "books": [{"isActivated": True, "questions": [{"q": "moo", "a": "A cow"}]}],
        }))
        env = make_supervisor(tmp_path, transcripts=["exit"], corpus_path=path)
        await asyncio.wait_for(env.supervisor.run(), timeout=2.0)
        assert env.store.current.name == "Local"

    @pytest.mark.asyncio
    async def test_remote_corpus_overrides_local(self, tmp_path):
        remote = FakeRemote(corpus=remote_corpus("Remote"))
        env = make_supervisor(tmp_path, transcripts=["exit"], remote=remote)
        await asyncio.wait_for(env.supervisor.run(), timeout=2.0)
        assert remote.fetches == 1
        assert env.store.current.name == "Remote"

    @pytest.mark.asyncio
    async def test_greeting_in_flight_at_exit(self, tmp_path):
        env = make_supervisor(tmp_path, transcripts=["hey charlie", "exit"])
        code = await asyncio.wait_for(env.supervisor.run(), timeout=2.0)
        assert code == 0
        assert not env.speech.is_speaking


class TestRestart:
    @pytest.mark.asyncio
    async def test_restart_replaces_stream(self, tmp_path):
        env = make_supervisor(tmp_path)
        await env.supervisor.restart_recognition()
        first = env.state.stream
        assert env.state.recording
        assert first is not None

        await env.supervisor.restart_recognition()
        assert first.cancelled()
        assert env.state.stream is not first
        assert env.state.recording
        assert env.capture.stops == 1

        await env.supervisor.cleanup()

    @pytest.mark.asyncio
    async def test_restart_discards_pending_events(self, tmp_path):
        env = make_supervisor(tmp_path, transcripts=["what is the weather"])
        await env.supervisor.restart_recognition()
        await env.supervisor.cleanup()
        # Whatever was delivered before the restart stays; nothing arrives after
        delivered = env.utterances.qsize()
        await asyncio.sleep(0.01)
        assert env.utterances.qsize() == delivered


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_without_session_is_idempotent(self, tmp_path):
        env = make_supervisor(tmp_path)
        await env.supervisor.cleanup()
        await env.supervisor.cleanup()
        assert env.capture.stops == 0
        assert not env.state.recording
        assert env.state.is_running

    @pytest.mark.asyncio
    async def test_cleanup_twice_after_start(self, tmp_path):
        env = make_supervisor(tmp_path)
        await env.supervisor.restart_recognition()
        await env.supervisor.cleanup()
        await env.supervisor.cleanup()
        assert env.capture.stops == 1
        assert env.state.stream is None
        assert not env.state.recording

    @pytest.mark.asyncio
    async def test_cleanup_with_exit_code(self, tmp_path):
        env = make_supervisor(tmp_path)
        await env.supervisor.cleanup(exit_code=0)
        assert not env.state.is_running
        assert env.state.exit_code == 0


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_swaps_corpus(self, tmp_path):
        remote = FakeRemote(corpus=remote_corpus("Remote"))
        env = make_supervisor(tmp_path, remote=remote)
        assert await env.supervisor.refresh_corpus()
        assert env.store.current.name == "Remote"
        assert len(env.store.current.entries) == 1

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_corpus(self, tmp_path):
        remote = FakeRemote(error=RuntimeError("503"))
        env = make_supervisor(tmp_path, remote=remote)
        env.store.replace(remote_corpus("Current"))
        assert not await env.supervisor.refresh_corpus()
        assert env.store.current.name == "Current"


async def run_for(env, seconds):
    run_task = asyncio.create_task(env.supervisor.run())
    await asyncio.sleep(seconds)
    env.state.request_exit(0)
    return await asyncio.wait_for(run_task, timeout=2.0)


class TestPeriodicTimers:
    @pytest.mark.asyncio
    async def test_recognition_restarts_every_interval(self, tmp_path):
        config = AppConfig(timing=TimingConfig(restart_interval=0.01))
        env = make_supervisor(tmp_path, config=config)
        code = await run_for(env, 0.15)

        assert code == 0
        assert env.capture.opens >= 3
        assert env.capture.stops >= 2
        assert env.state.stream is None
        assert not env.state.recording

    @pytest.mark.asyncio
    async def test_refresh_repeats_past_failures(self, tmp_path):
        remote = FakeRemote(corpus=remote_corpus("Remote"), failures=2)
        config = AppConfig(timing=TimingConfig(refresh_interval=0.01))
        env = make_supervisor(tmp_path, remote=remote, config=config)
        await run_for(env, 0.15)

        assert remote.fetches >= 4
        assert env.store.current.name == "Remote"


class TestEntryPoint:
    def test_ding_cue_ships(self):
        header = DING_PATH.read_bytes()[:12]
        assert header[:4] == b"RIFF"
        assert header[8:] == b"WAVE"

    @pytest.mark.asyncio
    async def test_interrupted_run_is_settled(self, tmp_path):
        env = make_supervisor(tmp_path)
        run_task = asyncio.create_task(env.supervisor.run())
        await asyncio.sleep(0.02)

        await stop_after_interrupt(env.supervisor, run_task)
        assert run_task.done()
        assert not env.state.is_running
        assert not env.state.recording
        assert env.capture.stops == 1
