import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional

from loguru import logger

from answers.corpus import CorpusStore
from answers.remote import RemoteCorpusSource
from core.config import AppConfig
from core.controller import ConversationController
from core.speech import SpeechOutput
from core.state import DelayProfile, SessionState


class SessionSupervisor:
    """Owns the process lifecycle around the conversation controller.

    Startup: latency probe -> delay profile -> corpus -> recognition.
    While running: restarts the recognition stream every restart_interval
    and refreshes a remote corpus every refresh_interval.
    Exit: ordered cleanup, then run() returns the exit code.
    """

    def __init__(
        self,
        config: AppConfig,
        state: SessionState,
        session,
        controller: ConversationController,
        speech: SpeechOutput,
        corpus_store: CorpusStore,
        utterances: asyncio.Queue,
        probe: Callable[..., Awaitable[float]],
        corpus_path: Optional[Path] = None,
        remote: Optional[RemoteCorpusSource] = None,
    ):
        self.config = config
        self.state = state
        self.session = session
        self.controller = controller
        self.speech = speech
        self.corpus_store = corpus_store
        self.utterances = utterances
        self._probe = probe
        self.corpus_path = corpus_path
        self.remote = remote
        self._tasks: list[asyncio.Task] = []

    async def run(self) -> int:
        """Start everything and block until an exit is requested."""
        logger.info("=== Charlie starting ===")
        timing = self.config.timing

        try:
            latency = await self._probe(timing.latency_host, min_replies=timing.latency_min_replies)
        except Exception as e:
            logger.error("[APP] Latency probe failed: {}", e)
            await self.cleanup(exit_code=1)
            return self.state.exit_code

        self.speech.delay = DelayProfile.from_latency(
            latency,
            base_ms=timing.base_delay_ms,
            slow_threshold_ms=timing.slow_latency_ms,
            scale=timing.delay_scale,
            max_ms=timing.max_delay_ms,
        )
        logger.info("[APP] Started")
        logger.info("[APP] Ping: {}ms, delay set to {}ms", latency, self.speech.delay.delay_ms)
        await self.speech.ding()

        if self.corpus_path is not None:
            self.corpus_store.load_file(self.corpus_path)
        if self.remote is not None:
            await self.refresh_corpus()
            self._spawn(self._refresh_loop(), "corpus-refresh")

        self._spawn(self.controller.run(self.utterances), "controller")
        self._spawn(self._restart_loop(), "recognition-restart")

        await self.state.stop_event.wait()
        await self.shutdown()
        return self.state.exit_code if self.state.exit_code is not None else 0

    def _spawn(self, coro, name: str) -> None:
        self._tasks.append(asyncio.create_task(coro, name=name))

    async def restart_recognition(self) -> None:
        """Tear down any live recognition stream and open a fresh one."""
        if self.state.recording:
            await self.cleanup()
        handle = self.session.start()
        self.state.attach_stream(handle)

    async def _restart_loop(self) -> None:
        while self.state.is_running:
            try:
                await self.restart_recognition()
            except Exception as e:
                logger.error("[MIC] Could not restart recognition: {}", e)
            await asyncio.sleep(self.config.timing.restart_interval)

    async def refresh_corpus(self) -> bool:
        """Fetch the remote corpus and swap it in. Keeps the old one on error."""
        try:
            corpus = await self.remote.fetch()
        except Exception as e:
            logger.error("[CORPUS] Refresh failed: {}", e)
            return False
        self.corpus_store.replace(corpus)
        return True

    async def _refresh_loop(self) -> None:
        while self.state.is_running:
            await asyncio.sleep(self.config.timing.refresh_interval)
            await self.refresh_corpus()

    async def cleanup(self, exit_code: Optional[int] = None) -> None:
        """Stop recording and reset flags. Safe to call any number of times.

        Args:
            exit_code: when given, also request process exit with this code.
        """
        if self.state.recording:
            logger.info("[APP] Found active recording session, killing")
        self.state.detach_stream()
        await self.session.stop()

        if exit_code is not None:
            logger.info("[APP] Cleanup complete, exiting")
            self.state.request_exit(exit_code)
        else:
            logger.debug("[APP] Cleanup complete")

    async def shutdown(self) -> None:
        """Cancel background work, silence speech and clean up."""
        if self.state.is_running:
            self.state.request_exit(0)
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(t for t in self._tasks if t is not current), return_exceptions=True)
        self._tasks.clear()
        await self.speech.cancel()
        await self.cleanup()
        logger.info("Shutdown complete.")
