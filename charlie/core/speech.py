import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger

from core.state import DelayProfile, SessionState


class SpeechOutput:
    """Speaks one response at a time: synthesize -> write -> play -> resume.

    Each speak() is a single task. Issuing a new one while another is still
    running cancels the old task and kills its playback, so a stale task can
    never turn the mic back on after a newer response.
    """

    def __init__(
        self,
        tts,
        player,
        state: SessionState,
        output_path: Path,
        ding_path: Path,
        delay: Optional[DelayProfile] = None,
    ):
        self._tts = tts
        self._player = player
        self._state = state
        self.output_path = output_path
        self.ding_path = ding_path
        self.delay = delay or DelayProfile()
        self._task: Optional[asyncio.Task] = None

    @property
    def current(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_speaking(self) -> bool:
        return self._task is not None and not self._task.done()

    async def speak(self, text: str, resume_listening: bool = True) -> asyncio.Task:
        """Start speaking text. Returns the task, whose result is True on
        successful playback."""
        if self.is_speaking:
            logger.info("[TTS] Superseding previous response")
            await self.cancel()
        self._task = asyncio.create_task(
            self._speak(text, resume_listening), name="speech-output"
        )
        return self._task

    async def cancel(self) -> None:
        """Abort in-flight speech, if any."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await self._player.stop()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _speak(self, text: str, resume_listening: bool) -> bool:
        logger.info("[TTS] Speaking - {}", text)

        try:
            audio = await self._tts.synthesize(text)
        except Exception as e:
            logger.error("[TTS] Synthesis failed: {}", e)
            return False
        if not audio:
            logger.error("[TTS] No audio returned for '{}'", text)
            return False

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.output_path.write_bytes, audio)
        except OSError as e:
            logger.error("[TTS] Could not write {}: {}", self.output_path, e)
            return False

        if not await self._player.play_file(self.output_path):
            logger.error("[TTS] Playback failed for '{}'", text)
            return False

        logger.info("[TTS] Done")

        if resume_listening:
            await asyncio.sleep(self.delay.seconds)
            self._state.mic_on()
            await self.ding()
        return True

    async def ding(self) -> None:
        """Play the short "I'm listening" cue."""
        if not await self._player.play_file(self.ding_path):
            logger.warning("[TTS] Could not play ding cue")
