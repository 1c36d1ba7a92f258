import asyncio
import subprocess
from pathlib import Path
from typing import Optional

from loguru import logger

DEFAULT_COMMAND = ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"]


class AudioPlayer:
    """Plays audio files through an external player process.

    ffplay by default, since synthesized speech arrives as MP3. Playback runs
    in the executor so the event loop keeps serving recognition events.
    """

    def __init__(self, command: Optional[list[str]] = None, timeout: float = 30.0):
        self.command = list(command or DEFAULT_COMMAND)
        self.timeout = timeout
        self._current_process: subprocess.Popen | None = None

    async def play_file(self, path: Path) -> bool:
        """Play a file from disk.

        Returns:
            True if the player ran to completion, False otherwise.
        """
        if not path.exists():
            logger.warning("Sound file not found: {}", path)
            return False

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._play_file_sync, path)

    def _play_file_sync(self, path: Path) -> bool:
        try:
            proc = subprocess.Popen(
                [*self.command, str(path)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
            self._current_process = proc
            proc.wait(timeout=self.timeout)
            self._current_process = None
            if proc.returncode != 0:
                # -9: killed by stop()
                if proc.returncode != -9:
                    stderr = proc.stderr.read().decode().strip()
                    logger.error("[TTS] Player exited with {}: {}", proc.returncode, stderr)
                return False
            return True
        except subprocess.TimeoutExpired:
            if self._current_process:
                self._current_process.kill()
                self._current_process = None
            logger.error("[TTS] Audio playback timed out ({}s)", self.timeout)
        except FileNotFoundError:
            logger.error("[TTS] {} not found. Install it or change playback.command.", self.command[0])
        except Exception as e:
            logger.error("[TTS] Audio playback error: {}", e)
        return False

    async def stop(self) -> None:
        """Stop any currently playing audio immediately."""
        proc = self._current_process
        if proc is not None:
            try:
                proc.kill()
                logger.info("Audio playback stopped.")
            except Exception as e:
                logger.debug("Error killing player: {}", e)
            self._current_process = None
