import asyncio
from typing import Optional

from loguru import logger


def extract_utterance(response) -> Optional[str]:
    """Pull the normalized best transcript out of one recognition response.

    Only the first result's top alternative counts; interim results and
    lower-ranked alternatives are ignored.
    """
    results = getattr(response, "results", None)
    if not results:
        return None
    result = results[0]
    if not result.alternatives or not result.is_final:
        return None
    text = result.alternatives[0].transcript.strip().lower()
    return text or None


class RecognitionSession:
    """One microphone capture bound to one recognition stream.

    Utterances are pushed onto a queue that a single consumer (the
    conversation controller) drains.
    """

    def __init__(self, capture, recognizer, utterances: asyncio.Queue):
        self._capture = capture
        self._recognizer = recognizer
        self._utterances = utterances
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self._task is not None

    def start(self) -> asyncio.Task:
        """Open capture + recognition and return the stream handle.

        Raises:
            RuntimeError: if the session is already active.
        """
        if self._task is not None:
            raise RuntimeError("Recognition session already active; stop() it first")
        self._task = asyncio.create_task(self._consume(), name="recognition-stream")
        logger.info("[MIC] Recognition session started")
        return self._task

    async def _consume(self) -> None:
        try:
            async for response in self._recognizer.stream(self._capture.stream()):
                utterance = extract_utterance(response)
                if utterance:
                    logger.debug("[MIC] Recognized '{}'", utterance)
                    self._utterances.put_nowait(utterance)
        except Exception as e:
            # Terminal for this stream; the periodic restart opens a new one
            logger.error("[MIC] Recognition stream error: {}", e)

    async def stop(self) -> None:
        """Drop the stream (pending events are discarded) and stop capture."""
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._capture.stop()
        logger.info("[MIC] Recognition session stopped")
