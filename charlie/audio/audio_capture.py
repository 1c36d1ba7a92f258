import asyncio
from concurrent import futures
from typing import AsyncIterator, Optional

import numpy as np
from loguru import logger

# Recognition backends expect 16kHz mono 16-bit PCM
SAMPLE_RATE = 16000
CHANNELS = 1
CHUNK_SIZE = 1600  # 100ms at 16kHz
FORMAT_DTYPE = np.int16


class AudioCapture:
    """Captures raw PCM from the microphone as a stream of byte chunks.

    Tries the target rate first, falls back to the card's native 44100/48000Hz
    with linear resampling.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, chunk_size: int = CHUNK_SIZE):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self._stream = None
        self._pa = None
        self._stopped = True
        # One reader thread, so at most one read is ever in flight
        self._executor = futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="mic")
        self._pending: Optional[futures.Future] = None
        self._capture_rate = sample_rate
        self._capture_chunk = chunk_size

    def _open_stream(self):
        import pyaudio
        self._pa = pyaudio.PyAudio()

        for rate in [self.sample_rate, 44100, 48000]:
            try:
                capture_chunk = (
                    self.chunk_size if rate == self.sample_rate
                    else int(self.chunk_size * rate / self.sample_rate)
                )
                self._stream = self._pa.open(
                    format=pyaudio.paInt16,
                    channels=CHANNELS,
                    rate=rate,
                    input=True,
                    frames_per_buffer=capture_chunk,
                )
                self._capture_rate = rate
                self._capture_chunk = capture_chunk
                logger.info(
                    "[MIC] Audio capture started: capture={}Hz, output={}Hz",
                    rate, self.sample_rate,
                )
                return
            except Exception as e:
                logger.debug("Sample rate {}Hz not supported: {}", rate, e)

        self._pa.terminate()
        self._pa = None
        raise RuntimeError("Could not open audio input stream at any supported rate")

    def _resample(self, chunk: np.ndarray) -> np.ndarray:
        """Resample from capture rate to target rate using linear interpolation."""
        if self._capture_rate == self.sample_rate:
            return chunk

        ratio = self.sample_rate / self._capture_rate
        n_out = int(len(chunk) * ratio)
        indices = np.arange(n_out) / ratio
        indices = np.clip(indices, 0, len(chunk) - 1)
        idx_floor = indices.astype(np.int32)
        idx_ceil = np.minimum(idx_floor + 1, len(chunk) - 1)
        frac = indices - idx_floor
        resampled = chunk[idx_floor] * (1 - frac) + chunk[idx_ceil] * frac
        return resampled.astype(FORMAT_DTYPE)

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield PCM chunks until stop() is called. Reads run in the executor."""
        if self._stream is None:
            self._open_stream()
        self._stopped = False

        while not self._stopped:
            self._pending = self._executor.submit(self._stream.read, self._capture_chunk, False)
            raw = await asyncio.wrap_future(self._pending)
            chunk = np.frombuffer(raw, dtype=FORMAT_DTYPE)
            yield self._resample(chunk).tobytes()

    async def stop(self):
        """Stop recording and release the device. Safe to call repeatedly.

        A read still blocked in the reader thread is allowed to finish
        before the stream is closed; PortAudio must not close a stream
        another thread is reading from.
        """
        if self._stopped and self._stream is None:
            return
        self._stopped = True
        pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, futures.wait, [pending])
        self._release()
        logger.info("[MIC] Audio capture stopped")

    def _release(self):
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except OSError as e:
                logger.debug("Error closing input stream: {}", e)
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None
