from typing import AsyncIterator

from loguru import logger

from audio.audio_capture import SAMPLE_RATE


class StreamingSpeechToText:
    """Streaming recognition with Google Cloud Speech-to-Text.

    Audio chunks go up one request at a time; final transcripts come back as
    StreamingRecognizeResponse messages while the stream stays open.
    Credentials are picked up the usual SDK way (GOOGLE_APPLICATION_CREDENTIALS).
    """

    def __init__(
        self,
        encoding: str = "LINEAR16",
        sample_rate: int = SAMPLE_RATE,
        language_code: str = "en-US",
    ):
        self.encoding = encoding
        self.sample_rate = sample_rate
        self.language_code = language_code
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from google.cloud import speech
            self._client = speech.SpeechAsyncClient()

    def _streaming_config(self):
        from google.cloud import speech

        return speech.StreamingRecognitionConfig(
            config=speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding[self.encoding],
                sample_rate_hertz=self.sample_rate,
                language_code=self.language_code,
            ),
            interim_results=False,
        )

    async def _requests(self, chunks: AsyncIterator[bytes]):
        from google.cloud import speech

        # The first request carries only the config, the rest only audio
        yield speech.StreamingRecognizeRequest(streaming_config=self._streaming_config())
        async for chunk in chunks:
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    async def stream(self, chunks: AsyncIterator[bytes]) -> AsyncIterator:
        """Recognize an audio byte stream.

        Args:
            chunks: async iterator of raw audio in the configured encoding.

        Yields:
            StreamingRecognizeResponse messages.

        Raises:
            RuntimeError: when the service reports an error on the stream.
        """
        self._ensure_client()
        responses = await self._client.streaming_recognize(requests=self._requests(chunks))
        logger.debug("Recognition stream opened ({}, {}Hz)", self.language_code, self.sample_rate)

        async for response in responses:
            error = getattr(response, "error", None)
            if error is not None and error.code:
                raise RuntimeError(f"Recognition error {error.code}: {error.message}")
            yield response
