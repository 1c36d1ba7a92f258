from loguru import logger


class TextToSpeech:
    """Text-to-speech using Google Cloud Text-to-Speech.

    Returns encoded audio (MP3 by default) ready to be written to disk and
    handed to the player.
    """

    def __init__(
        self,
        language_code: str = "en-US",
        voice_name: str = "en-US-Wavenet-A",
        audio_encoding: str = "MP3",
        pitch: float = 4.5,
    ):
        self.language_code = language_code
        self.voice_name = voice_name
        self.audio_encoding = audio_encoding
        self.pitch = pitch
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from google.cloud import texttospeech
            self._client = texttospeech.TextToSpeechAsyncClient()

    async def synthesize(self, text: str) -> bytes:
        """Synthesize text to encoded audio bytes.

        Args:
            text: The sentence to speak.

        Returns:
            Audio bytes, or b"" for blank text.
        """
        if not text or not text.strip():
            return b""

        self._ensure_client()
        from google.cloud import texttospeech

        response = await self._client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(
                language_code=self.language_code,
                name=self.voice_name,
            ),
            audio_config=texttospeech.AudioConfig(
                audio_encoding=texttospeech.AudioEncoding[self.audio_encoding],
                pitch=self.pitch,
            ),
        )

        audio_bytes = response.audio_content
        logger.debug("TTS: synthesized {} bytes for '{}'", len(audio_bytes), text[:50])
        return audio_bytes
