import asyncio
import re

from loguru import logger

from answers.corpus import CorpusStore
from answers.matcher import AnswerMatcher
from core.config import HotwordConfig
from core.state import ConversationMode, SessionState


class Hotwords:
    """Compiled trigger phrases, checked regardless of conversation mode."""

    def __init__(self, config: HotwordConfig):
        self.assistant_name = config.assistant_name
        name = re.escape(config.assistant_name.lower())
        self.exit = re.compile(config.exit_pattern, re.IGNORECASE)
        self.wake = re.compile(config.wake_pattern.replace("{name}", name), re.IGNORECASE)
        self.sleep = re.compile(config.sleep_pattern.replace("{name}", name), re.IGNORECASE)

    def is_exit(self, text: str) -> bool:
        return self.exit.search(text) is not None

    def is_wake(self, text: str) -> bool:
        return self.wake.search(text) is not None

    def is_sleep(self, text: str) -> bool:
        return self.sleep.search(text) is not None


class ConversationController:
    """Hotword-gated state machine over recognized utterances.

    Each utterance is checked in fixed order: exit, wake, sleep, then (only
    when active and listening) treated as a question. Listening is switched
    off before any answer work starts; only SpeechOutput turns it back on,
    after the answer has played.
    """

    def __init__(
        self,
        state: SessionState,
        corpus_store: CorpusStore,
        speech,
        hotwords: Hotwords,
        matcher: AnswerMatcher | None = None,
        fallback_text: str = "Sorry, I don't know the answer to that. Try asking your parents.",
    ):
        self.state = state
        self.corpus_store = corpus_store
        self.speech = speech
        self.hotwords = hotwords
        self.matcher = matcher or AnswerMatcher()
        self.fallback_text = fallback_text

    @property
    def profile_name(self) -> str:
        return self.corpus_store.current.name or self.hotwords.assistant_name

    async def run(self, utterances: asyncio.Queue) -> None:
        """Consume utterances one at a time until an exit is requested."""
        while self.state.is_running:
            utterance = await utterances.get()
            try:
                await self.handle(utterance)
            except Exception as e:
                logger.error("[APP] Error handling '{}': {}", utterance, e)

    async def handle(self, utterance: str) -> None:
        if not self.state.is_running:
            return
        text = utterance.strip().lower()
        if not text:
            return

        if self.hotwords.is_exit(text):
            logger.info("[APP] Heard '{}', cleaning up", text)
            self.state.request_exit(0)
            return

        if self.hotwords.is_wake(text):
            logger.info("[MIC] Heard '{}', started active listening", text)
            self.state.set_mode(ConversationMode.ACTIVE)
            await self.speech.speak(f"Hello {self.profile_name}", resume_listening=True)
            return

        if self.hotwords.is_sleep(text):
            logger.info("[MIC] Heard '{}', stopped active listening", text)
            self.state.mic_off()
            self.state.set_mode(ConversationMode.IDLE)
            await self.speech.speak(f"Goodbye {self.profile_name}", resume_listening=False)
            return

        if self.state.is_active and self.state.listening:
            logger.info("[MIC] Heard - {}", text)
            self.state.mic_off()
            await self.answer(text)
            return

        logger.debug("Ignoring '{}' (not listening)", text)

    async def answer(self, question: str) -> None:
        logger.info("[APP] Processing - {}", question)
        answer = self.matcher.match(question, self.corpus_store.current.entries)
        await self.speech.speak(answer if answer is not None else self.fallback_text,
                                resume_listening=True)
