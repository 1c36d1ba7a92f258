import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from loguru import logger


class ConversationMode(str, Enum):
    IDLE = "idle"      # Only hotwords are acted on
    ACTIVE = "active"  # Woken up, next utterance is a question


@dataclass(frozen=True)
class DelayProfile:
    """Pause between the end of an answer and re-opening the mic.

    Slow links mean the recognizer lags behind the speaker, so the pause is
    stretched to keep the assistant from hearing its own voice.
    """

    delay_ms: int = 2000

    @classmethod
    def from_latency(
        cls,
        latency_ms: float,
        base_ms: int = 2000,
        slow_threshold_ms: float = 140,
        scale: float = 15,
        max_ms: int = 4500,
    ) -> "DelayProfile":
        if latency_ms >= slow_threshold_ms:
            return cls(delay_ms=int(min(latency_ms * scale, max_ms)))
        return cls(delay_ms=base_ms)

    @property
    def seconds(self) -> float:
        return self.delay_ms / 1000


@dataclass
class SessionState:
    """Process-wide conversational state, owned by the supervisor."""

    listening: bool = False
    recording: bool = False
    mode: ConversationMode = ConversationMode.IDLE

    # Task consuming the live recognition stream; only set while recording
    stream: Optional[asyncio.Task] = None

    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    exit_code: Optional[int] = None

    def mic_on(self) -> None:
        self.listening = True
        logger.info("[MIC] Listening on")

    def mic_off(self) -> None:
        self.listening = False
        logger.info("[MIC] Listening off")

    def set_mode(self, mode: ConversationMode) -> None:
        self.mode = mode

    def attach_stream(self, stream: asyncio.Task) -> None:
        self.stream = stream
        self.recording = True

    def detach_stream(self) -> Optional[asyncio.Task]:
        stream = self.stream
        self.stream = None
        self.recording = False
        return stream

    def request_exit(self, code: int = 0) -> None:
        # First request wins
        if self.exit_code is None:
            self.exit_code = code
        self.stop_event.set()

    @property
    def is_running(self) -> bool:
        return not self.stop_event.is_set()

    @property
    def is_active(self) -> bool:
        return self.mode == ConversationMode.ACTIVE
