import json
import os
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field


class RecognitionConfig(BaseModel):
    encoding: str = "LINEAR16"
    sample_rate: int = 16000
    language_code: str = "en-US"


class VoiceConfig(BaseModel):
    language_code: str = "en-US"
    voice_name: str = "en-US-Wavenet-A"
    audio_encoding: str = "MP3"
    pitch: float = 4.5


class HotwordConfig(BaseModel):
    assistant_name: str = "charlie"
    exit_pattern: str = r"(exit|restart)"
    wake_pattern: str = r"(hello|hey|hi) {name}"   # {name} -> assistant_name
    sleep_pattern: str = r"(goodbye) {name}"


class TimingConfig(BaseModel):
    restart_interval: float = 45.0  # seconds between recognition stream restarts
    refresh_interval: float = 15.0  # seconds between remote corpus fetches
    latency_host: str = "35.186.221.153"
    latency_min_replies: int = 4
    base_delay_ms: int = 2000
    slow_latency_ms: float = 140
    delay_scale: float = 15
    max_delay_ms: int = 4500


class CorpusConfig(BaseModel):
    path: str = "corpus.json"  # relative to the data directory
    endpoint: str = ""         # remote source; empty disables refresh
    api_key: str = ""
    key_header: str = "secret-key"


class PlaybackConfig(BaseModel):
    command: list[str] = Field(
        default_factory=lambda: ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"]
    )
    timeout: float = 30.0


class AppConfig(BaseModel):
    recognition: RecognitionConfig = Field(default_factory=RecognitionConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    hotwords: HotwordConfig = Field(default_factory=HotwordConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    corpus: CorpusConfig = Field(default_factory=CorpusConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    fallback_answer: str = "Sorry, I don't know the answer to that. Try asking your parents."


class ConfigManager:
    """Loads and persists the assistant configuration as JSON."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.config_path = data_dir / "config.json"
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = self._load()
        return self._config

    def _load(self) -> AppConfig:
        """Load config from disk. Returns defaults if no config exists."""
        if self.config_path.exists():
            try:
                data = json.loads(self.config_path.read_text())
                logger.info("Configuration loaded from {}", self.config_path)
                return AppConfig(**data)
            except Exception as e:
                logger.error("Failed to load config: {}. Using defaults.", e)
        logger.info("No existing config found. Using defaults.")
        return AppConfig()

    def save(self) -> None:
        """Persist current config to disk."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(self.config.model_dump_json(indent=2))
        logger.debug("Configuration saved to {}", self.config_path)

    @property
    def corpus_path(self) -> Path:
        path = Path(self.config.corpus.path).expanduser()
        return path if path.is_absolute() else self.data_dir / path

    @property
    def corpus_api_key(self) -> str:
        """Remote corpus credential; the environment wins over the file."""
        return os.getenv("CHARLIE_CORPUS_KEY", self.config.corpus.api_key)

    @property
    def has_remote_corpus(self) -> bool:
        return bool(self.config.corpus.endpoint)
