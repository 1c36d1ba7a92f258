import asyncio
import os
import sys
from pathlib import Path

from loguru import logger

from core.config import ConfigManager
from core.state import SessionState

# Base directory for the charlie tree
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("CHARLIE_DATA_DIR", BASE_DIR / "data"))
SOUNDS_DIR = BASE_DIR / "audio" / "sounds"
DING_PATH = SOUNDS_DIR / "ding.wav"


def build_supervisor(config_manager: ConfigManager):
    """Wire the real collaborators together."""
    from answers.corpus import CorpusStore
    from answers.remote import RemoteCorpusSource
    from audio.audio_capture import AudioCapture
    from audio.audio_player import AudioPlayer
    from audio.recognition import RecognitionSession
    from audio.stt import StreamingSpeechToText
    from audio.tts import TextToSpeech
    from core.controller import ConversationController, Hotwords
    from core.speech import SpeechOutput
    from core.supervisor import SessionSupervisor
    from net.latency import measure_latency

    config = config_manager.config
    state = SessionState()
    utterances: asyncio.Queue = asyncio.Queue()

    recognition = config.recognition
    session = RecognitionSession(
        capture=AudioCapture(sample_rate=recognition.sample_rate),
        recognizer=StreamingSpeechToText(
            encoding=recognition.encoding,
            sample_rate=recognition.sample_rate,
            language_code=recognition.language_code,
        ),
        utterances=utterances,
    )

    voice = config.voice
    player = AudioPlayer(command=config.playback.command, timeout=config.playback.timeout)
    speech = SpeechOutput(
        tts=TextToSpeech(
            language_code=voice.language_code,
            voice_name=voice.voice_name,
            audio_encoding=voice.audio_encoding,
            pitch=voice.pitch,
        ),
        player=player,
        state=state,
        output_path=DATA_DIR / f"output.{voice.audio_encoding.lower()}",
        ding_path=DING_PATH,
    )

    corpus_store = CorpusStore()
    controller = ConversationController(
        state=state,
        corpus_store=corpus_store,
        speech=speech,
        hotwords=Hotwords(config.hotwords),
        fallback_text=config.fallback_answer,
    )

    remote = None
    if config_manager.has_remote_corpus:
        remote = RemoteCorpusSource(
            endpoint=config.corpus.endpoint,
            api_key=config_manager.corpus_api_key,
            key_header=config.corpus.key_header,
        )

    return SessionSupervisor(
        config=config,
        state=state,
        session=session,
        controller=controller,
        speech=speech,
        corpus_store=corpus_store,
        utterances=utterances,
        probe=measure_latency,
        corpus_path=config_manager.corpus_path,
        remote=remote,
    )


async def stop_after_interrupt(supervisor, run_task: asyncio.Task) -> None:
    """Shut down after Ctrl-C and settle the interrupted run() task."""
    await supervisor.shutdown()
    if not run_task.done():
        run_task.cancel()
        try:
            await run_task
        except asyncio.CancelledError:
            pass
    elif not run_task.cancelled():
        # The interrupt may have landed inside run() itself
        run_task.exception()


def main():
    """Entry point."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level:<7} | {message}")
    logger.add(DATA_DIR / "charlie.log", rotation="10 MB", retention="7 days", level="DEBUG")

    config_manager = ConfigManager(DATA_DIR)
    if not config_manager.config_path.exists():
        config_manager.save()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    supervisor = build_supervisor(config_manager)
    run_task = loop.create_task(supervisor.run())
    exit_code = 1
    try:
        exit_code = loop.run_until_complete(run_task)
    except KeyboardInterrupt:
        loop.run_until_complete(stop_after_interrupt(supervisor, run_task))
        exit_code = 0
    finally:
        loop.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
