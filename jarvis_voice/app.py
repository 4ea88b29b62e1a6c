"""Assemble the voice front-end and run it."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Callable, Optional

from .audio.capture import SpeechCaptureService, TranscriptSource
from .audio.chime import play_activation_chime
from .audio.playback import AudioPlayer, PlaybackConfig
from .audio.speech import SpeechOutputService
from .audio.tts import PiperSynthesizer
from .config.paths import data_dir, voices_dir
from .config.settings import Settings, get_settings
from .config.store import JsonKeyValueStore, PersistenceStore
from .core.logger import configure_logging
from .runtime.orchestrator import ConversationOrchestrator, LogObserver
from .services.chat import ResponseClient
from .services.elevenlabs import ElevenLabsClient
from .state.app_state import ConversationState

LOGGER = logging.getLogger(__name__)


def build_store(settings: Settings) -> PersistenceStore:
    return PersistenceStore(JsonKeyValueStore(data_dir(settings)))


def _microphone_factory(settings: Settings) -> Callable[[], TranscriptSource]:
    def factory() -> TranscriptSource:
        from .audio.microphone import create_transcript_source

        return create_transcript_source(settings)

    return factory


@dataclass(slots=True)
class Assistant:
    """Every long-lived component of one running front-end."""

    state: ConversationState
    orchestrator: ConversationOrchestrator
    chat: ResponseClient
    cloud: ElevenLabsClient
    player: AudioPlayer

    async def aclose(self) -> None:
        await self.orchestrator.stop()
        self.player.stop()
        await self.chat.aclose()
        await self.cloud.aclose()


def build_assistant(
    settings: Settings,
    *,
    source_factory: Optional[Callable[[], TranscriptSource]] = None,
) -> Assistant:
    state = ConversationState()
    player = AudioPlayer(PlaybackConfig(device_name=settings.output_device))
    chat = ResponseClient(settings)
    cloud = ElevenLabsClient(settings)
    speaker = SpeechOutputService(
        state,
        synthesizer=PiperSynthesizer(voices_dir(settings), player),
        player=player,
        cloud=cloud,
        language=settings.language,
        rate=settings.tts_rate,
        pitch=settings.tts_pitch,
        preferred_voices=settings.tts_preferred_voices,
    )
    capture = SpeechCaptureService(
        state,
        source_factory or _microphone_factory(settings),
        restart_delay=settings.capture_restart_delay_ms / 1000,
    )
    orchestrator = ConversationOrchestrator(
        state,
        store=build_store(settings),
        capture=capture,
        responder=chat,
        speaker=speaker,
        wake_word=settings.wake_word,
        chime=lambda: play_activation_chime(player),
    )
    return Assistant(state=state, orchestrator=orchestrator, chat=chat, cloud=cloud, player=player)


async def _forward_stdin(orchestrator: ConversationOrchestrator) -> None:
    """Terminal input: every non-empty line becomes a command."""
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        if line.strip():
            orchestrator.submit_text(line)
    await orchestrator.wait_idle()


async def serve(settings: Settings, *, on_log: Optional[LogObserver] = None, read_stdin: bool = True) -> None:
    """Run until stdin closes (or forever when ``read_stdin`` is False)."""
    assistant = build_assistant(settings)
    if on_log is not None:
        assistant.orchestrator.on_log(on_log)
    await assistant.orchestrator.start()
    LOGGER.info("Voice front-end started (wake word %r)", settings.wake_word)
    try:
        if read_stdin:
            await _forward_stdin(assistant.orchestrator)
        else:
            await asyncio.Event().wait()
    finally:
        await assistant.aclose()
        LOGGER.info("Voice front-end stopped")


def run(
    settings: Optional[Settings] = None,
    *,
    on_log: Optional[LogObserver] = None,
    read_stdin: bool = True,
) -> None:
    settings = settings or get_settings()
    configure_logging(settings)
    try:
        asyncio.run(serve(settings, on_log=on_log, read_stdin=read_stdin))
    except KeyboardInterrupt:
        pass
