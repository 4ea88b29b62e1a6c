"""Continuous speech capture with interim intensity and auto-restart."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

from ..core.errors import CapabilityUnavailable
from ..services.schemas import (
    CaptureEvent,
    FinalTranscript,
    PartialTranscript,
    SessionEnded,
    SessionError,
)
from ..state.app_state import ConversationState, InteractionState

LOGGER = logging.getLogger(__name__)

IGNORED_ERRORS = frozenset({"no-speech", "aborted"})
UNSUPPORTED_MESSAGE = "Reconhecimento de voz não suportado nesta plataforma."

# States in which the capture side owns the voice intensity signal.
_CAPTURE_STATES = (InteractionState.IDLE, InteractionState.LISTENING)


class TranscriptSource(Protocol):
    """Continuous transcript source (one session per ``start`` call)."""

    def start(self, emit: Callable[[CaptureEvent], None]) -> None: ...

    def stop(self) -> None: ...


def interim_intensity(transcript: str) -> float:
    return min(1.0, len(transcript) / 30)


class SpeechCaptureService:
    """Keep a capture session alive and hand final transcripts to a consumer."""

    def __init__(
        self,
        state: ConversationState,
        source_factory: Callable[[], TranscriptSource],
        *,
        restart_delay: float = 0.3,
        on_unavailable: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.state = state
        self._source_factory = source_factory
        self.restart_delay = restart_delay
        self._on_unavailable = on_unavailable
        self._consumer: Optional[Callable[[FinalTranscript], None]] = None
        self._source: Optional[TranscriptSource] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._restart_handle: Optional[asyncio.TimerHandle] = None
        self._running = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def bind(
        self,
        consumer: Callable[[FinalTranscript], None],
        *,
        on_unavailable: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Register the receiver of final transcripts (and of the unsupported notice)."""
        self._consumer = consumer
        if on_unavailable is not None:
            self._on_unavailable = on_unavailable

    async def start(self) -> bool:
        """Open the first session; returns False when capture is unavailable."""
        if self._running:
            return True
        self._loop = asyncio.get_running_loop()
        try:
            # Building the source may load the transcription model.
            self._source = await asyncio.to_thread(self._source_factory)
        except CapabilityUnavailable as exc:
            LOGGER.warning("Speech capture unavailable: %s", exc)
            if self._on_unavailable:
                self._on_unavailable(UNSUPPORTED_MESSAGE)
            return False
        self._running = True
        self._open_session()
        return True

    def stop(self) -> None:
        """Terminate the session and cancel any pending restart."""
        self._running = False
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
        if self._source is not None:
            try:
                self._source.stop()
            except Exception as exc:
                LOGGER.debug("Stopping capture source failed: %s", exc)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def restart_pending(self) -> bool:
        return self._restart_handle is not None

    # ------------------------------------------------------------------ #
    # Event handling
    # ------------------------------------------------------------------ #
    def emit(self, event: CaptureEvent) -> None:
        """Thread-safe entry point used by the transcript source."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self.handle_event(event)
        else:
            loop.call_soon_threadsafe(self.handle_event, event)

    def handle_event(self, event: CaptureEvent) -> None:
        if isinstance(event, PartialTranscript):
            if self.state.state in _CAPTURE_STATES:
                self.state.set_intensity(interim_intensity(event.text.strip()))
        elif isinstance(event, FinalTranscript):
            if self.state.state in _CAPTURE_STATES:
                self.state.set_intensity(0.0)
            if self._consumer is not None:
                self._consumer(event)
        elif isinstance(event, SessionEnded):
            self._schedule_restart()
        elif isinstance(event, SessionError):
            if event.kind not in IGNORED_ERRORS:
                LOGGER.error("Speech recognition error: %s %s", event.kind, event.message)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _open_session(self) -> None:
        if self._source is None:
            return
        try:
            self._source.start(self.emit)
        except Exception as exc:
            LOGGER.debug("Capture session start failed: %s", exc)

    def _schedule_restart(self) -> None:
        if not self._running or self._loop is None:
            return
        if self._restart_handle is not None:
            self._restart_handle.cancel()
        self._restart_handle = self._loop.call_later(self.restart_delay, self._restart)

    def _restart(self) -> None:
        self._restart_handle = None
        if self._running:
            self._open_session()
