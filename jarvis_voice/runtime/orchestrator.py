"""Conversation state machine tying capture, chat and speech together."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, Union

from ..audio.capture import SpeechCaptureService
from ..config.store import AWAITING_WAKE_WORD, PersistenceStore
from ..core.trace import new_trace_id, set_trace_id
from ..services.schemas import (
    Category,
    ChatMessage,
    FinalTranscript,
    LogEntry,
    Role,
    TextSubmitted,
)
from ..state.app_state import ConversationState, InteractionState

LOGGER = logging.getLogger(__name__)

WAKE_MESSAGE = "🟢 Wake-word detectada! Ouvindo comando..."
PROCESSING_MESSAGE = "⏳ Processando comando..."

OrchestratorEvent = Union[FinalTranscript, TextSubmitted]
LogObserver = Callable[[LogEntry], None]


class Responder(Protocol):
    async def send(self, command: str, history: Sequence[ChatMessage]) -> str: ...


class Speaker(Protocol):
    async def speak(self, text: str) -> None: ...


class ConversationOrchestrator:
    """Wake-word gate and idle -> listening -> processing -> responding cycle."""

    def __init__(
        self,
        state: ConversationState,
        *,
        store: PersistenceStore,
        capture: SpeechCaptureService,
        responder: Responder,
        speaker: Speaker,
        wake_word: str = "jarvis",
        chime: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.state = state
        self.store = store
        self.capture = capture
        self.responder = responder
        self.speaker = speaker
        self.wake_word = wake_word.lower()
        self._chime = chime

        self.logs: list[LogEntry] = []
        self.messages: list[ChatMessage] = []
        self._log_observers: list[LogObserver] = []
        self._queue: asyncio.Queue[OrchestratorEvent] = asyncio.Queue()
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._turn_task: Optional[asyncio.Task[None]] = None
        self._background: set[asyncio.Task[Any]] = set()

        self.capture.bind(self.enqueue, on_unavailable=self.log_system)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def on_log(self, callback: LogObserver) -> None:
        """Register an observer receiving every appended log entry."""
        self._log_observers.append(callback)

    async def start(self) -> None:
        """Load persisted state, open the capture session and start the loop."""
        if self._loop_task is not None:
            return
        self.logs = self.store.load_logs()
        self.messages = self.store.load_messages()
        self._loop_task = asyncio.create_task(self._run())
        await self.capture.start()

    async def stop(self) -> None:
        """Stop capture and the event loop; an in-flight turn finishes as a no-op."""
        self.capture.stop()
        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None
        self.state.close()

    async def wait_idle(self) -> None:
        """Wait until queued events are handled and no turn is in flight."""
        while True:
            for _ in range(5):
                await asyncio.sleep(0)
            turn = self._turn_task
            if turn is not None and not turn.done():
                await asyncio.wait({turn})
                continue
            if self._queue.empty():
                return

    # ------------------------------------------------------------------ #
    # Inputs
    # ------------------------------------------------------------------ #
    def enqueue(self, event: OrchestratorEvent) -> None:
        self._queue.put_nowait(event)

    def submit_text(self, text: str) -> None:
        """Command typed in the terminal panel; skips the wake-word gate."""
        self.enqueue(TextSubmitted(text))

    # ------------------------------------------------------------------ #
    # Event loop
    # ------------------------------------------------------------------ #
    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self.dispatch(event)
            except Exception:
                LOGGER.exception("Failed to handle %s", type(event).__name__)

    def dispatch(self, event: OrchestratorEvent) -> None:
        if isinstance(event, FinalTranscript):
            self._handle_transcript(event.text)
        elif isinstance(event, TextSubmitted):
            self._handle_submission(event.text)

    def _handle_transcript(self, transcript: str) -> None:
        current = self.state.state
        if current is InteractionState.IDLE and not self.state.activated:
            if self.wake_word and self.wake_word in transcript.lower():
                self._activate()
        elif current is InteractionState.LISTENING:
            self._begin_turn(transcript)
        else:
            LOGGER.debug("Ignoring transcript while %s", current.value)

    def _handle_submission(self, text: str) -> None:
        current = self.state.state
        if current is InteractionState.IDLE:
            if not text.strip():
                return
            self.state.transition(InteractionState.LISTENING)
            self._begin_turn(text)
        elif current is InteractionState.LISTENING:
            self._begin_turn(text)
        else:
            LOGGER.warning("Dropping typed command while %s", current.value)

    def _activate(self) -> None:
        self.state.activated = True
        self._play_chime()
        self.state.transition(InteractionState.LISTENING)
        self._append_log("system", WAKE_MESSAGE)

    def _begin_turn(self, text: str) -> None:
        command = text.strip()
        if not command:
            return
        prior = list(self.messages)
        set_trace_id(new_trace_id())
        LOGGER.info("Turn started: %r", command)
        self._append_log("user", command)
        self._append_message("user", command)
        self.state.activated = False
        self.state.transition(InteractionState.PROCESSING)
        self._append_log("system", PROCESSING_MESSAGE)
        self._turn_task = asyncio.create_task(self._complete_turn(command, prior))
        # The turn task copied the context; later events start without a trace.
        set_trace_id(None)

    async def _complete_turn(self, command: str, prior: list[ChatMessage]) -> None:
        try:
            reply = await self.responder.send(command, prior)
            if self.state.closed:
                return
            self.state.transition(InteractionState.RESPONDING)
            self._append_log("assistant", reply)
            self._append_message("assistant", reply)
            await self.speaker.speak(reply)
        except Exception:
            LOGGER.exception("Turn failed")
        finally:
            self._settle_idle()
            self._append_log("system", AWAITING_WAKE_WORD)
            set_trace_id(None)

    def _settle_idle(self) -> None:
        """Walk the remaining cycle edges back to idle."""
        while not self.state.closed and self.state.state is not InteractionState.IDLE:
            following = {
                InteractionState.LISTENING: InteractionState.PROCESSING,
                InteractionState.PROCESSING: InteractionState.RESPONDING,
                InteractionState.RESPONDING: InteractionState.IDLE,
            }[self.state.state]
            self.state.transition(following)

    # ------------------------------------------------------------------ #
    # Log / history
    # ------------------------------------------------------------------ #
    def _append_log(self, category: Category, text: str) -> None:
        if self.state.closed:
            return
        entry = LogEntry(category=category, text=text)
        self.logs.append(entry)
        self._persist(self.store.save_logs, self.logs)
        for callback in list(self._log_observers):
            try:
                callback(entry)
            except Exception:
                LOGGER.exception("Log observer failed")

    def _append_message(self, role: Role, content: str) -> None:
        if self.state.closed or not content.strip():
            return
        self.messages.append(ChatMessage(role=role, content=content))
        self._persist(self.store.save_messages, self.messages)

    @staticmethod
    def _persist(save: Callable[[Any], None], items: list[Any]) -> None:
        try:
            save(items)
        except OSError as exc:
            LOGGER.error("Could not persist conversation: %s", exc)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def log_system(self, text: str) -> None:
        """Append a system entry (used for capability notices)."""
        self._append_log("system", text)

    def _play_chime(self) -> None:
        if self._chime is None:
            return
        task = asyncio.create_task(self._run_chime())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_chime(self) -> None:
        assert self._chime is not None
        try:
            await self._chime()
        except Exception as exc:
            LOGGER.warning("Activation chime failed: %s", exc)
