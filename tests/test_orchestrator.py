from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from jarvis_voice.audio.capture import UNSUPPORTED_MESSAGE, SpeechCaptureService
from jarvis_voice.audio.speech import SpeechOutputService
from jarvis_voice.config.settings import Settings
from jarvis_voice.config.store import AWAITING_WAKE_WORD, BOOT_MESSAGE, PersistenceStore
from jarvis_voice.core.errors import CapabilityUnavailable
from jarvis_voice.core.trace import get_trace_id
from jarvis_voice.runtime.orchestrator import PROCESSING_MESSAGE, WAKE_MESSAGE, ConversationOrchestrator
from jarvis_voice.services.chat import APOLOGY, ResponseClient
from jarvis_voice.services.schemas import ChatMessage, FinalTranscript
from jarvis_voice.state.app_state import ConversationState, InteractionState

from fakes import FakePlayer, FakeResponder, FakeSource, FakeSynthesizer


class Harness:
    def __init__(self, store: PersistenceStore, responder=None, source_factory=None) -> None:
        self.state = ConversationState()
        self.source = FakeSource()
        self.synth = FakeSynthesizer()
        self.chimes = 0
        self.responder = responder or FakeResponder()
        self.capture = SpeechCaptureService(
            self.state,
            source_factory or (lambda: self.source),
            restart_delay=0.01,
        )
        speaker = SpeechOutputService(self.state, synthesizer=self.synth, player=FakePlayer())
        self.orchestrator = ConversationOrchestrator(
            self.state,
            store=store,
            capture=self.capture,
            responder=self.responder,
            speaker=speaker,
            wake_word="jarvis",
            chime=self._chime,
        )
        self.states: list[InteractionState] = []
        self.state.on_state(self.states.append)

    async def _chime(self) -> None:
        self.chimes += 1

    async def hear(self, text: str) -> None:
        self.source.emit(FinalTranscript(text))
        await self.orchestrator.wait_idle()

    def texts(self) -> list[tuple[str, str]]:
        return [(entry.category, entry.text) for entry in self.orchestrator.logs]


@pytest.mark.asyncio
async def test_wake_word_then_command_runs_a_full_turn(store: PersistenceStore) -> None:
    store.save_logs([])
    harness = Harness(store)
    await harness.orchestrator.start()

    await harness.hear("ei jarvis")
    assert harness.state.state is InteractionState.LISTENING
    assert harness.chimes == 1

    await harness.hear("que horas são")

    assert harness.texts() == [
        ("system", WAKE_MESSAGE),
        ("user", "que horas são"),
        ("system", PROCESSING_MESSAGE),
        ("assistant", "São dez horas."),
        ("system", AWAITING_WAKE_WORD),
    ]
    assert harness.responder.calls == [("que horas são", [])]
    assert harness.orchestrator.messages == [
        ChatMessage(role="user", content="que horas são"),
        ChatMessage(role="assistant", content="São dez horas."),
    ]
    assert [u.text for u in harness.synth.spoken] == ["São dez horas."]
    assert harness.states == [
        InteractionState.LISTENING,
        InteractionState.PROCESSING,
        InteractionState.RESPONDING,
        InteractionState.IDLE,
    ]
    assert harness.state.activated is False

    # persisted after every change
    assert [e.text for e in store.load_logs()] == [text for _, text in harness.texts()]
    assert store.load_messages() == harness.orchestrator.messages
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_history_sent_is_the_prior_conversation(store: PersistenceStore) -> None:
    store.save_messages([ChatMessage("user", "oi"), ChatMessage("assistant", "Olá, senhor.")])
    harness = Harness(store)
    await harness.orchestrator.start()

    await harness.hear("jarvis")
    await harness.hear("tudo bem?")

    command, history = harness.responder.calls[0]
    assert command == "tudo bem?"
    assert [m.content for m in history] == ["oi", "Olá, senhor."]
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_first_launch_seeds_boot_entries(store: PersistenceStore) -> None:
    harness = Harness(store)
    await harness.orchestrator.start()
    assert [text for _, text in harness.texts()] == [BOOT_MESSAGE, AWAITING_WAKE_WORD]
    await harness.orchestrator.stop()


@pytest.mark.parametrize(
    ("transcript", "wakes"),
    [
        ("Jarvis", True),
        ("EI JARVIS, acorda", True),
        ("jarvisinho", True),
        ("olá mundo", False),
        ("", False),
    ],
)
@pytest.mark.asyncio
async def test_wake_word_is_case_insensitive_containment(store, transcript, wakes) -> None:
    store.save_logs([])
    harness = Harness(store)
    await harness.orchestrator.start()

    await harness.hear(transcript)

    expected = InteractionState.LISTENING if wakes else InteractionState.IDLE
    assert harness.state.state is expected
    assert harness.responder.calls == []
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_wake_word_is_ignored_while_a_turn_is_in_flight(store: PersistenceStore) -> None:
    gate = asyncio.Event()

    class SlowResponder(FakeResponder):
        async def send(self, command, history):
            await gate.wait()
            return await super().send(command, history)

    store.save_logs([])
    harness = Harness(store, responder=SlowResponder())
    await harness.orchestrator.start()

    await harness.hear("ei jarvis")
    harness.source.emit(FinalTranscript("que horas são"))
    for _ in range(10):
        await asyncio.sleep(0)
    assert harness.state.state is InteractionState.PROCESSING

    harness.source.emit(FinalTranscript("jarvis de novo"))
    for _ in range(10):
        await asyncio.sleep(0)
    assert harness.state.state is InteractionState.PROCESSING
    assert harness.state.activated is False

    gate.set()
    await harness.orchestrator.wait_idle()
    assert [text for _, text in harness.texts()].count(WAKE_MESSAGE) == 1
    assert len(harness.responder.calls) == 1
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_server_error_is_spoken_as_apology(store: PersistenceStore) -> None:
    settings = Settings(chat_url="https://chat.test/api/chat")
    responder = ResponseClient(settings, transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    store.save_logs([])
    harness = Harness(store, responder=responder)
    await harness.orchestrator.start()

    await harness.hear("jarvis")
    await harness.hear("que horas são")

    assert ("assistant", APOLOGY) in harness.texts()
    assert [u.text for u in harness.synth.spoken] == [APOLOGY]
    assert harness.state.state is InteractionState.IDLE
    await responder.aclose()
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_typed_command_skips_wake_word(store: PersistenceStore) -> None:
    store.save_logs([])
    harness = Harness(store)
    await harness.orchestrator.start()

    harness.orchestrator.submit_text("  abrir o navegador  ")
    await harness.orchestrator.wait_idle()

    assert harness.texts()[0] == ("user", "abrir o navegador")
    assert harness.responder.calls[0][0] == "abrir o navegador"
    assert harness.states[0] is InteractionState.LISTENING
    assert harness.state.state is InteractionState.IDLE
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_blank_typed_command_is_ignored(store: PersistenceStore) -> None:
    store.save_logs([])
    harness = Harness(store)
    await harness.orchestrator.start()

    harness.orchestrator.submit_text("   ")
    await harness.orchestrator.wait_idle()

    assert harness.texts() == []
    assert harness.states == []
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_typed_command_during_turn_is_dropped(store: PersistenceStore, caplog) -> None:
    gate = asyncio.Event()

    class SlowResponder(FakeResponder):
        async def send(self, command, history):
            await gate.wait()
            return await super().send(command, history)

    store.save_logs([])
    harness = Harness(store, responder=SlowResponder())
    await harness.orchestrator.start()

    harness.orchestrator.submit_text("primeiro")
    for _ in range(10):
        await asyncio.sleep(0)
    with caplog.at_level(logging.WARNING, logger="jarvis_voice.runtime.orchestrator"):
        harness.orchestrator.submit_text("segundo")
        for _ in range(10):
            await asyncio.sleep(0)
    gate.set()
    await harness.orchestrator.wait_idle()

    assert [call[0] for call in harness.responder.calls] == ["primeiro"]
    assert any("Dropping" in record.getMessage() for record in caplog.records)
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_turn_finishing_after_stop_changes_nothing(store: PersistenceStore) -> None:
    gate = asyncio.Event()

    class SlowResponder(FakeResponder):
        async def send(self, command, history):
            await gate.wait()
            return await super().send(command, history)

    store.save_logs([])
    harness = Harness(store, responder=SlowResponder())
    await harness.orchestrator.start()
    harness.orchestrator.submit_text("olá")
    for _ in range(10):
        await asyncio.sleep(0)
    before = harness.texts()

    await harness.orchestrator.stop()
    gate.set()
    await harness.orchestrator.wait_idle()

    assert harness.texts() == before
    assert [e.text for e in store.load_logs()] == [text for _, text in before]
    assert harness.state.state is InteractionState.PROCESSING
    assert harness.synth.spoken == []
    assert harness.source.stops == 1


@pytest.mark.asyncio
async def test_capture_unavailable_is_logged_and_typing_still_works(store: PersistenceStore) -> None:
    def unavailable():
        raise CapabilityUnavailable("no microphone")

    store.save_logs([])
    harness = Harness(store, source_factory=unavailable)
    await harness.orchestrator.start()

    assert harness.texts() == [("system", UNSUPPORTED_MESSAGE)]

    harness.orchestrator.submit_text("ligar as luzes")
    await harness.orchestrator.wait_idle()
    assert harness.responder.calls[0][0] == "ligar as luzes"
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_log_observers_receive_entries(store: PersistenceStore) -> None:
    store.save_logs([])
    harness = Harness(store)
    seen: list[str] = []
    harness.orchestrator.on_log(lambda entry: seen.append(entry.text))
    await harness.orchestrator.start()

    await harness.hear("jarvis")

    assert seen == [WAKE_MESSAGE]
    await harness.orchestrator.stop()


@pytest.mark.asyncio
async def test_turn_entries_share_one_trace_id(store: PersistenceStore) -> None:
    store.save_logs([])
    harness = Harness(store)
    traced: list[tuple[str, str | None]] = []
    harness.orchestrator.on_log(lambda entry: traced.append((entry.text, get_trace_id())))
    await harness.orchestrator.start()

    await harness.hear("jarvis")
    await harness.hear("que horas são")

    assert traced[0] == (WAKE_MESSAGE, None)
    turn_ids = {trace for _, trace in traced[1:]}
    assert len(turn_ids) == 1
    assert None not in turn_ids
    assert [text for text, _ in traced[1:]] == [
        "que horas são",
        PROCESSING_MESSAGE,
        "São dez horas.",
        AWAITING_WAKE_WORD,
    ]
    await harness.orchestrator.stop()
