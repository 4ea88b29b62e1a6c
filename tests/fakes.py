"""In-memory stand-ins for the audio, synthesis and chat collaborators."""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np

from jarvis_voice.audio.tts import Utterance, VoiceDescriptor
from jarvis_voice.services.schemas import (
    CaptureEvent,
    ChatMessage,
    SynthesisBoundary,
    SynthesisEnded,
    SynthesisEvent,
    SynthesisFailed,
    SynthesisStarted,
)
from jarvis_voice.state.app_state import ConversationState


class FakeSource:
    """In-memory transcript source; tests push events through ``emit``."""

    def __init__(self, fail_on_start: bool = False) -> None:
        self.emit: Callable[[CaptureEvent], None] | None = None
        self.starts = 0
        self.stops = 0
        self.fail_on_start = fail_on_start

    def start(self, emit: Callable[[CaptureEvent], None]) -> None:
        self.starts += 1
        self.emit = emit
        if self.fail_on_start:
            raise RuntimeError("recognition already started")

    def stop(self) -> None:
        self.stops += 1


class FakePlayer:
    def __init__(self, fail: bool = False) -> None:
        self.played: list[tuple[bytes, int]] = []
        self.samples: list[np.ndarray] = []
        self.fail = fail

    async def play(self, pcm_data: bytes, sample_rate: int, channels: int = 1) -> None:
        if self.fail:
            raise RuntimeError("device busy")
        self.played.append((pcm_data, sample_rate))

    async def play_samples(self, samples: np.ndarray, sample_rate: int) -> None:
        self.samples.append(samples)


class FakeSynthesizer:
    """Utterance player emitting one boundary per word."""

    def __init__(self, voices: Sequence[VoiceDescriptor] = (), fail: bool = False) -> None:
        self._voices = list(voices)
        self.fail = fail
        self.spoken: list[Utterance] = []
        self.events: list[SynthesisEvent] = []
        self.intensity_seen: list[float] = []
        self.state: ConversationState | None = None

    def voices(self) -> list[VoiceDescriptor]:
        return list(self._voices)

    async def speak(self, utterance: Utterance, on_event: Callable[[SynthesisEvent], None]) -> None:
        self.spoken.append(utterance)

        def fire(event: SynthesisEvent) -> None:
            self.events.append(event)
            on_event(event)
            if self.state is not None:
                self.intensity_seen.append(self.state.voice_intensity)

        if self.fail:
            fire(SynthesisFailed(RuntimeError("engine crashed")))
            return
        fire(SynthesisStarted())
        for index, _word in enumerate(utterance.text.split()):
            fire(SynthesisBoundary(index))
        fire(SynthesisEnded())


class FakeResponder:
    def __init__(self, reply: str = "São dez horas.") -> None:
        self.reply = reply
        self.calls: list[tuple[str, list[ChatMessage]]] = []

    async def send(self, command: str, history: Sequence[ChatMessage]) -> str:
        self.calls.append((command, list(history)))
        return self.reply


