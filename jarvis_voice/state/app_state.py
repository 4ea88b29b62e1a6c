"""Shared interaction state owned by the conversation orchestrator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..core.errors import InvalidTransition

LOGGER = logging.getLogger(__name__)


class InteractionState(str, Enum):
    """Phase of the voice interaction cycle."""

    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    RESPONDING = "responding"


ALLOWED_TRANSITIONS: dict[InteractionState, InteractionState] = {
    InteractionState.IDLE: InteractionState.LISTENING,
    InteractionState.LISTENING: InteractionState.PROCESSING,
    InteractionState.PROCESSING: InteractionState.RESPONDING,
    InteractionState.RESPONDING: InteractionState.IDLE,
}

# Entering these states resets the voice intensity to zero.
_QUIET_STATES = (InteractionState.IDLE, InteractionState.PROCESSING)

StateObserver = Callable[[InteractionState], None]
IntensityObserver = Callable[[float], None]


@dataclass(slots=True)
class ConversationState:
    """State record passed by reference to the capture and output services."""

    state: InteractionState = InteractionState.IDLE
    voice_intensity: float = 0.0
    activated: bool = False
    closed: bool = False
    history: list[InteractionState] = field(default_factory=list)
    _state_observers: list[StateObserver] = field(default_factory=list)
    _intensity_observers: list[IntensityObserver] = field(default_factory=list)

    # ------------------------------------------------------------------ #
    # Observers
    # ------------------------------------------------------------------ #
    def on_state(self, callback: StateObserver) -> None:
        self._state_observers.append(callback)

    def on_intensity(self, callback: IntensityObserver) -> None:
        self._intensity_observers.append(callback)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #
    def transition(self, target: InteractionState) -> None:
        """Move to ``target``; only the next state of the cycle is accepted."""
        if self.closed or target is self.state:
            return
        if ALLOWED_TRANSITIONS[self.state] is not target:
            raise InvalidTransition(self.state.value, target.value)
        LOGGER.info("State: %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)
        if target in _QUIET_STATES:
            self.set_intensity(0.0)
        for callback in list(self._state_observers):
            try:
                callback(target)
            except Exception:
                LOGGER.exception("State observer failed")

    def set_intensity(self, value: float) -> None:
        if self.closed:
            return
        value = max(0.0, min(1.0, float(value)))
        self.voice_intensity = value
        for callback in list(self._intensity_observers):
            try:
                callback(value)
            except Exception:
                LOGGER.exception("Intensity observer failed")

    def close(self) -> None:
        """Freeze the record; later writes from in-flight tasks become no-ops."""
        self.closed = True
