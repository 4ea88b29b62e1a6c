"""Exception types shared by the voice front-end."""

from __future__ import annotations


class JarvisError(Exception):
    """Base class for recoverable errors raised inside the core."""


class CapabilityUnavailable(JarvisError):
    """The platform offers no capture or synthesis capability."""


class RemoteCallError(JarvisError):
    """The chat endpoint could not be reached or answered badly."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SynthesisError(JarvisError):
    """A speech synthesis backend failed for the current utterance."""


class InvalidTransition(JarvisError):
    """A state change outside the idle/listening/processing/responding cycle."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"transition {current} -> {target} is not allowed")
        self.current = current
        self.target = target
