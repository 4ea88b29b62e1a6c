"""Data records and typed events exchanged inside the voice front-end."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Union


Category = Literal["system", "user", "assistant"]
Role = Literal["system", "user", "assistant"]

CATEGORIES: tuple[str, ...] = ("system", "user", "assistant")


def new_entry_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class LogEntry:
    """One line of the conversation log shown in the terminal panel."""

    category: Category
    text: str
    id: str = field(default_factory=new_entry_id)
    timestamp: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        """Serialize the entry for persistence."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "text": self.text,
        }


@dataclass(slots=True)
class ChatMessage:
    """Conversation message sent as context to the chat endpoint."""

    role: Role
    content: str

    def to_payload(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


# ---------------------------------------------------------------------- #
# Capture events
# ---------------------------------------------------------------------- #
@dataclass(slots=True, frozen=True)
class PartialTranscript:
    """Provisional transcript fragment."""

    text: str


@dataclass(slots=True, frozen=True)
class FinalTranscript:
    """Confirmed transcript for one utterance."""

    text: str


@dataclass(slots=True, frozen=True)
class SessionEnded:
    """The capture engine closed its session."""


@dataclass(slots=True, frozen=True)
class SessionError:
    """Error reported by the capture engine (``kind`` mirrors browser error codes)."""

    kind: str
    message: str = ""


CaptureEvent = Union[PartialTranscript, FinalTranscript, SessionEnded, SessionError]


@dataclass(slots=True, frozen=True)
class TextSubmitted:
    """Command typed into the terminal panel."""

    text: str


# ---------------------------------------------------------------------- #
# Synthesis events
# ---------------------------------------------------------------------- #
@dataclass(slots=True, frozen=True)
class SynthesisStarted:
    pass


@dataclass(slots=True, frozen=True)
class SynthesisBoundary:
    """Word or sentence boundary reached while speaking."""

    index: int = 0


@dataclass(slots=True, frozen=True)
class SynthesisEnded:
    pass


@dataclass(slots=True, frozen=True)
class SynthesisFailed:
    error: Exception


SynthesisEvent = Union[SynthesisStarted, SynthesisBoundary, SynthesisEnded, SynthesisFailed]
