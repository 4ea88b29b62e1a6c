"""Persistence of the conversation log and chat history."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

from ..services.schemas import CATEGORIES, ChatMessage, LogEntry, new_entry_id, utcnow

LOGGER = logging.getLogger(__name__)

NAMESPACE = "jarvis"
LOGS_KEY = "logs"
MESSAGES_KEY = "messages"

BOOT_MESSAGE = "J.A.R.V.I.S. sistema inicializado."
AWAITING_WAKE_WORD = "Aguardando wake word"

_LEGACY_CATEGORIES = {"jarvis": "assistant"}

T = TypeVar("T")


def default_logs() -> list[LogEntry]:
    """Seed entries shown on first launch."""
    return [
        LogEntry(category="system", text=BOOT_MESSAGE),
        LogEntry(category="system", text=AWAITING_WAKE_WORD),
    ]


def default_messages() -> list[ChatMessage]:
    return []


class JsonKeyValueStore:
    """Durable key-value store keeping one JSON document per namespaced key."""

    def __init__(self, root: Path, namespace: str = NAMESPACE) -> None:
        self.root = Path(root)
        self.namespace = namespace

    def path_for(self, key: str) -> Path:
        return self.root / f"{self.namespace}.{key}.json"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8").lstrip("\ufeff")

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)


class PersistenceStore:
    """Load, sanitize and save the log and history arrays."""

    def __init__(self, kv: JsonKeyValueStore) -> None:
        self.kv = kv

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def load_logs(self) -> list[LogEntry]:
        items = self._load_array(LOGS_KEY)
        if items is None:
            return default_logs()
        seen: set[str] = set()
        logs: list[LogEntry] = []
        for item in items:
            entry = sanitize_log_entry(item)
            if entry is None:
                continue
            if entry.id in seen:
                entry.id = new_entry_id()
            seen.add(entry.id)
            logs.append(entry)
        return logs

    def load_messages(self) -> list[ChatMessage]:
        items = self._load_array(MESSAGES_KEY)
        if items is None:
            return default_messages()
        return _collect(items, sanitize_message)

    def save_logs(self, logs: Iterable[LogEntry]) -> None:
        self._save_array(LOGS_KEY, [entry.to_payload() for entry in logs])

    def save_messages(self, messages: Iterable[ChatMessage]) -> None:
        self._save_array(MESSAGES_KEY, [message.to_payload() for message in messages])

    def clear(self) -> None:
        self.kv.delete(LOGS_KEY)
        self.kv.delete(MESSAGES_KEY)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _load_array(self, key: str) -> list[Any] | None:
        try:
            raw = self.kv.get(key)
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Could not read %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError):
            LOGGER.warning("Discarding corrupted %s store", key)
            return None
        if not isinstance(data, list):
            LOGGER.warning("Discarding %s store: expected an array, got %s", key, type(data).__name__)
            return None
        return data

    def _save_array(self, key: str, payload: list[dict[str, Any]]) -> None:
        self.kv.set(key, json.dumps(payload, ensure_ascii=False))


def _collect(items: Iterable[Any], sanitize: Callable[[Any], T | None]) -> list[T]:
    result: list[T] = []
    for item in items:
        value = sanitize(item)
        if value is not None:
            result.append(value)
    return result


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, bool):
        return utcnow()
    if isinstance(value, (int, float)):
        # JavaScript style epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return utcnow()
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return utcnow()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return utcnow()


def sanitize_log_entry(item: Any) -> LogEntry | None:
    """Repair one stored log entry; non-object items are dropped."""
    if not isinstance(item, dict):
        return None
    raw_id = item.get("id")
    entry_id = str(raw_id) if raw_id not in (None, "") else new_entry_id()
    category = item.get("category", item.get("type"))
    if isinstance(category, str):
        category = _LEGACY_CATEGORIES.get(category, category)
    if category not in CATEGORIES:
        category = "system"
    return LogEntry(
        id=entry_id,
        timestamp=_parse_timestamp(item.get("timestamp")),
        category=category,
        text=_coerce_text(item.get("text")),
    )


def sanitize_message(item: Any) -> ChatMessage | None:
    """Repair one stored chat message; empty contents are dropped."""
    if not isinstance(item, dict):
        return None
    content = _coerce_text(item.get("content"))
    if not content.strip():
        return None
    role = item.get("role")
    if role not in CATEGORIES:
        role = "user"
    return ChatMessage(role=role, content=content)
