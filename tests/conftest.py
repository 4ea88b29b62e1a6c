from __future__ import annotations

from pathlib import Path

import pytest

from jarvis_voice.config.store import JsonKeyValueStore, PersistenceStore
from jarvis_voice.state.app_state import ConversationState


@pytest.fixture()
def store(tmp_path: Path) -> PersistenceStore:
    return PersistenceStore(JsonKeyValueStore(tmp_path))


@pytest.fixture()
def state() -> ConversationState:
    return ConversationState()
