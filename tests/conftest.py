from __future__ import annotations

import pytest

from lead_navigator.models import AutomationSettings
from lead_navigator.repository import StateRepository
from lead_navigator.store import AtomicDocumentStore, InMemoryDocumentStore


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def repository(memory_store: InMemoryDocumentStore) -> StateRepository:
    return StateRepository(memory_store)


@pytest.fixture
def file_store(tmp_path) -> AtomicDocumentStore:
    return AtomicDocumentStore(tmp_path / "data" / "app-state.json")


@pytest.fixture
def settings() -> AutomationSettings:
    return AutomationSettings(enabled=True, min_delay_ms=0, max_delay_ms=0, randomize_delays=False)
