from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import replace

import pytest

from lead_navigator.errors import PersistenceError
from lead_navigator.models import (
    AppDocument,
    AutomationSettings,
    LeadRecord,
    SearchTask,
    TaskStatus,
)
from lead_navigator.store import AtomicDocumentStore


def _task(task_id: str) -> SearchTask:
    return SearchTask(id=task_id, status=TaskStatus.DRAFT, settings_snapshot=AutomationSettings())


def test_store_seeds_default_document(tmp_path) -> None:
    path = tmp_path / "nested" / "state.json"
    store = AtomicDocumentStore(path)

    assert path.exists()
    assert store.read() == AppDocument.default()
    data = json.loads(path.read_text(encoding="utf-8"))
    assert set(data) == {"icp", "search_presets", "tasks", "leads", "automation_settings"}


def test_write_then_read_round_trips(file_store) -> None:
    document = AppDocument.default()
    document.tasks.append(_task("t-1"))
    document.leads.append(LeadRecord(id="l-1", profile_url="https://www.linkedin.com/in/a/", full_name="A"))
    document.automation_settings = AutomationSettings(headless=False, session_cookie="cookie")

    file_store.write(document)

    assert file_store.read() == document


def test_read_returns_a_private_copy(file_store) -> None:
    first = file_store.read()
    first.tasks.append(_task("local-only"))

    assert file_store.read().tasks == []


def test_update_returns_result_and_persists(file_store) -> None:
    def apply(document):
        document.tasks.append(_task("t-1"))
        return document, "ok"

    assert file_store.update(apply) == "ok"
    assert [task.id for task in file_store.read().tasks] == ["t-1"]


def test_failed_transaction_leaves_document_unchanged(file_store) -> None:
    before = file_store.read()

    def explode(document):
        document.tasks.append(_task("never"))
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        file_store.update(explode)
    assert file_store.read() == before


def test_transaction_must_return_pair(file_store) -> None:
    with pytest.raises(TypeError):
        file_store.update(lambda document: document)


def test_nested_update_is_rejected(file_store) -> None:
    def nested(document):
        file_store.update(lambda inner: (inner, None))
        return document, None

    with pytest.raises(RuntimeError):
        file_store.update(nested)


def test_concurrent_updates_are_not_lost(file_store) -> None:
    start = threading.Barrier(8)

    def append(index: int) -> None:
        start.wait()

        def apply(document):
            document.tasks.append(_task(f"t-{index}"))
            return document, None

        file_store.update(apply)

    threads = [threading.Thread(target=append, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    ids = [task.id for task in file_store.read().tasks]
    assert sorted(ids) == sorted(f"t-{index}" for index in range(8))


def _wait_for_tickets(store, count: int) -> None:
    deadline = time.monotonic() + 5
    while store._lock._next_ticket < count:
        assert time.monotonic() < deadline, "waiter never queued"
        time.sleep(0.001)


def test_updates_commit_in_admission_order(memory_store) -> None:
    holding = threading.Event()
    proceed = threading.Event()

    def first(document):
        holding.set()
        proceed.wait(timeout=5)
        document.tasks.append(_task("first"))
        return document, None

    threads = [threading.Thread(target=memory_store.update, args=(first,))]
    threads[0].start()
    assert holding.wait(timeout=5)

    for index in range(4):
        def append(document, name=f"t-{index}"):
            document.tasks.append(_task(name))
            return document, None

        thread = threading.Thread(target=memory_store.update, args=(append,))
        thread.start()
        _wait_for_tickets(memory_store, index + 2)
        threads.append(thread)

    proceed.set()
    for thread in threads:
        thread.join(timeout=5)

    assert [task.id for task in memory_store.read().tasks] == ["first", "t-0", "t-1", "t-2", "t-3"]


def test_interrupted_waiter_does_not_block_later_updates(memory_store, monkeypatch) -> None:
    lock = memory_store._lock
    lock.acquire()

    def interrupted(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(lock._condition, "wait", interrupted)
    with pytest.raises(KeyboardInterrupt):
        lock.acquire()
    monkeypatch.undo()
    lock.release()

    def append(document):
        document.tasks.append(_task("after"))
        return document, None

    later = threading.Thread(target=memory_store.update, args=(append,))
    later.start()
    later.join(timeout=5)

    assert not later.is_alive()
    assert [task.id for task in memory_store.read().tasks] == ["after"]


def test_write_failure_keeps_previous_document(file_store, monkeypatch) -> None:
    document = file_store.read()
    document.tasks.append(_task("kept"))
    file_store.write(document)

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(PersistenceError, match="disk full"):
        file_store.write(replace(document, tasks=[]))
    monkeypatch.undo()

    assert [task.id for task in file_store.read().tasks] == ["kept"]
    leftovers = [path.name for path in file_store.path.parent.iterdir() if path.name.startswith(".tmp-")]
    assert leftovers == []


def test_corrupted_file_raises_persistence_error(file_store) -> None:
    file_store.path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        file_store.read()
