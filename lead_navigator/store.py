"""Single-document persistence with serialized read-modify-write transactions.

Every mutation of application state goes through :meth:`DocumentStore.update`,
which loads the committed document, hands a private copy to a transaction
function and commits whatever that function returns.  Updates are admitted in
FIFO order and run one at a time for the whole store instance, so each one
observes every update admitted before it.

:class:`AtomicDocumentStore` keeps the document as a JSON file.  New content is
staged in a temporary file in the same directory and swapped onto the canonical
path with :func:`os.replace`, so readers only ever see a complete document.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Tuple, TypeVar

from .errors import PersistenceError
from .models import AppDocument

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")
Transaction = Callable[[AppDocument], Tuple[AppDocument, R]]

_JSON_INDENT = 2


class _FifoLock:
    """Ticket lock that grants the lock in the order ``acquire`` was called."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0
        self._abandoned: Set[int] = set()
        self._owner: Optional[int] = None

    def acquire(self) -> None:
        with self._condition:
            ticket = self._next_ticket
            self._next_ticket += 1
            try:
                while ticket != self._now_serving:
                    self._condition.wait()
            except BaseException:
                # an interrupted waiter forfeits its ticket
                self._abandoned.add(ticket)
                self._skip_abandoned()
                raise
            self._owner = threading.get_ident()

    def release(self) -> None:
        with self._condition:
            self._owner = None
            self._now_serving += 1
            self._skip_abandoned()

    def _skip_abandoned(self) -> None:
        while self._now_serving in self._abandoned:
            self._abandoned.discard(self._now_serving)
            self._now_serving += 1
        self._condition.notify_all()

    def held_by_current_thread(self) -> bool:
        return self._owner == threading.get_ident()

    def __enter__(self) -> "_FifoLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.release()


class DocumentStore:
    """Base class implementing the transaction discipline over a load/persist pair."""

    def __init__(self) -> None:
        self._lock = _FifoLock()

    # ------------------------------------------------------------------
    # Storage hooks
    def _load(self) -> AppDocument:  # pragma: no cover - abstract
        raise NotImplementedError

    def _persist(self, document: AppDocument) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    def read(self) -> AppDocument:
        """Return a copy of the committed document."""

        return self._load()

    def write(self, document: AppDocument) -> None:
        """Replace the committed document wholesale."""

        self._ensure_not_reentrant("write")
        with self._lock:
            self._persist(document)

    def update(self, fn: Transaction[R]) -> R:
        """Run ``fn`` against the committed document and commit its result.

        ``fn`` receives a private copy of the document and must return a
        ``(document, result)`` pair.  If ``fn`` raises, or the write fails,
        nothing is committed and the exception propagates unchanged.
        """

        self._ensure_not_reentrant("update")
        with self._lock:
            document = self._load()
            outcome = fn(document)
            try:
                next_document, result = outcome
            except (TypeError, ValueError) as exc:
                raise TypeError("Transaction functions must return a (document, result) pair") from exc
            if not isinstance(next_document, AppDocument):
                raise TypeError(
                    f"Transaction returned {type(next_document).__name__}, expected AppDocument"
                )
            self._persist(next_document)
            return result

    def _ensure_not_reentrant(self, operation: str) -> None:
        if self._lock.held_by_current_thread():
            raise RuntimeError(f"{operation}() called from inside a running transaction")


class AtomicDocumentStore(DocumentStore):
    """Document store backed by a JSON file written with an atomic rename."""

    def __init__(self, state_file: str | Path) -> None:
        super().__init__()
        self._state_file = Path(state_file)
        self.init()

    @property
    def path(self) -> Path:
        return self._state_file

    def init(self) -> None:
        """Seed the state file with a default document when none exists."""

        try:
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Unable to create state directory '{self._state_file.parent}': {exc}") from exc
        if self._state_file.exists():
            return
        LOGGER.info("Seeding empty state document at %s", self._state_file)
        with self._lock:
            if not self._state_file.exists():
                self._persist(AppDocument.default())

    def _load(self) -> AppDocument:
        try:
            text = self._state_file.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Unable to read state file '{self._state_file}': {exc}") from exc
        try:
            data = json.loads(text)
            return AppDocument.from_dict(data)
        except (ValueError, TypeError, KeyError) as exc:
            raise PersistenceError(
                f"Failed to parse state file '{self._state_file}'. The file may be corrupted or mid-write. {exc}"
            ) from exc

    def _persist(self, document: AppDocument) -> None:
        payload = json.dumps(document.to_dict(), indent=_JSON_INDENT, ensure_ascii=False)
        directory = self._state_file.parent
        temp_path: Optional[str] = None
        try:
            handle, temp_path = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=directory)
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(payload)
                stream.flush()
                os.fsync(stream.fileno())
            os.replace(temp_path, self._state_file)
            temp_path = None
        except OSError as exc:
            raise PersistenceError(f"Unable to write state file '{self._state_file}': {exc}") from exc
        finally:
            if temp_path is not None:
                try:
                    os.unlink(temp_path)
                except OSError:
                    LOGGER.warning("Could not remove staged state file %s", temp_path)
        LOGGER.debug("Committed state document to %s", self._state_file)


class InMemoryDocumentStore(DocumentStore):
    """Document store that keeps the serialized document in memory."""

    def __init__(self, document: Optional[AppDocument] = None) -> None:
        super().__init__()
        self._data: Dict[str, Any] = (document or AppDocument.default()).to_dict()

    def _load(self) -> AppDocument:
        return AppDocument.from_dict(self._data)

    def _persist(self, document: AppDocument) -> None:
        self._data = document.to_dict()


__all__ = ["AtomicDocumentStore", "DocumentStore", "InMemoryDocumentStore", "Transaction"]
