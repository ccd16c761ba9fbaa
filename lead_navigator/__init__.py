"""Top-level package for the LinkedIn prospecting automation toolkit."""

from . import models  # noqa: F401
from .errors import LeadNavigatorError, NotFoundError, PersistenceError, ValidationError
from .models import (
    AppDocument,
    AutomationSettings,
    ICPProfile,
    LeadRecord,
    SearchFilters,
    SearchPreset,
    SearchTask,
    TaskStatus,
    TaskType,
)
from .presets import PresetService
from .repository import StateRepository
from .store import AtomicDocumentStore, InMemoryDocumentStore
from .tasks import TaskLifecycleManager

__all__ = [
    "AppDocument",
    "AtomicDocumentStore",
    "AutomationSettings",
    "ICPProfile",
    "InMemoryDocumentStore",
    "LeadNavigatorError",
    "LeadRecord",
    "NotFoundError",
    "PersistenceError",
    "PresetService",
    "SearchFilters",
    "SearchPreset",
    "SearchTask",
    "StateRepository",
    "TaskLifecycleManager",
    "TaskStatus",
    "TaskType",
    "ValidationError",
    "orchestrator",
    "parsers",
]
