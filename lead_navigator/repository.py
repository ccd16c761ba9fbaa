"""Typed domain operations over the state document.

Each public method is exactly one store transaction (or one plain read).  The
repository never holds on to a document between calls.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .errors import NotFoundError
from .merge import merge_leads
from .models import (
    AppDocument,
    AutomationSettings,
    ICPProfile,
    LeadRecord,
    SearchFilters,
    SearchPreset,
    SearchTask,
    utcnow,
)
from .store import DocumentStore

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _index_of(items: Sequence[T], identifier: str) -> int:
    for index, item in enumerate(items):
        if getattr(item, "id") == identifier:
            return index
    return -1


class StateRepository:
    """Read and mutate the profile, presets, tasks, leads and settings."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    def get_state(self) -> AppDocument:
        return self._store.read()

    def reset(self) -> None:
        self._store.write(AppDocument.default())

    # ------------------------------------------------------------------
    # Ideal customer profile
    def get_icp(self) -> ICPProfile:
        return self._store.read().icp

    def save_icp(self, icp: ICPProfile) -> ICPProfile:
        def apply(document: AppDocument) -> Tuple[AppDocument, ICPProfile]:
            document.icp = icp
            return document, icp

        return self._store.update(apply)

    # ------------------------------------------------------------------
    # Search presets
    def list_search_presets(self) -> List[SearchPreset]:
        return self._store.read().search_presets

    def find_search_preset(self, preset_id: str) -> Optional[SearchPreset]:
        presets = self._store.read().search_presets
        index = _index_of(presets, preset_id)
        return presets[index] if index != -1 else None

    def create_search_preset(
        self,
        *,
        name: str,
        filters: Optional[SearchFilters] = None,
        description: Optional[str] = None,
        linked_icp: bool = False,
        page_limit: Optional[int] = None,
    ) -> SearchPreset:
        now = utcnow()
        preset = SearchPreset(
            id=str(uuid.uuid4()),
            name=name,
            filters=filters or SearchFilters(),
            description=description,
            linked_icp=linked_icp,
            created_at=now,
            updated_at=now,
            page_limit=page_limit,
        )

        def apply(document: AppDocument) -> Tuple[AppDocument, SearchPreset]:
            document.search_presets.append(preset)
            return document, preset

        created = self._store.update(apply)
        LOGGER.info("Created search preset %s (%s)", created.id, created.name)
        return created

    def update_search_preset(
        self, preset_id: str, updater: Callable[[SearchPreset], SearchPreset]
    ) -> SearchPreset:
        """Replace a preset with ``updater(previous)``, keeping its id and bumping ``updated_at``."""

        return self.update_search_preset_with_icp(preset_id, lambda preset, _icp: updater(preset))

    def update_search_preset_with_icp(
        self, preset_id: str, updater: Callable[[SearchPreset, ICPProfile], SearchPreset]
    ) -> SearchPreset:
        """Like :meth:`update_search_preset`, also handing ``updater`` the ICP stored alongside."""

        def apply(document: AppDocument) -> Tuple[AppDocument, SearchPreset]:
            index = _index_of(document.search_presets, preset_id)
            if index == -1:
                raise NotFoundError("Preset", preset_id)
            updated = replace(
                updater(document.search_presets[index], document.icp),
                id=preset_id,
                updated_at=utcnow(),
            )
            document.search_presets[index] = updated
            return document, updated

        return self._store.update(apply)

    def delete_search_preset(self, preset_id: str) -> None:
        def apply(document: AppDocument) -> Tuple[AppDocument, None]:
            document.search_presets = [p for p in document.search_presets if p.id != preset_id]
            return document, None

        self._store.update(apply)

    # ------------------------------------------------------------------
    # Tasks
    def list_tasks(self) -> List[SearchTask]:
        return self._store.read().tasks

    def find_task(self, task_id: str) -> Optional[SearchTask]:
        tasks = self._store.read().tasks
        index = _index_of(tasks, task_id)
        return tasks[index] if index != -1 else None

    def save_task(self, task: SearchTask) -> SearchTask:
        """Replace the task with the same id in place, or append it."""

        def apply(document: AppDocument) -> Tuple[AppDocument, SearchTask]:
            index = _index_of(document.tasks, task.id)
            if index == -1:
                document.tasks.append(task)
            else:
                document.tasks[index] = task
            return document, task

        return self._store.update(apply)

    def mutate_task(self, task_id: str, mutator: Callable[[SearchTask], SearchTask]) -> SearchTask:
        """Read, transform and save one task inside a single transaction."""

        def apply(document: AppDocument) -> Tuple[AppDocument, SearchTask]:
            index = _index_of(document.tasks, task_id)
            if index == -1:
                raise NotFoundError("Task", task_id)
            updated = mutator(document.tasks[index])
            document.tasks[index] = updated
            return document, updated

        return self._store.update(apply)

    def mutate_tasks(
        self, mutator: Callable[[List[SearchTask]], Tuple[List[SearchTask], T]]
    ) -> T:
        """Transform the whole task list inside a single transaction."""

        def apply(document: AppDocument) -> Tuple[AppDocument, T]:
            document.tasks, result = mutator(document.tasks)
            return document, result

        return self._store.update(apply)

    def delete_task(self, task_id: str) -> None:
        def apply(document: AppDocument) -> Tuple[AppDocument, None]:
            document.tasks = [task for task in document.tasks if task.id != task_id]
            return document, None

        self._store.update(apply)

    # ------------------------------------------------------------------
    # Leads
    def append_leads(self, leads: Iterable[LeadRecord]) -> List[LeadRecord]:
        """Merge ``leads`` into the stored list and return the caller's input."""

        incoming = list(leads)

        def apply(document: AppDocument) -> Tuple[AppDocument, List[LeadRecord]]:
            before = len(document.leads)
            document.leads = merge_leads(document.leads, incoming)
            LOGGER.debug(
                "Merged %s incoming leads; stored count %s -> %s",
                len(incoming),
                before,
                len(document.leads),
            )
            return document, incoming

        return self._store.update(apply)

    def list_leads(self) -> List[LeadRecord]:
        return self._store.read().leads

    def update_lead(self, lead_id: str, updater: Callable[[LeadRecord], LeadRecord]) -> LeadRecord:
        def apply(document: AppDocument) -> Tuple[AppDocument, LeadRecord]:
            index = _index_of(document.leads, lead_id)
            if index == -1:
                raise NotFoundError("Lead", lead_id)
            updated = replace(updater(document.leads[index]), id=lead_id)
            document.leads[index] = updated
            return document, updated

        return self._store.update(apply)

    def delete_leads(self, lead_ids: Iterable[str]) -> int:
        doomed = set(lead_ids)

        def apply(document: AppDocument) -> Tuple[AppDocument, int]:
            kept = [lead for lead in document.leads if lead.id not in doomed]
            removed = len(document.leads) - len(kept)
            document.leads = kept
            return document, removed

        return self._store.update(apply)

    # ------------------------------------------------------------------
    # Automation settings
    def get_automation_settings(self) -> AutomationSettings:
        return self._store.read().automation_settings

    def save_automation_settings(self, settings: AutomationSettings) -> AutomationSettings:
        def apply(document: AppDocument) -> Tuple[AppDocument, AutomationSettings]:
            document.automation_settings = settings.snapshot()
            return document, settings

        return self._store.update(apply)


__all__ = ["StateRepository"]
