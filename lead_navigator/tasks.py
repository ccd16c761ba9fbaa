"""Task lifecycle management.

Tasks move through ``draft -> pending/queued -> running -> completed/failed``.
``completed`` and ``failed`` are terminal by convention only; callers may move
a task back to ``draft`` or ``pending`` to run it again, and the status resets
below take care of clearing the previous run.

Every operation here is a single repository transaction.  Reads normalize
``type`` and ``payload`` on the way out without writing the defaults back.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import NotFoundError, ValidationError
from .models import (
    AccountFollowersPayload,
    AutomationSettings,
    PostEngagementPayload,
    ProfileScrapePayload,
    SalesNavigatorPayload,
    SearchTask,
    TaskStatus,
    TaskType,
    payload_from_dict,
    utcnow,
)
from .repository import StateRepository

LOGGER = logging.getLogger(__name__)

DEFAULT_TASK_NAMES = {
    TaskType.ACCOUNT_FOLLOWERS: "Account Followers",
    TaskType.POST_ENGAGEMENT: "Post Engagement",
    TaskType.PROFILE_SCRAPE: "Profile List",
}

RUNNABLE_STATUSES = (TaskStatus.PENDING, TaskStatus.QUEUED)

SUPPORTED_TASK_TYPES = frozenset(TaskType)

_TASK_FIELDS = frozenset(f.name for f in fields(SearchTask))
_FROZEN_AFTER_DRAFT = frozenset({"settings_snapshot", "type", "preset_id", "payload", "created_at"})
_DATETIME_FIELDS = ("created_at", "scheduled_for", "started_at", "completed_at")

StatusLike = Union[TaskStatus, str]


def with_defaults(task: SearchTask) -> SearchTask:
    """Return ``task`` with a missing ``type`` or ``payload`` filled in."""

    task_type = task.type or TaskType.SALES_NAVIGATOR
    payload = task.payload if task.payload is not None else payload_from_dict(task_type, None)
    return replace(task, type=task_type, payload=payload)


def _clean_urls(urls: Iterable[str], label: str) -> List[str]:
    cleaned = [str(url).strip() for url in urls or [] if str(url).strip()]
    if not cleaned:
        raise ValidationError(f"At least one {label} URL is required")
    return cleaned


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # naive values are read as UTC, the same as timestamps loaded from disk
    if value is not None and not isinstance(value, datetime):
        raise ValidationError(f"Expected a datetime, got {value!r}")
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _require_preset_id(preset_id: str) -> str:
    if not preset_id or not str(preset_id).strip():
        raise ValidationError("A preset id is required for Sales Navigator tasks")
    return str(preset_id).strip()


def _check_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(patch) - _TASK_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(unknown)}")
    if "id" in patch:
        raise ValidationError("Task ids cannot be changed")
    values = dict(patch)
    if "status" in values:
        try:
            values["status"] = TaskStatus.parse(values["status"])
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    if "type" in values and values["type"] is not None:
        values["type"] = TaskType(values["type"])
    if isinstance(values.get("settings_snapshot"), AutomationSettings):
        values["settings_snapshot"] = values["settings_snapshot"].snapshot()
    for name in _DATETIME_FIELDS:
        if name in values:
            values[name] = _as_utc(values[name])
    if "result_lead_ids" in values:
        values["result_lead_ids"] = list(values["result_lead_ids"] or [])
    return values


def _check_frozen(task: SearchTask, values: Mapping[str, Any]) -> None:
    frozen = _FROZEN_AFTER_DRAFT.intersection(values)
    if frozen and task.status is not TaskStatus.DRAFT:
        raise ValidationError(f"Cannot change {', '.join(sorted(frozen))} on a task that has left draft")


class TaskLifecycleManager:
    """Create tasks and move them through their state machine."""

    def __init__(self, repository: StateRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # Reads
    def list(self) -> List[SearchTask]:
        return [with_defaults(task) for task in self._repository.list_tasks()]

    def get(self, task_id: str) -> SearchTask:
        task = self._repository.find_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return with_defaults(task)

    # ------------------------------------------------------------------
    # Creation
    def create_draft(
        self,
        preset_id: str,
        settings: AutomationSettings,
        name: Optional[str] = None,
        payload: Optional[SalesNavigatorPayload] = None,
    ) -> SearchTask:
        task = SearchTask(
            id=str(uuid.uuid4()),
            type=TaskType.SALES_NAVIGATOR,
            preset_id=_require_preset_id(preset_id),
            status=TaskStatus.DRAFT,
            created_at=utcnow(),
            name=name,
            result_lead_ids=[],
            settings_snapshot=settings.snapshot(),
            payload=payload,
        )
        return self._save_new(task)

    def queue(
        self,
        preset_id: str,
        settings: AutomationSettings,
        scheduled_for: Optional[datetime] = None,
    ) -> SearchTask:
        """Create a Sales Navigator task that is immediately ``pending``."""

        task = SearchTask(
            id=str(uuid.uuid4()),
            type=TaskType.SALES_NAVIGATOR,
            preset_id=_require_preset_id(preset_id),
            status=TaskStatus.PENDING,
            created_at=utcnow(),
            scheduled_for=_as_utc(scheduled_for) or utcnow(),
            settings_snapshot=settings.snapshot(),
            result_lead_ids=[],
        )
        return self._save_new(task)

    def create_accounts_task(
        self,
        settings: AutomationSettings,
        account_urls: Iterable[str],
        *,
        name: Optional[str] = None,
        target_lead_list_name: Optional[str] = None,
    ) -> SearchTask:
        payload = AccountFollowersPayload(
            account_urls=_clean_urls(account_urls, "account"),
            target_lead_list_name=target_lead_list_name,
        )
        return self._create_typed(TaskType.ACCOUNT_FOLLOWERS, settings, payload, name)

    def create_post_task(
        self,
        settings: AutomationSettings,
        post_urls: Iterable[str],
        *,
        scrape_reactions: bool,
        scrape_commenters: bool,
        name: Optional[str] = None,
        target_lead_list_name: Optional[str] = None,
    ) -> SearchTask:
        if not scrape_reactions and not scrape_commenters:
            raise ValidationError("Select at least one engagement type (reactions or commenters)")
        payload = PostEngagementPayload(
            post_urls=_clean_urls(post_urls, "post"),
            scrape_reactions=scrape_reactions,
            scrape_commenters=scrape_commenters,
            target_lead_list_name=target_lead_list_name,
        )
        return self._create_typed(TaskType.POST_ENGAGEMENT, settings, payload, name)

    def create_profile_task(
        self,
        settings: AutomationSettings,
        profile_urls: Iterable[str],
        *,
        name: Optional[str] = None,
        target_lead_list_name: Optional[str] = None,
    ) -> SearchTask:
        payload = ProfileScrapePayload(
            profile_urls=_clean_urls(profile_urls, "profile"),
            target_lead_list_name=target_lead_list_name,
        )
        return self._create_typed(TaskType.PROFILE_SCRAPE, settings, payload, name)

    def _create_typed(self, task_type: TaskType, settings: AutomationSettings, payload, name: Optional[str]) -> SearchTask:
        task = SearchTask(
            id=str(uuid.uuid4()),
            type=task_type,
            status=TaskStatus.DRAFT,
            created_at=utcnow(),
            name=name if name is not None else DEFAULT_TASK_NAMES[task_type],
            result_lead_ids=[],
            settings_snapshot=settings.snapshot(),
            payload=payload,
        )
        return self._save_new(task)

    def _save_new(self, task: SearchTask) -> SearchTask:
        saved = self._repository.save_task(task)
        LOGGER.info("Created %s task %s with status %s", saved.type.value, saved.id, saved.status.value)
        return with_defaults(saved)

    # ------------------------------------------------------------------
    # Mutation
    def update(self, task_id: str, patch: Mapping[str, Any]) -> SearchTask:
        """Shallow-merge ``patch`` onto the task; no status side effects."""

        values = _check_patch(patch)

        def apply(task: SearchTask) -> SearchTask:
            _check_frozen(task, values)
            return replace(task, **values)

        return with_defaults(self._repository.mutate_task(task_id, apply))

    def update_status(
        self,
        task_id: str,
        status: StatusLike,
        updates: Optional[Mapping[str, Any]] = None,
    ) -> SearchTask:
        """Merge ``updates``, force ``status`` and apply the status-specific resets."""

        try:
            target = TaskStatus.parse(status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        values = _check_patch(updates or {})
        values.pop("status", None)

        def apply(task: SearchTask) -> SearchTask:
            previous = task.status
            _check_frozen(task, values)
            updated = replace(task, **values)
            updated.status = target
            if target is TaskStatus.DRAFT:
                updated.scheduled_for = None
                updated.started_at = None
                updated.completed_at = None
                updated.error_message = None
                updated.result_lead_ids = []
            elif target in RUNNABLE_STATUSES:
                updated.scheduled_for = values.get("scheduled_for") or task.scheduled_for or utcnow()
                updated.started_at = None
                updated.completed_at = None
                updated.error_message = None
                updated.result_lead_ids = []
            LOGGER.debug("Task %s %s -> %s", task.id, previous.value, target.value)
            return updated

        return with_defaults(self._repository.mutate_task(task_id, apply))

    def delete(self, task_id: str) -> None:
        self._repository.delete_task(task_id)

    # ------------------------------------------------------------------
    # Scheduling helpers
    def claim_due(
        self,
        *,
        now: Optional[datetime] = None,
        limit: int = 1,
        exclude: Collection[str] = (),
        supported_types: Collection[TaskType] = SUPPORTED_TASK_TYPES,
    ) -> List[SearchTask]:
        """Flip up to ``limit`` due tasks to ``running`` and return them.

        A task is due when it is ``pending`` or ``queued`` and its
        ``scheduled_for`` is unset or not after ``now``.  Earliest schedules
        are claimed first.
        """

        if limit <= 0:
            return []
        moment = _as_utc(now) or utcnow()
        excluded = set(exclude)

        def apply(tasks: List[SearchTask]) -> Tuple[List[SearchTask], List[SearchTask]]:
            due = [
                (index, task)
                for index, task in enumerate(tasks)
                if task.status in RUNNABLE_STATUSES
                and (task.type or TaskType.SALES_NAVIGATOR) in supported_types
                and task.id not in excluded
                and (task.scheduled_for is None or task.scheduled_for <= moment)
            ]
            due.sort(key=lambda pair: pair[1].scheduled_for.timestamp() if pair[1].scheduled_for else 0.0)
            claimed: List[SearchTask] = []
            for index, task in due[:limit]:
                running = replace(task, status=TaskStatus.RUNNING, started_at=moment)
                tasks[index] = running
                claimed.append(running)
            return tasks, claimed

        claimed = self._repository.mutate_tasks(apply)
        if claimed:
            LOGGER.info("Claimed %s due task(s): %s", len(claimed), ", ".join(task.id for task in claimed))
        return [with_defaults(task) for task in claimed]

    def complete(self, task_id: str, lead_ids: Iterable[str]) -> SearchTask:
        return self.update_status(
            task_id,
            TaskStatus.COMPLETED,
            {"completed_at": utcnow(), "result_lead_ids": list(lead_ids), "error_message": None},
        )

    def fail(self, task_id: str, message: str) -> SearchTask:
        return self.update_status(
            task_id,
            TaskStatus.FAILED,
            {"completed_at": utcnow(), "error_message": message},
        )


__all__ = [
    "DEFAULT_TASK_NAMES",
    "RUNNABLE_STATUSES",
    "SUPPORTED_TASK_TYPES",
    "TaskLifecycleManager",
    "with_defaults",
]
