from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from lead_navigator.errors import NotFoundError, ValidationError
from lead_navigator.models import (
    AutomationSettings,
    PostEngagementPayload,
    SalesNavigatorPayload,
    SearchTask,
    TaskStatus,
    TaskType,
    utcnow,
)
from lead_navigator.tasks import TaskLifecycleManager


@pytest.fixture
def manager(repository) -> TaskLifecycleManager:
    return TaskLifecycleManager(repository)


def test_create_draft_snapshots_settings(manager, settings) -> None:
    task = manager.create_draft("preset-1", settings, name="Weekly")

    assert task.status is TaskStatus.DRAFT
    assert task.type is TaskType.SALES_NAVIGATOR
    assert task.result_lead_ids == []
    assert task.settings_snapshot == settings
    assert task.settings_snapshot is not settings


def test_queue_defaults_to_pending_now(manager, settings) -> None:
    before = utcnow()
    task = manager.queue("preset-1", settings)

    assert task.status is TaskStatus.PENDING
    assert before <= task.scheduled_for <= utcnow()
    assert task.name is None


def test_queued_snapshot_ignores_later_settings_changes(manager, repository) -> None:
    live = AutomationSettings(min_delay_ms=1000, max_delay_ms=2000)
    expected = AutomationSettings(min_delay_ms=1000, max_delay_ms=2000)
    task = manager.queue("preset-1", live)

    live.min_delay_ms = 5
    live.automation_modes.clear()
    repository.save_automation_settings(live)

    assert manager.get(task.id).settings_snapshot == expected


def test_typed_tasks_get_default_names(manager, settings) -> None:
    accounts = manager.create_accounts_task(settings, ["https://www.linkedin.com/company/acme/"])
    posts = manager.create_post_task(
        settings, ["https://www.linkedin.com/posts/1"], scrape_reactions=True, scrape_commenters=False
    )
    profiles = manager.create_profile_task(settings, ["https://www.linkedin.com/in/a/"], target_lead_list_name="VIP")

    assert (accounts.name, posts.name, profiles.name) == ("Account Followers", "Post Engagement", "Profile List")
    assert all(task.status is TaskStatus.DRAFT for task in (accounts, posts, profiles))
    assert isinstance(posts.payload, PostEngagementPayload)
    assert profiles.payload.target_lead_list_name == "VIP"


def test_typed_tasks_validate_input(manager, settings) -> None:
    with pytest.raises(ValidationError):
        manager.create_accounts_task(settings, ["  "])
    with pytest.raises(ValidationError):
        manager.create_post_task(settings, ["https://x/p"], scrape_reactions=False, scrape_commenters=False)
    with pytest.raises(ValidationError):
        manager.create_draft("", settings)
    assert manager.list() == []


def test_reads_fill_in_missing_type_and_payload(manager, repository, settings) -> None:
    repository.save_task(SearchTask(id="legacy", status=TaskStatus.DRAFT, settings_snapshot=settings, type=None))

    task = manager.get("legacy")

    assert task.type is TaskType.SALES_NAVIGATOR
    assert task.payload == SalesNavigatorPayload()
    assert repository.find_task("legacy").type is None


def test_draft_reset_clears_run_fields(manager, settings) -> None:
    task = manager.queue("preset-1", settings)
    manager.update_status(
        task.id,
        TaskStatus.FAILED,
        {"error_message": "x", "started_at": utcnow(), "completed_at": utcnow(), "result_lead_ids": ["id1"]},
    )

    reset = manager.update_status(task.id, "draft")

    assert reset.status is TaskStatus.DRAFT
    assert reset.error_message is None
    assert reset.scheduled_for is None
    assert reset.started_at is None
    assert reset.completed_at is None
    assert reset.result_lead_ids == []


def test_pending_keeps_or_sets_schedule(manager, settings) -> None:
    later = utcnow() + timedelta(hours=2)
    draft = manager.create_draft("preset-1", settings)

    requeued = manager.update_status(draft.id, TaskStatus.QUEUED, {"scheduled_for": later})
    assert requeued.scheduled_for == later

    again = manager.update_status(draft.id, TaskStatus.PENDING)
    assert again.scheduled_for == later
    assert again.status is TaskStatus.PENDING


def test_running_applies_updates_without_resets(manager, settings) -> None:
    task = manager.queue("preset-1", settings)
    started = utcnow()

    running = manager.update_status(task.id, TaskStatus.RUNNING, {"started_at": started})

    assert running.started_at == started
    assert running.scheduled_for == task.scheduled_for


def test_missing_task_raises_not_found_and_changes_nothing(manager, repository, settings) -> None:
    manager.queue("preset-1", settings)
    before = repository.get_state()

    with pytest.raises(NotFoundError):
        manager.update("missing-id", {"name": "x"})
    with pytest.raises(NotFoundError):
        manager.update_status("missing-id", TaskStatus.RUNNING)
    assert repository.get_state() == before


def test_update_rejects_unknown_fields_and_frozen_settings(manager, settings) -> None:
    task = manager.queue("preset-1", settings)

    with pytest.raises(ValidationError):
        manager.update(task.id, {"colour": "blue"})
    with pytest.raises(ValidationError):
        manager.update(task.id, {"settings_snapshot": AutomationSettings(headless=False)})
    assert manager.update(task.id, {"name": "Renamed"}).name == "Renamed"


def test_status_change_cannot_smuggle_frozen_fields(manager, settings) -> None:
    task = manager.queue("preset-1", settings)

    with pytest.raises(ValidationError, match="settings_snapshot"):
        manager.update_status(task.id, TaskStatus.RUNNING, {"settings_snapshot": AutomationSettings(headless=False)})
    with pytest.raises(ValidationError, match="preset_id"):
        manager.update_status(task.id, TaskStatus.DRAFT, {"preset_id": "preset-2"})

    stored = manager.get(task.id)
    assert stored.status is TaskStatus.PENDING
    assert stored.preset_id == "preset-1"
    assert stored.settings_snapshot.headless is True


def test_draft_can_change_settings_while_being_queued(manager, settings) -> None:
    task = manager.create_draft("preset-1", settings)

    queued = manager.update_status(task.id, TaskStatus.PENDING, {"settings_snapshot": AutomationSettings(headless=False)})

    assert queued.status is TaskStatus.PENDING
    assert queued.settings_snapshot.headless is False


def test_naive_schedule_times_are_stored_as_utc(manager, settings) -> None:
    naive = datetime(2030, 1, 1, 9, 0)

    queued = manager.queue("preset-1", settings, scheduled_for=naive)
    moved = manager.update_status(queued.id, TaskStatus.QUEUED, {"scheduled_for": datetime(2030, 1, 2, 9, 0)})

    assert queued.scheduled_for == datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert moved.scheduled_for == datetime(2030, 1, 2, 9, 0, tzinfo=timezone.utc)
    assert manager.claim_due(now=datetime(2029, 12, 31)) == []
    assert [task.id for task in manager.claim_due(now=datetime(2030, 1, 3))] == [queued.id]
    with pytest.raises(ValidationError):
        manager.update(queued.id, {"scheduled_for": "tomorrow"})


def test_draft_settings_can_still_change(manager, settings) -> None:
    task = manager.create_draft("preset-1", settings)

    updated = manager.update(task.id, {"settings_snapshot": AutomationSettings(headless=False)})

    assert updated.settings_snapshot.headless is False


def test_delete_is_idempotent(manager, settings) -> None:
    task = manager.create_draft("preset-1", settings)

    manager.delete(task.id)
    manager.delete(task.id)

    assert manager.list() == []


def test_claim_due_marks_earliest_tasks_running(manager, settings) -> None:
    now = utcnow()
    late = manager.queue("preset-1", settings, scheduled_for=now - timedelta(minutes=1))
    early = manager.queue("preset-2", settings, scheduled_for=now - timedelta(minutes=10))
    manager.queue("preset-3", settings, scheduled_for=now + timedelta(hours=1))
    manager.create_draft("preset-4", settings)

    claimed = manager.claim_due(now=now, limit=5)

    assert [task.id for task in claimed] == [early.id, late.id]
    assert all(manager.get(task.id).status is TaskStatus.RUNNING for task in claimed)
    assert manager.claim_due(now=now, limit=5) == []


def test_claim_due_accepts_queued_and_respects_exclusions(manager, settings) -> None:
    draft = manager.create_draft("preset-1", settings)
    queued = manager.update_status(draft.id, TaskStatus.QUEUED)

    assert manager.claim_due(limit=1, exclude={queued.id}) == []
    assert [task.id for task in manager.claim_due(limit=1)] == [queued.id]


def test_complete_and_fail_stamp_completion(manager, settings) -> None:
    first = manager.queue("preset-1", settings)
    second = manager.queue("preset-1", settings)

    done = manager.complete(first.id, ["l1", "l2"])
    failed = manager.fail(second.id, "LinkedIn said no")

    assert done.status is TaskStatus.COMPLETED
    assert done.result_lead_ids == ["l1", "l2"]
    assert done.completed_at is not None
    assert failed.status is TaskStatus.FAILED
    assert failed.error_message == "LinkedIn said no"
