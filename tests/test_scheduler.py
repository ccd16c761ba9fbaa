from __future__ import annotations

from datetime import timedelta

import pytest

from lead_navigator.models import (
    AccountFollowersPayload,
    AutomationSettings,
    LeadRecord,
    PostEngagementPayload,
    ProfileScrapePayload,
    QuietHours,
    SearchTask,
    TaskStatus,
    TaskType,
    utcnow,
)
from lead_navigator.orchestrator import AutomationScheduler
from lead_navigator.tasks import TaskLifecycleManager


class FakeScraper:
    def __init__(self, settings, leads=None, error=None) -> None:
        self.settings = settings
        self.leads = leads or []
        self.error = error
        self.calls = []
        self.closed = False

    def run_search(self, preset, task_name=None):
        self.calls.append({"preset": preset, "task_name": task_name})
        return self._result()

    def scrape(self, **kwargs):
        self.calls.append(kwargs)
        return self._result()

    def _result(self):
        if self.error is not None:
            raise self.error
        return list(self.leads)

    def close(self) -> None:
        self.closed = True


class Factory:
    """Build fake scrapers and remember them for assertions."""

    def __init__(self, leads=None, error=None) -> None:
        self.leads = leads
        self.error = error
        self.built = []

    def __call__(self, settings):
        scraper = FakeScraper(settings, self.leads, self.error)
        self.built.append(scraper)
        return scraper


def _lead(lead_id: str, slug: str) -> LeadRecord:
    return LeadRecord(id=lead_id, profile_url=f"https://www.linkedin.com/in/{slug}/", full_name=slug.title())


def _settings(**overrides) -> AutomationSettings:
    values = {
        "enabled": True,
        "min_delay_ms": 0,
        "max_delay_ms": 0,
        "respect_quiet_hours": False,
        "concurrent_searches": 2,
    }
    values.update(overrides)
    return AutomationSettings(**values)


def _scheduler(repository, factory, **kwargs) -> AutomationScheduler:
    factories = {task_type: factory for task_type in TaskType}
    return AutomationScheduler(repository, scraper_factories=factories, max_workers=2, **kwargs)


def _claim(manager: TaskLifecycleManager) -> SearchTask:
    (task,) = manager.claim_due(limit=1)
    return task


def test_sales_navigator_task_completes_and_records_preset_run(repository) -> None:
    manager = TaskLifecycleManager(repository)
    preset = repository.create_search_preset(name="Founders")
    factory = Factory(leads=[_lead("a", "alice"), _lead("b", "bob")])
    manager.queue(preset.id, _settings())

    with _scheduler(repository, factory) as scheduler:
        finished = scheduler.run_task(_claim(manager))

    assert finished.status is TaskStatus.COMPLETED
    assert finished.result_lead_ids == ["a", "b"]
    assert [lead.id for lead in repository.list_leads()] == ["a", "b"]
    assert repository.find_search_preset(preset.id).last_result_count == 2
    scraper = factory.built[0]
    assert scraper.calls[0]["preset"].id == preset.id
    assert scraper.closed


@pytest.mark.parametrize(
    "task_type,payload,expected",
    [
        (
            TaskType.ACCOUNT_FOLLOWERS,
            AccountFollowersPayload(account_urls=["https://www.linkedin.com/company/acme"], target_lead_list_name="A"),
            {"account_urls": ["https://www.linkedin.com/company/acme"], "lead_list_name": "A", "max_profiles": 25},
        ),
        (
            TaskType.POST_ENGAGEMENT,
            PostEngagementPayload(post_urls=["https://www.linkedin.com/posts/1/"], scrape_commenters=True),
            {"post_urls": ["https://www.linkedin.com/posts/1/"], "scrape_reactions": False, "scrape_commenters": True},
        ),
        (
            TaskType.PROFILE_SCRAPE,
            ProfileScrapePayload(profile_urls=["https://www.linkedin.com/in/a/"]),
            {"profile_urls": ["https://www.linkedin.com/in/a/"], "lead_list_name": None},
        ),
    ],
)
def test_typed_tasks_dispatch_payload_to_their_scraper(repository, task_type, payload, expected) -> None:
    manager = TaskLifecycleManager(repository)
    repository.save_task(
        SearchTask(
            id="task-1",
            type=task_type,
            status=TaskStatus.PENDING,
            settings_snapshot=_settings(),
            name="Typed",
            payload=payload,
        )
    )
    factory = Factory(leads=[_lead("x", "xavier")])

    with _scheduler(repository, factory) as scheduler:
        finished = scheduler.run_task(_claim(manager))

    assert finished.status is TaskStatus.COMPLETED
    call = factory.built[0].calls[0]
    assert call["task_id"] == "task-1"
    assert call["task_name"] == "Typed"
    for key, value in expected.items():
        assert call[key] == value


@pytest.mark.parametrize(
    "task_type,payload,message",
    [
        (TaskType.SALES_NAVIGATOR, None, "Preset not found"),
        (TaskType.ACCOUNT_FOLLOWERS, AccountFollowersPayload(), "No account URLs provided"),
        (TaskType.POST_ENGAGEMENT, PostEngagementPayload(), "No post URLs provided"),
        (
            TaskType.POST_ENGAGEMENT,
            PostEngagementPayload(post_urls=["https://www.linkedin.com/posts/1/"]),
            "Select at least one engagement type",
        ),
        (TaskType.PROFILE_SCRAPE, ProfileScrapePayload(), "No profile URLs provided"),
    ],
)
def test_missing_input_fails_without_opening_a_browser(repository, task_type, payload, message) -> None:
    manager = TaskLifecycleManager(repository)
    repository.save_task(
        SearchTask(
            id="task-1",
            type=task_type,
            preset_id="missing-preset" if task_type is TaskType.SALES_NAVIGATOR else None,
            status=TaskStatus.PENDING,
            settings_snapshot=_settings(),
            payload=payload,
        )
    )
    factory = Factory()

    with _scheduler(repository, factory) as scheduler:
        finished = scheduler.run_task(_claim(manager))

    assert finished.status is TaskStatus.FAILED
    assert finished.error_message == message
    assert finished.completed_at is not None
    assert factory.built == []


def test_scraper_error_marks_task_failed_and_closes_browser(repository) -> None:
    manager = TaskLifecycleManager(repository)
    preset = repository.create_search_preset(name="Founders")
    manager.queue(preset.id, _settings())
    factory = Factory(error=RuntimeError("LinkedIn changed its markup"))

    with _scheduler(repository, factory) as scheduler:
        finished = scheduler.run_task(_claim(manager))

    assert finished.status is TaskStatus.FAILED
    assert finished.error_message == "LinkedIn changed its markup"
    assert repository.list_leads() == []
    assert repository.find_search_preset(preset.id).last_run_at is None
    assert factory.built[0].closed


@pytest.mark.parametrize("error", [None, RuntimeError("session expired")])
def test_task_deleted_mid_run_is_dropped_quietly(repository, error) -> None:
    manager = TaskLifecycleManager(repository)
    repository.save_automation_settings(_settings())
    preset = repository.create_search_preset(name="Founders")
    task = manager.queue(preset.id, _settings())
    factory = Factory(leads=[_lead("a", "alice")], error=error)

    def build(settings):
        # the user deletes the task while its browser is open
        manager.delete(task.id)
        return factory(settings)

    with _scheduler(repository, build) as scheduler:
        (future,) = scheduler.tick()
        result = future.result(timeout=5)

    assert result is None
    assert manager.list() == []
    assert scheduler.active_task_ids == set()
    assert factory.built[0].closed
    if error is None:
        assert [lead.id for lead in repository.list_leads()] == ["a"]


def test_tick_runs_due_tasks_on_workers(repository) -> None:
    manager = TaskLifecycleManager(repository)
    repository.save_automation_settings(_settings())
    preset = repository.create_search_preset(name="Founders")
    first = manager.queue(preset.id, _settings(), scheduled_for=utcnow() - timedelta(minutes=5))
    manager.queue(preset.id, _settings(), scheduled_for=utcnow() + timedelta(hours=1))
    factory = Factory(leads=[_lead("a", "alice")])

    with _scheduler(repository, factory) as scheduler:
        futures = scheduler.tick()
        results = [future.result(timeout=5) for future in futures]

    assert [task.id for task in results] == [first.id]
    assert manager.get(first.id).status is TaskStatus.COMPLETED
    assert scheduler.active_task_ids == set()


def test_tick_respects_concurrency(repository) -> None:
    manager = TaskLifecycleManager(repository)
    repository.save_automation_settings(_settings(concurrent_searches=1))
    preset = repository.create_search_preset(name="Founders")
    for _ in range(3):
        manager.queue(preset.id, _settings())

    with _scheduler(repository, Factory()) as scheduler:
        futures = scheduler.tick()
        for future in futures:
            future.result(timeout=5)

    assert len(futures) == 1
    statuses = sorted(task.status.value for task in manager.list())
    assert statuses == ["completed", "pending", "pending"]


def test_disabled_automation_starts_nothing(repository) -> None:
    manager = TaskLifecycleManager(repository)
    repository.save_automation_settings(_settings(enabled=False))
    preset = repository.create_search_preset(name="Founders")
    manager.queue(preset.id, _settings())

    with _scheduler(repository, Factory()) as scheduler:
        assert scheduler.tick() == []

    assert manager.list()[0].status is TaskStatus.PENDING


def test_quiet_hours_block_ticks_unless_bypassed(repository) -> None:
    manager = TaskLifecycleManager(repository)
    # start == end means the quiet window covers the whole day
    always_quiet = _settings(respect_quiet_hours=True, quiet_hours=QuietHours(start_hour=0, end_hour=0))
    repository.save_automation_settings(always_quiet)
    preset = repository.create_search_preset(name="Founders")
    manager.queue(preset.id, _settings())

    with _scheduler(repository, Factory()) as scheduler:
        assert scheduler.tick() == []
        futures = scheduler.tick(bypass_quiet_hours=True)
        for future in futures:
            future.result(timeout=5)

    assert len(futures) == 1


def test_daily_search_limit_counts_completed_tasks(repository) -> None:
    manager = TaskLifecycleManager(repository)
    settings = _settings(daily_search_limit=1)
    repository.save_automation_settings(settings)
    preset = repository.create_search_preset(name="Founders")
    done = manager.queue(preset.id, settings)
    manager.complete(done.id, [])
    manager.queue(preset.id, settings)

    with _scheduler(repository, Factory()) as scheduler:
        assert scheduler.available_slots(settings) == 0
        assert scheduler.tick() == []
        assert scheduler.available_slots(settings, bypass_daily_limits=True) == 2


def test_daily_lead_cap_counts_leads_captured_today(repository) -> None:
    settings = _settings(daily_lead_cap=2)
    repository.append_leads([_lead("a", "alice"), _lead("b", "bob")])
    old = _lead("c", "carol")
    old.captured_at = utcnow() - timedelta(days=3)
    repository.append_leads([old])

    with _scheduler(repository, Factory()) as scheduler:
        assert scheduler.available_slots(settings) == 0
        assert scheduler.available_slots(_settings(daily_lead_cap=3)) == 2


def test_remaining_searches_cap_the_slots(repository) -> None:
    settings = _settings(concurrent_searches=4, daily_search_limit=3)
    manager = TaskLifecycleManager(repository)
    preset = repository.create_search_preset(name="Founders")
    done = manager.queue(preset.id, settings)
    manager.complete(done.id, [])

    with _scheduler(repository, Factory()) as scheduler:
        assert scheduler.available_slots(settings) == 2
