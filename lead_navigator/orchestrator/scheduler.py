"""Background scheduler that claims due tasks and runs them on a thread pool."""
from __future__ import annotations

import contextlib
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Set

from ..errors import AutomationError, LeadNavigatorError, NotFoundError
from ..models import (
    AccountFollowersPayload,
    AutomationSettings,
    LeadRecord,
    PostEngagementPayload,
    ProfileScrapePayload,
    SearchTask,
    TaskStatus,
    TaskType,
    utcnow,
)
from ..presets import PresetService
from ..repository import StateRepository
from ..tasks import TaskLifecycleManager

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 45.0


class ClosableScraper(Protocol):
    """Anything the scheduler builds per task; it is closed once the task finishes."""

    def close(self) -> None:  # pragma: no cover - runtime protocol
        """Release the browser."""


ScraperFactory = Callable[[AutomationSettings], ClosableScraper]


def default_scraper_factories() -> Dict[TaskType, ScraperFactory]:
    """Map each task type to its Playwright scraper class."""

    from ..scrapers import (
        AccountFollowersScraper,
        PostEngagementScraper,
        ProfileListScraper,
        SalesNavigatorScraper,
    )

    return {
        TaskType.SALES_NAVIGATOR: SalesNavigatorScraper,
        TaskType.ACCOUNT_FOLLOWERS: AccountFollowersScraper,
        TaskType.POST_ENGAGEMENT: PostEngagementScraper,
        TaskType.PROFILE_SCRAPE: ProfileListScraper,
    }


def _same_local_day(moment: Optional[datetime], now: datetime) -> bool:
    return moment is not None and moment.astimezone().date() == now.astimezone().date()


def _log_worker_crash(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Task worker crashed", exc_info=exc)


class AutomationScheduler:
    """Drive queued tasks through their lifecycle.

    Each :meth:`tick` reads the live automation settings, decides how many
    tasks may start, claims them in a single transaction and hands them to a
    worker thread.  Scraping happens outside any store transaction; only the
    final ``completed``/``failed`` transition and the lead merge write state.
    """

    def __init__(
        self,
        repository: StateRepository,
        tasks: Optional[TaskLifecycleManager] = None,
        presets: Optional[PresetService] = None,
        *,
        scraper_factories: Optional[Mapping[TaskType, ScraperFactory]] = None,
        clock: Callable[[], datetime] = utcnow,
        max_workers: Optional[int] = None,
    ) -> None:
        self._repository = repository
        self._tasks = tasks or TaskLifecycleManager(repository)
        self._presets = presets or PresetService(repository)
        self._factories = dict(scraper_factories) if scraper_factories is not None else None
        self._clock = clock
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lead-navigator")
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    @property
    def active_task_ids(self) -> Set[str]:
        with self._lock:
            return set(self._active)

    # ------------------------------------------------------------------
    # Scheduling
    def available_slots(
        self,
        settings: AutomationSettings,
        *,
        bypass_quiet_hours: bool = False,
        bypass_daily_limits: bool = False,
    ) -> int:
        """How many tasks may start right now under ``settings``."""

        if not settings.enabled and not bypass_daily_limits:
            LOGGER.debug("Automation disabled; skipping tick")
            return 0
        now = self._clock()
        if (
            not bypass_quiet_hours
            and settings.respect_quiet_hours
            and settings.quiet_hours is not None
            and settings.quiet_hours.contains(now.astimezone().hour)
        ):
            LOGGER.info("Inside quiet hours; not starting new tasks")
            return 0

        slots = max(settings.concurrent_searches, 1) - len(self.active_task_ids)
        if bypass_daily_limits:
            return max(slots, 0)

        state = self._repository.get_state()
        searches_today = sum(
            1
            for task in state.tasks
            if task.status == TaskStatus.COMPLETED and _same_local_day(task.completed_at, now)
        )
        if searches_today >= settings.daily_search_limit:
            LOGGER.info("Daily search limit of %s reached", settings.daily_search_limit)
            return 0
        leads_today = sum(1 for lead in state.leads if _same_local_day(lead.captured_at, now))
        if leads_today >= settings.daily_lead_cap:
            LOGGER.info("Daily lead cap of %s reached", settings.daily_lead_cap)
            return 0
        return max(min(slots, settings.daily_search_limit - searches_today), 0)

    def tick(self, *, bypass_quiet_hours: bool = False, bypass_daily_limits: bool = False) -> List[Future]:
        """Claim due tasks and submit them; returns one future per started task."""

        settings = self._repository.get_automation_settings()
        slots = self.available_slots(
            settings, bypass_quiet_hours=bypass_quiet_hours, bypass_daily_limits=bypass_daily_limits
        )
        if slots <= 0:
            return []

        claimed = self._tasks.claim_due(now=self._clock(), limit=slots, exclude=self.active_task_ids)
        futures: List[Future] = []
        for task in claimed:
            with self._lock:
                self._active.add(task.id)
            future = self._executor.submit(self._run_and_release, task)
            future.add_done_callback(_log_worker_crash)
            futures.append(future)
        return futures

    def run_forever(
        self,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        stop = stop_event or threading.Event()
        LOGGER.info("Scheduler polling every %.0f seconds", interval_seconds)
        while not stop.is_set():
            try:
                self.tick()
            except LeadNavigatorError:
                LOGGER.exception("Scheduler tick failed")
            stop.wait(interval_seconds)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Execution
    def _run_and_release(self, task: SearchTask) -> Optional[SearchTask]:
        try:
            return self.run_task(task)
        finally:
            with self._lock:
                self._active.discard(task.id)

    def run_task(self, task: SearchTask) -> Optional[SearchTask]:
        """Run one claimed task and record the outcome on it.

        Returns ``None`` when the task was deleted while it was running; the
        leads it captured are kept.
        """

        LOGGER.info("Running %s task %s", task.type.value if task.type else "unknown", task.id)
        try:
            leads = self._dispatch(task)
            self._repository.append_leads(leads)
            if task.type == TaskType.SALES_NAVIGATOR and task.preset_id:
                self._presets.record_successful_run(task.preset_id, len(leads))
        except Exception as exc:
            LOGGER.exception("Task %s failed", task.id)
            return self._finish(task.id, self._tasks.fail, str(exc) or exc.__class__.__name__)
        LOGGER.info("Task %s completed with %s leads", task.id, len(leads))
        return self._finish(task.id, self._tasks.complete, [lead.id for lead in leads])

    def _finish(self, task_id: str, transition, outcome) -> Optional[SearchTask]:
        try:
            return transition(task_id, outcome)
        except NotFoundError:
            LOGGER.warning("Task %s was deleted while running; dropping its outcome", task_id)
            return None

    def _scraper(self, task_type: TaskType, settings: AutomationSettings) -> ClosableScraper:
        if self._factories is None:
            self._factories = default_scraper_factories()
        factory = self._factories.get(task_type)
        if factory is None:
            raise AutomationError(f"Unsupported task type: {task_type.value}")
        return factory(settings)

    def _dispatch(self, task: SearchTask) -> List[LeadRecord]:
        settings = task.settings_snapshot
        max_profiles = settings.results_per_page if settings.results_per_page > 0 else None
        task_type = task.type or TaskType.SALES_NAVIGATOR
        payload = task.payload

        if task_type == TaskType.SALES_NAVIGATOR:
            preset = self._presets.get(task.preset_id) if task.preset_id else None
            if preset is None:
                raise AutomationError("Preset not found")
            with contextlib.closing(self._scraper(task_type, settings)) as scraper:
                return scraper.run_search(preset, task_name=task.name)

        if task_type == TaskType.ACCOUNT_FOLLOWERS:
            payload = payload or AccountFollowersPayload()
            if not payload.account_urls:
                raise AutomationError("No account URLs provided")
            with contextlib.closing(self._scraper(task_type, settings)) as scraper:
                return scraper.scrape(
                    task_id=task.id,
                    account_urls=payload.account_urls,
                    task_name=task.name,
                    lead_list_name=payload.target_lead_list_name,
                    max_profiles=max_profiles,
                )

        if task_type == TaskType.POST_ENGAGEMENT:
            payload = payload or PostEngagementPayload()
            if not payload.post_urls:
                raise AutomationError("No post URLs provided")
            if not (payload.scrape_reactions or payload.scrape_commenters):
                raise AutomationError("Select at least one engagement type")
            with contextlib.closing(self._scraper(task_type, settings)) as scraper:
                return scraper.scrape(
                    task_id=task.id,
                    post_urls=payload.post_urls,
                    scrape_reactions=payload.scrape_reactions,
                    scrape_commenters=payload.scrape_commenters,
                    task_name=task.name,
                    lead_list_name=payload.target_lead_list_name,
                    max_profiles=max_profiles,
                )

        payload = payload or ProfileScrapePayload()
        if not payload.profile_urls:
            raise AutomationError("No profile URLs provided")
        with contextlib.closing(self._scraper(task_type, settings)) as scraper:
            return scraper.scrape(
                task_id=task.id,
                profile_urls=payload.profile_urls,
                task_name=task.name,
                lead_list_name=payload.target_lead_list_name,
            )


__all__ = ["AutomationScheduler", "DEFAULT_INTERVAL_SECONDS", "default_scraper_factories"]
