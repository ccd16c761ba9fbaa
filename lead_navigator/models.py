"""Data models for the persisted state document and everything stored in it."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _known_fields(cls, data: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: copy.deepcopy(value) for key, value in data.items() if key in names}


# --- Enumerations ---

class TaskType(str, Enum):
    SALES_NAVIGATOR = "sales_navigator"
    ACCOUNT_FOLLOWERS = "account_followers"
    POST_ENGAGEMENT = "post_engagement"
    PROFILE_SCRAPE = "profile_scrape"


class TaskStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, raw: Union[str, "TaskStatus"]) -> "TaskStatus":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown task status '{raw}'") from exc


# --- Ideal customer profile and search filters ---

@dataclass(slots=True)
class Range:
    """Inclusive numeric bounds; either side may be open."""

    min: Optional[float] = None
    max: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Range":
        return cls(**_known_fields(cls, data or {}))

    def merged_over(self, base: "Range") -> "Range":
        """Return ``base`` with any bound set on this range taking precedence."""

        return Range(
            min=self.min if self.min is not None else base.min,
            max=self.max if self.max is not None else base.max,
        )


@dataclass(slots=True)
class ICPProfile:
    """The ideal customer profile presets can be linked to."""

    ideal_titles: List[str] = field(default_factory=list)
    seniorities: List[str] = field(default_factory=list)
    industries: List[str] = field(default_factory=list)
    company_headcount: Range = field(default_factory=Range)
    company_revenue: Range = field(default_factory=Range)
    geographies: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    excluded_keywords: List[str] = field(default_factory=list)
    personas: List[str] = field(default_factory=list)
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ICPProfile":
        values = _known_fields(cls, data or {})
        values["company_headcount"] = Range.from_dict(values.get("company_headcount"))
        values["company_revenue"] = Range.from_dict(values.get("company_revenue"))
        return cls(**values)


_FILTER_RANGES = (
    "company_headcount",
    "company_revenue",
    "years_in_current_company",
    "years_in_current_position",
    "years_of_experience",
)


@dataclass(slots=True)
class SearchFilters:
    """Sales Navigator filter specification stored on a preset."""

    keywords: List[str] = field(default_factory=list)
    excluded_keywords: List[str] = field(default_factory=list)
    industries: List[str] = field(default_factory=list)
    company_headcount: Range = field(default_factory=Range)
    company_revenue: Range = field(default_factory=Range)
    geographies: List[str] = field(default_factory=list)
    company_headquarters: List[str] = field(default_factory=list)
    seniorities: List[str] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)
    current_companies: List[str] = field(default_factory=list)
    past_companies: List[str] = field(default_factory=list)
    current_job_titles: List[str] = field(default_factory=list)
    past_job_titles: List[str] = field(default_factory=list)
    years_in_current_company: Range = field(default_factory=Range)
    years_in_current_position: Range = field(default_factory=Range)
    years_of_experience: Range = field(default_factory=Range)
    company_types: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    schools: List[str] = field(default_factory=list)
    profile_languages: List[str] = field(default_factory=list)
    connections_of: List[str] = field(default_factory=list)
    account_lists: List[str] = field(default_factory=list)
    lead_lists: List[str] = field(default_factory=list)
    personas: List[str] = field(default_factory=list)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    posted_in_past_days: Optional[int] = None
    changed_jobs_in_past_days: Optional[int] = None
    following_your_company: Optional[bool] = None
    shared_experiences: Optional[bool] = None
    team_link_introductions: Optional[bool] = None
    viewed_your_profile: Optional[bool] = None
    past_customer: Optional[bool] = None
    past_colleague: Optional[bool] = None
    buyer_intent: Optional[bool] = None
    people_in_crm: Optional[bool] = None
    people_interacted_with: Optional[bool] = None
    saved_leads_and_accounts: Optional[bool] = None
    relationship: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SearchFilters":
        values = _known_fields(cls, data or {})
        for name in _FILTER_RANGES:
            values[name] = Range.from_dict(values.get(name))
        return cls(**values)


@dataclass(slots=True)
class SearchPreset:
    """A reusable, named search configuration."""

    id: str
    name: str
    filters: SearchFilters = field(default_factory=SearchFilters)
    description: Optional[str] = None
    linked_icp: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_run_at: Optional[datetime] = None
    last_result_count: Optional[int] = None
    page_limit: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchPreset":
        values = _known_fields(cls, data)
        values["filters"] = SearchFilters.from_dict(values.get("filters"))
        for name in ("created_at", "updated_at", "last_run_at"):
            if name in values:
                values[name] = _parse_datetime(values[name])
        return cls(**values)


# --- Automation settings ---

@dataclass(slots=True)
class QuietHours:
    start_hour: int = 20
    end_hour: int = 7

    def contains(self, hour: int) -> bool:
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour


AUTOMATION_MODE_IDS = ("ultra_safe", "safe", "balanced", "aggressive")


@dataclass(slots=True)
class AutomationSettings:
    """Browser and pacing configuration for automation runs."""

    enabled: bool = False
    headless: bool = True
    randomize_delays: bool = True
    min_delay_ms: int = 4000
    max_delay_ms: int = 9000
    page_timeout_ms: int = 45000
    daily_search_limit: int = 30
    daily_lead_cap: int = 200
    session_cookie: Optional[str] = None
    chrome_executable_path: Optional[str] = None
    chrome_user_data_dir: Optional[str] = None
    concurrent_searches: int = 1
    respect_quiet_hours: bool = True
    quiet_hours: Optional[QuietHours] = field(default_factory=QuietHours)
    results_per_page: int = 25
    retry_attempts: int = 2
    retry_backoff_ms: int = 8000
    automation_modes: List[str] = field(default_factory=lambda: list(AUTOMATION_MODE_IDS))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AutomationSettings":
        """Build settings from ``data``, falling back to defaults for missing keys."""

        values = _known_fields(cls, data or {})
        if "quiet_hours" in values:
            raw = values["quiet_hours"]
            values["quiet_hours"] = QuietHours(**_known_fields(QuietHours, raw)) if raw else None
        return cls(**values)

    def snapshot(self) -> "AutomationSettings":
        """Return a deep copy suitable for embedding in a task."""

        return copy.deepcopy(self)

    def validate(self) -> None:
        if self.min_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("Delays must be non-negative")
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be greater than or equal to min_delay_ms")
        if self.concurrent_searches < 1:
            raise ValueError("concurrent_searches must be at least 1")
        unknown = [mode for mode in self.automation_modes if mode not in AUTOMATION_MODE_IDS]
        if unknown:
            raise ValueError(f"Unknown automation modes: {', '.join(unknown)}")


# --- Task payloads ---

@dataclass(slots=True)
class SalesNavigatorPayload:
    icp_prompt: Optional[str] = None


@dataclass(slots=True)
class AccountFollowersPayload:
    account_urls: List[str] = field(default_factory=list)
    target_lead_list_name: Optional[str] = None


@dataclass(slots=True)
class PostEngagementPayload:
    post_urls: List[str] = field(default_factory=list)
    scrape_reactions: bool = False
    scrape_commenters: bool = False
    target_lead_list_name: Optional[str] = None


@dataclass(slots=True)
class ProfileScrapePayload:
    profile_urls: List[str] = field(default_factory=list)
    target_lead_list_name: Optional[str] = None


TaskPayload = Union[
    SalesNavigatorPayload,
    AccountFollowersPayload,
    PostEngagementPayload,
    ProfileScrapePayload,
]

PAYLOAD_TYPES = {
    TaskType.SALES_NAVIGATOR: SalesNavigatorPayload,
    TaskType.ACCOUNT_FOLLOWERS: AccountFollowersPayload,
    TaskType.POST_ENGAGEMENT: PostEngagementPayload,
    TaskType.PROFILE_SCRAPE: ProfileScrapePayload,
}


def payload_from_dict(task_type: TaskType, data: Optional[Mapping[str, Any]]) -> TaskPayload:
    payload_cls = PAYLOAD_TYPES[task_type]
    return payload_cls(**_known_fields(payload_cls, data or {}))


# --- Tasks ---

@dataclass(slots=True)
class SearchTask:
    """A unit of automation work and its lifecycle metadata.

    ``type`` and ``payload`` may be ``None`` for records written by older
    versions; :class:`~lead_navigator.tasks.TaskLifecycleManager` normalizes
    them on every read.
    """

    id: str
    status: TaskStatus
    settings_snapshot: AutomationSettings
    type: Optional[TaskType] = TaskType.SALES_NAVIGATOR
    preset_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    scheduled_for: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    result_lead_ids: List[str] = field(default_factory=list)
    name: Optional[str] = None
    payload: Optional[TaskPayload] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchTask":
        values = _known_fields(cls, data)
        values["status"] = TaskStatus.parse(values.get("status", TaskStatus.DRAFT))
        values["settings_snapshot"] = AutomationSettings.from_dict(values.get("settings_snapshot"))
        raw_type = values.get("type")
        task_type = TaskType(raw_type) if raw_type else None
        values["type"] = task_type
        raw_payload = values.get("payload")
        if raw_payload is not None:
            values["payload"] = payload_from_dict(task_type or TaskType.SALES_NAVIGATOR, raw_payload)
        for name in ("created_at", "scheduled_for", "started_at", "completed_at"):
            if name in values:
                values[name] = _parse_datetime(values[name])
        return cls(**values)


# --- Leads ---

EMAIL_STATUSES = ("pending", "valid", "invalid", "unknown", "not_found")


@dataclass(slots=True)
class LeadRecord:
    """A discovered contact, keyed by its case-insensitive profile URL."""

    id: str
    profile_url: str
    full_name: str
    preset_id: Optional[str] = None
    sales_navigator_url: Optional[str] = None
    headline: Optional[str] = None
    title: Optional[str] = None
    company_name: Optional[str] = None
    company_url: Optional[str] = None
    location: Optional[str] = None
    connection_degree: Optional[str] = None
    captured_at: datetime = field(default_factory=utcnow)
    raw: Dict[str, Any] = field(default_factory=dict)
    inferred_company_name: Optional[str] = None
    inferred_company_domain: Optional[str] = None
    email: Optional[str] = None
    email_verification_status: Optional[str] = None
    task_name: Optional[str] = None

    @property
    def dedupe_key(self) -> str:
        return self.profile_url.strip().lower()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LeadRecord":
        values = _known_fields(cls, data)
        if "captured_at" in values:
            values["captured_at"] = _parse_datetime(values["captured_at"]) or utcnow()
        return cls(**values)


# --- The persisted document ---

@dataclass(slots=True)
class AppDocument:
    """The single aggregate persisted by the document store."""

    icp: ICPProfile = field(default_factory=ICPProfile)
    search_presets: List[SearchPreset] = field(default_factory=list)
    tasks: List[SearchTask] = field(default_factory=list)
    leads: List[LeadRecord] = field(default_factory=list)
    automation_settings: AutomationSettings = field(default_factory=AutomationSettings)

    @classmethod
    def default(cls) -> "AppDocument":
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppDocument":
        return cls(
            icp=ICPProfile.from_dict(data.get("icp")),
            search_presets=[SearchPreset.from_dict(item) for item in data.get("search_presets", [])],
            tasks=[SearchTask.from_dict(item) for item in data.get("tasks", [])],
            leads=[LeadRecord.from_dict(item) for item in data.get("leads", [])],
            automation_settings=AutomationSettings.from_dict(data.get("automation_settings")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


def to_jsonable(value: Any) -> Any:
    """Convert models into JSON-compatible structures (enums and datetimes included)."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return _format_datetime(value)
    if hasattr(value, "__dataclass_fields__"):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


__all__ = [
    "AccountFollowersPayload",
    "AppDocument",
    "AutomationSettings",
    "AUTOMATION_MODE_IDS",
    "EMAIL_STATUSES",
    "ICPProfile",
    "LeadRecord",
    "PAYLOAD_TYPES",
    "PostEngagementPayload",
    "ProfileScrapePayload",
    "QuietHours",
    "Range",
    "SalesNavigatorPayload",
    "SearchFilters",
    "SearchPreset",
    "SearchTask",
    "TaskPayload",
    "TaskStatus",
    "TaskType",
    "payload_from_dict",
    "to_jsonable",
    "utcnow",
]
