"""Search preset management, ICP linking and automation mode templates."""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import NotFoundError, ValidationError
from .models import ICPProfile, Range, SearchFilters, SearchPreset, utcnow
from .repository import StateRepository

LOGGER = logging.getLogger(__name__)

_PRESET_FIELDS = frozenset({"name", "description", "linked_icp", "page_limit", "filters"})


def _union(*groups: Iterable[str]) -> List[str]:
    values: List[str] = []
    for group in groups:
        for value in group:
            if value not in values:
                values.append(value)
    return values


def merge_icp_with_filters(icp: ICPProfile, filters: SearchFilters) -> SearchFilters:
    """Fold the ideal customer profile into ``filters``.

    List filters are unioned with the matching ICP lists.  Seniorities and
    current job titles are only taken from the ICP when the preset has none of
    its own, and range bounds set on the preset win over the ICP's.
    """

    return replace(
        filters,
        keywords=_union(filters.keywords, icp.keywords),
        excluded_keywords=_union(filters.excluded_keywords, icp.excluded_keywords),
        industries=_union(filters.industries, icp.industries),
        geographies=_union(filters.geographies, icp.geographies),
        company_headquarters=_union(filters.company_headquarters, icp.geographies),
        functions=_union(filters.functions, icp.personas),
        seniorities=list(filters.seniorities) if filters.seniorities else list(icp.seniorities),
        current_job_titles=(
            list(filters.current_job_titles) if filters.current_job_titles else _union(icp.ideal_titles)
        ),
        personas=_union(filters.personas, icp.personas),
        company_headcount=filters.company_headcount.merged_over(icp.company_headcount),
        company_revenue=filters.company_revenue.merged_over(icp.company_revenue),
    )


@dataclass(frozen=True)
class AutomationMode:
    """A named preset template with a pacing profile."""

    id: str
    name: str
    description: str
    preset_name: str
    preset_description: str
    page_limit: int
    filter_overrides: Dict[str, Any] = field(default_factory=dict)
    linked_icp: bool = True

    def build_filters(self) -> SearchFilters:
        return replace(SearchFilters(), **copy.deepcopy(self.filter_overrides))


AUTOMATION_MODES: Dict[str, AutomationMode] = {
    mode.id: mode
    for mode in (
        AutomationMode(
            id="ultra_safe",
            name="Ultra Safe",
            description="Slow crawl focused on 1st-degree networks and recent activity.",
            preset_name="Ultra Safe Recon",
            preset_description="Tight filters leaning on 1st degree connections captured in the last 14 days.",
            page_limit=1,
            filter_overrides={"posted_in_past_days": 14, "relationship": "1"},
        ),
        AutomationMode(
            id="safe",
            name="Safety First",
            description="Moderate pace emphasizing warm relationships and fresh posts.",
            preset_name="Safety First Sweep",
            preset_description="Prioritizes 1st & 2nd degree connections captured in the last 30 days.",
            page_limit=2,
            filter_overrides={"posted_in_past_days": 30, "relationship": "2"},
        ),
        AutomationMode(
            id="balanced",
            name="Balanced",
            description="Balanced mix of reach and caution across 1st-3rd degree prospects.",
            preset_name="Balanced Expansion",
            preset_description="Blends ICP filters with wider relationship reach for steady prospecting.",
            page_limit=4,
            filter_overrides={"posted_in_past_days": 60, "relationship": "3"},
        ),
        AutomationMode(
            id="aggressive",
            name="Aggressive",
            description="Max coverage run with higher page limits and broad relationship reach.",
            preset_name="Aggressive Expansion",
            preset_description="Pushes across 3rd degree networks with a deeper page crawl.",
            page_limit=6,
        ),
    )
}


def _coerce_filters(value: Any) -> SearchFilters:
    if value is None:
        return SearchFilters()
    if isinstance(value, SearchFilters):
        return copy.deepcopy(value)
    if isinstance(value, Mapping):
        return SearchFilters.from_dict(value)
    raise ValidationError(f"Unsupported filters value of type {type(value).__name__}")


def _merge_filter_changes(existing: SearchFilters, changes: Any) -> SearchFilters:
    if isinstance(changes, SearchFilters):
        return copy.deepcopy(changes)
    if not isinstance(changes, Mapping):
        raise ValidationError("Filter changes must be a mapping")
    known = {f.name for f in fields(SearchFilters)}
    unknown = sorted(set(changes) - known)
    if unknown:
        raise ValidationError(f"Unknown filter fields: {', '.join(unknown)}")
    values = {}
    for key, value in changes.items():
        if isinstance(getattr(existing, key), Range) and not isinstance(value, Range):
            value = Range.from_dict(value)
        values[key] = copy.deepcopy(value)
    return replace(existing, **values)


def _validate_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Preset name is required")
    return name.strip()


def _validate_page_limit(page_limit: Any) -> Optional[int]:
    if page_limit is None:
        return None
    try:
        value = int(page_limit)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid page limit '{page_limit}'") from exc
    if value < 1:
        raise ValidationError("Page limit must be at least 1")
    return value


class PresetService:
    """Validate and apply preset changes on top of :class:`StateRepository`."""

    def __init__(self, repository: StateRepository) -> None:
        self._repository = repository

    def list(self) -> List[SearchPreset]:
        return self._repository.list_search_presets()

    def get(self, preset_id: str) -> Optional[SearchPreset]:
        return self._repository.find_search_preset(preset_id)

    def create(self, data: Mapping[str, Any]) -> SearchPreset:
        unknown = sorted(set(data) - _PRESET_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown preset fields: {', '.join(unknown)}")
        name = _validate_name(data.get("name"))
        page_limit = _validate_page_limit(data.get("page_limit"))
        filters = _coerce_filters(data.get("filters"))
        linked_icp = bool(data.get("linked_icp", False))
        if linked_icp:
            filters = merge_icp_with_filters(self._repository.get_icp(), filters)
        return self._repository.create_search_preset(
            name=name,
            filters=filters,
            description=data.get("description"),
            linked_icp=linked_icp,
            page_limit=page_limit,
        )

    def update(self, preset_id: str, changes: Mapping[str, Any]) -> SearchPreset:
        """Shallow-merge ``changes``; ``filters`` are merged field by field."""

        unknown = sorted(set(changes) - _PRESET_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown preset fields: {', '.join(unknown)}")
        values = dict(changes)
        if "name" in values:
            values["name"] = _validate_name(values["name"])
        if "page_limit" in values:
            values["page_limit"] = _validate_page_limit(values["page_limit"])
        filter_changes = values.pop("filters", None)

        def updater(existing: SearchPreset, icp: ICPProfile) -> SearchPreset:
            merged = replace(existing, **values)
            if filter_changes is not None:
                merged.filters = _merge_filter_changes(existing.filters, filter_changes)
            if merged.linked_icp:
                merged.filters = merge_icp_with_filters(icp, merged.filters)
            return merged

        return self._repository.update_search_preset_with_icp(preset_id, updater)

    def duplicate(self, preset_id: str) -> SearchPreset:
        preset = self._repository.find_search_preset(preset_id)
        if preset is None:
            raise NotFoundError("Preset", preset_id)
        return self._repository.create_search_preset(
            name=f"{preset.name} Copy",
            filters=copy.deepcopy(preset.filters),
            description=preset.description,
            linked_icp=preset.linked_icp,
            page_limit=preset.page_limit,
        )

    def delete(self, preset_id: str) -> None:
        self._repository.delete_search_preset(preset_id)

    def record_successful_run(self, preset_id: str, result_count: int) -> SearchPreset:
        def updater(preset: SearchPreset) -> SearchPreset:
            return replace(preset, last_run_at=utcnow(), last_result_count=result_count)

        return self._repository.update_search_preset(preset_id, updater)

    def create_from_mode(self, mode_id: str, name: Optional[str] = None) -> SearchPreset:
        mode = AUTOMATION_MODES.get(mode_id)
        if mode is None:
            raise ValidationError(
                f"Unknown automation mode '{mode_id}'. Expected one of: {', '.join(AUTOMATION_MODES)}"
            )
        LOGGER.info("Creating preset from automation mode %s", mode.id)
        return self.create(
            {
                "name": name or mode.preset_name,
                "description": mode.preset_description,
                "linked_icp": mode.linked_icp,
                "page_limit": mode.page_limit,
                "filters": mode.build_filters(),
            }
        )


__all__ = ["AUTOMATION_MODES", "AutomationMode", "PresetService", "merge_icp_with_filters"]
