"""Export captured leads to CSV or Excel."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Union

import pandas as pd

from .models import LeadRecord

PathLike = Union[str, Path]

_WHITESPACE = re.compile(r"\s+")

EXPORT_COLUMNS = (
    "full_name",
    "headline",
    "title",
    "company_name",
    "company_url",
    "inferred_company_name",
    "inferred_company_domain",
    "email",
    "email_verification_status",
    "phone_numbers",
    "birthday",
    "connections",
    "followers",
    "location",
    "additional_locations",
    "connection_degree",
    "task_name",
    "profile_url",
    "sales_navigator_url",
    "captured_at",
    "source",
    "lead_list_name",
    "current_company_started_at",
    "education",
    "previous_experience",
    "all_experience",
    "profile_image_url",
)


def export_leads(
    leads: Sequence[LeadRecord],
    path: PathLike,
    *,
    ids: Optional[Iterable[str]] = None,
    sheet_name: str = "Leads",
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    """Write ``leads`` (optionally only those in ``ids``) to a CSV, TSV or Excel file."""

    dataframe = leads_to_dataframe(filter_leads(leads, ids))
    output_path = Path(path)
    _write_dataframe(dataframe, output_path, sheet_name=sheet_name, exporter_kwargs=exporter_kwargs)
    return output_path


def filter_leads(leads: Sequence[LeadRecord], ids: Optional[Iterable[str]] = None) -> List[LeadRecord]:
    wanted = set(ids or ())
    if not wanted:
        return list(leads)
    return [lead for lead in leads if lead.id in wanted]


def leads_to_dataframe(leads: Sequence[LeadRecord]) -> pd.DataFrame:
    return pd.DataFrame([_lead_to_row(lead) for lead in leads], columns=list(EXPORT_COLUMNS))


def _lead_to_row(lead: LeadRecord) -> MutableMapping[str, object]:
    raw: Mapping[str, Any] = lead.raw or {}
    experiences = raw.get("experiences") or []
    return {
        "full_name": lead.full_name or "",
        "headline": lead.headline or "",
        "title": lead.title or "",
        "company_name": lead.company_name or "",
        "company_url": lead.company_url or "",
        "inferred_company_name": lead.inferred_company_name or "",
        "inferred_company_domain": lead.inferred_company_domain or "",
        "email": lead.email or "",
        "email_verification_status": lead.email_verification_status or "",
        "phone_numbers": _join_list(raw.get("phone_numbers") or [], " | "),
        "birthday": raw.get("birthday") or "",
        "connections": _summary(raw.get("connections_text"), raw.get("connection_count"), "connections"),
        "followers": _summary(raw.get("followers_text"), raw.get("follower_count"), "followers"),
        "location": lead.location or "",
        "additional_locations": _join_list(_additional_locations(lead, experiences), " | "),
        "connection_degree": lead.connection_degree or "",
        "task_name": lead.task_name or "",
        "profile_url": lead.profile_url,
        "sales_navigator_url": lead.sales_navigator_url or "",
        "captured_at": lead.captured_at.isoformat() if lead.captured_at else "",
        "source": raw.get("source") or "",
        "lead_list_name": raw.get("lead_list_name") or "",
        "current_company_started_at": raw.get("current_company_started_at") or "",
        "education": _join_list((_format_education(entry) for entry in raw.get("education") or []), " || "),
        "previous_experience": _join_list((_format_experience(entry) for entry in experiences[1:]), " || "),
        "all_experience": _join_list((_format_experience(entry) for entry in experiences), " || "),
        "profile_image_url": raw.get("profile_image_url") or "",
    }


def _join_list(values: Iterable[Optional[str]], separator: str = "; ") -> str:
    cleaned: List[str] = []
    for value in values:
        if not value:
            continue
        text = str(value).strip()
        if text:
            cleaned.append(text)
    return separator.join(cleaned)


def _summary(text: Optional[str], count: Optional[int], noun: str) -> str:
    if text:
        return text
    if isinstance(count, int):
        return f"{count} {noun}"
    return ""


def _additional_locations(lead: LeadRecord, experiences: Sequence[Mapping[str, Any]]) -> List[str]:
    primary = (lead.location or "").strip().lower()
    found: List[str] = []
    for entry in experiences:
        location = (entry.get("location") or "").strip()
        if location and location.lower() != primary and location not in found:
            found.append(location)
    return found


def _format_experience(entry: Mapping[str, Any]) -> str:
    date_range = entry.get("date_range_text") or " - ".join(
        part for part in (entry.get("start_date"), entry.get("end_date")) if part
    )
    role = " @ ".join(part for part in (entry.get("title"), entry.get("company")) if part)
    pieces = " | ".join(part for part in (role, entry.get("location"), date_range) if part)
    description = _WHITESPACE.sub(" ", entry.get("description") or "").strip()
    if description:
        return f"{pieces}: {description}" if pieces else description
    return pieces


def _format_education(entry: Mapping[str, Any]) -> str:
    degree = ", ".join(part for part in (entry.get("degree"), entry.get("field_of_study")) if part)
    return " | ".join(part for part in (entry.get("school"), degree, entry.get("date_range_text")) if part)


def _write_dataframe(
    dataframe: pd.DataFrame,
    path: Path,
    *,
    sheet_name: str,
    exporter_kwargs: Optional[MutableMapping[str, object]],
) -> None:
    exporter_kwargs = dict(exporter_kwargs or {})
    suffix = path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        if suffix == ".tsv":
            exporter_kwargs.setdefault("sep", "\t")
        dataframe.to_csv(path, index=False, **exporter_kwargs)
        return

    if suffix in {".xlsx", ".xlsm"}:
        engine = exporter_kwargs.pop("engine", None) or "openpyxl"
        dataframe.to_excel(path, index=False, sheet_name=sheet_name, engine=engine, **exporter_kwargs)
        return

    raise ValueError(f"Unsupported export file extension: {suffix}")


__all__ = ["EXPORT_COLUMNS", "export_leads", "filter_leads", "leads_to_dataframe"]
