"""Utility helpers for merging newly scraped leads into the stored lead list."""
from __future__ import annotations

from typing import Dict, Iterable, List

from .models import LeadRecord


def normalise_profile_url(url: str) -> str:
    return url.strip().lower()


def merge_leads(existing: Iterable[LeadRecord], incoming: Iterable[LeadRecord]) -> List[LeadRecord]:
    """Merge ``incoming`` into ``existing``, deduplicating by profile URL.

    The walk covers the existing leads followed by the incoming ones.  Each
    URL keeps the position where it was first seen, while its content is the
    last record encountered for it.
    """

    positions: Dict[str, int] = {}
    ordered: List[LeadRecord] = []

    for source in (existing, incoming):
        for lead in source:
            key = normalise_profile_url(lead.profile_url)
            index = positions.get(key)
            if index is None:
                positions[key] = len(ordered)
                ordered.append(lead)
            else:
                ordered[index] = lead

    return ordered


__all__ = ["merge_leads", "normalise_profile_url"]
