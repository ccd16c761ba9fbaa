"""Extract people cards from a company's ``/people/`` page."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Set

from .common import (
    DEFAULT_ORIGIN,
    Markup,
    collect,
    first_match,
    first_text,
    make_soup,
    reached_limit,
    resolve_url,
    text_of,
)

CARD_SELECTORS = (
    "li.org-people-profile-card",
    "li.org-people-profile-card__profile-list-item",
    "li[data-test-id='org-people-profile-card']",
    "li[data-ember-action][data-control-name='people_profile_card']",
)

COMPANY_NAME_SELECTORS = (
    "h1.org-top-card-summary__title",
    "h1.org-top-card-summary__title span",
    "h1.org-top-card-summary__title > div",
    "h1.org-top-card-summary__title > a",
    "div.org-top-card-summary__title h1",
)

HEADLINE_SELECTORS = (
    ".org-people-profile-card__profile-headline",
    ".org-people-profile-card__profile-title + div",
    ".org-people-profile-card__profile-title ~ div.t-14",
    ".org-people-profile-card__profile-info h4 + div",
)

LOCATION_SELECTORS = (
    ".org-people-profile-card__profile-location",
    ".org-people-profile-card__profile-title ~ div.t-12",
    ".org-people-profile-card__profile-info .t-12",
)

ANCHOR_SELECTORS = (
    "a.org-people-profile-card__profile-link",
    "a[href*='/in/']",
    "a[data-control-name='people_profile_card']",
)


@dataclass(slots=True)
class AccountProfile:
    full_name: str
    profile_url: str
    headline: Optional[str] = None
    location: Optional[str] = None
    company_name: Optional[str] = None


def extract_account_profiles(
    markup: Markup, *, limit: Optional[int] = None, origin: str = DEFAULT_ORIGIN
) -> List[AccountProfile]:
    """Return the people listed on a company page, first occurrence of each URL only."""

    root = make_soup(markup)
    company_name = first_text(root, COMPANY_NAME_SELECTORS)

    candidates = collect(root, CARD_SELECTORS)
    if not candidates:
        for anchor in root.select(", ".join(ANCHOR_SELECTORS)):
            candidates.append(anchor.find_parent("li") or anchor)

    results: List[AccountProfile] = []
    seen: Set[str] = set()
    for candidate in candidates:
        anchor = candidate if candidate.name == "a" else first_match(candidate, ANCHOR_SELECTORS)
        if anchor is None:
            continue
        profile_url = resolve_url(anchor.get("href"), origin)
        if not profile_url or profile_url in seen:
            continue
        full_name = first_text(candidate, [".org-people-profile-card__profile-title"]) or text_of(anchor)
        if not full_name:
            continue
        seen.add(profile_url)
        results.append(
            AccountProfile(
                full_name=full_name,
                profile_url=profile_url,
                headline=first_text(candidate, HEADLINE_SELECTORS),
                location=first_text(candidate, LOCATION_SELECTORS),
                company_name=company_name,
            )
        )
        if reached_limit(len(results), limit):
            break
    return results


__all__ = ["AccountProfile", "extract_account_profiles"]
