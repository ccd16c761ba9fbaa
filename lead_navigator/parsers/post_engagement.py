"""Extract reactors and commenters from a LinkedIn post."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from bs4 import Tag

from .common import (
    DEFAULT_ORIGIN,
    Markup,
    collect,
    first_match,
    first_text,
    make_soup,
    reached_limit,
    resolve_url,
    squash,
    text_of,
)

REACTOR_SELECTORS = (
    "li.reactor-entry",
    "li.social-details-reactors-tab__list-item",
    "li[data-test-reaction-row='true']",
    "li.artdeco-list__item",
    "li[data-id='reactor']",
)

REACTOR_NAME_SELECTORS = (
    ".reactor-entry__member-name",
    ".artdeco-entity-lockup__title span[aria-hidden='true']",
    ".artdeco-entity-lockup__title",
    ".feed-shared-actor__name",
    ".reactions-tab__member-name",
)

COMMENT_SELECTORS = (
    "article.comments-comment-item",
    "li.comments-comments-list__comment-item",
    "div.comments-comment-item",
    "li[data-id^='urn:li:comment:']",
    "article.feed-shared-update-v2__comment-item",
)

COMMENT_TEXT_SELECTORS = (
    ".comments-comment-item__main-content",
    ".comments-comment-item__body",
    ".update-components-comment-body__comment",
    ".feed-shared-comment__text",
)

COMMENT_NAME_SELECTORS = (
    ".comments-post-meta__name-text",
    ".comments-comment-item__display-name",
    ".feed-shared-comment__name",
    "a.comments-comment-item__profile-link span",
    "a.comments-comment-item__profile-link",
)

HEADLINE_SELECTORS = (
    ".comments-post-meta__headline",
    ".comments-comment-item__headline",
    ".feed-shared-comment__headline",
    ".reactor-entry__member-headline",
    ".artdeco-entity-lockup__subtitle",
    ".reactions-tab__member-headline",
)

LOCATION_SELECTORS = (
    ".comments-comment-item__secondary-content",
    ".reactor-entry__member-secondary-title",
    ".artdeco-entity-lockup__caption",
    ".reactions-tab__member-secondary-title",
)

ANCHOR_SELECTORS = (
    "a[href*='/in/']",
    "a.comments-comment-item__profile-link",
    "a.artdeco-entity-lockup__subtitle",
    "a.feed-shared-actor__container-link",
)

_VIEW_PROFILE = re.compile(r"View[\s\S]*?profile", re.IGNORECASE)
_DEGREE = re.compile(r"\b[1-3](?:st|nd|rd|th)?\s+degree\s+connection\b.*$", re.IGNORECASE)
_NOT_A_LOCATION = re.compile(r"\b(?:connection|degree|follower)\b", re.IGNORECASE)
_NAME_SEPARATORS = ("·", "|", "•")


@dataclass(slots=True)
class EngagementProfile:
    profile_url: str
    full_name: Optional[str] = None
    headline: Optional[str] = None
    location: Optional[str] = None
    reaction_label: Optional[str] = None
    comment_text: Optional[str] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None
    current_company_url: Optional[str] = None
    profile_image_url: Optional[str] = None
    email: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


def sanitize_full_name(raw: Optional[str]) -> str:
    """Strip accessibility labels and connection-degree suffixes from a display name."""

    if not raw:
        return ""
    value = _VIEW_PROFILE.sub(" ", raw)
    value = _DEGREE.sub(" ", value)
    for separator in _NAME_SEPARATORS:
        index = value.find(separator)
        if index > 0:
            value = value[:index]
    return squash(value)


def clean_location(raw: Optional[str]) -> Optional[str]:
    cleaned = squash(raw)
    if not cleaned:
        return None
    if _NOT_A_LOCATION.search(cleaned) or cleaned.lower().startswith("status:"):
        return None
    return cleaned


def _reaction_label(candidate: Tag) -> Optional[str]:
    icon = candidate.select_one("[data-test-reaction-icon]")
    if icon is not None and icon.get("data-test-reaction-icon"):
        return icon["data-test-reaction-icon"]
    return first_text(candidate, [".reactor-entry__reaction-type", ".reactions-tab__member-reaction-type"])


def extract_reactors(
    markup: Markup, *, limit: Optional[int] = None, origin: str = DEFAULT_ORIGIN
) -> List[EngagementProfile]:
    """Return the members listed in a reactions list.

    Rows whose name cannot be recovered are still returned, without a
    ``full_name``, so that profile enrichment can fill it in later.
    """

    root = make_soup(markup)
    results: List[EngagementProfile] = []
    seen: Set[str] = set()
    for candidate in collect(root, REACTOR_SELECTORS):
        anchor = first_match(candidate, ANCHOR_SELECTORS)
        if anchor is None:
            continue
        profile_url = resolve_url(anchor.get("href"), origin)
        if not profile_url or profile_url in seen:
            continue
        seen.add(profile_url)

        name = sanitize_full_name(first_text(candidate, REACTOR_NAME_SELECTORS) or text_of(anchor))
        headline = first_text(candidate, HEADLINE_SELECTORS)
        location = clean_location(first_text(candidate, LOCATION_SELECTORS))
        if location and headline and location == headline:
            location = None
        results.append(
            EngagementProfile(
                profile_url=profile_url,
                full_name=name or None,
                headline=headline,
                location=location,
                reaction_label=_reaction_label(candidate),
            )
        )
        if reached_limit(len(results), limit):
            break
    return results


def extract_comments(
    markup: Markup, *, limit: Optional[int] = None, origin: str = DEFAULT_ORIGIN
) -> List[EngagementProfile]:
    """Return one entry per commenter, keeping the text of their first comment."""

    root = make_soup(markup)
    results: List[EngagementProfile] = []
    seen: Set[str] = set()
    for candidate in collect(root, COMMENT_SELECTORS):
        anchor = first_match(candidate, ANCHOR_SELECTORS)
        if anchor is None:
            continue
        profile_url = resolve_url(anchor.get("href"), origin)
        if not profile_url or profile_url in seen:
            continue
        name = sanitize_full_name(first_text(candidate, COMMENT_NAME_SELECTORS) or text_of(anchor))
        if not name:
            continue
        seen.add(profile_url)
        results.append(
            EngagementProfile(
                profile_url=profile_url,
                full_name=name,
                headline=first_text(candidate, HEADLINE_SELECTORS),
                location=first_text(candidate, LOCATION_SELECTORS),
                comment_text=first_text(candidate, COMMENT_TEXT_SELECTORS),
            )
        )
        if reached_limit(len(results), limit):
            break
    return results


__all__ = [
    "EngagementProfile",
    "clean_location",
    "extract_comments",
    "extract_reactors",
    "sanitize_full_name",
]
