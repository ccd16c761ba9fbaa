"""Extract the details shown on a member profile page."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import Tag

from .common import Markup, first_attribute, first_match, make_soup, squash

_VIEW_PROFILE = re.compile(r"View[\s\S]*?profile", re.IGNORECASE)
_DEGREE = re.compile(r"\b[1-3](?:st|nd|rd|th)?\s+degree\s+connection\b.*$", re.IGNORECASE)
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CONNECTIONS = re.compile(r"([\d,]+)\+?\s+connections?\b", re.IGNORECASE)
_FOLLOWERS = re.compile(r"([\d,]+)\+?\s+followers?\b", re.IGNORECASE)
_RANGE_SPLIT = re.compile(r"\s+[-–—]\s+")

NAME_SELECTORS = (
    "h1.text-heading-xlarge",
    "h1.pv-top-card-section__name",
    "h1[data-test-id='hero-title']",
    ".pv-text-details__left-panel h1",
    ".top-card-layout__title",
)

HEADLINE_SELECTORS = (
    "div.text-body-medium.break-words",
    ".pv-top-card-section__headline",
    ".top-card-layout__headline",
    ".pv-text-details__left-panel div[data-test-id='hero-title-subtitle']",
    "div[data-field='experience-headline']",
)

LOCATION_SELECTORS = (
    "span.text-body-small.inline.t-black--light.break-words",
    ".pv-top-card__subline-item",
    ".top-card-layout__entity-info span[data-test-id='hero-location']",
    "div[data-field='experience-location']",
    "span[data-test-id='top-card-location']",
    "div[data-test-id='member-location']",
    ".pv-text-details__left-panel span.inline-flex",
    ".pv-top-card--list-bullet span[aria-hidden='true']",
)

COMPANY_SELECTORS = (
    ".pv-text-details__right-panel li:first-child span[aria-hidden='true']",
    ".pv-text-details__right-panel li:first-child span",
    ".top-card-layout__entity-info-item a[href*='/company/']",
    ".pv-top-card--experience-list a[href*='/company/'] span[aria-hidden='true']",
    "a[data-field='experience_company_logo'] span[aria-hidden='true']",
)

TITLE_SELECTORS = (
    ".pv-top-card--experience-list li span[aria-hidden='true']",
    ".pv-text-details__right-panel li:first-child span[aria-hidden='true']",
    ".top-card-layout__entity-info-item span[aria-hidden='true']",
    ".pv-text-details__right-panel li:first-child span",
)

IMAGE_SELECTORS = (
    "img.profile-photo-edit__preview",
    "img.pv-top-card-profile-picture__image",
    "img[class*='pv-top-card-profile-picture__image']",
    "img[data-test-id='profile-photo']",
    "img.top-card-profile-picture__image",
    "img.profile-photo-edit__preview-image",
)

EXPERIENCE_LIST_SELECTORS = (
    "section[id*='experience'] ul.pvs-list > li",
    "section#experience-section ul.pv-profile-section__section-info > li",
    "section.experience__section ul > li",
    "section[data-test='experience-section'] ul > li",
)

EXPERIENCE_TITLE_SELECTORS = (
    "span[aria-hidden='true']",
    "span.t-14.t-black.t-bold",
    "div.display-flex.flex-column.full-width.align-self-center span:first-child",
    "div[data-test='experience-item'] span[data-field='experience-title']",
)

EXPERIENCE_COMPANY_SELECTORS = (
    "p.pv-entity__secondary-title",
    "span.t-14.t-normal",
    "span[data-field='experience-company-name']",
    "div.display-flex.flex-column.full-width.align-self-center span:nth-child(2)",
    "span[data-test='experience-entity-company-name']",
)

EXPERIENCE_DATES_SELECTORS = (
    "span.pv-entity__caption",
    "span.pvs-entity__caption-wrapper",
    "span.pv-entity__date-range span:nth-of-type(2)",
)

EXPERIENCE_LOCATION_SELECTORS = (
    "span.pv-entity__location",
    "span[data-field='experience-location']",
)

EXPERIENCE_DESCRIPTION_SELECTORS = (
    "div.pv-entity__description",
    "div.inline-show-more-text",
)

EDUCATION_LIST_SELECTORS = (
    "section[id*='education'] ul.pvs-list > li",
    "section#education-section ul.pv-profile-section__section-info > li",
    "section.education__section ul > li",
)

CONTACT_EMAIL_SELECTORS = (
    "a[href^='mailto:']",
    "a[data-test-id='top-card-contact-info-email']",
    "a[data-field='email']",
)

BIRTHDAY_SELECTORS = (
    "[data-test-id='birthday']",
    "section.ci-birthday .pv-contact-info__contact-item",
)


@dataclass(slots=True)
class Experience:
    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    date_range_text: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    description: Optional[str] = None


@dataclass(slots=True)
class Education:
    school: Optional[str] = None
    degree: Optional[str] = None
    field_of_study: Optional[str] = None
    date_range_text: Optional[str] = None


@dataclass(slots=True)
class ProfileDetails:
    full_name: Optional[str] = None
    headline: Optional[str] = None
    location: Optional[str] = None
    current_title: Optional[str] = None
    current_company: Optional[str] = None
    current_company_started_at: Optional[str] = None
    profile_image_url: Optional[str] = None
    email: Optional[str] = None
    phone_numbers: List[str] = field(default_factory=list)
    birthday: Optional[str] = None
    connections_text: Optional[str] = None
    connection_count: Optional[int] = None
    followers_text: Optional[str] = None
    follower_count: Optional[int] = None
    experiences: List[Experience] = field(default_factory=list)
    education: List[Education] = field(default_factory=list)


def _clean(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = _VIEW_PROFILE.sub(" ", value)
    value = _DEGREE.sub(" ", value)
    return squash(value) or None


def _first_clean(root: Tag, selectors) -> Optional[str]:
    for selector in selectors:
        element = root.select_one(selector)
        if element is None:
            continue
        value = _clean(element.get_text(" "))
        if value:
            return value
    return None


def _clean_email(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    email = re.sub(r"^mailto:", "", value.strip(), flags=re.IGNORECASE)
    return email if _EMAIL.match(email) else None


def _split_date_range(text: Optional[str]):
    if not text:
        return None, None
    span = text.split("·")[0].strip()
    parts = _RANGE_SPLIT.split(span, maxsplit=1)
    start = parts[0].strip() or None
    end = parts[1].strip() if len(parts) > 1 else None
    if end and end.lower() == "present":
        end = None
    return start, end


def _list_items(root: Tag, selectors) -> List[Tag]:
    for selector in selectors:
        items = root.select(selector)
        if items:
            return items
    return []


def _parse_experience(item: Tag) -> Experience:
    date_range_text = _first_clean(item, EXPERIENCE_DATES_SELECTORS)
    start, end = _split_date_range(date_range_text)
    return Experience(
        title=_first_clean(item, EXPERIENCE_TITLE_SELECTORS),
        company=_first_clean(item, EXPERIENCE_COMPANY_SELECTORS),
        location=_first_clean(item, EXPERIENCE_LOCATION_SELECTORS),
        date_range_text=date_range_text,
        start_date=start,
        end_date=end,
        description=_first_clean(item, EXPERIENCE_DESCRIPTION_SELECTORS),
    )


def _parse_education(item: Tag) -> Education:
    return Education(
        school=_first_clean(item, ["h3 span[aria-hidden='true']", "h3", ".pv-entity__school-name"]),
        degree=_first_clean(item, [".pv-entity__degree-name .pv-entity__comma-item", ".pv-entity__degree-name"]),
        field_of_study=_first_clean(item, [".pv-entity__fos .pv-entity__comma-item", ".pv-entity__fos"]),
        date_range_text=_first_clean(item, [".pv-entity__dates", "span.pvs-entity__caption-wrapper"]),
    )


def _name_from_metadata(root: Tag) -> Optional[str]:
    for script in root.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and data.get("@type") == "Person" and data.get("name"):
            return squash(str(data["name"]))
    og_title = root.find("meta", property="og:title")
    if og_title is not None and og_title.get("content"):
        name = og_title["content"].split(" | ")[0]
        return _clean(name)
    return None


def _count(pattern: re.Pattern, root: Tag):
    match_text = root.find(string=pattern)
    if match_text is None:
        return None, None
    text = squash(str(match_text))
    match = pattern.search(text)
    return text, int(match.group(1).replace(",", ""))


def extract_profile_details(markup: Markup) -> ProfileDetails:
    """Read the top card, contact info, experience and education sections."""

    root = make_soup(markup)

    full_name = _first_clean(root, NAME_SELECTORS) or _name_from_metadata(root) or _first_clean(root, ["h1"])
    headline = _first_clean(root, HEADLINE_SELECTORS)
    location = _first_clean(root, LOCATION_SELECTORS)
    if location and re.search(r"connection|follower", location, re.IGNORECASE):
        location = None

    experiences = [_parse_experience(item) for item in _list_items(root, EXPERIENCE_LIST_SELECTORS)]
    current = next((item for item in experiences if not item.end_date), experiences[0] if experiences else None)

    current_title = _first_clean(root, TITLE_SELECTORS) or (current.title if current else None)
    current_company = _first_clean(root, COMPANY_SELECTORS) or (current.company if current else None)

    phone_numbers: List[str] = []
    for anchor in root.select("a[href^='tel:']"):
        number = squash(anchor.get_text(" ")) or anchor["href"][len("tel:"):].strip()
        if number and number not in phone_numbers:
            phone_numbers.append(number)

    email_anchor = first_match(root, CONTACT_EMAIL_SELECTORS)
    connections_text, connection_count = _count(_CONNECTIONS, root)
    followers_text, follower_count = _count(_FOLLOWERS, root)

    return ProfileDetails(
        full_name=full_name,
        headline=headline,
        location=location,
        current_title=current_title or headline,
        current_company=current_company,
        current_company_started_at=current.start_date if current else None,
        profile_image_url=first_attribute(root, IMAGE_SELECTORS, "src"),
        email=_clean_email(email_anchor.get("href") if email_anchor is not None else None),
        phone_numbers=phone_numbers,
        birthday=_first_clean(root, BIRTHDAY_SELECTORS),
        connections_text=connections_text,
        connection_count=connection_count,
        followers_text=followers_text,
        follower_count=follower_count,
        experiences=experiences,
        education=[_parse_education(item) for item in _list_items(root, EDUCATION_LIST_SELECTORS)],
    )


__all__ = ["Education", "Experience", "ProfileDetails", "extract_profile_details"]
