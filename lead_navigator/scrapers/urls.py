"""Normalization of the LinkedIn URLs users paste into tasks."""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin, urlparse, urlunparse

from ..errors import ValidationError

LINKEDIN_ORIGIN = "https://www.linkedin.com"

_ACCOUNT_SUFFIX = re.compile(r"/(about|posts|updates|people|followers)/?$", re.IGNORECASE)


def _parse(url: str, kind: str):
    trimmed = (url or "").strip()
    if not trimmed:
        raise ValidationError(f"{kind} URL cannot be empty")
    if not trimmed.startswith("http"):
        trimmed = urljoin(LINKEDIN_ORIGIN, trimmed if trimmed.startswith("/") else f"/{trimmed}")
    parsed = urlparse(trimmed)
    if not parsed.netloc:
        raise ValidationError(f"Invalid LinkedIn {kind.lower()} URL: {url}")
    return parsed


def _with_trailing_slash(url: str, kind: str) -> str:
    parsed = _parse(url, kind)
    path = parsed.path if parsed.path.endswith("/") else f"{parsed.path}/"
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def normalize_profile_url(url: str) -> str:
    """Drop query and fragment and ensure a trailing slash."""

    return _with_trailing_slash(url, "Profile")


def normalize_post_url(url: str) -> str:
    return _with_trailing_slash(url, "Post")


def normalize_account_url(url: str) -> str:
    """Reduce a company URL to its root page, without tab suffix or trailing slash."""

    parsed = _parse(url, "Account")
    path = _ACCOUNT_SUFFIX.sub("", parsed.path).rstrip("/")
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


def people_url(account_url: str) -> str:
    return f"{account_url.rstrip('/')}/people/"


def company_name_from_url(account_url: str) -> Optional[str]:
    segments = [segment for segment in urlparse(account_url).path.split("/") if segment]
    if not segments:
        return None
    words = re.sub(r"[-_]+", " ", segments[-1])
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), words)


__all__ = [
    "LINKEDIN_ORIGIN",
    "company_name_from_url",
    "normalize_account_url",
    "normalize_post_url",
    "normalize_profile_url",
    "people_url",
]
