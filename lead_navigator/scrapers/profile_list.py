"""Visit an explicit list of LinkedIn profiles and capture their details."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from playwright.sync_api import Error as PlaywrightError

from ..errors import ValidationError
from ..models import LeadRecord, to_jsonable, utcnow
from ..parsers.profile import ProfileDetails, extract_profile_details
from .base import BrowserSession
from .urls import normalize_profile_url

LOGGER = logging.getLogger(__name__)

MAIN_CONTENT_TIMEOUT_MS = 8000


def details_to_lead(
    details: ProfileDetails,
    profile_url: str,
    *,
    task_id: str,
    task_name: Optional[str] = None,
    lead_list_name: Optional[str] = None,
) -> LeadRecord:
    current = details.experiences[0] if details.experiences else None
    return LeadRecord(
        id=f"{task_id}:{profile_url}",
        preset_id=task_id,
        profile_url=profile_url,
        full_name=details.full_name or "",
        headline=details.headline,
        title=details.current_title or (current.title if current else None),
        company_name=details.current_company or (current.company if current else None),
        location=details.location or (current.location if current else None),
        email=details.email,
        captured_at=utcnow(),
        raw={
            "source": "profile_scrape",
            "lead_list_name": lead_list_name,
            "profile_image_url": details.profile_image_url,
            "current_company_started_at": details.current_company_started_at,
            "previous_companies": [item.company for item in details.experiences[1:] if item.company],
            "experiences": to_jsonable(details.experiences),
            "education": to_jsonable(details.education),
            "birthday": details.birthday,
            "phone_numbers": list(details.phone_numbers),
            "connections_text": details.connections_text,
            "connection_count": details.connection_count,
            "followers_text": details.followers_text,
            "follower_count": details.follower_count,
        },
        task_name=task_name,
    )


class ProfileListScraper(BrowserSession):
    def scrape(
        self,
        *,
        task_id: str,
        profile_urls: Iterable[str],
        task_name: Optional[str] = None,
        lead_list_name: Optional[str] = None,
    ) -> List[LeadRecord]:
        leads: List[LeadRecord] = []
        seen: Set[str] = set()

        for raw_url in profile_urls:
            try:
                profile_url = normalize_profile_url(raw_url)
            except ValidationError as exc:
                LOGGER.warning("Skipping profile URL %r: %s", raw_url, exc)
                continue
            if profile_url.lower() in seen:
                continue
            seen.add(profile_url.lower())

            try:
                with self.page() as page:
                    LOGGER.info("Scraping profile %s", profile_url)
                    self.goto(page, profile_url)
                    self.pause()
                    self.wait_for(
                        page, "main", timeout_ms=min(self.settings.page_timeout_ms, MAIN_CONTENT_TIMEOUT_MS)
                    )
                    self.open_contact_info(page)
                    details = extract_profile_details(page.content())
            except PlaywrightError as exc:
                LOGGER.error("Failed to scrape profile %s: %s", profile_url, exc)
                continue
            finally:
                self.pause()

            if not details.full_name:
                LOGGER.warning("No name found on %s; skipping", profile_url)
                continue
            leads.append(
                details_to_lead(
                    details, profile_url, task_id=task_id, task_name=task_name, lead_list_name=lead_list_name
                )
            )

        LOGGER.info("Captured %s of the requested profiles", len(leads))
        return leads


__all__ = ["ProfileListScraper", "details_to_lead"]
