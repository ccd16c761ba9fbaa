"""Collect the people listed on company pages."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Set

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from ..errors import ValidationError
from ..models import LeadRecord, utcnow
from ..parsers.account_followers import CARD_SELECTORS, AccountProfile, extract_account_profiles
from .base import BrowserSession
from .urls import company_name_from_url, normalize_account_url, people_url

LOGGER = logging.getLogger(__name__)

LOAD_MORE_SELECTORS = (
    "button[aria-label*='Show more']",
    "button[data-control-name='people_profile_card_show_more']",
    "button[data-test-id='people-search-show-more-button']",
)
MAX_LOAD_ATTEMPTS = 10


class AccountFollowersScraper(BrowserSession):
    def scrape(
        self,
        *,
        task_id: str,
        account_urls: Iterable[str],
        task_name: Optional[str] = None,
        lead_list_name: Optional[str] = None,
        max_profiles: Optional[int] = None,
    ) -> List[LeadRecord]:
        """Visit each account's people tab and return one lead per profile URL.

        A failing account is logged and skipped so the remaining accounts
        still contribute leads.
        """

        per_account = max_profiles if max_profiles and max_profiles > 0 else self.settings.results_per_page
        aggregated: List[LeadRecord] = []
        seen: Set[str] = set()

        for raw_url in account_urls:
            try:
                account_url = normalize_account_url(raw_url)
            except ValidationError as exc:
                LOGGER.warning("Skipping account URL %r: %s", raw_url, exc)
                continue
            try:
                with self.page() as page:
                    target = people_url(account_url)
                    LOGGER.info("Scraping company people from %s", target)
                    self.goto(page, target)
                    self.pause()
                    self._load_more(page, per_account)
                    profiles = extract_account_profiles(page.content(), limit=per_account, origin=page.url)
            except PlaywrightError as exc:
                LOGGER.error("Failed to scrape company followers for %s: %s", raw_url, exc)
                continue
            finally:
                self.pause()

            for lead in self._to_leads(profiles, account_url, task_id, task_name, lead_list_name):
                key = lead.dedupe_key
                if key in seen:
                    continue
                seen.add(key)
                aggregated.append(lead)

        return aggregated

    def _load_more(self, page: Page, target: int) -> None:
        previous = 0
        for _ in range(MAX_LOAD_ATTEMPTS):
            count = sum(page.locator(selector).count() for selector in CARD_SELECTORS[:3])
            if count >= target or count == previous:
                break
            previous = count
            if not self.click_first(page, LOAD_MORE_SELECTORS):
                self.scroll(page)
            self.pause()

    @staticmethod
    def _to_leads(
        profiles: List[AccountProfile],
        account_url: str,
        task_id: str,
        task_name: Optional[str],
        lead_list_name: Optional[str],
    ) -> List[LeadRecord]:
        fallback_company = company_name_from_url(account_url)
        captured_at = utcnow()
        return [
            LeadRecord(
                id=f"{task_id}:{profile.profile_url}",
                preset_id=task_id,
                profile_url=profile.profile_url,
                full_name=profile.full_name,
                title=profile.headline,
                headline=profile.headline,
                company_name=profile.company_name or fallback_company,
                company_url=account_url,
                location=profile.location,
                captured_at=captured_at,
                raw={
                    "source": "account_followers",
                    "account_url": account_url,
                    "lead_list_name": lead_list_name,
                },
                task_name=task_name,
            )
            for profile in profiles
            if profile.profile_url and profile.full_name
        ]


__all__ = ["AccountFollowersScraper"]
