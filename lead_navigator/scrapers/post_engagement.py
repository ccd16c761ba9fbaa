"""Collect the members who reacted to or commented on LinkedIn posts."""
from __future__ import annotations

import logging
from dataclasses import asdict, replace
from typing import Dict, Iterable, List, Optional, Set
from urllib.parse import urljoin

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from ..errors import ValidationError
from ..models import LeadRecord, utcnow
from ..parsers.post_engagement import (
    COMMENT_SELECTORS,
    REACTOR_SELECTORS,
    EngagementProfile,
    extract_comments,
    extract_reactors,
)
from ..parsers.profile import ProfileDetails, extract_profile_details
from .base import BrowserSession
from .urls import normalize_post_url

LOGGER = logging.getLogger(__name__)

REACTOR_ROW_SELECTOR = ", ".join(REACTOR_SELECTORS)
COMMENT_ROW_SELECTOR = ", ".join(COMMENT_SELECTORS)

REACTOR_PAGE_LINK = "a[href*='reactor'], a[href*='reactors']"
REACTION_TRIGGERS = (
    "button[data-test-reactions-list-button]",
    "button[aria-label*=' reactions']",
    "button[aria-label*='reacted']",
    "button.social-details-social-counts__count",
    "span[role='button'][aria-label*=' reactions']",
    "span[role='button'][aria-label*='reacted']",
    "li.social-details-social-counts__reactions button",
    "li.social-details-social-counts__reactions span[role='button']",
    "button[data-control-name='likes_count']",
    "button[data-control-name='reactions_count']",
    "button.social-details-social-counts__reactions-count",
)
REACTIONS_MODAL = "div.social-details-reactors-modal, div.reactions-modal, div.artdeco-modal, div[role='dialog']"
MODAL_SCROLL_CONTAINERS = (
    ".social-details-reactors-modal__list",
    ".reactions-tab-body",
    ".artdeco-modal__content",
)
MODAL_CLOSE_BUTTONS = (
    "button[aria-label='Dismiss']",
    "button[aria-label='Close']",
    "button.artdeco-modal__dismiss",
)
COMMENT_LOAD_MORE = (
    "button.comments-comments-list__load-more-comments-button",
    "button.comments-comments-list__load-previous-comments-button",
    "button[data-control-name='load_more_comments']",
    "button[aria-label*='more comments']",
    "button[aria-label*='Load previous comments']",
)
COMMENT_SEE_MORE = (
    "button.comments-comment-item__read-more",
    "button[aria-label='See more']",
    "button[data-control-name='expand_comment']",
)
MAX_SCROLL_ROUNDS = 12
MAX_COMMENT_LOADS = 10

_SCROLL_CONTAINER_SCRIPT = """
(selectors) => {
    for (const selector of selectors) {
        const element = document.querySelector(selector);
        if (element) {
            element.scrollTop = element.scrollHeight;
            return true;
        }
    }
    window.scrollBy(0, window.innerHeight * 1.5);
    return false;
}
"""


def needs_enrichment(profile: EngagementProfile) -> bool:
    """Whether a profile visit could fill in details missing from the engagement list."""

    return (
        not profile.full_name
        or len(profile.full_name) < 2
        or not profile.headline
        or not profile.location
        or not profile.current_company
    )


def apply_details(profile: EngagementProfile, details: ProfileDetails) -> EngagementProfile:
    return replace(
        profile,
        full_name=details.full_name or profile.full_name,
        headline=details.headline or profile.headline,
        location=details.location or profile.location,
        current_title=details.current_title or profile.current_title or profile.headline,
        current_company=details.current_company or profile.current_company,
        profile_image_url=details.profile_image_url or profile.profile_image_url,
        email=details.email or profile.email,
        details=asdict(details),
    )


class PostEngagementScraper(BrowserSession):
    """Scrape reactors and commenters, optionally visiting profiles for missing details."""

    def __init__(self, *args, enrich_profiles: bool = True, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.enrich_profiles = enrich_profiles
        self._detail_cache: Dict[str, Optional[ProfileDetails]] = {}

    def scrape(
        self,
        *,
        task_id: str,
        post_urls: Iterable[str],
        scrape_reactions: bool,
        scrape_commenters: bool,
        task_name: Optional[str] = None,
        lead_list_name: Optional[str] = None,
        max_profiles: Optional[int] = None,
    ) -> List[LeadRecord]:
        limit = max_profiles if max_profiles and max_profiles > 0 else self.settings.results_per_page
        aggregated: List[LeadRecord] = []
        seen: Set[str] = set()

        for raw_url in post_urls:
            try:
                post_url = normalize_post_url(raw_url)
            except ValidationError as exc:
                LOGGER.warning("Skipping post URL %r: %s", raw_url, exc)
                continue
            try:
                with self.page() as page:
                    LOGGER.info("Scraping post engagement from %s", post_url)
                    self.goto(page, post_url)
                    self.pause()
                    if scrape_reactions:
                        reactors = self._enrich(self._collect_reactors(page, post_url, limit))
                        self._merge(aggregated, seen, self._to_leads(
                            reactors, "reaction", post_url, task_id, task_name, lead_list_name
                        ))
                    if scrape_commenters:
                        commenters = self._enrich(self._collect_commenters(page, post_url, limit))
                        LOGGER.info("Collected %s commenters from %s", len(commenters), post_url)
                        self._merge(aggregated, seen, self._to_leads(
                            commenters, "comment", post_url, task_id, task_name, lead_list_name
                        ))
            except PlaywrightError as exc:
                LOGGER.error("Failed to scrape post engagement for %s: %s", raw_url, exc)
            finally:
                self.pause()
            LOGGER.info("Collected %s leads so far after %s", len(aggregated), post_url)

        return aggregated

    # ------------------------------------------------------------------
    # Reactions
    def _collect_reactors(self, page: Page, post_url: str, limit: int) -> List[EngagementProfile]:
        link = page.query_selector(REACTOR_PAGE_LINK)
        if link is not None:
            href = link.get_attribute("href")
            link.dispose()
            if href:
                return self._scrape_reactor_page(urljoin(post_url, href), limit)

        self.wait_for(page, ", ".join(REACTION_TRIGGERS))
        clicked = self.click_first(page, REACTION_TRIGGERS)
        if not clicked:
            page.evaluate(
                "() => { const counts = document.querySelector('.social-details-social-counts');"
                " if (counts) { counts.scrollIntoView({block: 'center'}); } }"
            )
            self.pause()
            clicked = self.click_first(page, REACTION_TRIGGERS)
        if not clicked:
            LOGGER.warning("Could not open the reactions list for %s", post_url)
            return []
        if not self.wait_for(page, REACTIONS_MODAL):
            LOGGER.warning("Reactions dialog did not appear for %s", post_url)
            return []

        self._scroll_rows(page, MODAL_SCROLL_CONTAINERS, REACTOR_ROW_SELECTOR, limit)
        reactors = extract_reactors(page.content(), limit=limit, origin=post_url)
        self.click_first(page, [f"{REACTIONS_MODAL.split(',')[0]} {button}" for button in MODAL_CLOSE_BUTTONS])
        LOGGER.info("Collected %s reactors from dialog on %s", len(reactors), post_url)
        return reactors

    def _scrape_reactor_page(self, url: str, limit: int) -> List[EngagementProfile]:
        try:
            with self.page() as page:
                self.goto(page, url)
                self.pause()
                self._scroll_rows(page, (".social-details-reactors-tab__content", ".scaffold-finite-scroll__content"), REACTOR_ROW_SELECTOR, limit)
                reactors = extract_reactors(page.content(), limit=limit, origin=url)
        except PlaywrightError as exc:
            LOGGER.error("Failed to scrape reactors page %s: %s", url, exc)
            return []
        LOGGER.info("Collected %s reactors from %s", len(reactors), url)
        return reactors

    def _scroll_rows(self, page: Page, containers, row_selector: str, limit: int) -> None:
        previous = -1
        for _ in range(MAX_SCROLL_ROUNDS):
            count = page.locator(row_selector).count()
            if count >= limit or count == previous:
                break
            previous = count
            page.evaluate(_SCROLL_CONTAINER_SCRIPT, list(containers))
            self.pause()

    # ------------------------------------------------------------------
    # Comments
    def _collect_commenters(self, page: Page, post_url: str, limit: int) -> List[EngagementProfile]:
        self.scroll(page, 0.8)
        self.pause()
        if not self.wait_for(page, COMMENT_ROW_SELECTOR):
            LOGGER.info("No comments rendered on %s", post_url)
            return []
        previous = -1
        for _ in range(MAX_COMMENT_LOADS):
            count = page.locator(COMMENT_ROW_SELECTOR).count()
            if count >= limit or count == previous:
                break
            previous = count
            if not self.click_first(page, COMMENT_LOAD_MORE):
                break
            self.pause()
        for selector in COMMENT_SEE_MORE:
            for button in page.query_selector_all(selector):
                try:
                    button.click()
                except PlaywrightError:
                    LOGGER.debug("Could not expand comment via %s", selector)
                finally:
                    button.dispose()
        return extract_comments(page.content(), limit=limit, origin=post_url)

    # ------------------------------------------------------------------
    # Enrichment and mapping
    def _enrich(self, profiles: List[EngagementProfile]) -> List[EngagementProfile]:
        if not self.enrich_profiles:
            return profiles
        enriched: List[EngagementProfile] = []
        for profile in profiles:
            if not needs_enrichment(profile):
                enriched.append(profile)
                continue
            details = self._profile_details(profile.profile_url)
            enriched.append(apply_details(profile, details) if details else profile)
        return enriched

    def _profile_details(self, profile_url: str) -> Optional[ProfileDetails]:
        key = profile_url.lower()
        if key in self._detail_cache:
            return self._detail_cache[key]
        details: Optional[ProfileDetails] = None
        try:
            with self.page() as page:
                LOGGER.debug("Fetching profile details for %s", profile_url)
                self.goto(page, profile_url)
                self.pause()
                self.wait_for(page, "main", timeout_ms=min(self.settings.page_timeout_ms, 8000))
                self.open_contact_info(page)
                details = extract_profile_details(page.content())
        except PlaywrightError as exc:
            LOGGER.warning("Unable to enrich profile %s: %s", profile_url, exc)
        self._detail_cache[key] = details
        return details

    @staticmethod
    def _merge(target: List[LeadRecord], seen: Set[str], leads: List[LeadRecord]) -> None:
        for lead in leads:
            if lead.dedupe_key in seen:
                continue
            seen.add(lead.dedupe_key)
            target.append(lead)

    @staticmethod
    def _to_leads(
        profiles: List[EngagementProfile],
        engagement: str,
        post_url: str,
        task_id: str,
        task_name: Optional[str],
        lead_list_name: Optional[str],
    ) -> List[LeadRecord]:
        captured_at = utcnow()
        suffix = ":comment" if engagement == "comment" else ""
        leads: List[LeadRecord] = []
        for profile in profiles:
            if not profile.profile_url or not (profile.full_name or "").strip():
                continue
            raw = {
                "source": "post_engagement",
                "engagement": engagement,
                "post_url": post_url,
                "lead_list_name": lead_list_name,
            }
            if profile.reaction_label:
                raw["reaction_label"] = profile.reaction_label
            if profile.comment_text:
                raw["comment_text"] = profile.comment_text
            if profile.profile_image_url:
                raw["profile_image_url"] = profile.profile_image_url
            leads.append(
                LeadRecord(
                    id=f"{task_id}:{profile.profile_url}{suffix}",
                    preset_id=task_id,
                    profile_url=profile.profile_url,
                    full_name=profile.full_name,
                    title=profile.current_title or profile.headline,
                    headline=profile.headline,
                    company_name=profile.current_company,
                    company_url=profile.current_company_url,
                    location=profile.location,
                    email=profile.email,
                    captured_at=captured_at,
                    raw=raw,
                    task_name=task_name,
                )
            )
        return leads


__all__ = ["PostEngagementScraper", "apply_details", "needs_enrichment"]
