"""Sales Navigator people search driven by a stored preset."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from ..errors import AuthenticationWallError, AutomationError, ValidationError
from ..models import LeadRecord, Range, SearchFilters, SearchPreset, utcnow
from ..parsers.search_results import NEXT_PAGE_SELECTOR, RESULT_ROW_SELECTOR, extract_search_results
from ..rate_limit import RetryPolicy
from .base import BrowserSession

LOGGER = logging.getLogger(__name__)

SALES_NAV_BASE = "https://www.linkedin.com/sales/search/people"
MAX_URL_LENGTH = 3500
MAX_FILTER_VALUE_LENGTH = 120
SHRINK_FLOOR = 5
DEFAULT_PAGE_LIMIT = 3

# (filter attribute, query parameter, separator); order matches the query string.
_LIST_PARAMS: Sequence[Tuple[str, str, str]] = (
    ("keywords", "keywords", " "),
    ("excluded_keywords", "excludeKeywords", " "),
    ("industries", "industry", ","),
    ("geographies", "geoIncluded", ","),
    ("company_headquarters", "companyHQ", ","),
    ("seniorities", "seniority", ","),
    ("functions", "functionIncluded", ","),
    ("current_companies", "currentCompany", ","),
    ("past_companies", "pastCompany", ","),
    ("current_job_titles", "currentTitle", ","),
    ("past_job_titles", "pastTitle", ","),
    ("company_types", "companyType", ","),
    ("groups", "group", ","),
    ("schools", "school", ","),
    ("profile_languages", "profileLanguage", ","),
    ("connections_of", "connectionOf", ","),
    ("account_lists", "accountList", ","),
    ("lead_lists", "leadList", ","),
    ("personas", "persona", ","),
)

_RANGE_PARAMS: Sequence[Tuple[str, str, str]] = (
    ("company_headcount", "companySizeLow", "companySizeHigh"),
    ("company_revenue", "companyRevenueLow", "companyRevenueHigh"),
    ("years_in_current_company", "yearsAtCompanyLow", "yearsAtCompanyHigh"),
    ("years_in_current_position", "yearsInPositionLow", "yearsInPositionHigh"),
    ("years_of_experience", "yearsExperienceLow", "yearsExperienceHigh"),
)

_FLAG_PARAMS: Sequence[Tuple[str, str]] = (
    ("following_your_company", "followsCompany"),
    ("shared_experiences", "sharedExperience"),
    ("team_link_introductions", "teamlinkIntro"),
    ("viewed_your_profile", "viewedProfile"),
    ("past_customer", "pastCustomer"),
    ("past_colleague", "pastColleague"),
    ("buyer_intent", "buyerIntent"),
    ("people_in_crm", "inCRM"),
    ("people_interacted_with", "interactedWithYou"),
    ("saved_leads_and_accounts", "saved"),
)

# Lists trimmed one item at a time, in this order, while the URL is too long.
_SHRINKABLE = ("keywords", "excluded_keywords", "current_job_titles", "functions", "personas")

AUTH_WALL_MARKERS = ("checkpoint", "authwall", "login")
LOGIN_FORM_SELECTOR = "form.login__form, form#login"


def sanitize_list(values: Sequence[str]) -> List[str]:
    """Trim, drop empties, cap each value's length and dedupe in first-seen order."""

    cleaned: List[str] = []
    for value in values or []:
        text = str(value).strip()[:MAX_FILTER_VALUE_LENGTH]
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _encode(filters: SearchFilters, lists: Dict[str, List[str]]) -> str:
    params: List[Tuple[str, str]] = []
    for attribute, key, separator in _LIST_PARAMS:
        if lists[attribute]:
            params.append((key, separator.join(lists[attribute])))
    if filters.first_name:
        params.append(("firstName", filters.first_name))
    if filters.last_name:
        params.append(("lastName", filters.last_name))
    for attribute, low_key, high_key in _RANGE_PARAMS:
        bounds: Range = getattr(filters, attribute)
        if bounds.min is not None:
            params.append((low_key, _format_number(bounds.min)))
        if bounds.max is not None:
            params.append((high_key, _format_number(bounds.max)))
    if filters.relationship:
        params.append(("relationship", filters.relationship))
    if filters.posted_in_past_days:
        params.append(("timePosted", str(filters.posted_in_past_days)))
    if filters.changed_jobs_in_past_days:
        params.append(("changedJobs", str(filters.changed_jobs_in_past_days)))
    for attribute, key in _FLAG_PARAMS:
        if getattr(filters, attribute):
            params.append((key, "true"))
    params.append(("page", "1"))
    return f"{SALES_NAV_BASE}?{urlencode(params)}"


def build_search_url(filters: SearchFilters, *, max_length: int = MAX_URL_LENGTH) -> str:
    """Encode ``filters`` as a Sales Navigator search URL.

    Long URLs are shortened by dropping trailing values from the free-text
    lists, never below five values each.  Raises :class:`ValidationError`
    when the URL is still longer than ``max_length``.
    """

    lists = {attribute: sanitize_list(getattr(filters, attribute)) for attribute, _, _ in _LIST_PARAMS}
    original_sizes = {name: len(lists[name]) for name in _SHRINKABLE}

    url = _encode(filters, lists)
    for name in _SHRINKABLE:
        while len(url) > max_length and len(lists[name]) > SHRINK_FLOOR:
            lists[name] = lists[name][:-1]
            url = _encode(filters, lists)

    if len(url) > max_length:
        raise ValidationError(
            "Generated Sales Navigator URL is too long. Trim the number of keywords or filters and try again."
        )
    trimmed = {name: len(lists[name]) for name in _SHRINKABLE if len(lists[name]) < original_sizes[name]}
    if trimmed:
        LOGGER.debug("Trimmed Sales Navigator filters to satisfy URL length limits: %s", trimmed)
    return url


def check_authorized(url: str, has_login_form: bool = False) -> None:
    """Raise :class:`AuthenticationWallError` when the page is not a logged-in search."""

    if any(marker in url for marker in AUTH_WALL_MARKERS):
        raise AuthenticationWallError(
            "LinkedIn redirected to an authentication wall. Update your session cookie or run with a logged-in Chrome profile."
        )
    if "contract-chooser" in url:
        raise AuthenticationWallError(
            "LinkedIn redirected to the Sales Navigator contract chooser. Log into Sales Navigator manually "
            "and make sure an active contract is selected."
        )
    if has_login_form:
        raise AuthenticationWallError(
            "LinkedIn presented a login form while running the search. Refresh your session credentials and try again."
        )


class SalesNavigatorScraper(BrowserSession):
    """Run a preset's search and collect the leads across result pages."""

    def run_search(self, preset: SearchPreset, task_name: Optional[str] = None) -> List[LeadRecord]:
        search_url = build_search_url(preset.filters)
        max_pages = preset.page_limit or DEFAULT_PAGE_LIMIT
        leads: List[LeadRecord] = []

        with self.page() as page:
            LOGGER.info("Opening Sales Navigator search for preset %s", preset.id)
            LOGGER.debug("Search URL: %s", search_url)
            retry = RetryPolicy.from_settings(self.settings, give_up_on=(AuthenticationWallError,))
            retry.run(lambda: self._open_search(page, search_url), description="Sales Navigator navigation")
            self.pause()

            for page_index in range(max_pages):
                for result in self._extract_page(page):
                    if not result.profile_url:
                        continue
                    leads.append(
                        LeadRecord(
                            id=f"{preset.id}:{result.profile_url}",
                            preset_id=preset.id,
                            profile_url=result.profile_url,
                            sales_navigator_url=result.sales_navigator_url,
                            full_name=result.full_name,
                            title=result.title,
                            headline=result.headline,
                            company_name=result.company_name,
                            location=result.location,
                            connection_degree=result.connection_degree,
                            captured_at=utcnow(),
                            raw=dict(result.raw),
                            task_name=task_name,
                        )
                    )
                if page_index == max_pages - 1 or not self.click_first(page, [NEXT_PAGE_SELECTOR]):
                    break
                LOGGER.debug("Navigating to results page %s", page_index + 2)
                self.pause()

        LOGGER.info("Collected %s leads for preset %s", len(leads), preset.id)
        return leads

    def _open_search(self, page: Page, url: str) -> None:
        try:
            self.goto(page, url)
        except PlaywrightError as exc:
            if "ERR_ABORTED" in str(exc):
                raise AutomationError(
                    "LinkedIn aborted the search navigation. Refresh your session cookie, simplify the filters, or retry shortly."
                ) from exc
            raise
        check_authorized(page.url, page.query_selector(LOGIN_FORM_SELECTOR) is not None)

    def _extract_page(self, page: Page):
        if not self.wait_for(page, RESULT_ROW_SELECTOR):
            LOGGER.warning("No search results rendered on %s", page.url)
            return []
        return extract_search_results(page.content(), origin=page.url)


__all__ = ["SalesNavigatorScraper", "build_search_url", "check_authorized", "sanitize_list"]
