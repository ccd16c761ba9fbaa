"""Playwright-driven LinkedIn scrapers."""

from .account_followers import AccountFollowersScraper
from .base import BrowserSession
from .post_engagement import PostEngagementScraper
from .profile_list import ProfileListScraper
from .sales_navigator import SalesNavigatorScraper, build_search_url

__all__ = [
    "AccountFollowersScraper",
    "BrowserSession",
    "PostEngagementScraper",
    "ProfileListScraper",
    "SalesNavigatorScraper",
    "build_search_url",
]
