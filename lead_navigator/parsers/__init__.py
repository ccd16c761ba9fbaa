"""Pure HTML extraction functions for the pages the scrapers visit."""

from .account_followers import AccountProfile, extract_account_profiles
from .post_engagement import EngagementProfile, extract_comments, extract_reactors, sanitize_full_name
from .profile import Education, Experience, ProfileDetails, extract_profile_details
from .search_results import SearchResult, extract_search_results

__all__ = [
    "AccountProfile",
    "Education",
    "EngagementProfile",
    "Experience",
    "ProfileDetails",
    "SearchResult",
    "extract_account_profiles",
    "extract_comments",
    "extract_profile_details",
    "extract_reactors",
    "extract_search_results",
    "sanitize_full_name",
]
