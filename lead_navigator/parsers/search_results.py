"""Extract lead rows from a Sales Navigator people search results page."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .common import DEFAULT_ORIGIN, Markup, first_text, make_soup, reached_limit, resolve_url, text_of

RESULT_ROW_SELECTOR = "li.search-results__result-item, li[data-x-search-result]"
NEXT_PAGE_SELECTOR = "button[aria-label='Next'], button.artdeco-pagination__button--next"
LEAD_LINK_SELECTOR = "a[data-control-name='view_lead_panel_v2']"


@dataclass(slots=True)
class SearchResult:
    full_name: str
    profile_url: Optional[str] = None
    sales_navigator_url: Optional[str] = None
    title: Optional[str] = None
    headline: Optional[str] = None
    company_name: Optional[str] = None
    location: Optional[str] = None
    connection_degree: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def extract_search_results(
    markup: Markup, *, limit: Optional[int] = None, origin: str = DEFAULT_ORIGIN
) -> List[SearchResult]:
    """Return every result row that carries a person name."""

    root = make_soup(markup)
    results: List[SearchResult] = []
    for item in root.select(RESULT_ROW_SELECTOR):
        full_name = first_text(item, ["a[data-anonymize='person-name'], span[data-anonymize='person-name']"])
        if not full_name:
            continue
        link = item.select_one(LEAD_LINK_SELECTOR)
        lead_url = resolve_url(link.get("href") if link is not None else None, origin)
        results.append(
            SearchResult(
                full_name=full_name,
                profile_url=lead_url,
                sales_navigator_url=lead_url,
                title=first_text(item, ["div[data-anonymize='headline'], span[data-anonymize='headline']"]),
                headline=first_text(item, ["div[data-anonymize='headline']"]),
                company_name=first_text(item, ["a[data-anonymize='company-name']"]),
                location=first_text(item, ["span[data-anonymize='location']"]),
                connection_degree=first_text(item, ["span[data-test-connection-status]"]),
                raw={"source": "sales_navigator", "text_content": text_of(item)},
            )
        )
        if reached_limit(len(results), limit):
            break
    return results


__all__ = ["LEAD_LINK_SELECTOR", "NEXT_PAGE_SELECTOR", "RESULT_ROW_SELECTOR", "SearchResult", "extract_search_results"]
