"""Fetch + parse pairing for one review source.

Pagination, JS rendering and pre-fetch page actions are read from the
platform definition, so callers treat every source the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Set

from voc_pipeline.exceptions import FetchError
from voc_pipeline.scrapers.fetcher import Fetcher
from voc_pipeline.scrapers.models import ScrapedReview
from voc_pipeline.scrapers.parsers import parse
from voc_pipeline.scrapers.platforms import get_platform

logger = logging.getLogger(__name__)


@dataclass
class SourcePages:
    """Markup fetched for a source and the reviews parsed from it."""

    pages_fetched: int = 0
    reviews: List[ScrapedReview] = field(default_factory=list)
    stop_reason: str = ""


class SourceScraper:
    """Scrape every page of one source up to the platform's page cap."""

    def __init__(self, fetcher: Fetcher):
        self.fetcher = fetcher

    def scrape(self, platform: str, url: str) -> SourcePages:
        """
        Fetch and parse a source.

        The first page must load; a failure there propagates as FetchError.
        Later pages are best-effort: a failed page or a page with nothing new
        ends pagination and keeps what was collected.
        """
        definition = get_platform(platform)
        result = SourcePages()
        seen: Set[str] = set()

        for page in range(1, max(1, definition.max_pages) + 1):
            page_url = definition.page_url(url, page)
            try:
                markup = self.fetcher.fetch(
                    page_url,
                    render_js=definition.render_js,
                    actions=definition.actions,
                    cookie_selectors=definition.cookie_selectors,
                    settle_ms=definition.settle_ms,
                )
            except FetchError as exc:
                if page == 1:
                    raise
                logger.info("Stopping %s pagination at page %d: %s", definition.key, page, exc)
                result.stop_reason = f"page {page} failed"
                break

            result.pages_fetched += 1
            fresh = [r for r in parse(markup, platform) if r.fingerprint not in seen]
            if not fresh:
                result.stop_reason = f"page {page} had no new reviews"
                break

            seen.update(r.fingerprint for r in fresh)
            result.reviews.extend(fresh)
        else:
            result.stop_reason = "page cap reached"

        logger.debug(
            "Scraped %s: pages=%d reviews=%d (%s)",
            definition.key,
            result.pages_fetched,
            len(result.reviews),
            result.stop_reason,
        )
        return result
