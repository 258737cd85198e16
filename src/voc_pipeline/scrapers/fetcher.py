"""Single-URL page retrieval with optional JS rendering."""

from __future__ import annotations

import logging
from typing import List, Optional

import requests

from voc_pipeline.constants import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_USER_AGENT,
    SCRAPER_API_ENDPOINT,
)
from voc_pipeline.exceptions import FetchHttpError, FetchNetworkError, FetchTimeout
from voc_pipeline.rendering import PlaywrightRenderer, RenderRequest, get_renderer
from voc_pipeline.scrapers.platforms import PageAction

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Interstitials served with a 200 status; only checked on small pages
_ANTIBOT_INDICATORS = [
    ("captcha", "CAPTCHA challenge detected"),
    ("challenge-platform", "Cloudflare challenge detected"),
    ("cf-browser-verification", "Cloudflare verification detected"),
    ("just a moment...", "Cloudflare waiting page detected"),
    ("access denied", "Access denied"),
    ("too many requests", "Too many requests"),
    ("please verify you are a human", "Verification required"),
]
_ANTIBOT_MAX_PAGE_SIZE = 15_000


def detect_blocked_page(markup: str) -> Optional[str]:
    """Reason string if the markup looks like an anti-bot page, else None."""
    if not markup or len(markup) > _ANTIBOT_MAX_PAGE_SIZE:
        return None
    lowered = markup.lower()
    for indicator, reason in _ANTIBOT_INDICATORS:
        if indicator in lowered:
            return reason
    return None


class Fetcher:
    """
    Fetch one URL, optionally rendered, under a hard timeout.

    Plain fetches use requests with a browser identity. Rendered fetches go
    through the configured backend:

    - ``proxy``: a remote rendering proxy (ScraperAPI-style
      ``?api_key=..&url=..&render=true``). Page actions are the proxy's job
      and are not replayed.
    - ``playwright``: headless Chromium, which also runs page actions.

    No retries: each call is one attempt.
    """

    def __init__(
        self,
        scraper_api_key: Optional[str] = None,
        render_backend: str = "proxy",
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        session: Optional[requests.Session] = None,
        renderer: Optional[PlaywrightRenderer] = None,
    ):
        self.scraper_api_key = scraper_api_key
        self.render_backend = render_backend
        self.timeout = timeout
        self.session = session or requests.Session()
        self._renderer = renderer
        self._warned_no_proxy = False

    @property
    def renderer(self) -> PlaywrightRenderer:
        if self._renderer is None:
            self._renderer = get_renderer()
        return self._renderer

    def fetch(
        self,
        url: str,
        render_js: bool = False,
        timeout: Optional[float] = None,
        actions: Optional[List[PageAction]] = None,
        cookie_selectors: Optional[List[str]] = None,
        settle_ms: int = 0,
    ) -> str:
        """
        Retrieve raw markup for a URL.

        Args:
            url: Page to fetch
            render_js: Execute client-side JavaScript before capture
            timeout: Hard timeout in seconds (defaults to the fetcher's)
            actions: Page actions for the headless backend
            cookie_selectors: Consent buttons tried by ACCEPT_COOKIES
            settle_ms: Delay used by WAIT

        Returns:
            Markup string

        Raises:
            FetchTimeout, FetchHttpError, FetchNetworkError
        """
        timeout = timeout or self.timeout

        if render_js and self.render_backend == "playwright":
            markup = self._render_headless(url, timeout, actions or [], cookie_selectors or [], settle_ms)
        elif render_js and self.scraper_api_key:
            markup = self._get(
                SCRAPER_API_ENDPOINT,
                url,
                timeout,
                params={"api_key": self.scraper_api_key, "url": url, "render": "true"},
            )
        else:
            if render_js and not self._warned_no_proxy:
                logger.warning("SCRAPER_API_KEY not set; fetching JS pages without rendering")
                self._warned_no_proxy = True
            markup = self._get(url, url, timeout)

        reason = detect_blocked_page(markup)
        if reason:
            raise FetchHttpError(url, 403, reason)
        return markup

    def _get(self, request_url: str, page_url: str, timeout: float, params: Optional[dict] = None) -> str:
        try:
            response = self.session.get(
                request_url, params=params, headers=DEFAULT_HEADERS, timeout=timeout
            )
        except requests.Timeout as exc:
            raise FetchTimeout(page_url, timeout) from exc
        except requests.RequestException as exc:
            raise FetchNetworkError(page_url, f"Network error fetching {page_url}: {exc}") from exc

        if response.status_code >= 400:
            raise FetchHttpError(page_url, response.status_code)

        return response.text

    def _render_headless(
        self,
        url: str,
        timeout: float,
        actions: List[PageAction],
        cookie_selectors: List[str],
        settle_ms: int,
    ) -> str:
        result = self.renderer.render(
            RenderRequest(
                url=url,
                actions=actions,
                cookie_selectors=cookie_selectors,
                settle_ms=settle_ms,
                wait_timeout_ms=int(timeout * 1000),
            )
        )
        return result.html
