"""Headless Chromium renderer for JS-dependent review pages.

- Tight per-render timeouts.
- Heavy resources blocked by default.
- Optional page actions (accept cookies, scroll for lazy content, settle delay)
  run before the markup is captured.
- Simple concurrency guard to avoid overloading the worker host.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, TYPE_CHECKING

from voc_pipeline.constants import DEFAULT_USER_AGENT
from voc_pipeline.exceptions import FetchHttpError, FetchNetworkError, FetchTimeout
from voc_pipeline.scrapers.platforms import PageAction

if TYPE_CHECKING:  # pragma: no cover - typing only
    from playwright.sync_api import Page


logger = logging.getLogger(__name__)


BLOCKED_RESOURCE_TYPES = {"image", "font", "media"}
SCROLL_STEPS = 6
SCROLL_PAUSE_MS = 400
CONSENT_CLICK_TIMEOUT_MS = 2000


@dataclass
class RenderRequest:
    url: str
    actions: List[PageAction] = field(default_factory=list)
    cookie_selectors: List[str] = field(default_factory=list)
    settle_ms: int = 0
    wait_timeout_ms: int = 20_000
    block_resources: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class RenderResult:
    final_url: str
    status_code: Optional[int]
    html: str
    duration_ms: int
    request_count: int
    actions_run: List[str]


class PlaywrightRenderer:
    """Minimal headless renderer with a concurrency guard."""

    def __init__(self, max_concurrent: int = 2, default_timeout_ms: int = 20_000):
        self._sem = threading.Semaphore(max_concurrent)
        self._default_timeout = default_timeout_ms

    def render(self, req: RenderRequest) -> RenderResult:
        """
        Render a page and return its markup.

        Raises:
            FetchTimeout: Navigation exceeded the timeout
            FetchHttpError: The page answered with a 4xx/5xx status
            FetchNetworkError: Browser or connection failure
        """
        try:
            from playwright.sync_api import (
                Error as PlaywrightError,
                TimeoutError as PlaywrightTimeoutError,
                sync_playwright,
            )
        except ImportError as exc:  # pragma: no cover - import guard
            raise FetchNetworkError(
                req.url,
                "Playwright is not installed. Install with `pip install playwright` and "
                "run `playwright install chromium` in the worker image.",
            ) from exc

        if not req.url.startswith(("http://", "https://")):
            raise FetchNetworkError(req.url, f"Invalid URL scheme for rendering: {req.url}")

        timeout = req.wait_timeout_ms or self._default_timeout
        start = time.monotonic()
        request_count = 0
        actions_run: List[str] = []

        with self._sem:
            browser = None
            context = None
            try:
                with sync_playwright() as p:
                    try:
                        browser = p.chromium.launch(
                            headless=True,
                            args=["--disable-dev-shm-usage", "--no-sandbox"],
                        )
                        context = browser.new_context(
                            user_agent=req.user_agent,
                            viewport={"width": 1280, "height": 2000},
                            extra_http_headers=req.headers or None,
                        )
                        page = context.new_page()

                        def on_request(_):
                            nonlocal request_count
                            request_count += 1

                        page.on("request", on_request)

                        if req.block_resources:
                            page.route(
                                "**/*",
                                lambda route: (
                                    route.abort()
                                    if route.request.resource_type in BLOCKED_RESOURCE_TYPES
                                    else route.continue_()
                                ),
                            )

                        # Pages that need actions never go network-idle; actions do the waiting
                        wait_until = "domcontentloaded" if req.actions else "networkidle"
                        response = page.goto(req.url, wait_until=wait_until, timeout=timeout)
                        status_code = response.status if response is not None else None
                        if status_code is not None and status_code >= 400:
                            raise FetchHttpError(req.url, status_code)

                        for action in req.actions:
                            self._run_action(page, action, req, PlaywrightError)
                            actions_run.append(PageAction(action).value)

                        html = page.content()
                        final_url = page.url
                    finally:
                        if context is not None:
                            context.close()
                        if browser is not None:
                            browser.close()
            except PlaywrightTimeoutError as exc:
                raise FetchTimeout(req.url, timeout / 1000) from exc
            except PlaywrightError as exc:
                # Covers browser launch failures as well as navigation errors
                raise FetchNetworkError(req.url, f"Render failed: {str(exc)[:300]}") from exc

        duration_ms = int((time.monotonic() - start) * 1000)
        url_hash = hashlib.sha256(req.url.encode()).hexdigest()[:10]
        logger.info(
            "playwright_render url_hash=%s status=%s duration_ms=%s requests=%s actions=%s",
            url_hash,
            status_code,
            duration_ms,
            request_count,
            ",".join(actions_run),
        )

        return RenderResult(
            final_url=final_url,
            status_code=status_code,
            html=html,
            duration_ms=duration_ms,
            request_count=request_count,
            actions_run=actions_run,
        )

    @staticmethod
    def _run_action(page: "Page", action: PageAction, req: RenderRequest, error_cls) -> None:
        if action == PageAction.ACCEPT_COOKIES:
            for selector in req.cookie_selectors:
                button = page.locator(selector).first
                try:
                    if button.count() and button.is_visible():
                        button.click(timeout=CONSENT_CLICK_TIMEOUT_MS)
                        logger.debug("Dismissed consent banner via %s", selector)
                        return
                except error_cls as exc:
                    # Banner absent or detached; nothing to dismiss
                    logger.debug("Consent selector %s not clickable: %s", selector, exc)
            return

        if action == PageAction.SCROLL_TO_BOTTOM:
            for _ in range(SCROLL_STEPS):
                page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
                page.wait_for_timeout(SCROLL_PAUSE_MS)
            return

        if action == PageAction.WAIT and req.settle_ms:
            page.wait_for_timeout(req.settle_ms)


# Singleton renderer used by the fetcher
_renderer_singleton: Optional[PlaywrightRenderer] = None
_singleton_lock = threading.Lock()


def get_renderer() -> PlaywrightRenderer:
    global _renderer_singleton
    if _renderer_singleton:
        return _renderer_singleton
    with _singleton_lock:
        if not _renderer_singleton:
            _renderer_singleton = PlaywrightRenderer()
    return _renderer_singleton
