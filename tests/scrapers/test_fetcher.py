"""Tests for Fetcher."""

from unittest.mock import MagicMock

import pytest
import requests

from voc_pipeline.constants import SCRAPER_API_ENDPOINT
from voc_pipeline.exceptions import FetchHttpError, FetchNetworkError, FetchTimeout
from voc_pipeline.scrapers.fetcher import Fetcher, detect_blocked_page
from voc_pipeline.scrapers.platforms import PageAction


def _response(text="<html>ok</html>", status=200):
    response = MagicMock()
    response.text = text
    response.status_code = status
    return response


@pytest.fixture
def session():
    session = MagicMock()
    session.get.return_value = _response()
    return session


class TestPlainFetch:
    def test_returns_markup(self, session):
        fetcher = Fetcher(session=session, timeout=5)

        assert fetcher.fetch("https://example.com/reviews") == "<html>ok</html>"
        args, kwargs = session.get.call_args
        assert args[0] == "https://example.com/reviews"
        assert kwargs["timeout"] == 5
        assert "User-Agent" in kwargs["headers"]

    def test_per_call_timeout_overrides_default(self, session):
        Fetcher(session=session, timeout=30).fetch("https://example.com", timeout=3)
        assert session.get.call_args[1]["timeout"] == 3

    def test_404_raises_http_error(self, session):
        session.get.return_value = _response("not found", status=404)

        with pytest.raises(FetchHttpError) as exc_info:
            Fetcher(session=session).fetch("https://example.com/missing")

        assert exc_info.value.status == 404
        assert exc_info.value.url == "https://example.com/missing"

    def test_timeout_raises_fetch_timeout(self, session):
        session.get.side_effect = requests.Timeout("slow")

        with pytest.raises(FetchTimeout, match="Timed out after 2s"):
            Fetcher(session=session).fetch("https://example.com", timeout=2)

    def test_connection_error_raises_network_error(self, session):
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(FetchNetworkError, match="Network error"):
            Fetcher(session=session).fetch("https://example.com")

    def test_blocked_page_reported_as_403(self, session):
        session.get.return_value = _response("<html><title>Just a moment...</title></html>")

        with pytest.raises(FetchHttpError) as exc_info:
            Fetcher(session=session).fetch("https://example.com")

        assert exc_info.value.status == 403
        assert "Cloudflare" in exc_info.value.reason


class TestRenderedFetch:
    def test_proxy_backend_sends_render_params(self, session):
        fetcher = Fetcher(scraper_api_key="secret", session=session)

        fetcher.fetch("https://www.trustpilot.com/review/acme.com", render_js=True)

        args, kwargs = session.get.call_args
        assert args[0] == SCRAPER_API_ENDPOINT
        assert kwargs["params"] == {
            "api_key": "secret",
            "url": "https://www.trustpilot.com/review/acme.com",
            "render": "true",
        }

    def test_proxy_error_names_the_page_url(self, session):
        session.get.return_value = _response(status=500)
        fetcher = Fetcher(scraper_api_key="secret", session=session)

        with pytest.raises(FetchHttpError) as exc_info:
            fetcher.fetch("https://www.yelp.com/biz/acme", render_js=True)

        assert exc_info.value.url == "https://www.yelp.com/biz/acme"

    def test_without_proxy_key_falls_back_to_plain_get(self, session):
        Fetcher(session=session).fetch("https://www.yelp.com/biz/acme", render_js=True)

        assert session.get.call_args[0][0] == "https://www.yelp.com/biz/acme"
        assert session.get.call_args[1]["params"] is None

    def test_playwright_backend_passes_actions(self, session):
        renderer = MagicMock()
        renderer.render.return_value = MagicMock(html="<html>rendered</html>")
        fetcher = Fetcher(render_backend="playwright", session=session, renderer=renderer)

        markup = fetcher.fetch(
            "https://www.trustpilot.com/review/acme.com",
            render_js=True,
            timeout=10,
            actions=[PageAction.ACCEPT_COOKIES],
            cookie_selectors=["button#accept"],
            settle_ms=500,
        )

        assert markup == "<html>rendered</html>"
        session.get.assert_not_called()
        render_request = renderer.render.call_args[0][0]
        assert render_request.actions == [PageAction.ACCEPT_COOKIES]
        assert render_request.cookie_selectors == ["button#accept"]
        assert render_request.wait_timeout_ms == 10000


class TestDetectBlockedPage:
    def test_captcha(self):
        assert detect_blocked_page("<div>Please solve the CAPTCHA</div>") == "CAPTCHA challenge detected"

    def test_normal_page(self):
        assert detect_blocked_page("<p>Great reviews here</p>") is None

    def test_large_pages_are_not_checked(self):
        assert detect_blocked_page("captcha " + "x" * 20000) is None
