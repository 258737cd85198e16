"""Tests for URL and date helpers."""

from voc_pipeline.utils.date_utils import normalize_review_date
from voc_pipeline.utils.url_utils import (
    business_domain,
    domain_token,
    ensure_scheme,
    get_root_domain,
    host_matches,
    name_tokens,
    normalize_url,
    slugify,
)


class TestUrlUtils:
    def test_ensure_scheme(self):
        assert ensure_scheme("acme.com") == "https://acme.com"
        assert ensure_scheme("http://acme.com") == "http://acme.com"

    def test_normalize_url(self):
        assert normalize_url("HTTPS://Example.com/path/#frag") == "https://example.com/path"

    def test_root_domain(self):
        assert get_root_domain("shop.acme.com") == "acme.com"
        assert get_root_domain("www.acme.co.uk") == "acme.co.uk"

    def test_business_domain_and_token(self):
        assert business_domain("https://www.acme.co.uk/about") == "acme.co.uk"
        assert domain_token("acme.co.uk") == "acme"
        assert domain_token("") == ""

    def test_slugify(self):
        assert slugify("Acme & Sons, Inc.") == "acme-sons-inc"

    def test_name_tokens_drop_stopwords(self):
        assert name_tokens("The Acme Widget Company, Inc.") == ["acme", "widget"]

    def test_host_matches_subdomains_only(self):
        assert host_matches("https://uk.trustpilot.com/x", ["trustpilot.com"])
        assert not host_matches("https://faketrustpilot.com/x", ["trustpilot.com"])
        assert not host_matches("", ["trustpilot.com"])


class TestDateUtils:
    def test_iso_timestamp(self):
        assert normalize_review_date("2024-03-05T10:00:00.000Z") == "2024-03-05"

    def test_human_date(self):
        assert normalize_review_date("Mar 5, 2024") == "2024-03-05"

    def test_partial_date_is_stable(self):
        assert normalize_review_date("March 2024") == normalize_review_date("March 2024") == "2024-03-01"

    def test_relative_date_kept(self):
        assert normalize_review_date("3 days ago") == "3 days ago"

    def test_empty(self):
        assert normalize_review_date(None) is None
        assert normalize_review_date("   ") is None
