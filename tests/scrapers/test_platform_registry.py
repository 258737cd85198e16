"""Tests for the platform registry and URL construction."""

from voc_pipeline.scrapers.models import ScrapedReview, clamp_rating
from voc_pipeline.scrapers.platforms import (
    PLATFORM_ORDER,
    Platform,
    display_name,
    get_platform,
    platform_for_url,
    registry_platforms,
)


class TestBuildUrl:
    def test_trustpilot_uses_domain(self):
        url = get_platform("trustpilot").build_url("Acme Widgets", "https://www.acme.com/shop")
        assert url == "https://www.trustpilot.com/review/acme.com"

    def test_yelp_uses_slug(self):
        url = get_platform("yelp").build_url("Acme Widgets & Co", "https://acme.com")
        assert url == "https://www.yelp.com/biz/acme-widgets-co"

    def test_google_uses_query(self):
        url = get_platform("google").build_url("Acme Widgets", "https://acme.com")
        assert url == "https://www.google.com/search?q=Acme+Widgets+reviews"

    def test_missing_domain_returns_none(self):
        assert get_platform("trustpilot").build_url("Acme", "") is None

    def test_generic_has_no_template(self):
        assert get_platform("generic").build_url("Acme", "https://acme.com") is None


class TestRegistry:
    def test_unknown_key_is_generic(self):
        assert get_platform("myspace").platform is Platform.GENERIC

    def test_order_excludes_generic(self):
        keys = [d.key for d in registry_platforms()]
        assert keys == [p.value for p in PLATFORM_ORDER]
        assert "generic" not in keys

    def test_ai_assisted_platforms(self):
        unreliable = {d.key for d in registry_platforms() if not d.deterministic_reliable}
        assert unreliable == {"yelp", "tripadvisor"}

    def test_platform_for_url(self):
        assert platform_for_url("https://uk.trustpilot.com/review/acme.com") is Platform.TRUSTPILOT
        assert platform_for_url("https://notyelp.com/biz/acme") is Platform.GENERIC

    def test_display_name(self):
        assert display_name("bbb") == "BBB"
        assert display_name("acme-forum") == "acme-forum"

    def test_page_url_replaces_existing_param(self):
        definition = get_platform("trustpilot")
        assert definition.page_url("https://x.com/r?page=2&sort=new", 3) == "https://x.com/r?sort=new&page=3"
        assert definition.page_url("https://x.com/r", 1) == "https://x.com/r"


class TestScrapedReview:
    def test_build_cleans_fields(self):
        review = ScrapedReview.build(
            platform="yelp", text="  Tasty&nbsp;food ", reviewer_name="by Sam", rating="4.6", date="March 5, 2024"
        )

        assert review.text == "Tasty food"
        assert review.reviewer_name == "Sam"
        assert review.rating == 5
        assert review.date == "2024-03-05"
        assert review.external_id == f"yelp_{review.fingerprint[:16]}"

    def test_record_round_trip_keeps_fingerprint(self):
        review = ScrapedReview.build(platform="yelp", text="Tasty food and quick service")
        assert ScrapedReview.from_record(review.to_record()) == review

    def test_clamp_rating(self):
        assert clamp_rating("4/5") == 4
        assert clamp_rating(0) is None
        assert clamp_rating("n/a") is None
        assert clamp_rating(7) == 5
