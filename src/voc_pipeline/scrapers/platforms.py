"""
Platform registry for review sources.

Each known platform is a ``Platform`` enum member paired with a
``PlatformDefinition`` holding everything platform-specific:

- how to build a candidate URL from the business name/domain
- whether that construction is trustworthy or needs AI-assisted discovery
- how the page must be fetched (JS rendering, pre-fetch page actions, pagination)
- which markup patterns hold review cards, in priority order
- where the page advertises its total review count

``Platform.GENERIC`` is the explicit fallback for any page that matches no
known platform. New platforms are added to ``PLATFORM_DEFINITIONS``; nothing
else dispatches on platform names.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, quote_plus, urlencode, urlparse, urlunparse

from voc_pipeline.constants import MAX_PAGINATED_PAGES, MIN_PLATFORM_REVIEW_LENGTH
from voc_pipeline.utils.url_utils import business_domain, host_matches, slugify


class Platform(str, Enum):
    TRUSTPILOT = "trustpilot"
    GOOGLE = "google"
    YELP = "yelp"
    REDDIT = "reddit"
    TRIPADVISOR = "tripadvisor"
    SITEJABBER = "sitejabber"
    BBB = "bbb"
    GENERIC = "generic"


class PageAction(str, Enum):
    """Browser steps run before the page markup is captured."""

    ACCEPT_COOKIES = "accept_cookies"
    SCROLL_TO_BOTTOM = "scroll_to_bottom"
    WAIT = "wait"


@dataclass(frozen=True)
class CardMatcher:
    """
    One markup pattern for review cards.

    Field selectors are CSS selectors evaluated inside each card; the first
    selector that matches wins. Empty ``text_selectors`` means the whole card
    text is the review.
    """

    name: str
    card_selector: str
    text_selectors: List[str] = field(default_factory=list)
    author_selectors: List[str] = field(default_factory=list)
    rating_selectors: List[str] = field(default_factory=list)
    date_selectors: List[str] = field(default_factory=list)
    # Attributes on the card element itself
    author_attribute: Optional[str] = None
    date_attribute: Optional[str] = None
    id_attribute: Optional[str] = None
    min_length: int = MIN_PLATFORM_REVIEW_LENGTH


@dataclass(frozen=True)
class PlatformDefinition:
    platform: Platform
    display_name: str
    hostnames: List[str]
    # Placeholders: {domain}, {slug}, {query}
    url_template: str = ""
    deterministic_reliable: bool = True
    render_js: bool = False
    actions: List[PageAction] = field(default_factory=list)
    cookie_selectors: List[str] = field(default_factory=list)
    settle_ms: int = 0
    max_pages: int = 1
    page_param: str = "page"
    matchers: List[CardMatcher] = field(default_factory=list)
    count_selectors: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return self.platform.value

    def build_url(self, business_name: str, business_url: str) -> Optional[str]:
        """
        Construct the candidate review URL. Pure string transform.

        Returns None when the template needs a value the business lacks
        (e.g. no domain for a domain-keyed platform).
        """
        if not self.url_template:
            return None

        values = {
            "domain": business_domain(business_url),
            "slug": slugify(business_name),
            "query": quote_plus((business_name or "").strip()),
        }
        for key, value in values.items():
            if f"{{{key}}}" in self.url_template and not value:
                return None
        return self.url_template.format(**values)

    def page_url(self, url: str, page: int) -> str:
        """URL of the given 1-based results page."""
        if page <= 1:
            return url
        parsed = urlparse(url)
        query = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
                 if k != self.page_param]
        query.append((self.page_param, str(page)))
        return urlunparse(parsed._replace(query=urlencode(query)))

    def owns_url(self, url: str) -> bool:
        return bool(self.hostnames) and host_matches(url, self.hostnames)


# Common consent buttons across CMPs (OneTrust and friends)
COOKIE_CONSENT_SELECTORS = [
    "button#onetrust-accept-btn-handler",
    'button[aria-label="Accept all cookies"]',
    'button[title*="Accept"]',
    'button[data-testid="uc-accept-all-button"]',
]


PLATFORM_DEFINITIONS: Dict[Platform, PlatformDefinition] = {
    Platform.TRUSTPILOT: PlatformDefinition(
        platform=Platform.TRUSTPILOT,
        display_name="Trustpilot",
        hostnames=["trustpilot.com"],
        url_template="https://www.trustpilot.com/review/{domain}",
        render_js=True,
        actions=[PageAction.ACCEPT_COOKIES, PageAction.SCROLL_TO_BOTTOM, PageAction.WAIT],
        cookie_selectors=COOKIE_CONSENT_SELECTORS,
        settle_ms=3000,
        max_pages=MAX_PAGINATED_PAGES,
        matchers=[
            CardMatcher(
                name="trustpilot_card",
                card_selector='[data-service-review-card-paper], article[data-service-review-card]',
                text_selectors=[
                    "[data-service-review-text-typography]",
                    "p[data-service-review-text]",
                    '[class*="reviewContent"] p',
                ],
                author_selectors=[
                    "[data-consumer-name-typography]",
                    '[class*="consumerName"]',
                ],
                rating_selectors=["[data-service-review-rating]", 'img[alt*="Rated"]'],
                date_selectors=["time[datetime]"],
            ),
            CardMatcher(
                name="trustpilot_legacy_card",
                card_selector='[class*="reviewCard"], .review-card',
                text_selectors=["p", '[class*="text"]'],
                author_selectors=['[class*="consumer"]', '[class*="name"]'],
                rating_selectors=['img[alt*="Rated"]', '[class*="star-rating"]'],
                date_selectors=["time"],
            ),
        ],
        count_selectors=[
            "[data-reviews-count-typography]",
            'span[class*="reviewsCount"]',
            'p[class*="reviewsCount"]',
        ],
    ),
    Platform.GOOGLE: PlatformDefinition(
        platform=Platform.GOOGLE,
        display_name="Google Reviews",
        hostnames=["google.com", "maps.google.com"],
        url_template="https://www.google.com/search?q={query}+reviews",
        render_js=True,
        matchers=[
            CardMatcher(
                name="google_maps_review",
                card_selector="[data-review-id]",
                text_selectors=[".wiI7pd", ".MyEned", "[data-expandable-section]"],
                author_selectors=[".d4r55", ".TSUbDb"],
                rating_selectors=['[role="img"][aria-label*="star"]', ".kvMYJc"],
                date_selectors=[".rsqaWe", ".dehysf"],
                id_attribute="data-review-id",
            ),
            CardMatcher(
                name="google_local_review",
                card_selector=".gws-localreviews__google-review",
                text_selectors=[".review-full-text", "[data-expandable-section]", ".Jtu6Td"],
                author_selectors=[".TSUbDb", ".d4r55"],
                rating_selectors=['[aria-label*="star"]'],
                date_selectors=[".dehysf"],
            ),
        ],
        count_selectors=[".hqzQac", 'span[aria-label*="reviews"]', ".z5jxId"],
    ),
    Platform.YELP: PlatformDefinition(
        platform=Platform.YELP,
        display_name="Yelp",
        hostnames=["yelp.com"],
        url_template="https://www.yelp.com/biz/{slug}",
        deterministic_reliable=False,
        render_js=True,
        matchers=[
            CardMatcher(
                name="yelp_review_list",
                card_selector='#reviews li, ul[class*="list"] li[class*="review"], [data-testid="review"]',
                text_selectors=['p[class*="comment"] span', "span[lang]", 'p[class*="comment"]'],
                author_selectors=['a[href*="/user_details"]', ".user-passport-info a"],
                rating_selectors=['div[aria-label*="star rating"]', '[role="img"][aria-label*="star"]'],
                date_selectors=['span[class*="date"]', "time"],
            ),
            CardMatcher(
                name="yelp_legacy_review",
                card_selector=".review",
                text_selectors=[".review-content p", "p"],
                author_selectors=[".user-name", ".user-display-name"],
                rating_selectors=[".i-stars", '[title*="star rating"]'],
                date_selectors=[".rating-qualifier"],
            ),
        ],
        count_selectors=['a[href="#reviews"]', 'span[class*="reviewCount"]'],
    ),
    Platform.REDDIT: PlatformDefinition(
        platform=Platform.REDDIT,
        display_name="Reddit",
        hostnames=["reddit.com"],
        url_template=(
            "https://www.reddit.com/search/?q={query}+reviews"
            "&restrict_sr=off&sort=relevance&t=all"
        ),
        render_js=True,
        matchers=[
            CardMatcher(
                name="reddit_shreddit_post",
                card_selector="shreddit-post",
                text_selectors=['[slot="text-body"]', '[slot="title"]', "a[data-testid='post-title']"],
                author_attribute="author",
                date_selectors=["faceplate-timeago time[datetime]", "time[datetime]"],
                date_attribute="created-timestamp",
                id_attribute="id",
            ),
            CardMatcher(
                name="reddit_post_container",
                card_selector='[data-testid="post-container"], .Post',
                text_selectors=["h3", '[data-click-id="text"]', "p"],
                author_selectors=['a[href*="/user/"]'],
                date_selectors=['a[data-click-id="timestamp"]', "time"],
            ),
        ],
    ),
    Platform.TRIPADVISOR: PlatformDefinition(
        platform=Platform.TRIPADVISOR,
        display_name="TripAdvisor",
        hostnames=["tripadvisor.com"],
        url_template="https://www.tripadvisor.com/Search?q={query}",
        deterministic_reliable=False,
        render_js=True,
        matchers=[
            CardMatcher(
                name="tripadvisor_review_card",
                card_selector='[data-test-target="HR_CC_CARD"], [data-automation="reviewCard"]',
                text_selectors=["q span", "q", '[data-test-target="review-body"] span'],
                author_selectors=['a[href*="/Profile/"]'],
                rating_selectors=['svg[aria-label*="bubbles"]', '[class*="bubble_"]'],
                date_selectors=['[class*="ratingDate"]', 'div[class*="biGQs"]'],
            ),
            CardMatcher(
                name="tripadvisor_legacy_review",
                card_selector=".review-container",
                text_selectors=[".partial_entry", "p"],
                author_selectors=[".info_text div", ".username"],
                rating_selectors=[".ui_bubble_rating"],
                date_selectors=[".ratingDate"],
            ),
        ],
        count_selectors=['[class*="reviewCount"]', 'span[data-test-target="review-count"]'],
    ),
    Platform.SITEJABBER: PlatformDefinition(
        platform=Platform.SITEJABBER,
        display_name="Sitejabber",
        hostnames=["sitejabber.com"],
        url_template="https://www.sitejabber.com/reviews/{domain}",
        matchers=[
            CardMatcher(
                name="sitejabber_review",
                card_selector=".review, .url-reviews__review",
                text_selectors=[".review__text", ".review__content p", "p"],
                author_selectors=[".review__author__name", ".author-name"],
                rating_selectors=[".stars", '[class*="rating"]'],
                date_selectors=[".review__date", "time"],
            ),
        ],
        count_selectors=[".rating-count", ".url-header__rating-count"],
    ),
    Platform.BBB: PlatformDefinition(
        platform=Platform.BBB,
        display_name="BBB",
        hostnames=["bbb.org"],
        url_template="https://www.bbb.org/search?find_text={query}",
        matchers=[
            CardMatcher(
                name="bbb_customer_review",
                card_selector='li[class*="review"], [class*="ReviewItem"], .bds-review',
                text_selectors=['[class*="text"]', "p"],
                author_selectors=['h3', '[class*="name"]'],
                rating_selectors=['[class*="star"]', '[aria-label*="star"]'],
                date_selectors=["time", '[class*="date"]'],
            ),
        ],
        count_selectors=['[class*="review-count"]'],
    ),
    Platform.GENERIC: PlatformDefinition(
        platform=Platform.GENERIC,
        display_name="Website",
        hostnames=[],
    ),
}

# Default scraping order (plan caps keep the first N verified sources)
PLATFORM_ORDER: List[Platform] = [
    Platform.TRUSTPILOT,
    Platform.GOOGLE,
    Platform.YELP,
    Platform.REDDIT,
    Platform.TRIPADVISOR,
    Platform.SITEJABBER,
    Platform.BBB,
]


def get_platform(key: object) -> PlatformDefinition:
    """Definition for a platform key; unknown keys get the generic fallback."""
    try:
        return PLATFORM_DEFINITIONS[Platform(key)]
    except ValueError:
        return PLATFORM_DEFINITIONS[Platform.GENERIC]


def platform_for_url(url: str) -> Platform:
    """Identify the platform that hosts a URL, or GENERIC."""
    for platform in PLATFORM_ORDER:
        if PLATFORM_DEFINITIONS[platform].owns_url(url):
            return platform
    return Platform.GENERIC


def display_name(key: object) -> str:
    """Human-readable platform name for progress messages."""
    definition = get_platform(key)
    if definition.platform is Platform.GENERIC and isinstance(key, str) and key:
        return key
    return definition.display_name


def registry_platforms() -> List[PlatformDefinition]:
    """Known platforms in scraping order (excludes the generic fallback)."""
    return [PLATFORM_DEFINITIONS[p] for p in PLATFORM_ORDER]
