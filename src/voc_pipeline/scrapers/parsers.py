"""
Review extraction from raw page markup.

``parse(markup, platform)`` maps one page of markup to normalized
``ScrapedReview`` records. Matchers run in priority order and the first one
that yields anything wins, so overlapping patterns never double count:

1. JSON-LD ``Review`` objects
2. schema.org microdata (``itemprop="review"``)
3. the platform's own card patterns, in registry order
4. the generic paragraph/block fallback

Parsers never raise on malformed input; no matches is an empty list.
"""

import json
import logging
import re
from typing import Any, Callable, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from voc_pipeline.constants import (
    MAX_GENERIC_REVIEW_LENGTH,
    MAX_REVIEWS_PER_PAGE,
    MIN_GENERIC_REVIEW_LENGTH,
    MIN_PLATFORM_REVIEW_LENGTH,
)
from voc_pipeline.scrapers.models import ScrapedReview
from voc_pipeline.scrapers.platforms import CardMatcher, PlatformDefinition, get_platform
from voc_pipeline.scrapers.text_sanitizer import clean_text, strip_ui_suffix

logger = logging.getLogger(__name__)

Matcher = Callable[[BeautifulSoup, str], List[ScrapedReview]]

# Page chrome removed before the generic fallback looks for text blocks
_CHROME_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "form", "svg", "button"]

_BOILERPLATE_RE = re.compile(
    r"cookie|privacy policy|terms of (service|use)|all rights reserved|sign (in|up)|"
    r"log ?in|subscribe|newsletter|javascript|copyright|©",
    re.IGNORECASE,
)

_RATING_PATTERNS = [
    re.compile(r"(\d(?:\.\d)?)\s*(?:out of|of|/)\s*5", re.IGNORECASE),
    re.compile(r"rated\s+(\d(?:\.\d)?)", re.IGNORECASE),
    re.compile(r"(\d(?:\.\d)?)\s*(?:stars?|bubbles?)", re.IGNORECASE),
    re.compile(r"(?:star-rating|stars|rating)[-_](\d)(?!\d)", re.IGNORECASE),
]
_BUBBLE_RE = re.compile(r"bubble_(\d)(\d)")
_COUNT_RE = re.compile(r"(\d[\d,.]*)\s*([kK])?")
_TEXT_COUNT_RE = re.compile(r"(\d[\d,]*)\s+(?:total\s+)?reviews\b", re.IGNORECASE)
_RATING_ATTRIBUTES = (
    "data-service-review-rating",
    "data-rating",
    "content",
    "aria-label",
    "alt",
    "title",
)


# --------------------------------------------------------------------- #
# Field helpers
# --------------------------------------------------------------------- #


def _first(card: Tag, selectors: List[str]) -> Optional[Tag]:
    for selector in selectors:
        found = card.select_one(selector)
        if found is not None:
            return found
    return None


def _element_text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return clean_text(el.get_text(" "))


def _rating_from_string(value: str) -> Optional[float]:
    value = value.strip()
    if not value:
        return None
    if re.fullmatch(r"\d(?:\.\d+)?", value):
        return float(value)
    bubble = _BUBBLE_RE.search(value)
    if bubble:
        return int(bubble.group(1)) + int(bubble.group(2)) / 10
    for pattern in _RATING_PATTERNS:
        match = pattern.search(value)
        if match:
            return float(match.group(1))
    return None


def _rating_from_element(el: Optional[Tag]) -> Optional[float]:
    if el is None:
        return None
    for attr in _RATING_ATTRIBUTES:
        raw = el.get(attr)
        if raw:
            rating = _rating_from_string(str(raw))
            if rating is not None:
                return rating
    rating = _rating_from_string(" ".join(el.get("class") or []))
    if rating is not None:
        return rating
    return _rating_from_string(el.get_text(" "))


def _date_from_element(el: Optional[Tag]) -> Optional[str]:
    if el is None:
        return None
    for attr in ("datetime", "content", "title"):
        if el.get(attr):
            return str(el.get(attr))
    return _element_text(el) or None


def _json_ld_blocks(soup: BeautifulSoup) -> Iterator[Any]:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            yield json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            logger.debug("Skipping malformed JSON-LD block")


def _walk_json(node: Any) -> Iterator[dict]:
    if isinstance(node, dict):
        yield node
        for value in node.values():
            yield from _walk_json(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_json(item)


def _has_type(node: dict, type_name: str) -> bool:
    node_type = node.get("@type")
    if isinstance(node_type, list):
        return type_name in node_type
    return node_type == type_name


def _name_of(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("name")
    if isinstance(value, list) and value:
        return _name_of(value[0])
    if isinstance(value, str):
        return value
    return None


# --------------------------------------------------------------------- #
# Matchers
# --------------------------------------------------------------------- #


def match_json_ld(soup: BeautifulSoup, platform: str) -> List[ScrapedReview]:
    """schema.org Review objects embedded as JSON-LD."""
    reviews: List[ScrapedReview] = []
    for block in _json_ld_blocks(soup):
        for node in _walk_json(block):
            if not _has_type(node, "Review"):
                continue
            body = node.get("reviewBody") or node.get("description")
            if not isinstance(body, str):
                continue
            text = clean_text(body)
            if len(text) < MIN_PLATFORM_REVIEW_LENGTH:
                continue
            rating = node.get("reviewRating")
            reviews.append(
                ScrapedReview.build(
                    platform=platform,
                    text=text,
                    reviewer_name=_name_of(node.get("author")),
                    rating=rating.get("ratingValue") if isinstance(rating, dict) else rating,
                    date=node.get("datePublished") or node.get("dateCreated"),
                    external_id=node.get("@id") or node.get("identifier"),
                )
            )
    return reviews


def match_microdata(soup: BeautifulSoup, platform: str) -> List[ScrapedReview]:
    """schema.org Review microdata (itemprop/itemtype attributes)."""
    reviews: List[ScrapedReview] = []
    for card in soup.select('[itemprop="review"], [itemtype*="schema.org/Review"]'):
        body = _first(card, ['[itemprop="reviewBody"]', '[itemprop="description"]'])
        text = _element_text(body)
        if len(text) < MIN_PLATFORM_REVIEW_LENGTH:
            continue

        author_el = _first(card, ['[itemprop="author"] [itemprop="name"]', '[itemprop="author"]'])
        author = None
        if author_el is not None:
            author = author_el.get("content") or _element_text(author_el)

        rating_el = card.select_one('[itemprop="ratingValue"]')
        rating = None
        if rating_el is not None:
            rating = rating_el.get("content") or _element_text(rating_el)

        reviews.append(
            ScrapedReview.build(
                platform=platform,
                text=text,
                reviewer_name=author,
                rating=rating,
                date=_date_from_element(card.select_one('[itemprop="datePublished"]')),
            )
        )
    return reviews


def match_cards(soup: BeautifulSoup, platform: str, matcher: CardMatcher) -> List[ScrapedReview]:
    """Review cards described by one platform ``CardMatcher``."""
    reviews: List[ScrapedReview] = []
    for card in soup.select(matcher.card_selector):
        text_el = _first(card, matcher.text_selectors) if matcher.text_selectors else card
        text = strip_ui_suffix(_element_text(text_el))
        if len(text) < matcher.min_length:
            continue

        if matcher.author_attribute and card.get(matcher.author_attribute):
            author = card.get(matcher.author_attribute)
        else:
            author = _element_text(_first(card, matcher.author_selectors)) or None

        if matcher.date_attribute and card.get(matcher.date_attribute):
            date = card.get(matcher.date_attribute)
        else:
            date = _date_from_element(_first(card, matcher.date_selectors))

        external_id = card.get(matcher.id_attribute) if matcher.id_attribute else None

        reviews.append(
            ScrapedReview.build(
                platform=platform,
                text=text,
                reviewer_name=author,
                rating=_rating_from_element(_first(card, matcher.rating_selectors)),
                date=date,
                external_id=external_id,
            )
        )
    return reviews


def match_generic(soup: BeautifulSoup, platform: str) -> List[ScrapedReview]:
    """
    Loose paragraph/block heuristic for pages no platform pattern understands.

    Keeps prose blocks of review-like length and drops obvious page chrome.
    """
    for tag in soup.find_all(_CHROME_TAGS):
        tag.decompose()

    reviews: List[ScrapedReview] = []
    for block in soup.find_all(["p", "blockquote", "q", "li"]):
        # List items that wrap paragraphs are covered by their paragraphs
        if block.name == "li" and block.find(["p", "blockquote"]):
            continue
        text = _element_text(block)
        if not (MIN_GENERIC_REVIEW_LENGTH <= len(text) <= MAX_GENERIC_REVIEW_LENGTH):
            continue
        if len(text) < 80 and _BOILERPLATE_RE.search(text):
            continue
        reviews.append(ScrapedReview.build(platform=platform, text=text))
    return reviews


def _matchers_for(definition: PlatformDefinition) -> List[Tuple[str, Matcher]]:
    matchers: List[Tuple[str, Matcher]] = [
        ("json_ld", match_json_ld),
        ("microdata", match_microdata),
    ]
    for card_matcher in definition.matchers:
        matchers.append(
            (card_matcher.name, lambda soup, key, m=card_matcher: match_cards(soup, key, m))
        )
    matchers.append(("generic", match_generic))
    return matchers


def _unique(reviews: List[ScrapedReview]) -> List[ScrapedReview]:
    seen = set()
    unique: List[ScrapedReview] = []
    for review in reviews:
        if review.fingerprint in seen:
            continue
        seen.add(review.fingerprint)
        unique.append(review)
    return unique


def parse(markup: Optional[str], platform: str) -> List[ScrapedReview]:
    """
    Extract reviews from one page of markup.

    Args:
        markup: Raw HTML (may be empty or malformed)
        platform: Platform key; unknown keys use only the generic fallback

    Returns:
        Reviews from the first matcher that produced any, possibly empty
    """
    if not markup or not markup.strip():
        return []

    definition = get_platform(platform)
    try:
        soup = BeautifulSoup(markup, "html.parser")
    except Exception as exc:  # noqa: BLE001 - malformed markup is an empty page
        logger.warning("Unparseable markup for %s: %s", definition.key, exc)
        return []

    for name, matcher in _matchers_for(definition):
        try:
            reviews = _unique(matcher(soup, definition.key))
        except Exception as exc:  # noqa: BLE001 - one broken matcher must not sink the page
            logger.warning("Matcher %s failed for %s: %s", name, definition.key, exc)
            continue
        if reviews:
            logger.debug("Matcher %s produced %d reviews for %s", name, len(reviews), definition.key)
            return reviews[:MAX_REVIEWS_PER_PAGE]

    return []


# --------------------------------------------------------------------- #
# Page metadata
# --------------------------------------------------------------------- #


def _parse_count(raw: str) -> Optional[int]:
    match = _COUNT_RE.search(raw or "")
    if not match:
        return None
    number, thousands = match.groups()
    if thousands:
        try:
            return int(float(number.replace(",", "")) * 1000)
        except ValueError:
            return None
    digits = re.sub(r"[^\d]", "", number)
    return int(digits) if digits else None


def estimate_review_count(markup: Optional[str], platform: str) -> int:
    """
    Best-effort total review count advertised by a page.

    Order: JSON-LD aggregateRating, the platform's count markup, a
    "<n> reviews" phrase in the page text, then the number of reviews
    actually parsed from the page. Never raises.
    """
    if not markup:
        return 0

    definition = get_platform(platform)
    try:
        soup = BeautifulSoup(markup, "html.parser")

        for block in _json_ld_blocks(soup):
            for node in _walk_json(block):
                aggregate = node.get("aggregateRating")
                if isinstance(aggregate, dict):
                    count = aggregate.get("reviewCount") or aggregate.get("ratingCount")
                    parsed = _parse_count(str(count)) if count is not None else None
                    if parsed:
                        return parsed

        for selector in definition.count_selectors:
            el = soup.select_one(selector)
            if el is not None:
                parsed = _parse_count(el.get_text(" "))
                if parsed:
                    return parsed

        match = _TEXT_COUNT_RE.search(soup.get_text(" "))
        if match:
            parsed = _parse_count(match.group(1))
            if parsed:
                return parsed
    except Exception as exc:  # noqa: BLE001
        logger.debug("Review count estimate failed for %s: %s", definition.key, exc)
        return 0

    return len(parse(markup, platform))


def page_headings(markup: Optional[str]) -> List[str]:
    """
    Texts that name what a page is about: <title>, og:title, first <h1>.

    Empty entries are dropped; returns [] for empty or unparseable markup.
    """
    if not markup:
        return []
    try:
        soup = BeautifulSoup(markup, "html.parser")
    except Exception:  # noqa: BLE001
        return []

    headings = []
    if soup.title is not None:
        headings.append(soup.title.get_text(" "))
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title is not None:
        headings.append(og_title.get("content") or "")
    h1 = soup.find("h1")
    if h1 is not None:
        headings.append(h1.get_text(" "))

    return [text for text in (clean_text(h) for h in headings) if text]
