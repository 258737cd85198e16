"""Review source discovery and verification.

For each registry platform the resolver builds a candidate URL from the
business domain or name, optionally asks the model for a better one, and
fetches the page to confirm it is about this business.
"""

import logging
import re
from typing import List, Optional

from voc_pipeline.ai.inference_client import InferenceClient
from voc_pipeline.ai.prompts import DiscoveryPrompts
from voc_pipeline.ai.response_parser import extract_urls
from voc_pipeline.constants import (
    DEFAULT_VALIDATION_TIMEOUT,
    DISCOVERY_MAX_TOKENS,
    DISCOVERY_TEMPERATURE,
)
from voc_pipeline.exceptions import AIProviderError, FetchError, SourceResolutionError
from voc_pipeline.logging_config import get_structured_logger
from voc_pipeline.scrapers.fetcher import Fetcher
from voc_pipeline.scrapers.models import DiscoveryMethod, ReviewSource
from voc_pipeline.scrapers.parsers import estimate_review_count, page_headings
from voc_pipeline.scrapers.platforms import PlatformDefinition, registry_platforms
from voc_pipeline.utils.url_utils import domain_token, name_tokens

logger = logging.getLogger(__name__)


def _identity_tokens(business_name: str, business_url: str) -> List[str]:
    tokens = []
    token = domain_token(business_url)
    if token:
        tokens.append(token)
    for name_token in name_tokens(business_name):
        if name_token not in tokens:
            tokens.append(name_token)
    return tokens


# Trailing words dropped before matching a business name against a page
_LEGAL_SUFFIXES = {"inc", "llc", "ltd", "co", "corp", "corporation", "company", "limited", "gmbh"}


def _word_pattern(words: List[str]) -> re.Pattern[str]:
    # Separators between words are optional, so "Best Buy" also matches "bestbuy"
    body = r"[\W_]*".join(re.escape(word) for word in words)
    return re.compile(rf"(?<![a-z0-9]){body}(?![a-z0-9])")


def identity_patterns(business_name: str, business_url: str) -> List[re.Pattern[str]]:
    """
    Whole-word patterns a page heading must match to be about the business.

    One for the domain label ("acme" for acme.co.uk) and one for the full
    business name without legal suffixes. Single words of a multi-word name
    never count on their own.
    """
    patterns = []
    token = domain_token(business_url)
    if token:
        patterns.append(_word_pattern(token.split("-")))

    words = re.findall(r"[a-z0-9]+", (business_name or "").lower())
    while words and words[-1] in _LEGAL_SUFFIXES:
        words.pop()
    if words:
        patterns.append(_word_pattern(words))
    return patterns


def rank_candidate_urls(urls: List[str], business_name: str, business_url: str) -> List[str]:
    """
    Order candidate URLs by how many identity tokens appear in them.

    Identity tokens are the business domain label plus the significant words
    of the name. Ties keep the order the URLs appeared in.
    """
    tokens = _identity_tokens(business_name, business_url)

    def overlap(url: str) -> int:
        lowered = url.lower()
        return sum(1 for token in tokens if token in lowered)

    # sorted() is stable, so first occurrence wins ties
    return sorted(urls, key=overlap, reverse=True)


class SourceResolver:
    """Produce the ordered list of review sources for a business."""

    def __init__(
        self,
        fetcher: Fetcher,
        inference_client: Optional[InferenceClient] = None,
        validation_timeout: float = DEFAULT_VALIDATION_TIMEOUT,
        ai_discovery_enabled: bool = True,
    ):
        """
        Args:
            fetcher: Page fetcher used for validation requests
            inference_client: Model client for AI-assisted discovery (None disables it)
            validation_timeout: Timeout for each validation fetch (seconds)
            ai_discovery_enabled: Ask the model for platforms whose URLs can't be built reliably
        """
        self.fetcher = fetcher
        self.inference_client = inference_client
        self.validation_timeout = validation_timeout
        self.ai_discovery_enabled = ai_discovery_enabled and inference_client is not None
        self.slogger = get_structured_logger(__name__)

    def resolve(self, business_name: str, business_url: str) -> List[ReviewSource]:
        """
        Resolve review sources for a business.

        Returns:
            Verified sources in registry order, then unverified ones. A
            platform-level failure yields ``verified=False, estimated_count=0``.
        """
        verified: List[ReviewSource] = []
        unverified: List[ReviewSource] = []

        for definition in registry_platforms():
            try:
                source = self._resolve_platform(definition, business_name, business_url)
            except SourceResolutionError as e:
                logger.info("Source resolution failed: %s", e)
                self.slogger.scrape_activity(definition.key, "resolve_failed", {"error": str(e)})
                source = ReviewSource(
                    platform=definition.key, candidate_url="", error=str(e)
                )
            except Exception as e:
                logger.warning("Unexpected error resolving %s: %s", definition.key, e)
                source = ReviewSource(
                    platform=definition.key, candidate_url="", error=str(e)
                )

            (verified if source.verified else unverified).append(source)

        logger.info(
            "Resolved %d verified / %d unverified sources for %s",
            len(verified),
            len(unverified),
            business_name,
        )
        return verified + unverified

    def _resolve_platform(
        self, definition: PlatformDefinition, business_name: str, business_url: str
    ) -> ReviewSource:
        candidate = definition.build_url(business_name, business_url)
        method = DiscoveryMethod.DETERMINISTIC

        if not definition.deterministic_reliable and self.ai_discovery_enabled:
            discovered = self.discover_with_ai(definition, business_name, business_url)
            if discovered:
                candidate = discovered
                method = DiscoveryMethod.AI

        if not candidate:
            raise SourceResolutionError(definition.key, "no candidate URL could be built")

        source = ReviewSource(
            platform=definition.key, candidate_url=candidate, discovered_by=method
        )
        return self.validate(source, business_name, business_url)

    def discover_with_ai(
        self, definition: PlatformDefinition, business_name: str, business_url: str
    ) -> Optional[str]:
        """
        Ask the model for the business's page on a platform.

        Only URLs in the reply whose host belongs to the platform count; any
        other text is ignored. Returns None when nothing usable comes back.
        """
        prompt = DiscoveryPrompts.platform_url_prompt(
            business_name, business_url, definition.display_name, definition.hostnames
        )
        try:
            result = self.inference_client.execute(
                task_type="discovery",
                prompt=prompt,
                max_tokens=DISCOVERY_MAX_TOKENS,
                temperature=DISCOVERY_TEMPERATURE,
            )
        except AIProviderError as e:
            logger.info("AI discovery unavailable for %s: %s", definition.key, e)
            self.slogger.ai_activity("discovery", "failed", {"platform": definition.key, "error": str(e)})
            return None

        urls = [url for url in extract_urls(result.text) if definition.owns_url(url)]
        if not urls:
            self.slogger.ai_activity("discovery", "empty", {"platform": definition.key})
            return None

        best = rank_candidate_urls(urls, business_name, business_url)[0]
        self.slogger.ai_activity(
            "discovery", "found", {"platform": definition.key, "url": best, "candidates": len(urls)}
        )
        return best

    def validate(self, source: ReviewSource, business_name: str, business_url: str) -> ReviewSource:
        """
        Fetch a candidate and check the page is about this business.

        The domain label or the full business name must appear as whole words
        in the page title, og:title or first heading. Body text is ignored so
        soft-404s and generic landing pages are rejected. The same fetch
        provides the review-count estimate.
        """
        patterns = identity_patterns(business_name, business_url)
        if not patterns:
            raise SourceResolutionError(source.platform, "business has no identifying tokens")

        try:
            markup = self.fetcher.fetch(source.candidate_url, timeout=self.validation_timeout)
        except FetchError as e:
            raise SourceResolutionError(source.platform, str(e)) from e

        headings = [heading.lower() for heading in page_headings(markup)]
        relevant = any(pattern.search(heading) for pattern in patterns for heading in headings)

        if not relevant:
            return source.model_copy(
                update={"verified": False, "error": "page does not mention the business"}
            )

        return source.model_copy(
            update={
                "verified": True,
                "estimated_count": estimate_review_count(markup, source.platform),
                "error": None,
            }
        )
