"""Review scraping: platform registry, parsers, and per-source scraping.

Fetching lives in ``voc_pipeline.scrapers.fetcher`` and is imported from there
directly so the rendering package can depend on the platform registry.
"""

from voc_pipeline.scrapers.models import ReviewSource, ScrapedReview, SourceResult, SourceState
from voc_pipeline.scrapers.parsers import parse
from voc_pipeline.scrapers.platforms import Platform, get_platform, platform_for_url

__all__ = [
    "Platform",
    "ReviewSource",
    "ScrapedReview",
    "SourceResult",
    "SourceState",
    "get_platform",
    "parse",
    "platform_for_url",
]
