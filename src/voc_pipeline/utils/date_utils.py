"""Date parsing helpers for review dates."""

import logging
import re
from datetime import datetime
from typing import Optional

import dateutil.parser

logger = logging.getLogger(__name__)

_DEFAULT_DATE = datetime(2000, 1, 1)

_RELATIVE_RE = re.compile(
    r"\b(\d+|a|an)\s+(second|minute|hour|day|week|month|year)s?\s+ago\b|\b(today|yesterday)\b",
    re.IGNORECASE,
)


def normalize_review_date(date_string: Optional[str]) -> Optional[str]:
    """
    Normalize a review date to an ISO calendar date (YYYY-MM-DD).

    Handles:
    - ISO 8601 timestamps (e.g., "2024-03-01T12:00:00.000Z")
    - Human-readable dates (e.g., "March 1, 2024", "Mar 2024")

    Relative strings ("3 days ago") are kept verbatim, lower-cased, since
    they cannot be pinned to a calendar day without the scrape time.

    Args:
        date_string: Raw date text from a review page

    Returns:
        ISO date string, the lower-cased relative string, or None
    """
    if not date_string:
        return None

    raw = date_string.strip()
    if not raw:
        return None

    if _RELATIVE_RE.search(raw):
        return raw.lower()

    try:
        # Fixed default keeps partial dates ("Mar 2024") stable between runs
        parsed = dateutil.parser.parse(raw, fuzzy=True, default=_DEFAULT_DATE)
    except (ValueError, OverflowError, TypeError) as e:
        logger.debug("Failed to parse review date %r: %s", raw, e)
        return raw.lower()

    # Calendar day as written on the page; no timezone shift
    return parsed.date().isoformat()
