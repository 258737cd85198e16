"""Helpers for pulling JSON and URLs out of model replies.

Models wrap JSON in markdown fences or add a sentence of preamble; these
functions strip that noise before parsing.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

# Strict absolute URL; stops at whitespace, quotes, brackets and markdown punctuation
URL_RE = re.compile(r"https?://[A-Za-z0-9.-]+\.[A-Za-z]{2,}(?::\d+)?(?:/[^\s\"'<>()\[\]{}`]*)?")


def strip_code_fences(response: Optional[str]) -> str:
    """Return the fenced body of a reply, or the trimmed reply when unfenced."""
    if not response:
        return ""
    cleaned = response.strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        return match.group(1).strip()
    # Opening fence with no closing fence (truncated reply)
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
    return cleaned.strip()


def parse_json_object(response: Optional[str]) -> Dict[str, Any]:
    """
    Parse a model reply into a JSON object.

    Falls back to the outermost ``{...}`` span when the reply carries prose
    around the object.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    body = strip_code_fences(response)
    if not body:
        raise ValueError("Empty model response")

    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        start, end = body.find("{"), body.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Model response is not valid JSON")
        try:
            parsed = json.loads(body[start : end + 1])
        except json.JSONDecodeError as e:
            logger.debug("Unparseable model response: %s", body[:500])
            raise ValueError(f"Model response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def extract_urls(response: Optional[str]) -> List[str]:
    """All absolute URLs in a reply, in order of first appearance, without duplicates."""
    if not response:
        return []
    seen = set()
    urls = []
    for match in URL_RE.finditer(response):
        url = match.group(0).rstrip(".,;:!?*")
        if url not in seen:
            seen.add(url)
            urls.append(url)
    return urls
