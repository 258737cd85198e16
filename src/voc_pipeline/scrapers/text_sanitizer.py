"""Text cleaning for scraped review content."""

import html
import re
import unicodedata
from typing import Optional

_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")

# Invisible characters that survive entity decoding
_INVISIBLE = {
    "\xa0": " ",  # Non-breaking space
    "\u200b": "",  # Zero-width space
    "\u200c": "",  # Zero-width non-joiner
    "\u200d": "",  # Zero-width joiner
    "\ufeff": "",  # BOM
}

# Trailing UI affordances some platforms render inside the review body
_UI_SUFFIXES = ("read more", "see more", "show more")


def clean_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Clean a fragment of scraped markup into plain review text.

    Handles:
    - Script/style block removal
    - HTML tag removal
    - HTML entity decoding (&nbsp; &amp; &lt; &gt; &quot; &#39; and friends)
    - Unicode normalization and invisible characters
    - Whitespace collapsing and trimming

    Args:
        text: Raw text or markup fragment
        max_length: Optional maximum length to truncate to

    Returns:
        Clean single-line text
    """
    if not text:
        return ""

    # Tags go first so an encoded "&lt;b&gt;" survives as literal text
    text = _SCRIPT_STYLE_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    text = unicodedata.normalize("NFC", text)

    for old, new in _INVISIBLE.items():
        text = text.replace(old, new)

    text = "".join(char for char in text if unicodedata.category(char)[0] != "C" or char in "\n\t")
    text = _WHITESPACE_RE.sub(" ", text).strip()

    if max_length and len(text) > max_length:
        text = text[:max_length].rsplit(" ", 1)[0] + "..."

    return text


def strip_ui_suffix(text: str) -> str:
    """Drop a trailing "Read more"-style link label."""
    lowered = text.lower()
    for suffix in _UI_SUFFIXES:
        if lowered.endswith(suffix) and len(text) > len(suffix) + 1:
            candidate = text[: -len(suffix)].rstrip(" .…")
            if candidate:
                return candidate
    return text


def normalize_for_fingerprint(text: Optional[str]) -> str:
    """
    Canonical form of review text used for duplicate detection.

    The same review extracted by different matchers (structured data vs.
    card markup) must normalize to the same string.
    """
    cleaned = strip_ui_suffix(clean_text(text))
    cleaned = cleaned.lower()
    cleaned = cleaned.replace("\u2019", "'").replace("\u2018", "'")
    cleaned = cleaned.replace("\u201c", '"').replace("\u201d", '"')
    cleaned = cleaned.strip(" \"'")
    return _WHITESPACE_RE.sub(" ", cleaned)


def clean_reviewer_name(name: Optional[str]) -> Optional[str]:
    """Clean a reviewer display name; returns None when nothing usable remains."""
    cleaned = clean_text(name, max_length=120)
    cleaned = re.sub(r"^(by|reviewed by)\s+", "", cleaned, flags=re.IGNORECASE)
    return cleaned or None
