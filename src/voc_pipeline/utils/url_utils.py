"""Utilities for business URL handling and name tokenization."""

import logging
import re
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

import tldextract

logger = logging.getLogger(__name__)

# Bundled public suffix snapshot only; never fetched at runtime
_extract_domain = tldextract.TLDExtract(suffix_list_urls=())

# Words that carry no identity in a business name
_NAME_STOPWORDS = {
    "the",
    "and",
    "of",
    "inc",
    "llc",
    "ltd",
    "co",
    "corp",
    "corporation",
    "company",
    "group",
    "limited",
    "gmbh",
    "www",
    "com",
}


def ensure_scheme(url: str) -> str:
    """Prefix https:// when the caller passed a bare domain."""
    url = (url or "").strip()
    if url and not re.match(r"^[a-z][a-z0-9+.-]*://", url, re.IGNORECASE):
        url = f"https://{url}"
    return url


def normalize_url(url: str) -> str:
    """
    Normalize a URL for comparison: lower-case scheme and host, drop fragment
    and trailing slash.

    Examples:
        >>> normalize_url("HTTPS://Example.com/path/#frag")
        "https://example.com/path"
    """
    if not url:
        return ""
    try:
        parsed = urlparse(ensure_scheme(url))
        path = parsed.path or "/"
        if path != "/" and path.endswith("/"):
            path = path.rstrip("/")
        return urlunparse(
            (parsed.scheme.lower(), parsed.netloc.lower(), path, "", parsed.query, "")
        )
    except ValueError as exc:
        logger.warning("Failed to normalize URL %r: %s", url, exc)
        return url.strip()


def get_host(url: str) -> str:
    """Return the lower-cased host of a URL without a leading www."""
    try:
        host = urlparse(ensure_scheme(url)).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def get_root_domain(host: str) -> str:
    """
    Return the registrable root domain for a host.

    Multi-part public suffixes (co.uk, com.au) are resolved with tldextract.

    Examples:
        >>> get_root_domain("shop.acme.com")
        "acme.com"
        >>> get_root_domain("www.acme.co.uk")
        "acme.co.uk"
    """
    if not host:
        return host

    host = host.strip().lower().strip(".")
    ext = _extract_domain(host)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return host


def business_domain(business_url: str) -> str:
    """Root domain of the business website ("https://www.acme.com/x" -> "acme.com")."""
    return get_root_domain(get_host(business_url))


def domain_token(business_url: str) -> str:
    """Registrable label of the business domain ("acme.co.uk" -> "acme")."""
    domain = business_domain(business_url)
    if not domain:
        return ""
    return domain.split(".")[0]


def slugify(value: Optional[str]) -> str:
    """Lower-case, hyphen-separated slug ("Acme & Sons, Inc." -> "acme-sons-inc")."""
    if not value:
        return ""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def name_tokens(business_name: str) -> List[str]:
    """Identity-bearing tokens of a business name, in order, without duplicates."""
    tokens: List[str] = []
    for token in re.findall(r"[a-z0-9]+", (business_name or "").lower()):
        if len(token) < 3 or token in _NAME_STOPWORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens


def host_matches(url: str, hostnames: List[str]) -> bool:
    """True when the URL's host equals or is a subdomain of one of the hostnames."""
    host = get_host(url)
    if not host:
        return False
    return any(host == h or host.endswith(f".{h}") for h in hostnames)
