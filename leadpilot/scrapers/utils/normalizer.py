"""Data normalization utilities for price parsing and URL canonicalization."""

import re
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog

logger = structlog.get_logger()


class PriceNormalizer:
    """Locale-explicit price parsing.

    Thousands and decimal separators differ between portals (``285.000`` is
    two hundred eighty-five thousand on an Italian site and two hundred
    eighty-five on a US one), so every parse names its locale.
    """

    # locale -> (thousands separators, decimal separator)
    SEPARATORS: Dict[str, Tuple[str, str]] = {
        "it_IT": (".", ","),
        "es_ES": (".", ","),
        "de_DE": (".", ","),
        "pt_PT": (".", ","),
        "fr_FR": (" \u00a0\u202f", ","),
        "en_US": (",", "."),
        "en_GB": (",", "."),
    }

    @classmethod
    def supported_locales(cls) -> Tuple[str, ...]:
        return tuple(cls.SEPARATORS)

    @classmethod
    def parse(cls, raw: Optional[str], locale: str) -> Optional[Decimal]:
        """Parse a display price into a Decimal.

        Examples:
        - parse("€ 285.000", "it_IT") -> 285000
        - parse("1.250,50 €", "it_IT") -> 1250.50
        - parse("$1,250,000", "en_US") -> 1250000

        Args:
            raw: Price text as scraped (currency symbols and words allowed)
            locale: Locale the text was rendered in (e.g., "it_IT")

        Returns:
            Decimal amount, or None when the text contains no number

        Raises:
            ValueError: If the locale is not supported
        """
        if locale not in cls.SEPARATORS:
            raise ValueError(f"Unsupported price locale: {locale}")
        if not raw:
            return None

        thousands, decimal_sep = cls.SEPARATORS[locale]
        allowed = re.escape(thousands + decimal_sep)
        match = re.search(rf"\d[\d{allowed}]*", raw)
        if not match:
            return None

        number = match.group(0).rstrip(thousands + decimal_sep)
        for sep in thousands:
            number = number.replace(sep, "")
        number = number.replace(decimal_sep, ".")

        try:
            return Decimal(number)
        except InvalidOperation:
            logger.warning("price_parse_failed", raw=raw, locale=locale)
            return None


# Query parameters that never identify a listing
TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "xtor",
}

_DEFAULT_PORTS = {"http": 80, "https": 443}


def canonical_url(url: str) -> str:
    """Reduce a URL to the canonical form used for dedup hashing.

    Lower-cases scheme and host, drops default ports, the fragment and
    tracking parameters, sorts the remaining query and trims a trailing
    slash from the path.

    Args:
        url: Absolute http(s) URL

    Returns:
        Canonical URL string

    Raises:
        ValueError: If the URL has no scheme or host
    """
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"Not an absolute URL: {url!r}")

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if parts.port and parts.port != _DEFAULT_PORTS.get(scheme):
        host = f"{host}:{parts.port}"

    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/")

    query_pairs = [
        (k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS and not k.lower().startswith("utm_")
    ]
    query = urlencode(sorted(query_pairs))

    return urlunsplit((scheme, host, path, query, ""))


def strip_query(url: str) -> str:
    """Drop query string and fragment (listing detail URLs never need them)."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def clean_text(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace; None for empty strings."""
    if value is None:
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def extract_int(value: Optional[str]) -> Optional[int]:
    """First integer in a text fragment (e.g., "3 locali" -> 3)."""
    if not value:
        return None
    match = re.search(r"\d+", value.replace(".", "").replace(",", ""))
    return int(match.group(0)) if match else None
