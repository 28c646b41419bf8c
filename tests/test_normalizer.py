"""Tests for price parsing and URL canonicalization."""

from decimal import Decimal

import pytest

from leadpilot.scrapers.utils.normalizer import (
    PriceNormalizer,
    canonical_url,
    clean_text,
    extract_int,
    strip_query,
)


class TestPriceNormalizer:
    """Tests for locale-explicit price parsing."""

    @pytest.mark.parametrize(
        "raw, locale, expected",
        [
            ("€ 285.000", "it_IT", Decimal("285000")),
            ("1.250,50 €", "it_IT", Decimal("1250.50")),
            ("$1,250,000", "en_US", Decimal("1250000")),
            ("285.000", "en_US", Decimal("285")),
            ("285 000 €", "fr_FR", Decimal("285000")),
            ("1 250,50 €", "fr_FR", Decimal("1250.50")),
        ],
    )
    def test_parse(self, raw, locale, expected):
        assert PriceNormalizer.parse(raw, locale) == expected

    def test_same_text_differs_by_locale(self):
        assert PriceNormalizer.parse("285.000", "it_IT") != PriceNormalizer.parse("285.000", "en_US")

    @pytest.mark.parametrize("raw", [None, "", "Prezzo su richiesta"])
    def test_no_number(self, raw):
        assert PriceNormalizer.parse(raw, "it_IT") is None

    def test_unknown_locale(self):
        with pytest.raises(ValueError):
            PriceNormalizer.parse("285.000", "xx_XX")


class TestCanonicalUrl:
    """Tests for URL canonicalization."""

    def test_canonical_form(self):
        url = "HTTP://Example.COM:80/casa/12/?b=2&a=1&utm_source=mail&fbclid=x#photos"

        assert canonical_url(url) == "http://example.com/casa/12?a=1&b=2"

    def test_non_default_port_kept(self):
        assert canonical_url("https://example.com:8443/a") == "https://example.com:8443/a"

    def test_root_path(self):
        assert canonical_url("https://example.com") == "https://example.com/"

    def test_relative_url_rejected(self):
        with pytest.raises(ValueError):
            canonical_url("/immobile/123/")


class TestTextHelpers:
    def test_strip_query(self):
        assert strip_query("https://www.idealista.it/immobile/1/?xtmc=1#map") == "https://www.idealista.it/immobile/1/"

    def test_clean_text(self):
        assert clean_text("  Trilocale \n in   Via Roma ") == "Trilocale in Via Roma"
        assert clean_text("   ") is None

    def test_extract_int(self):
        assert extract_int("3 locali") == 3
        assert extract_int("1.200 m²") == 1200
        assert extract_int("n/d") is None
