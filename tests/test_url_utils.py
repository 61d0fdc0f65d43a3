"""Tests for URL canonicalization."""

import pytest

from newsdesk.ingestion.url_utils import canonicalize_url, is_well_formed


class TestCanonicalizeUrl:
    """Tests for canonicalize_url."""

    @pytest.mark.parametrize("raw, expected", [
        ("HTTPS://Example.COM/Path/", "https://example.com/Path"),
        ("https://example.com:443/a", "https://example.com/a"),
        ("http://example.com:80/a", "http://example.com/a"),
        ("http://example.com:8080/a", "http://example.com:8080/a"),
        ("https://example.com/a#section", "https://example.com/a"),
        ("https://example.com/", "https://example.com/"),
        ("https://example.com", "https://example.com/"),
    ])
    def test_normalizes_scheme_host_port_and_path(self, raw, expected):
        assert canonicalize_url(raw) == expected

    def test_strips_tracking_params_and_sorts_the_rest(self):
        url = "https://example.com/a?utm_source=rss&b=2&fbclid=x&a=1"

        assert canonicalize_url(url) == "https://example.com/a?a=1&b=2"

    def test_custom_strip_list(self):
        url = "https://example.com/a?session=1&utm_source=rss"

        assert canonicalize_url(url, strip_params={"session"}) == "https://example.com/a?utm_source=rss"

    def test_empty_input(self):
        assert canonicalize_url("") == ""


class TestIsWellFormed:
    """Tests for is_well_formed."""

    @pytest.mark.parametrize("url", ["https://example.com", "http://example.com/feed.xml"])
    def test_accepts_http_urls(self, url):
        assert is_well_formed(url)

    @pytest.mark.parametrize("url", ["", "example.com/feed", "ftp://example.com", "https://", "mailto:a@b.c"])
    def test_rejects_everything_else(self, url):
        assert not is_well_formed(url)
