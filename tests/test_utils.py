"""
Tests for URL and filesystem helpers.
"""

from pathlib import Path

import pytest

from web_harvest.utils.fs import atomic_write_text, safe_filename, unique_path
from web_harvest.utils.urls import (
    canonicalize_url,
    host_of,
    is_http_url,
    origin_of,
    path_extension,
    strip_tracking_params,
)


class TestCanonicalizeUrl:
    """Tests for canonical URL form."""

    @pytest.mark.parametrize("raw,expected", [
        ("HTTPS://Example.COM/Path", "https://example.com/Path"),
        ("http://example.com:80/a", "http://example.com/a"),
        ("https://example.com:443/a", "https://example.com/a"),
        ("https://example.com:8443/a", "https://example.com:8443/a"),
        ("https://example.com/a#section", "https://example.com/a"),
        ("https://example.com", "https://example.com/"),
        ("https://example.com/a?b=1&a=2", "https://example.com/a?b=1&a=2"),
    ])
    def test_canonical_forms(self, raw, expected):
        assert canonicalize_url(raw) == expected

    def test_idempotent(self):
        """Canonicalizing twice should change nothing."""
        once = canonicalize_url("HTTP://Example.com:80/x#y")
        assert canonicalize_url(once) == once

    def test_relative_with_base(self):
        """Relative references should resolve against the base."""
        assert canonicalize_url("../b.jpg", base="https://x.com/a/c/") == "https://x.com/a/b.jpg"

    def test_non_http_scheme_keeps_body(self):
        """blob: and data: URLs should only lose the fragment."""
        assert canonicalize_url("blob:https://x.com/123#t") == "blob:https://x.com/123"

    def test_unparsable_url_returned_stripped(self):
        assert canonicalize_url("  http://[oops/ ") == "http://[oops/"


class TestUrlHelpers:
    """Tests for small URL helpers."""

    def test_is_http_url(self):
        assert is_http_url("https://x.com/a")
        assert not is_http_url("blob:https://x.com/1")
        assert not is_http_url("/relative")
        assert not is_http_url("data:image/png;base64,AAAA")

    def test_malformed_urls_are_rejected(self):
        """urlsplit errors (unclosed IPv6 bracket) are treated as non-http."""
        assert not is_http_url("http://[oops/")
        assert host_of("http://[oops/") == ""

    def test_origin_and_host(self):
        assert origin_of("HTTPS://X.com:443/a/b") == "https://x.com"
        assert host_of("https://CDN.x.com/a") == "cdn.x.com"
        assert host_of("not a url") == ""

    def test_path_extension(self):
        assert path_extension("https://x.com/v/master.M3U8?token=1") == "m3u8"
        assert path_extension("https://x.com/dir/") == ""

    def test_strip_tracking_params(self):
        """utm_*, ref, fbclid and gclid should be removed; others kept in order."""
        url = "https://x.com/v.mp4?utm_source=a&id=3&fbclid=z&q=b"
        assert strip_tracking_params(url) == "https://x.com/v.mp4?id=3&q=b"
        assert strip_tracking_params("https://x.com/a") == "https://x.com/a"


class TestFilesystem:
    """Tests for filesystem helpers."""

    @pytest.mark.parametrize("raw,expected", [
        ("photo 1.jpg", "photo_1.jpg"),
        ("a/b\\c?.jpg", "a_b_c_.jpg"),
        (".hidden", "hidden"),
        ("", "file"),
    ])
    def test_safe_filename(self, raw, expected):
        assert safe_filename(raw) == expected

    def test_safe_filename_truncates_keeping_extension(self):
        name = safe_filename("a" * 300 + ".jpg", max_length=50)

        assert len(name) == 50
        assert name.endswith(".jpg")

    def test_unique_path(self, temp_dir: Path):
        """Existing and reserved paths should get numeric suffixes."""
        (temp_dir / "a.jpg").write_bytes(b"x")
        reserved = {temp_dir / "a-1.jpg"}

        assert unique_path(temp_dir / "a.jpg", reserved) == temp_dir / "a-2.jpg"
        assert unique_path(temp_dir / "b.jpg") == temp_dir / "b.jpg"

    def test_atomic_write_text(self, temp_dir: Path):
        """Writes should create parent directories and leave no temp files."""
        path = atomic_write_text(temp_dir / "nested" / "out.txt", "hello")

        assert path.read_text() == "hello"
        assert [p.name for p in path.parent.iterdir()] == ["out.txt"]
