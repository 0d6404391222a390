"""
Tests for URL glob patterns shared by routes, waits and log filters.
"""

import pytest

from pagepilot.patterns import compile_glob, url_matches


class TestSegments:
    def test_single_star_stays_in_segment(self):
        assert url_matches("https://example.com/*", "https://example.com/page")
        assert not url_matches("https://example.com/*", "https://example.com/a/b")

    def test_double_star_crosses_segments(self):
        assert url_matches("**/api/**", "https://example.com/api/v1/users")
        assert url_matches("**/*", "https://example.com/")

    def test_anchored_full_match(self):
        assert not url_matches("**/api", "https://example.com/api/users")
        assert not url_matches("example.com/*", "https://example.com/x")

    def test_dots_are_literal(self):
        assert not url_matches("https://example.com/*", "https://exampleXcom/x")


class TestSpecialCharacters:
    def test_question_mark_is_literal(self):
        assert url_matches("**/search?q=*", "https://example.com/search?q=shoes")
        assert not url_matches("**/search?q=*", "https://example.com/searchXq=shoes")

    def test_brace_alternatives(self):
        pattern = "**/*.{png,jpg}"
        assert url_matches(pattern, "https://cdn.example.com/img/logo.png")
        assert url_matches(pattern, "https://cdn.example.com/img/photo.jpg")
        assert not url_matches(pattern, "https://cdn.example.com/img/anim.gif")

    def test_unbalanced_brace_rejected(self):
        with pytest.raises(ValueError):
            compile_glob("**/*.{png,jpg")

    def test_compiled_patterns_are_cached(self):
        assert compile_glob("**/cached/*") is compile_glob("**/cached/*")
