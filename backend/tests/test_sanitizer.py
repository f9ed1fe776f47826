"""
Unit tests for the input sanitizer.
"""

from portfolio_api.services.sanitizer import sanitize


class TestSanitize:
    """Trimming and HTML escaping of untrusted text."""

    def test_trims_surrounding_whitespace(self):
        """Leading and trailing whitespace is removed."""
        assert sanitize("  Jane \n") == "Jane"

    def test_escapes_markup(self):
        """Angle brackets, ampersands and quotes become entities."""
        assert sanitize('<script>alert("x")</script>') == (
            "&lt;script&gt;alert(&quot;x&quot;)&lt;/script&gt;"
        )
        assert sanitize("Tom & Jerry") == "Tom &amp; Jerry"
        assert sanitize("it's") == "it&#x27;s"

    def test_none_and_empty_become_empty_string(self):
        """None and empty input never raise."""
        assert sanitize(None) == ""
        assert sanitize("") == ""
        assert sanitize("   ") == ""

    def test_is_idempotent(self):
        """Sanitizing an already sanitized value changes nothing."""
        for raw in ['<b>"hi"</b>', "a & b", "x < y > z", "plain text", "&amp;lt;"]:
            once = sanitize(raw)
            assert sanitize(once) == once

    def test_unicode_is_preserved(self):
        """Non-ASCII letters pass through unchanged."""
        assert sanitize("José Ñúñez") == "José Ñúñez"
