"""
Input sanitizer for untrusted contact form text.

sanitize() trims surrounding whitespace and HTML-escapes the result so the
text is safe to drop into the rendered email body. Existing entities are
decoded before escaping, which makes the function idempotent:

    sanitize(sanitize(x)) == sanitize(x)

so a value that passes through the pipeline twice never drifts into
"&amp;amp;lt;" territory.
"""

import html


def sanitize(raw: str | None) -> str:
    """Trim and HTML-escape raw text. Never raises; None becomes ''."""
    if not raw:
        return ""
    return html.escape(html.unescape(raw.strip()), quote=True)
