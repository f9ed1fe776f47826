"""
Field validation for contact submissions.

validate_submission() checks every field and returns ALL violations, so the
front-end can highlight every bad input at once. An empty list means valid.

Rules
-----
firstName / lastName
    length within [NAME_MIN_LENGTH, NAME_MAX_LENGTH]; at least one Unicode
    letter; not only digits; not only punctuation/symbols.
email
    local@domain.tld shape, TLD of 2+ letters, no "..", at most 100
    characters, and not one of the obvious placeholder addresses.
message
    at least min_length non-whitespace-trimmed characters, at most
    max_length characters.
"""

import html
import re
import unicodedata

from portfolio_api.models.contact import ContactSubmission, FieldError

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 100

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

ONLY_DIGITS = re.compile(r"^\d+$")
EMAIL_FORMAT = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
CONSECUTIVE_DOTS = re.compile(r"\.\.")
WHITESPACE_ONLY = re.compile(r"^\s*$")

# Substrings that only show up in throwaway addresses
FAKE_EMAIL_PATTERNS = ("test@test", "example@example", "user@user", "admin@admin")


def has_letter(value: str) -> bool:
    """True if value contains at least one Unicode letter (category L*)."""
    return any(unicodedata.category(ch).startswith("L") for ch in value)


def is_only_symbols(value: str) -> bool:
    """True if every character is Unicode punctuation (P*) or a symbol (S*)."""
    return bool(value) and all(unicodedata.category(ch)[0] in ("P", "S") for ch in value)


# ---------------------------------------------------------------------------
# Per-field validators
# ---------------------------------------------------------------------------

def validate_name(value: str, field: str, label: str) -> list[FieldError]:
    errors: list[FieldError] = []

    if len(value) < NAME_MIN_LENGTH:
        errors.append(FieldError(field=field, message=f"{label} must be at least {NAME_MIN_LENGTH} characters"))
    if len(value) > NAME_MAX_LENGTH:
        errors.append(FieldError(field=field, message=f"{label} must be at most {NAME_MAX_LENGTH} characters"))
    if not has_letter(value):
        errors.append(FieldError(field=field, message=f"{label} must contain at least one letter"))
    if ONLY_DIGITS.match(value):
        errors.append(FieldError(field=field, message=f"{label} cannot be only numbers"))
    if is_only_symbols(value):
        errors.append(FieldError(field=field, message=f"{label} cannot be only symbols"))

    return errors


def validate_email(value: str) -> list[FieldError]:
    if not value:
        return [FieldError(field="email", message="Email is required")]

    invalid = FieldError(field="email", message="Please enter a valid email address")

    if len(value) > EMAIL_MAX_LENGTH:
        return [FieldError(field="email", message=f"Email must be at most {EMAIL_MAX_LENGTH} characters")]
    if CONSECUTIVE_DOTS.search(value) or not EMAIL_FORMAT.match(value):
        return [invalid]
    lowered = value.lower()
    if any(pattern in lowered for pattern in FAKE_EMAIL_PATTERNS):
        return [invalid]

    return []


def validate_message(value: str, min_length: int, max_length: int) -> list[FieldError]:
    if not value or WHITESPACE_ONLY.match(value):
        return [FieldError(field="message", message="Message is required")]

    errors: list[FieldError] = []
    if len(value.strip()) < min_length:
        errors.append(FieldError(field="message", message=f"Message must be at least {min_length} characters"))
    if len(value) > max_length:
        errors.append(FieldError(field="message", message=f"Message must be at most {max_length} characters"))
    return errors


def validate_submission(
    submission: ContactSubmission,
    min_message_length: int = 50,
    max_message_length: int = 1000,
) -> list[FieldError]:
    """
    Return every field violation in submission (empty list when valid).

    Fields arrive HTML-escaped; rules are applied to the decoded text so that
    "&lt;&gt;" counts as two symbols rather than the letters "lt" and "gt".
    """
    first_name = html.unescape(submission.first_name)
    last_name = html.unescape(submission.last_name)
    email = html.unescape(submission.email)
    message = html.unescape(submission.message)

    return [
        *validate_name(first_name, "firstName", "First name"),
        *validate_name(last_name, "lastName", "Last name"),
        *validate_email(email),
        *validate_message(message, min_message_length, max_message_length),
    ]
