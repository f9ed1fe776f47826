"""
Error taxonomy for the contact form pipeline.

Every error carries two messages:
  public_message    - safe to return to the browser
  internal_message  - logged server-side only (may name config keys,
                      provider error codes, store failures)

Pipeline stages hand these back as values (see StageResult) for the
expected rejections. Only StoreUnavailableError and ConfigurationError are
raised, because they signal a broken dependency rather than a bad request.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar


class ContactError(Exception):
    """Base class for every contact pipeline failure."""

    status_code = 500
    kind = "internal"

    def __init__(self, public_message: str, internal_message: Optional[str] = None):
        super().__init__(internal_message or public_message)
        self.public_message = public_message
        self.internal_message = internal_message or public_message

    def to_response(self) -> dict:
        return {"message": self.public_message}


class ValidationError(ContactError):
    """Client-fixable field errors (400)."""

    status_code = 400
    kind = "validation"

    def __init__(
        self,
        public_message: str = "Invalid form data",
        errors: Optional[list[dict[str, str]]] = None,
        internal_message: Optional[str] = None,
    ):
        super().__init__(public_message, internal_message)
        self.errors = errors or []

    def to_response(self) -> dict:
        return {"message": self.public_message, "errors": self.errors}


class SecurityError(ContactError):
    """CSRF or bot verification failure (403). Public text stays generic."""

    status_code = 403
    kind = "security"


class RateLimitError(ContactError):
    """IP or global quota exhausted (429)."""

    status_code = 429
    kind = "rate_limit"

    def __init__(
        self,
        public_message: str = "Too many requests. Please try again later.",
        retry_after: int = 0,
        internal_message: Optional[str] = None,
    ):
        super().__init__(public_message, internal_message)
        self.retry_after = max(0, int(retry_after))

    def to_response(self) -> dict:
        return {"message": self.public_message, "retryAfter": self.retry_after}


class DeliveryError(ContactError):
    """Email provider or network failure (500)."""

    status_code = 500
    kind = "delivery"


class ConfigurationError(ContactError):
    """Missing or malformed configuration. Never carries secret values."""

    status_code = 500
    kind = "configuration"

    def __init__(self, internal_message: str):
        super().__init__("Server configuration error", internal_message)

    def to_response(self) -> dict:
        return {"error": self.public_message}


class StoreUnavailableError(Exception):
    """The shared key-value store could not be reached or timed out."""


T = TypeVar("T")


@dataclass
class StageResult(Generic[T]):
    """
    Outcome of one pipeline stage: either a value or a ContactError.

    Build with StageResult.success(value) / StageResult.failure(error).
    """

    value: Optional[T] = None
    error: Optional[ContactError] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None, **meta: Any) -> "StageResult[T]":
        return cls(value=value, meta=meta)

    @classmethod
    def failure(cls, error: ContactError, **meta: Any) -> "StageResult[T]":
        return cls(error=error, meta=meta)
