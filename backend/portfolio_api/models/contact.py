"""
Pydantic models for the contact form API.

Models:
  ContactRequest         - raw JSON body from the front-end (camelCase keys)
  ContactSubmission      - sanitized per-request submission
  EmailPayload           - immutable message handed to the delivery service
  CsrfToken              - issued CSRF token with its lifetime
  RateLimitResult        - outcome of a single limiter check
  BotVerificationResult  - outcome of a bot-verification call
  EmailSendResult        - delivery service response
  Response models        - ContactResponse, CsrfTokenResponse, ConfigCheckResponse
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request / submission
# ---------------------------------------------------------------------------

class ContactRequest(BaseModel):
    """
    JSON body of POST /api/contact.

    Every field defaults to an empty string so that missing fields surface as
    field-level validation errors (400) instead of a framework parse error.
    The bot token may arrive as turnstileToken or recaptchaToken depending on
    which widget the front-end renders.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    email: str = ""
    message: str = ""
    csrf_token: Optional[str] = Field(None, alias="csrfToken")
    turnstile_token: Optional[str] = Field(None, alias="turnstileToken")
    recaptcha_token: Optional[str] = Field(None, alias="recaptchaToken")

    @property
    def bot_token(self) -> str:
        return self.turnstile_token or self.recaptcha_token or ""


class ContactSubmission(BaseModel):
    """Sanitized fields for one request. Never shared across requests."""
    model_config = ConfigDict(frozen=True)

    first_name: str
    last_name: str
    email: str
    message: str
    csrf_token: str = ""
    bot_token: str = ""
    client_ip: str = "unknown"


class FieldError(BaseModel):
    """One violated rule on one field."""
    field: str
    message: str


class EmailPayload(BaseModel):
    """Fully rendered outbound message; built once per accepted submission."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    to: str
    from_: str = Field(alias="from")
    reply_to: str
    subject: str
    html: str
    text: str

    def to_resend(self) -> dict:
        """Body for the Resend POST /emails endpoint."""
        return {
            "from": self.from_,
            "to": [self.to],
            "reply_to": self.reply_to,
            "subject": self.subject,
            "html": self.html,
            "text": self.text,
        }


# ---------------------------------------------------------------------------
# Service results
# ---------------------------------------------------------------------------

class CsrfToken(BaseModel):
    value: str
    issued_at: datetime
    expires_at: datetime


class RateLimitResult(BaseModel):
    """
    Result of RateLimiter.check().

    reset_at is a Unix timestamp (seconds) for the end of the current window.
    degraded is True when the store was unreachable and the fail-open/closed
    policy decided the outcome instead of a real counter.
    """
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    degraded: bool = False

    def retry_after(self, now: float) -> int:
        return max(0, int(round(self.reset_at - now)))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat(),
        }


class BotVerificationResult(BaseModel):
    success: bool
    score: Optional[float] = None
    error_codes: list[str] = []
    reason: Optional[str] = None
    # True when the provider itself could not be used (timeout, 5xx, bad secret)
    provider_error: bool = False


class EmailSendResult(BaseModel):
    id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.id is not None


# ---------------------------------------------------------------------------
# API responses
# ---------------------------------------------------------------------------

class ContactResponse(BaseModel):
    message: str


class CsrfTokenResponse(BaseModel):
    token: str


class ConfigCheckResponse(BaseModel):
    configured: bool
