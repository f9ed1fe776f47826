"""
Environment-driven settings for the contact form backend.

All variables are read once into a ContactSettings model (pydantic-settings).
A .env file in the working directory is loaded first (existing environment
variables win). Invalid values raise ConfigurationError.

Environment variables
---------------------
RATE_LIMIT_REQUESTS         Per-IP submissions per window (default 5).
RATE_LIMIT_WINDOW           Per-IP window, e.g. "10 m" (default "10 m").
GLOBAL_RATE_LIMIT_REQUESTS  Submissions per window across all clients (100).
GLOBAL_RATE_LIMIT_WINDOW    Global window (default "1 d").
RATE_LIMIT_PREFIX           Key prefix in the shared store ("portfolio").
RATE_LIMIT_FAIL_OPEN        Allow submissions when the store is down (true).
TRUSTED_PROXY_HOPS          Proxies in front of the app that append to
                            X-Forwarded-For (1); 0 ignores the header.
BOT_VERIFICATION_PROVIDER   "turnstile" (default) or "recaptcha".
TURNSTILE_SECRET_KEY        Cloudflare Turnstile secret.
RECAPTCHA_SECRET_KEY        Google reCAPTCHA secret.
BOT_SCORE_THRESHOLD         Minimum reCAPTCHA score; 0 disables verification.
BOT_VERIFY_TIMEOUT_SECONDS  Provider request timeout (10).
SEND_EMAIL_ENABLED          "false" switches delivery to mock mode.
RESEND_API_KEY              Resend API key.
FROM_EMAIL / TO_EMAIL       Sender and recipient addresses.
EMAIL_SENDER_NAME           Display name for the sender.
EMAIL_RECIPIENT_NAME        Display name for the recipient.
EMAIL_TIMEOUT_SECONDS       Resend request timeout (10).
CSRF_TOKEN_TTL_SECONDS      CSRF token lifetime (900).
MESSAGE_MIN_LENGTH          Minimum message length (50).
MESSAGE_MAX_LENGTH          Maximum message length (1000).
STORE_BACKEND               "supabase" (default) or "memory".
SUPABASE_URL                Supabase project URL.
SUPABASE_SERVICE_KEY        Supabase service-role key.
STORE_TIMEOUT_SECONDS       PostgREST request timeout (5).
MIN_RESPONSE_TIME_MS        Minimum duration of a contact response (500).
RESPONSE_JITTER_MS          Maximum random padding on top of that (100).
APP_ENV                     "test" forces email delivery off.
"""

import re
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import (
    Field,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from portfolio_api.errors import ConfigurationError

# Loaded into os.environ so the configuration checks see the same values
load_dotenv()

# Unit suffix → seconds. Matches the "<n> <unit>" durations used by the
# front-end's rate limiter configuration ("10 m", "1 h", "1 d").
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)\s*$")


def parse_duration(value: str) -> float:
    """
    Parse a window string such as "10 m" or "1d" into seconds.

    Raises ValueError for anything that is not <number><unit> with a
    positive number.
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration {value!r}; expected e.g. '10 m' or '1 h'")
    amount = float(match.group(1))
    if amount <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}")
    return amount * _DURATION_UNITS[match.group(2)]


class ContactSettings(BaseSettings):
    """Typed view of the environment. Build with ContactSettings.from_env()."""

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
        str_strip_whitespace=True,
    )

    app_env: str = "development"

    rate_limit_requests: PositiveInt = 5
    rate_limit_window: float = 600
    global_rate_limit_requests: PositiveInt = 100
    global_rate_limit_window: float = 86400
    rate_limit_prefix: str = "portfolio"
    rate_limit_fail_open: bool = True
    trusted_proxy_hops: NonNegativeInt = 1

    bot_verification_provider: Literal["turnstile", "recaptcha"] = "turnstile"
    turnstile_secret_key: Optional[str] = None
    recaptcha_secret_key: Optional[str] = None
    bot_score_threshold: float = Field(0.5, ge=0, le=1)
    bot_verify_timeout_seconds: PositiveFloat = 10

    send_email_enabled: bool = True
    resend_api_key: Optional[str] = None
    from_email: Optional[str] = None
    to_email: Optional[str] = None
    email_sender_name: Optional[str] = None
    email_recipient_name: Optional[str] = None
    email_timeout_seconds: PositiveFloat = 10

    csrf_token_ttl_seconds: PositiveInt = 900

    message_min_length: PositiveInt = 50
    message_max_length: PositiveInt = 1000

    store_backend: Literal["supabase", "memory"] = "supabase"
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    store_timeout_seconds: PositiveFloat = 5

    min_response_time_ms: NonNegativeInt = 500
    response_jitter_ms: NonNegativeInt = 100

    @field_validator("app_env", "bot_verification_provider", "store_backend", mode="before")
    @classmethod
    def _lowercase(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("rate_limit_window", "global_rate_limit_window", mode="before")
    @classmethod
    def _duration(cls, value):
        if not isinstance(value, str):
            return value
        try:
            return parse_duration(value)
        except ValueError:
            # The message must not repeat the raw value
            raise ValueError("expected a duration like '10 m' or '1 h'") from None

    @model_validator(mode="after")
    def _length_bounds(self):
        if self.message_min_length > self.message_max_length:
            raise ValueError("MESSAGE_MIN_LENGTH must not exceed MESSAGE_MAX_LENGTH")
        return self

    @property
    def bot_secret_key(self) -> Optional[str]:
        if self.bot_verification_provider == "recaptcha":
            return self.recaptcha_secret_key
        return self.turnstile_secret_key

    @property
    def email_delivery_enabled(self) -> bool:
        """Real sends happen only when enabled and not running under tests."""
        return self.send_email_enabled and self.app_env != "test"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ContactSettings":
        """
        Read settings from env, or from the process environment when env is None.

        Blank values count as unset. Raises ConfigurationError naming the
        offending variables. Values are never echoed back because some of
        them are secrets.
        """
        try:
            if env is None:
                return cls()
            values = {name.lower(): value for name, value in env.items() if value and value.strip()}
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(_describe_errors(e)) from None


def _describe_errors(error: ValidationError) -> str:
    problems = []
    for item in error.errors(include_input=False, include_url=False):
        if item["loc"]:
            name = str(item["loc"][0]).upper()
            problems.append(f"{name} is invalid ({item['type']})")
        else:
            # Cross-field checks carry their own message and no input
            problems.append(item["msg"].removeprefix("Value error, "))
    return "; ".join(problems)
