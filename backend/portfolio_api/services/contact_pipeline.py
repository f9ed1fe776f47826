"""
Contact submission pipeline.

One request runs these stages in order and stops at the first failure:

  1. sanitize      trim + HTML-escape every text field
  2. validate      all field violations at once         -> ValidationError (400)
  3. csrf          single-use token take-and-delete     -> SecurityError (403)
  4. bot check     Turnstile / reCAPTCHA siteverify     -> SecurityError (403)
  5. rate limits   per-IP, then global                  -> RateLimitError (429)
  6. deliver       build EmailPayload, send once        -> DeliveryError (500)

Expected rejections come back as StageResult failures, never as raised
exceptions. Nothing is retried here; a retry is a new request that starts
again at stage 1 with a fresh CSRF token.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from portfolio_api.config import ContactSettings
from portfolio_api.db import get_supabase_admin
from portfolio_api.errors import (
    ConfigurationError,
    DeliveryError,
    RateLimitError,
    SecurityError,
    StageResult,
    StoreUnavailableError,
    ValidationError,
)
from portfolio_api.models.contact import ContactRequest, ContactSubmission, RateLimitResult
from portfolio_api.services.bot_verification import BotVerifier, UsedTokenTracker
from portfolio_api.services.csrf import CsrfService
from portfolio_api.services.email_service import EmailService
from portfolio_api.services.rate_limiter import ContactRateLimiter, RateLimiter
from portfolio_api.services.sanitizer import sanitize
from portfolio_api.services.store import KeyValueStore, MemoryStore, SupabaseStore
from portfolio_api.services.validation import validate_submission

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Message sent successfully"

_CSRF_FAILURE = "Invalid or expired security token. Please refresh the page and try again."
_IP_LIMIT_MESSAGE = "Too many requests. Please try again later."
_GLOBAL_LIMIT_MESSAGE = "The contact form is temporarily unavailable due to high volume. Please try again later."
_DELIVERY_FAILURE = "Failed to send message. Please try again later."


class ContactPipeline:
    def __init__(
        self,
        store: KeyValueStore,
        csrf: CsrfService,
        bot_verifier: BotVerifier,
        rate_limiter: ContactRateLimiter,
        email_service: EmailService,
        min_message_length: int = 50,
        max_message_length: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.csrf = csrf
        self.bot_verifier = bot_verifier
        self.rate_limiter = rate_limiter
        self.email_service = email_service
        self.min_message_length = min_message_length
        self.max_message_length = max_message_length
        self._clock = clock

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @staticmethod
    def sanitize_request(request: ContactRequest, client_ip: str, csrf_token: Optional[str]) -> ContactSubmission:
        return ContactSubmission(
            first_name=sanitize(request.first_name),
            last_name=sanitize(request.last_name),
            email=sanitize(request.email),
            message=sanitize(request.message),
            csrf_token=(csrf_token or request.csrf_token or "").strip(),
            bot_token=request.bot_token.strip(),
            client_ip=client_ip or "unknown",
        )

    def validate(self, submission: ContactSubmission) -> StageResult[ContactSubmission]:
        errors = validate_submission(submission, self.min_message_length, self.max_message_length)
        if errors:
            fields = sorted({e.field for e in errors})
            return StageResult.failure(ValidationError(
                "Invalid form data",
                errors=[e.model_dump() for e in errors],
                internal_message=f"Field validation failed: {fields}",
            ))
        return StageResult.success(submission)

    def check_csrf(self, submission: ContactSubmission) -> StageResult[None]:
        try:
            valid = self.csrf.verify_and_consume(submission.csrf_token)
        except StoreUnavailableError:
            # Without the store we cannot prove single use, so refuse
            logger.error("CSRF store unavailable; rejecting submission")
            return StageResult.failure(SecurityError(_CSRF_FAILURE, "CSRF store unavailable"))
        if not valid:
            return StageResult.failure(SecurityError(_CSRF_FAILURE, "CSRF token missing, unknown, expired or reused"))
        return StageResult.success()

    async def check_bot(self, submission: ContactSubmission) -> StageResult[None]:
        result = await self.bot_verifier.verify(submission.bot_token, submission.client_ip)
        if not result.success:
            return StageResult.failure(SecurityError(
                result.reason or "Security verification failed. Please try again.",
                f"Bot verification failed: codes={result.error_codes} provider_error={result.provider_error}",
            ))
        return StageResult.success()

    def check_rate_limits(self, submission: ContactSubmission) -> StageResult[RateLimitResult]:
        ip_result, global_result = self.rate_limiter.check(submission.client_ip)
        now = self._clock()

        if not ip_result.allowed:
            return StageResult.failure(
                RateLimitError(_IP_LIMIT_MESSAGE, ip_result.retry_after(now), "IP rate limit exceeded"),
                rate_limit=ip_result,
            )
        if global_result is not None and not global_result.allowed:
            return StageResult.failure(
                RateLimitError(_GLOBAL_LIMIT_MESSAGE, global_result.retry_after(now), "Global rate limit exceeded"),
                rate_limit=ip_result,
            )
        return StageResult.success(ip_result, rate_limit=ip_result)

    async def deliver(self, submission: ContactSubmission) -> StageResult[str]:
        payload = self.email_service.build_payload(submission)
        result = await self.email_service.send(payload)
        if not result.ok:
            return StageResult.failure(DeliveryError(_DELIVERY_FAILURE, f"Email delivery failed: {result.error}"))
        return StageResult.success(result.id)

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def process(
        self,
        request: ContactRequest,
        client_ip: str,
        csrf_token: Optional[str] = None,
    ) -> StageResult[str]:
        """
        Run every stage for one submission.

        On success value is the email id. meta["rate_limit"] holds the IP
        tier result whenever the limiter ran, for response headers.
        """
        submission = self.sanitize_request(request, client_ip, csrf_token)

        validated = self.validate(submission)
        if not validated.ok:
            return self._reject(validated)

        csrf_checked = await asyncio.to_thread(self.check_csrf, submission)
        if not csrf_checked.ok:
            return self._reject(csrf_checked)

        bot_checked = await self.check_bot(submission)
        if not bot_checked.ok:
            return self._reject(bot_checked)

        limited = await asyncio.to_thread(self.check_rate_limits, submission)
        if not limited.ok:
            return self._reject(limited)

        delivered = await self.deliver(submission)
        if not delivered.ok:
            return self._reject(delivered, **limited.meta)

        logger.info(f"Contact submission accepted (email id={delivered.value})")
        return StageResult.success(delivered.value, **limited.meta)

    @staticmethod
    def _reject(result: StageResult, **meta) -> StageResult[str]:
        error = result.error
        logger.warning(f"Contact submission rejected [{error.kind}]: {error.internal_message}")
        return StageResult.failure(error, **{**result.meta, **meta})

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_settings(cls, settings: ContactSettings, store: Optional[KeyValueStore] = None) -> "ContactPipeline":
        """
        Wire every collaborator from settings.

        Raises ConfigurationError when the selected store backend is not
        configured or the email settings are incomplete for real delivery.
        """
        if store is None:
            store = build_store(settings)

        if settings.email_delivery_enabled and settings.resend_api_key:
            missing = [name for name, value in (("FROM_EMAIL", settings.from_email), ("TO_EMAIL", settings.to_email)) if not value]
            if missing:
                raise ConfigurationError(f"Email delivery enabled but {', '.join(missing)} not set")

        ip_limiter = RateLimiter(
            store,
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window,
            scope="ip",
            prefix=settings.rate_limit_prefix,
            fail_open=settings.rate_limit_fail_open,
        )
        global_limiter = RateLimiter(
            store,
            limit=settings.global_rate_limit_requests,
            window_seconds=settings.global_rate_limit_window,
            scope="global",
            prefix=settings.rate_limit_prefix,
            fail_open=settings.rate_limit_fail_open,
        )

        return cls(
            store=store,
            csrf=CsrfService(store, ttl_seconds=settings.csrf_token_ttl_seconds),
            bot_verifier=BotVerifier(
                settings.bot_secret_key,
                provider=settings.bot_verification_provider,
                score_threshold=settings.bot_score_threshold,
                timeout_seconds=settings.bot_verify_timeout_seconds,
                tracker=UsedTokenTracker(store),
            ),
            rate_limiter=ContactRateLimiter(ip_limiter, global_limiter),
            email_service=EmailService(
                api_key=settings.resend_api_key,
                from_email=settings.from_email,
                to_email=settings.to_email,
                sender_name=settings.email_sender_name,
                recipient_name=settings.email_recipient_name,
                enabled=settings.email_delivery_enabled,
                timeout_seconds=settings.email_timeout_seconds,
            ),
            min_message_length=settings.message_min_length,
            max_message_length=settings.message_max_length,
        )


def build_store(settings: ContactSettings) -> KeyValueStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory store; limits and CSRF tokens are not shared across instances")
        return MemoryStore()

    client = get_supabase_admin(settings)
    if client is None:
        raise ConfigurationError("STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_KEY")
    return SupabaseStore(client)
