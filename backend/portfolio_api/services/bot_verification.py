"""
Bot-verification service (Cloudflare Turnstile / Google reCAPTCHA v3).

Verifies the challenge token the browser widget produced by POSTing it to
the provider's siteverify endpoint, then:
  - requires success == true
  - when the provider returns a score (reCAPTCHA v3), requires
    score >= score_threshold

Network errors, timeouts, non-200 responses and malformed bodies count as
a failed verification (provider_error=True). Nothing is silently bypassed, with one
exception: score_threshold == 0 turns verification off entirely, which is
how test environments run without a real widget.

Replay protection: a token that has been checked once is recorded in the
shared store (set-if-absent, keyed by a SHA-256 prefix so the raw token is
never stored) and rejected if it shows up again. Provider tokens are
single-use anyway; this stops a replayed token before it costs a provider
round-trip. The mark is released again when the provider could not judge
the token (timeout, 5xx, bad secret) so the user can retry with it. A store
outage here fails open, since the provider still rejects duplicates itself.

Provider error codes
--------------------
  missing-input-secret / invalid-input-secret   server misconfiguration
  missing-input-response                        token missing
  invalid-input-response                        token invalid or forged
  timeout-or-duplicate                          token expired or already used
"""

import asyncio
import hashlib
import logging
from typing import Optional

import httpx

from portfolio_api.errors import StoreUnavailableError
from portfolio_api.models.contact import BotVerificationResult
from portfolio_api.services.store import KeyValueStore

logger = logging.getLogger(__name__)

VERIFY_URLS = {
    "turnstile": "https://challenges.cloudflare.com/turnstile/v0/siteverify",
    "recaptcha": "https://www.google.com/recaptcha/api/siteverify",
}

USED_TOKEN_PREFIX = "bot:used:"
USED_TOKEN_TTL_SECONDS = 300  # provider tokens live ~5 minutes

_DEFAULT_FAILURE = "Security verification failed. Please try again."

_ERROR_MESSAGES = {
    "timeout-or-duplicate": "Security verification expired. Please refresh and try again.",
    "invalid-input-response": "Invalid security verification. Please complete the challenge again.",
}

_CONFIG_ERROR_CODES = {"missing-input-secret", "invalid-input-secret"}


def token_fingerprint(token: str) -> str:
    """Short SHA-256 prefix used for logging and replay keys."""
    return hashlib.sha256(token.encode()).hexdigest()[:16]


class UsedTokenTracker:
    """Marks bot tokens as used. check_and_mark() is atomic via set_if_absent."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = USED_TOKEN_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def check_and_mark(self, token: str) -> bool:
        """Return True if the token was already used (replay)."""
        fingerprint = token_fingerprint(token)
        try:
            created = self.store.set_if_absent(f"{USED_TOKEN_PREFIX}{fingerprint}", "1", self.ttl_seconds)
        except StoreUnavailableError:
            logger.error(f"Could not record bot token {fingerprint} as used; continuing without replay check")
            return False
        if not created:
            logger.warning(f"Bot token replay detected ({fingerprint})")
        return not created

    def release(self, token: str) -> None:
        """Forget a token that was marked but never checked by the provider."""
        fingerprint = token_fingerprint(token)
        try:
            self.store.delete(f"{USED_TOKEN_PREFIX}{fingerprint}")
        except StoreUnavailableError:
            logger.error(f"Could not release bot token {fingerprint}; it stays marked until its TTL")


class BotVerifier:
    def __init__(
        self,
        secret_key: Optional[str],
        provider: str = "turnstile",
        score_threshold: float = 0.5,
        timeout_seconds: float = 10,
        tracker: Optional[UsedTokenTracker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if provider not in VERIFY_URLS:
            raise ValueError(f"Unknown bot verification provider {provider!r}")
        self.secret_key = secret_key
        self.provider = provider
        self.score_threshold = score_threshold
        self.timeout_seconds = timeout_seconds
        self.tracker = tracker
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return self.score_threshold > 0

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> BotVerificationResult:
        if not self.enabled:
            logger.info("Bot verification disabled (score threshold 0); accepting token")
            return BotVerificationResult(success=True, reason="disabled")

        if not token:
            return BotVerificationResult(success=False, reason="Security verification required")

        if not self.secret_key:
            logger.error(f"{self.provider} secret key not configured")
            return BotVerificationResult(success=False, reason=_DEFAULT_FAILURE, provider_error=True)

        if self.tracker is not None and await asyncio.to_thread(self.tracker.check_and_mark, token):
            return BotVerificationResult(
                success=False,
                reason="Security verification has already been used",
                error_codes=["replayed-token"],
            )

        result = await self._ask_provider(token, remote_ip)
        if result.provider_error and self.tracker is not None:
            # The provider never judged the token, so let the user retry it
            await asyncio.to_thread(self.tracker.release, token)
        return result

    async def _ask_provider(self, token: str, remote_ip: Optional[str]) -> BotVerificationResult:
        form = {"secret": self.secret_key, "response": token}
        if remote_ip and remote_ip != "unknown":
            form["remoteip"] = remote_ip

        try:
            data = await self._post(form)
        except httpx.TimeoutException:
            logger.error(f"{self.provider} verification timed out")
            return BotVerificationResult(success=False, reason=_DEFAULT_FAILURE, provider_error=True)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{self.provider} verification request failed: {e}")
            return BotVerificationResult(success=False, reason=_DEFAULT_FAILURE, provider_error=True)

        return self._interpret(data)

    async def _post(self, form: dict) -> dict:
        url = VERIFY_URLS[self.provider]
        if self._http_client is not None:
            response = await self._http_client.post(url, data=form, timeout=self.timeout_seconds)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, data=form)

        if response.status_code != 200:
            raise httpx.HTTPStatusError(
                f"{self.provider} API returned {response.status_code}",
                request=response.request,
                response=response,
            )
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"{self.provider} API returned a non-object JSON body")
        score = data.get("score")
        if score is not None and not isinstance(score, (int, float)):
            raise ValueError(f"{self.provider} API returned a non-numeric score")
        return data

    def _interpret(self, data: dict) -> BotVerificationResult:
        error_codes = list(data.get("error-codes") or [])
        score = data.get("score")

        if not data.get("success"):
            if _CONFIG_ERROR_CODES.intersection(error_codes):
                logger.error(f"{self.provider} rejected our secret key: {error_codes}")
                return BotVerificationResult(
                    success=False, reason=_DEFAULT_FAILURE,
                    error_codes=error_codes, provider_error=True,
                )

            logger.warning(f"{self.provider} verification failed: {error_codes}")
            reason = _DEFAULT_FAILURE
            for code in error_codes:
                if code in _ERROR_MESSAGES:
                    reason = _ERROR_MESSAGES[code]
                    break
            return BotVerificationResult(success=False, score=score, reason=reason, error_codes=error_codes)

        if score is not None and score < self.score_threshold:
            logger.warning(f"{self.provider} score too low: {score} < {self.score_threshold}")
            return BotVerificationResult(success=False, score=score, reason=_DEFAULT_FAILURE)

        logger.info(f"{self.provider} verification successful (hostname={data.get('hostname')})")
        return BotVerificationResult(success=True, score=score)
