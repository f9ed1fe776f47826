"""
Email delivery through the Resend transactional email API.

build_payload() turns a sanitized ContactSubmission into an immutable
EmailPayload (HTML + plain text from the templates in portfolio_api/templates).
send() dispatches it with a single POST to https://api.resend.com/emails.

Mock mode
---------
When delivery is disabled (SEND_EMAIL_ENABLED=false, APP_ENV=test, or no
RESEND_API_KEY), send() never touches the network and returns a
deterministic id of the form "mock-<12 hex chars>" derived from the payload,
so the same submission always yields the same mock id.

send() never raises for provider problems: failures come back as
EmailSendResult(error=...) and the pipeline decides what the caller sees.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
from markupsafe import Markup

from portfolio_api.models.contact import ContactSubmission, EmailPayload, EmailSendResult
from portfolio_api.services.template_renderer import render_template

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
MOCK_ID_PREFIX = "mock-"

HTML_TEMPLATE = "contact-email.html"
TEXT_TEMPLATE = "contact-email.txt"


class EmailService:
    def __init__(
        self,
        api_key: Optional[str],
        from_email: Optional[str],
        to_email: Optional[str],
        sender_name: Optional[str] = None,
        recipient_name: Optional[str] = None,
        enabled: bool = True,
        timeout_seconds: float = 10,
        http_client: Optional[httpx.AsyncClient] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.api_key = api_key
        self.from_email = from_email or ""
        self.to_email = to_email or ""
        self.sender_name = sender_name
        self.recipient_name = recipient_name
        self.enabled = enabled and bool(api_key)
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._now = now

        if enabled and not api_key:
            logger.warning("Email delivery enabled but RESEND_API_KEY is not set; using mock delivery")

    @staticmethod
    def _address(name: Optional[str], email: str) -> str:
        return f"{name} <{email}>" if name else email

    def build_payload(self, submission: ContactSubmission) -> EmailPayload:
        """
        Render both bodies for submission.

        Submission fields arrive HTML-escaped by the sanitizer. They are
        decoded once here; the .html template escapes again at render time
        and the .txt template shows the text as typed.
        """
        context = {
            "firstName": Markup(submission.first_name).unescape(),
            "lastName": Markup(submission.last_name).unescape(),
            "email": Markup(submission.email).unescape(),
            "message": Markup(submission.message).unescape(),
            "submittedAt": self._now().strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
        }

        return EmailPayload(
            to=self._address(self.recipient_name, self.to_email),
            from_=self._address(self.sender_name, self.from_email),
            reply_to=context["email"],
            subject=f"New Message from {context['firstName']} {context['lastName']}",
            html=render_template(HTML_TEMPLATE, context),
            text=render_template(TEXT_TEMPLATE, context),
        )

    @staticmethod
    def mock_id(payload: EmailPayload) -> str:
        digest = hashlib.sha256(
            "\n".join([payload.to, payload.reply_to, payload.subject, payload.text]).encode()
        ).hexdigest()
        return f"{MOCK_ID_PREFIX}{digest[:12]}"

    async def send(self, payload: EmailPayload) -> EmailSendResult:
        if not self.enabled:
            mock_id = self.mock_id(payload)
            logger.info(f"Email delivery disabled; returning mock id {mock_id}")
            return EmailSendResult(id=mock_id)

        try:
            response = await self._post(payload.to_resend())
        except httpx.TimeoutException:
            logger.error("Resend request timed out")
            return EmailSendResult(error="Email provider timed out")
        except httpx.HTTPError as e:
            logger.error(f"Resend request failed: {e}")
            return EmailSendResult(error=f"Email provider request failed: {e}")

        if response.status_code >= 400:
            logger.error(f"Resend returned {response.status_code}: {response.text}")
            return EmailSendResult(error=f"Email provider returned {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            data = None
        email_id = data.get("id") if isinstance(data, dict) else None
        if not email_id:
            logger.error("Resend response did not include an email id")
            return EmailSendResult(error="Email provider returned no id")

        logger.info(f"Contact email sent (id={email_id})")
        return EmailSendResult(id=email_id)

    async def _post(self, body: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._http_client is not None:
            return await self._http_client.post(
                RESEND_API_URL, json=body, headers=headers, timeout=self.timeout_seconds
            )
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(RESEND_API_URL, json=body, headers=headers)
