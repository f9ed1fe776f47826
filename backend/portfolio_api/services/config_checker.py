"""
Configuration checks behind GET /api/config-check and
GET /api/email-service-check.

Both report only a boolean to the client. The names of missing variables
are logged server-side; values are never logged or returned.
"""

import logging
import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_EMAIL = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$")

# Variables the contact form needs regardless of bot provider / store backend
CONTACT_FORM_REQUIRED_VARS = ("RESEND_API_KEY", "FROM_EMAIL", "TO_EMAIL")


class ConfigCheckResult(BaseModel):
    configured: bool
    missing: list[str] = []


def required_contact_vars(env: Mapping[str, str]) -> list[str]:
    """Required variable names, resolved against the selected provider/backend."""
    required = list(CONTACT_FORM_REQUIRED_VARS)

    provider = (env.get("BOT_VERIFICATION_PROVIDER") or "turnstile").strip().lower()
    required.append("RECAPTCHA_SECRET_KEY" if provider == "recaptcha" else "TURNSTILE_SECRET_KEY")

    backend = (env.get("STORE_BACKEND") or "supabase").strip().lower()
    if backend == "supabase":
        required.extend(["SUPABASE_URL", "SUPABASE_SERVICE_KEY"])

    return required


def check_configuration(required: list[str], env: Mapping[str, str]) -> ConfigCheckResult:
    missing = [name for name in required if not (env.get(name) or "").strip()]
    if missing:
        logger.error(f"Missing required environment variables: {missing}")
        return ConfigCheckResult(configured=False, missing=missing)
    return ConfigCheckResult(configured=True)


def check_contact_form_requirements(env: Optional[Mapping[str, str]] = None) -> ConfigCheckResult:
    env = os.environ if env is None else env
    return check_configuration(required_contact_vars(env), env)


def check_email_service(env: Optional[Mapping[str, str]] = None) -> ConfigCheckResult:
    """
    Validate just the email delivery settings: API key present, sender and
    recipient addresses well-formed, display names present.
    """
    env = os.environ if env is None else env
    problems: list[str] = []

    for name in ("RESEND_API_KEY", "EMAIL_SENDER_NAME", "EMAIL_RECIPIENT_NAME"):
        if not (env.get(name) or "").strip():
            problems.append(name)
    for name in ("FROM_EMAIL", "TO_EMAIL"):
        if not _EMAIL.match((env.get(name) or "").strip()):
            problems.append(name)

    if problems:
        logger.error(f"Email service configuration invalid: {problems}")
        return ConfigCheckResult(configured=False, missing=problems)
    return ConfigCheckResult(configured=True)
