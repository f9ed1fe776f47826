"""
Contact form API endpoints.

Endpoints (mounted under /api):
  GET  /csrf-token            - issue a single-use CSRF token
  POST /contact               - submit the contact form
  GET  /config-check          - are all contact form secrets present?
  GET  /email-service-check   - is the email delivery config valid?

The CSRF token is read from the X-CSRF-Token header, falling back to the
csrfToken field of the JSON body.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from portfolio_api.config import ContactSettings
from portfolio_api.errors import RateLimitError, StoreUnavailableError
from portfolio_api.models.contact import (
    ConfigCheckResponse,
    ContactRequest,
    ContactResponse,
    CsrfTokenResponse,
)
from portfolio_api.services.config_checker import check_contact_form_requirements, check_email_service
from portfolio_api.services.contact_pipeline import SUCCESS_MESSAGE, ContactPipeline
from portfolio_api.services.response_time import ResponseTimeProtector

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> ContactSettings:
    return ContactSettings.from_env()


@lru_cache(maxsize=1)
def get_pipeline() -> ContactPipeline:
    """
    Build the pipeline once per process.

    ConfigurationError propagates to the app-level handler (500). lru_cache
    does not cache exceptions, so fixing the environment and retrying works.
    """
    return ContactPipeline.from_settings(get_settings())


def get_response_protector() -> ResponseTimeProtector:
    settings = get_settings()
    return ResponseTimeProtector(settings.min_response_time_ms, settings.response_jitter_ms)


def get_client_ip(request: Request, settings: ContactSettings = Depends(get_settings)) -> str:
    """
    Get client IP address for rate limiting.

    Each trusted proxy appends the address it received the request from to
    X-Forwarded-For, so the client is the entry trusted_proxy_hops places
    from the right. Anything further left was supplied by the client and
    is ignored. With no trusted proxies the header is ignored entirely.
    """
    hops = settings.trusted_proxy_hops
    forwarded = request.headers.get("X-Forwarded-For")
    if hops and forwarded:
        chain = [entry.strip() for entry in forwarded.split(",") if entry.strip()]
        if len(chain) >= hops:
            return chain[-hops]
    # Fallback to direct connection
    return request.client.host if request.client else "unknown"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def get_csrf_token(pipeline: ContactPipeline = Depends(get_pipeline)):
    """Issue a CSRF token for the next contact form submission."""
    try:
        token = await asyncio.to_thread(pipeline.csrf.create_token)
    except StoreUnavailableError:
        logger.error("Could not issue CSRF token: store unavailable")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to generate security token"},
        )

    return JSONResponse(
        content=CsrfTokenResponse(token=token.value).model_dump(),
        headers={"Cache-Control": "no-store"},
    )


@router.post("/contact", response_model=ContactResponse)
async def submit_contact_form(
    body: ContactRequest,
    x_csrf_token: Optional[str] = Header(None),
    client_ip: str = Depends(get_client_ip),
    pipeline: ContactPipeline = Depends(get_pipeline),
    protector: ResponseTimeProtector = Depends(get_response_protector),
):
    """
    Submit the contact form.

    Status codes:
      200  message sent
      400  field validation errors ({message, errors: [{field, message}]})
      403  CSRF or bot verification failed
      429  rate limited ({message, retryAfter} + Retry-After header)
      500  delivery failed or unexpected error
    """
    try:
        result = await pipeline.process(body, client_ip, x_csrf_token)
    except Exception:
        logger.exception("Unexpected error while processing contact form")
        await protector.wait()
        return JSONResponse(
            status_code=500,
            content={"message": "Failed to send message. Please try again later."},
        )

    await protector.wait()

    headers: dict[str, str] = {}
    rate_limit = result.meta.get("rate_limit")
    if rate_limit is not None:
        headers.update(rate_limit.headers())

    if result.ok:
        return JSONResponse(
            status_code=200,
            content=ContactResponse(message=SUCCESS_MESSAGE).model_dump(),
            headers=headers,
        )

    error = result.error
    if isinstance(error, RateLimitError):
        headers["Retry-After"] = str(error.retry_after)

    return JSONResponse(status_code=error.status_code, content=error.to_response(), headers=headers)


@router.get("/config-check", response_model=ConfigCheckResponse)
async def config_check():
    """Report whether every secret the contact form needs is present."""
    return ConfigCheckResponse(configured=check_contact_form_requirements().configured)


@router.get("/email-service-check", response_model=ConfigCheckResponse)
async def email_service_check():
    """Report whether the email delivery configuration is valid."""
    return ConfigCheckResponse(configured=check_email_service().configured)
