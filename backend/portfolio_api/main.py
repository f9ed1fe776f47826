"""
Portfolio Backend API
FastAPI application serving the portfolio site's contact form.
"""

import asyncio
import logging
import os
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portfolio_api.errors import ConfigurationError, StoreUnavailableError
from portfolio_api.routers import contact
from portfolio_api.routers.contact import get_pipeline
from portfolio_api.services.contact_pipeline import ContactPipeline

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

LOCAL_ORIGINS = [
    "http://localhost:3000",  # Next.js dev server
    "http://localhost:3001",  # Docker-mapped port
]

app = FastAPI(
    title="Portfolio API",
    description="Contact form backend for the portfolio website",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Allowed browser origins for the contact form.

    The local front-end ports are always allowed; CORS_ORIGINS adds the
    deployed site(s) as a comma-separated list, e.g.
        CORS_ORIGINS=https://example.dev,https://www.example.dev
    """
    configured = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",")]
    # dict.fromkeys keeps first-seen order
    return list(dict.fromkeys(LOCAL_ORIGINS + [o for o in configured if o]))


# Origins are fixed at import time
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-CSRF-Token"],
)

# Include routers
app.include_router(contact.router, prefix="/api", tags=["contact"])


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    # Internal message names the variable; the client only learns "configuration"
    logger.error(f"Configuration error on {request.url.path}: {exc.internal_message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"message": "Invalid form data", "errors": errors})


@app.get("/")
async def root():
    return {"message": "Portfolio API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/store")
async def health_store(pipeline: ContactPipeline = Depends(get_pipeline)):
    """
    Round-trip the shared store used for CSRF tokens and rate limits.

    Returns 503 when the store is unreachable.
    """
    try:
        await asyncio.to_thread(pipeline.store.ping)
    except StoreUnavailableError:
        raise HTTPException(status_code=503, detail="Shared store unreachable")
    return {"status": "ok", "store": "reachable"}
