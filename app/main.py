"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- API routes (API key management, analytics)
- Middleware (logging, CORS)
- The rate limit counter store
- Exception handlers rendering every rejection as the JSON error envelope

Design Decisions:
- Clean separation: Routes, middleware, and app config are separate
- The rate limit store is owned by app.state, so tests and deployments can
  swap it without touching routes
- No stack trace or store-level detail ever reaches the client
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import analytics, api_keys
from app.api.schemas import ErrorEnvelope
from app.core.exceptions import DatabaseError, LinkGatewayException, RateLimitedError
from app.core.rate_limit import build_rate_limit_store, rate_limit_headers
from app.core.setting import settings
from app.middleware.logging import add_logging_middleware

logger = logging.getLogger(__name__)

# Initialize FastAPI application
# Title and description are used in auto-generated API documentation
app = FastAPI(
    title="Link Gateway",
    description="API key management and click analytics for a URL shortener",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI documentation
    redoc_url="/redoc",  # ReDoc documentation
)

app.state.rate_limit_store = (
    build_rate_limit_store(settings.RATE_LIMIT_STORAGE_URI) if settings.RATE_LIMIT_ENABLED else None
)

add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, envelope: ErrorEnvelope, headers: dict = None) -> JSONResponse:
    """Render an error envelope, carrying the rate limit headers counted for this request."""
    all_headers = {}
    result = getattr(request.state, "rate_limit", None)
    if result is not None:
        all_headers.update(rate_limit_headers(result))
    if headers:
        all_headers.update(headers)
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(exclude_none=True),
        headers=all_headers,
    )


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    return _error_response(
        request,
        exc.status_code,
        ErrorEnvelope(
            error=exc.message,
            message=f"Too many requests. Try again in {exc.retry_after} seconds.",
        ),
        headers={**rate_limit_headers(exc.result), "Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(DatabaseError)
async def database_error_handler(request: Request, exc: DatabaseError):
    logger.error(
        f"{exc.detail} ({request.method} {request.url.path}): {exc.original_error}",
        exc_info=exc.original_error
    )
    return _error_response(request, exc.status_code, ErrorEnvelope(error=exc.message))


@app.exception_handler(LinkGatewayException)
async def gateway_exception_handler(request: Request, exc: LinkGatewayException):
    return _error_response(
        request,
        exc.status_code,
        ErrorEnvelope(error=exc.message, errors=getattr(exc, "errors", None)),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Keyed by top-level field: ("body", "scopes", 0) -> "scopes"
    errors = {}
    for error in exc.errors():
        parts = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.setdefault(parts[0] if parts else "body", error.get("msg", "Invalid value"))
    return _error_response(request, 400, ErrorEnvelope(error="Validation failed", errors=errors))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}", exc_info=exc)
    return _error_response(request, 500, ErrorEnvelope(error="Internal server error"))


@app.get("/", tags=["Health"])
async def root():
    """
    Root endpoint for health checks.

    Returns:
        Simple JSON response indicating service is running
    """
    return {
        "message": "Link Gateway",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}


app.include_router(api_keys.router, tags=["API Keys"])
app.include_router(analytics.router, tags=["Analytics"])
