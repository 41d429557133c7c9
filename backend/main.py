"""Social Growth Report - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from middleware.rate_limit import limiter, rate_limit_exceeded_handler
from routers import (
    facebook_router,
    instagram_router,
    report_router,
    x_router,
    youtube_router,
)
from services.errors import (
    ResourceNotFoundError,
    SocialReportError,
    TokenResolutionError,
    UpstreamResponseError,
)
from services.meta_token import PageTokenCache
from services.report_service import get_baseline_store

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# httpx logs full request URLs at INFO, and Graph API URLs carry access tokens
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - build process-wide state on startup."""
    app.state.token_cache = PageTokenCache(ttl_seconds=settings.page_token_cache_ttl_seconds)

    # Load the baseline once; a broken data file should fail startup, not requests
    get_baseline_store()

    if not (settings.facebook_page_access_token or settings.facebook_user_access_token):
        logger.warning("No Facebook token configured - Facebook/Instagram will be null")
    if not settings.youtube_api_key:
        logger.warning("YOUTUBE_API_KEY not set - YouTube will use baseline numbers")

    yield

    app.state.token_cache.invalidate()


app = FastAPI(
    title=settings.app_name,
    description="Monthly social-media growth report with live month-to-date numbers",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# Token cache also exists before startup runs (e.g. TestClient without a with-block)
app.state.token_cache = PageTokenCache(ttl_seconds=settings.page_token_cache_ttl_seconds)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _error_body(message: str, details=None) -> dict:
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return body


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {error, details?}; 405s keep their Allow header."""
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    elif exc.status_code == 405:
        content = _error_body(f"Method {request.method} not allowed")
    else:
        content = _error_body(str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(status_code=400, content=_error_body("Invalid request", details))


@app.exception_handler(SocialReportError)
async def social_report_error_handler(request: Request, exc: SocialReportError):
    """Map service errors to status codes."""
    if isinstance(exc, UpstreamResponseError):
        status_code = exc.status_code
    elif isinstance(exc, ResourceNotFoundError):
        status_code = 404
    elif isinstance(exc, TokenResolutionError):
        status_code = 401
    else:
        status_code = 500

    if status_code >= 500:
        logger.error(f"{request.url.path}: {exc.message}")
    else:
        logger.warning(f"{request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content=_error_body(exc.message, exc.details))


@app.exception_handler(httpx.HTTPError)
async def upstream_transport_error_handler(request: Request, exc: httpx.HTTPError):
    """Network-level upstream failures (timeouts, DNS, resets)."""
    status_code = 504 if isinstance(exc, httpx.TimeoutException) else 502
    logger.warning(f"{request.url.path}: upstream request failed: {type(exc).__name__}")
    return JSONResponse(
        status_code=status_code,
        content=_error_body("Upstream request failed", type(exc).__name__),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=500, content=_error_body("Internal server error"))


# Include routers
app.include_router(facebook_router)
app.include_router(instagram_router)
app.include_router(report_router)
app.include_router(x_router)
app.include_router(youtube_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "social-growth-report"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Social Growth Report API",
        "version": "0.1.0",
        "docs": "/docs",
    }
