import re as _re
import time as _time
import uuid as _uuid
from contextlib import asynccontextmanager

import httpx
import sentry_sdk
import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from mechanicbd.api.client import close_http_client
from mechanicbd.api.errors import AuthenticationError
from mechanicbd.auth.gate import GateRedirect
from mechanicbd.auth.routes import router as auth_router
from mechanicbd.bookings.routes import router as bookings_router
from mechanicbd.catalog.routes import router as catalog_router
from mechanicbd.chat.routes import router as chat_router
from mechanicbd.config import settings
from mechanicbd.dashboards.routes import router as dashboards_router
from mechanicbd.dependencies import get_upstream
from mechanicbd.middleware import AuthRedirectMiddleware, SecurityHeadersMiddleware, wants_json
from mechanicbd.pages.routes import router as pages_router
from mechanicbd.payments.routes import router as payments_router
from mechanicbd.profile.routes import router as profile_router
from mechanicbd.templating import redirect, render
from mechanicbd.utils.rate_limit import limiter

# Configure structlog: JSON in production, console in development
processors = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]
if settings.is_production:
    processors.append(structlog.processors.JSONRenderer())
else:
    processors.append(structlog.dev.ConsoleRenderer())

structlog.configure(
    processors=processors,
    wrapper_class=structlog.make_filtering_bound_logger(0),
)

logger = structlog.get_logger()

# Sentry error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.1,
        environment=settings.APP_ENV,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("mechanicbd_web_startup", env=settings.APP_ENV, api_base=settings.api_base,
                socket_url=settings.socket_url)
    yield
    await close_http_client()
    logger.info("mechanicbd_web_shutdown")


app = FastAPI(
    title="Mechanic BD",
    description="Customer-facing web app for booking mechanics and home services in Bangladesh",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None if settings.is_production else "/openapi.json",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    """The API rejected the token; the session is already cleared."""
    if wants_json(request):
        return JSONResponse(status_code=401, content={"detail": exc.message})
    if exc.redirect_to is None:
        return render(request, "auth/login.html", {"error": exc.message, "identifier": "", "redirect_to": ""},
                      status_code=401)
    return redirect(exc.redirect_to)


@app.exception_handler(GateRedirect)
async def gate_redirect_handler(request: Request, exc: GateRedirect):
    return redirect(exc.location)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if wants_json(request) or exc.status_code != 404:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail},
                            headers=getattr(exc, "headers", None))
    return render(request, "not_found.html", status_code=404)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions and return a safe 500 page outside development."""
    logger.exception("unhandled_exception", path=request.url.path)
    if settings.APP_ENV != "development":
        if wants_json(request):
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
        return render(request, "error.html", {
            "title": "Something went wrong",
            "message": "An unexpected error occurred. Please try again later.",
            "back_url": "/",
        }, status_code=500)
    # In development, re-raise so the default handler shows the traceback
    raise exc


# Middleware is LIFO: the last middleware added runs first.
# AuthRedirect must sit inside SessionMiddleware so the cleared session is written back.
app.add_middleware(AuthRedirectMiddleware)
app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_production)


_REQUEST_ID_RE = _re.compile(r"^[a-zA-Z0-9\-]{1,64}$")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a unique request ID and measure duration for every request."""
    # Validate X-Request-ID to prevent log injection
    client_id = request.headers.get("X-Request-ID")
    request_id = client_id if client_id and _REQUEST_ID_RE.match(client_id) else str(_uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id)
    start = _time.monotonic()
    try:
        response = await call_next(request)
        duration_ms = (_time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"
        if duration_ms > 1000:
            logger.warning(
                "slow_request",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 1),
                status_code=response.status_code,
            )
        return response
    finally:
        structlog.contextvars.clear_contextvars()


app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    session_cookie=settings.SESSION_COOKIE_NAME,
    max_age=settings.SESSION_MAX_AGE_SECONDS,
    same_site="lax",
    https_only=settings.is_production,
)


def _safe_metrics(info) -> None:
    from prometheus_client import Counter, Histogram
    if not hasattr(_safe_metrics, "_total"):
        _safe_metrics._total = Counter(
            "mechanicbd_web_http_requests_total", "Total HTTP requests",
            ["method", "status", "handler"],
        )
        _safe_metrics._latency = Histogram(
            "mechanicbd_web_http_request_duration_seconds", "Request latency",
            ["method", "handler"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
        )
    _safe_metrics._total.labels(info.method, info.modified_status, info.modified_handler).inc()
    _safe_metrics._latency.labels(info.method, info.modified_handler).observe(info.modified_duration)


Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/health", "/metrics"],
).add(_safe_metrics).instrument(app)


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(request: Request):
    """Prometheus metrics endpoint (protected by API key)."""
    from prometheus_client import generate_latest
    from starlette.responses import Response as StarletteResponse

    # In production/staging, METRICS_API_KEY is required
    if settings.is_production and not settings.METRICS_API_KEY:
        raise HTTPException(status_code=503, detail="Metrics not available")

    if settings.METRICS_API_KEY:
        api_key = request.headers.get("x-metrics-key", "")
        if api_key != settings.METRICS_API_KEY:
            raise HTTPException(status_code=403, detail="Invalid metrics API key")

    return StarletteResponse(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(pages_router, tags=["pages"])
app.include_router(auth_router, tags=["auth"])
app.include_router(catalog_router, tags=["catalog"])
app.include_router(bookings_router, tags=["bookings"])
app.include_router(payments_router, tags=["payments"])
app.include_router(dashboards_router, tags=["dashboards"])
app.include_router(profile_router, tags=["profile"])
app.include_router(chat_router, tags=["chat"])


@app.get("/health")
@limiter.limit("60/minute")
async def health_check(request: Request, http: httpx.AsyncClient = Depends(get_upstream)):
    """Health check, including whether the upstream API answers."""
    result: dict = {"status": "ok", "api": "reachable"}
    try:
        response = await http.get("/health", timeout=5.0)
        if response.status_code >= 500:
            result["api"] = "error"
    except httpx.HTTPError:
        result["api"] = "unreachable"

    if result["api"] != "reachable":
        result["status"] = "degraded"
        logger.warning("health_upstream_unavailable", api=result["api"])
    return result
