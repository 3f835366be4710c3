import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from mechanicbd.api.errors import AUTH_ERROR_MESSAGE

logger = structlog.get_logger()

LOGIN_PATH = "/login"


def wants_json(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "application/json" in accept and "text/html" not in accept


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, is_production: bool = False):
        super().__init__(app)
        self.is_production = is_production

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        # Pages carry small inline scripts (typeahead, chat relay) and open ws:/wss: back to this origin
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: https:; connect-src 'self' ws: wss:; "
            "frame-ancestors 'none'; base-uri 'self'; form-action 'self'"
        )
        # Only add HSTS in production (requires HTTPS)
        if self.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
        return response


class AuthRedirectMiddleware(BaseHTTPMiddleware):
    """Send the browser to /login once the API has rejected the session token.

    Screens catch ``ApiError`` broadly; this turns whatever they rendered into
    a single redirect (or a JSON 401) when the session was expired mid-request.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        store = getattr(request.state, "session_store", None)
        if store is None or not store.expired or request.url.path == LOGIN_PATH:
            return response
        if response.status_code in (301, 302, 303, 307, 308) and response.headers.get(
            "location", ""
        ).startswith(LOGIN_PATH):
            return response
        if wants_json(request):
            return JSONResponse(status_code=401, content={"detail": AUTH_ERROR_MESSAGE})
        logger.info("session_expired_redirect", path=request.url.path)
        return RedirectResponse(LOGIN_PATH, status_code=303)
