from pathlib import Path

from fastapi.templating import Jinja2Templates
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse

from mechanicbd.api.errors import (
    ApiError,
    AuthenticationError,
    BusinessError,
    FormValidationError,
)
from mechanicbd.auth.gate import dashboard_for
from mechanicbd.auth.session import SessionStore
from mechanicbd.config import settings
from mechanicbd.services.flash import pop_flashes

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["settings"] = settings


def _session_for(request: Request) -> SessionStore | None:
    store = getattr(request.state, "session_store", None)
    if store is None and "session" in request.scope:
        store = SessionStore(request.session).hydrate()
        request.state.session_store = store
    return store


def render(request: Request, name: str, context: dict | None = None, status_code: int = 200) -> HTMLResponse:
    store = _session_for(request)
    user = store.user if store else None
    ctx = {
        "current_user": user,
        "dashboard_url": dashboard_for(user.role) if user else None,
        "flashes": pop_flashes(request),
    }
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)


def redirect(url: str) -> RedirectResponse:
    """Post/redirect/get: always 303 so the browser follows with a GET."""
    return RedirectResponse(url, status_code=303)


def error_status(exc: Exception) -> int:
    if isinstance(exc, (FormValidationError, BusinessError)):
        return 400
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, ApiError):
        return 502
    return 500


def error_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc)
