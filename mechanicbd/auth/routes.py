import structlog
from fastapi import APIRouter, Depends, Form, Query, Request

from mechanicbd.api import auth as auth_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError, FormValidationError
from mechanicbd.auth.session import InvalidUserData, SessionStore
from mechanicbd.dependencies import get_api, get_session
from mechanicbd.services import forms
from mechanicbd.services.flash import flash
from mechanicbd.templating import error_message, error_status, redirect, render
from mechanicbd.utils.log_mask import mask_identifier
from mechanicbd.utils.rate_limit import AUTH_RATE_LIMIT, limiter
from mechanicbd.utils.validators import is_safe_redirect

logger = structlog.get_logger()
router = APIRouter()

LOGIN_FAILED_MESSAGE = "Login failed"
REGISTRATION_FAILED_MESSAGE = "Registration failed"


def _login_page(request: Request, error: str | None = None, identifier: str = "", redirect_to: str = "",
                status_code: int = 200):
    return render(request, "auth/login.html", {
        "error": error,
        "identifier": identifier,
        "redirect_to": redirect_to if is_safe_redirect(redirect_to) else "",
    }, status_code=status_code)


@router.get("/login")
async def login_page(request: Request, redirect_to: str = Query("", alias="redirect")):
    return _login_page(request, redirect_to=redirect_to)


@router.post("/login")
@limiter.limit(AUTH_RATE_LIMIT)
async def login(
    request: Request,
    identifier: str = Form(""),
    password: str = Form(""),
    redirect_to: str = Form("", alias="redirect"),
    api: ApiClient = Depends(get_api),
    session: SessionStore = Depends(get_session),
):
    """Sign in with an email address or a phone number."""
    try:
        body = forms.login_form(identifier, password)
        result = await auth_api.login(api, body)
        user = session.login(result.token, result.user)
    except (FormValidationError, ApiError) as exc:
        logger.info("login_failed", identifier=mask_identifier(identifier.strip()))
        return _login_page(request, error_message(exc) or LOGIN_FAILED_MESSAGE, identifier, redirect_to,
                           status_code=error_status(exc))
    except InvalidUserData:
        logger.warning("login_invalid_user_data", identifier=mask_identifier(identifier.strip()))
        return _login_page(request, LOGIN_FAILED_MESSAGE, identifier, redirect_to, status_code=400)

    logger.info("user_login", user_id=user.id, role=user.role.value)
    return redirect(redirect_to if is_safe_redirect(redirect_to) else "/")


@router.get("/register")
async def register_page(request: Request):
    return render(request, "auth/register.html", {"form": {}})


@router.post("/register")
@limiter.limit(AUTH_RATE_LIMIT)
async def register(
    request: Request,
    full_name: str = Form("", alias="fullName"),
    phone_number: str = Form("", alias="phoneNumber"),
    email: str = Form(""),
    password: str = Form(""),
    api: ApiClient = Depends(get_api),
    session: SessionStore = Depends(get_session),
):
    form = {"fullName": full_name, "phoneNumber": phone_number, "email": email}
    try:
        body = forms.register_form(full_name, phone_number, email, password)
        result = await auth_api.register(api, body)
        user = session.login(result.token, result.user)
    except (FormValidationError, ApiError) as exc:
        return render(request, "auth/register.html", {
            "form": form, "error": error_message(exc) or REGISTRATION_FAILED_MESSAGE,
        }, status_code=error_status(exc))
    except InvalidUserData:
        return render(request, "auth/register.html", {"form": form, "error": REGISTRATION_FAILED_MESSAGE},
                      status_code=400)

    logger.info("user_registered", user_id=user.id, phone=mask_identifier(phone_number))
    flash(request, "Welcome to Mechanic BD!")
    return redirect("/")


@router.post("/logout")
@limiter.limit("10/minute")
async def logout(request: Request, session: SessionStore = Depends(get_session)):
    user = session.user
    session.logout()
    if user is not None:
        logger.info("user_logout", user_id=user.id)
    return redirect("/")
