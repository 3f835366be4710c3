import asyncio

import structlog
from fastapi import APIRouter, Depends, Form, Request

from mechanicbd.api import auth as auth_api
from mechanicbd.api import users as users_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError, FormValidationError
from mechanicbd.auth.gate import require_roles
from mechanicbd.auth.session import InvalidUserData, SessionStore
from mechanicbd.dependencies import get_api
from mechanicbd.schemas.user import UserRole
from mechanicbd.services import forms
from mechanicbd.services.flash import flash
from mechanicbd.templating import error_message, error_status, redirect, render
from mechanicbd.utils.rate_limit import AUTH_RATE_LIMIT, FORM_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter(prefix="/profile")

signed_in = require_roles()


async def _profile_page(request: Request, api: ApiClient, context: dict | None = None, status_code: int = 200):
    try:
        profile, stats = await asyncio.gather(users_api.get_me(api), users_api.my_stats(api))
    except ApiError as exc:
        return render(request, "error.html", {
            "title": "Failed to fetch profile", "message": exc.message, "back_url": "/",
        }, status_code=error_status(exc))
    ctx = {"profile": profile, "stats": stats, "form": None, "error": None, "password_error": None}
    ctx.update(context or {})
    return render(request, "profile/profile.html", ctx, status_code=status_code)


@router.get("")
async def profile_page(
    request: Request,
    session: SessionStore = Depends(signed_in),
    api: ApiClient = Depends(get_api),
):
    return await _profile_page(request, api)


@router.post("")
@limiter.limit(FORM_RATE_LIMIT)
async def update_profile(
    request: Request,
    session: SessionStore = Depends(signed_in),
    api: ApiClient = Depends(get_api),
):
    form = dict(await request.form())
    try:
        body = forms.profile_form(form, is_mechanic=session.role == UserRole.MECHANIC)
        _, raw_user = await users_api.update_me(api, body)
        session.refresh_user(raw_user)
    except (FormValidationError, ApiError) as exc:
        return await _profile_page(request, api, {"form": form, "error": error_message(exc)},
                                   status_code=error_status(exc))
    except InvalidUserData:
        return redirect("/login")

    logger.info("profile_updated", user_id=session.user.id)
    flash(request, "Profile updated successfully.")
    return redirect("/profile")


@router.post("/password")
@limiter.limit(AUTH_RATE_LIMIT)
async def update_password(
    request: Request,
    current_password: str = Form("", alias="currentPassword"),
    new_password: str = Form("", alias="newPassword"),
    confirm_password: str = Form("", alias="confirmPassword"),
    session: SessionStore = Depends(signed_in),
    api: ApiClient = Depends(get_api),
):
    try:
        body = forms.password_form(current_password, new_password, confirm_password)
        await auth_api.update_password(api, body)
    except (FormValidationError, ApiError) as exc:
        return await _profile_page(request, api, {"password_error": error_message(exc)},
                                   status_code=error_status(exc))

    logger.info("password_updated", user_id=session.user.id)
    flash(request, "Password updated successfully.")
    return redirect("/profile")
