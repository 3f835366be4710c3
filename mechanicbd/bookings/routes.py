from datetime import date, timedelta

import structlog
from fastapi import APIRouter, Depends, Form, Request

from mechanicbd.api import bookings as bookings_api
from mechanicbd.api import services as services_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError, FormValidationError
from mechanicbd.auth.gate import require_roles
from mechanicbd.auth.session import SessionStore
from mechanicbd.dependencies import get_api
from mechanicbd.schemas.booking import Booking, RescheduleRequest
from mechanicbd.schemas.user import UserRole
from mechanicbd.services import forms
from mechanicbd.services.flash import flash
from mechanicbd.templating import error_message, error_status, redirect, render
from mechanicbd.utils.rate_limit import FORM_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()

customer_only = require_roles(UserRole.CUSTOMER)
signed_in = require_roles()


def _tomorrow() -> str:
    return (date.today() + timedelta(days=1)).isoformat()


@router.get("/book/{service_id}")
async def booking_page(
    request: Request,
    service_id: str,
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    try:
        service = await services_api.get_service(api, service_id)
    except ApiError as exc:
        return render(request, "error.html", {
            "title": "Service unavailable", "message": exc.message, "back_url": "/services",
        }, status_code=error_status(exc))
    return render(request, "bookings/book.html", {
        "service": service,
        "service_id": service_id,
        "form": {"scheduledDate": _tomorrow()},
        "min_date": date.today().isoformat(),
    })


@router.post("/book/{service_id}")
@limiter.limit(FORM_RATE_LIMIT)
async def create_booking(
    request: Request,
    service_id: str,
    scheduled_date: str = Form("", alias="scheduledDate"),
    scheduled_time: str = Form("", alias="scheduledTime"),
    service_location: str = Form("", alias="serviceLocation"),
    customer_notes: str = Form("", alias="customerNotes"),
    service_requirements: str = Form("", alias="serviceRequirements"),
    service_title: str = Form("", alias="serviceTitle"),
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    form = {
        "scheduledDate": scheduled_date,
        "scheduledTime": scheduled_time,
        "serviceLocation": service_location,
        "customerNotes": customer_notes,
        "serviceRequirements": service_requirements,
    }
    try:
        body = forms.booking_form(
            service_id, scheduled_date, scheduled_time, service_location, customer_notes, service_requirements
        )
        booking = await bookings_api.create_booking(api, body)
    except (FormValidationError, ApiError) as exc:
        # Re-render from the submitted values; the service is not refetched
        return render(request, "bookings/book.html", {
            "service": None,
            "service_id": service_id,
            "service_title": service_title,
            "form": form,
            "min_date": date.today().isoformat(),
            "error": error_message(exc),
        }, status_code=error_status(exc))

    logger.info("booking_created", booking_id=booking.id, service_id=service_id, user_id=session.user.id)
    return redirect(f"/booking/confirmation/{booking.id}")


@router.get("/booking/confirmation/{booking_id}")
async def booking_confirmation(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(signed_in),
    api: ApiClient = Depends(get_api),
):
    try:
        booking = await bookings_api.get_booking_by_id(api, booking_id)
    except ApiError as exc:
        return render(request, "error.html", {
            "title": "Booking not found", "message": exc.message, "back_url": "/dashboard/customer",
        }, status_code=error_status(exc))
    return render(request, "bookings/confirmation.html", {"booking": booking})


def _detail(request: Request, booking: Booking, action_error: str | None = None,
            action_success: str | None = None, status_code: int = 200):
    return render(request, "bookings/detail.html", {
        "booking": booking,
        "action_error": action_error,
        "action_success": action_success,
    }, status_code=status_code)


@router.get("/dashboard/customer/booking/{booking_id}")
async def booking_detail(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    try:
        booking = await bookings_api.get_booking_by_id(api, booking_id)
    except ApiError as exc:
        return render(request, "error.html", {
            "title": "Booking unavailable", "message": exc.message, "back_url": "/dashboard/customer",
        }, status_code=error_status(exc))
    return _detail(request, booking)


ACTIONS = {
    "cancel": (bookings_api.cancel_booking, "Booking cancelled successfully.", "Failed to cancel booking."),
    "refund": (bookings_api.request_refund, "Refund requested successfully.", "Failed to request refund."),
    "reschedule": (
        bookings_api.request_reschedule, "Reschedule requested successfully.", "Failed to request reschedule."
    ),
}


@router.post("/dashboard/customer/booking/{booking_id}/{action}")
@limiter.limit(FORM_RATE_LIMIT)
async def booking_action(
    request: Request,
    booking_id: str,
    action: str,
    requested_date: str = Form("", alias="requestedDate"),
    requested_time: str = Form("", alias="requestedTime"),
    reason: str = Form(""),
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    """Cancel, refund or reschedule; the page is rendered from the booking the API returns."""
    if action not in ACTIONS:
        return render(request, "not_found.html", status_code=404)
    call, success_message, failure_message = ACTIONS[action]

    try:
        current = await bookings_api.get_booking_by_id(api, booking_id)
    except ApiError as exc:
        return render(request, "error.html", {
            "title": "Booking unavailable", "message": exc.message, "back_url": "/dashboard/customer",
        }, status_code=error_status(exc))

    allowed = {"cancel": current.can_cancel, "refund": current.can_refund,
               "reschedule": current.can_reschedule}[action]
    if not allowed:
        return _detail(request, current, action_error=failure_message, status_code=409)

    try:
        if action == "reschedule":
            updated = await call(api, booking_id, RescheduleRequest(
                requested_date=requested_date or None, requested_time=requested_time or None, reason=reason or None,
            ))
        else:
            updated = await call(api, booking_id)
    except ApiError as exc:
        logger.info("booking_action_failed", booking_id=booking_id, action=action, error=exc.message)
        return _detail(request, current, action_error=failure_message, status_code=error_status(exc))

    logger.info("booking_action", booking_id=booking_id, action=action, user_id=session.user.id)
    if updated is None:
        # No booking in the response: reload it
        flash(request, success_message)
        return redirect(f"/dashboard/customer/booking/{booking_id}")
    return _detail(request, updated, action_success=success_message)
