import asyncio

import structlog
from fastapi import APIRouter, Depends, Form, Request

from mechanicbd.api import bookings as bookings_api
from mechanicbd.api import services as services_api
from mechanicbd.api import users as users_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError
from mechanicbd.auth.gate import require_roles
from mechanicbd.auth.session import SessionStore
from mechanicbd.dependencies import get_api
from mechanicbd.schemas.booking import BookingStatus
from mechanicbd.schemas.user import UserRole
from mechanicbd.services.flash import flash
from mechanicbd.templating import error_status, redirect, render
from mechanicbd.utils.rate_limit import FORM_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter(prefix="/dashboard")

# Status moves a mechanic may request from the dashboard
MECHANIC_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.IN_PROGRESS},
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}


def _dashboard_error(request: Request, exc: ApiError, title: str):
    return render(request, "error.html", {"title": title, "message": exc.message, "back_url": "/"},
                  status_code=error_status(exc))


@router.get("/customer")
async def customer_dashboard(
    request: Request,
    session: SessionStore = Depends(require_roles(UserRole.CUSTOMER)),
    api: ApiClient = Depends(get_api),
):
    try:
        bookings = await bookings_api.list_bookings(api)
    except ApiError as exc:
        return _dashboard_error(request, exc, "Failed to fetch bookings")
    return render(request, "dashboards/customer.html", {"bookings": bookings})


@router.post("/customer/bookings/{booking_id}/cancel")
@limiter.limit(FORM_RATE_LIMIT)
async def customer_cancel(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(require_roles(UserRole.CUSTOMER)),
    api: ApiClient = Depends(get_api),
):
    try:
        await bookings_api.cancel_booking(api, booking_id)
    except ApiError as exc:
        flash(request, exc.message or "Failed to cancel booking.", "error")
    else:
        logger.info("booking_cancelled", booking_id=booking_id, user_id=session.user.id)
        flash(request, "Booking cancelled successfully.")
    return redirect("/dashboard/customer")


@router.get("/mechanic")
async def mechanic_dashboard(
    request: Request,
    session: SessionStore = Depends(require_roles(UserRole.MECHANIC)),
    api: ApiClient = Depends(get_api),
):
    try:
        bookings, stats, services = await asyncio.gather(
            bookings_api.list_bookings(api),
            users_api.mechanic_stats(api),
            services_api.my_services(api),
        )
    except ApiError as exc:
        return _dashboard_error(request, exc, "Failed to fetch dashboard data")
    return render(request, "dashboards/mechanic.html", {
        "bookings": bookings,
        "stats": stats,
        "services": services,
        "transitions": MECHANIC_TRANSITIONS,
    })


@router.post("/mechanic/bookings/{booking_id}/status")
@limiter.limit(FORM_RATE_LIMIT)
async def mechanic_update_status(
    request: Request,
    booking_id: str,
    current: str = Form(""),
    status: str = Form(""),
    session: SessionStore = Depends(require_roles(UserRole.MECHANIC)),
    api: ApiClient = Depends(get_api),
):
    try:
        current_status, new_status = BookingStatus(current), BookingStatus(status)
    except ValueError:
        flash(request, "Unknown booking status.", "error")
        return redirect("/dashboard/mechanic")
    if new_status not in MECHANIC_TRANSITIONS[current_status]:
        flash(request, f"Cannot move a booking from '{current_status.value}' to '{new_status.value}'.", "error")
        return redirect("/dashboard/mechanic")

    try:
        await bookings_api.update_booking_status(api, booking_id, new_status)
    except ApiError as exc:
        flash(request, exc.message or "Failed to update booking status.", "error")
    else:
        logger.info("booking_status_updated", booking_id=booking_id, status=new_status.value,
                    user_id=session.user.id)
        flash(request, "Booking status updated.")
    return redirect("/dashboard/mechanic")


@router.get("/admin")
async def admin_dashboard(
    request: Request,
    session: SessionStore = Depends(require_roles(UserRole.ADMIN)),
    api: ApiClient = Depends(get_api),
):
    try:
        stats, bookings = await asyncio.gather(
            users_api.admin_dashboard_stats(api),
            bookings_api.list_bookings(api),
        )
    except ApiError as exc:
        return _dashboard_error(request, exc, "Failed to fetch admin data")
    return render(request, "dashboards/admin.html", {"stats": stats, "bookings": bookings})


@router.post("/admin/bookings/{booking_id}/assign")
@limiter.limit(FORM_RATE_LIMIT)
async def admin_assign(
    request: Request,
    booking_id: str,
    mechanic_id: str = Form("", alias="mechanicId"),
    session: SessionStore = Depends(require_roles(UserRole.ADMIN)),
    api: ApiClient = Depends(get_api),
):
    mechanic_id = mechanic_id.strip()
    if not mechanic_id:
        flash(request, "Please enter a mechanic ID.", "error")
        return redirect("/dashboard/admin")
    try:
        await bookings_api.assign_mechanic(api, booking_id, mechanic_id)
    except ApiError as exc:
        flash(request, exc.message or "Failed to assign mechanic.", "error")
    else:
        logger.info("booking_mechanic_assigned", booking_id=booking_id, mechanic_id=mechanic_id,
                    admin_id=session.user.id)
        flash(request, "Mechanic assigned.")
    return redirect("/dashboard/admin")
