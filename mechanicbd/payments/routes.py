"""MFS payment wizard screens.

Each stage is its own POST; the wizard only moves forward when the API call
behind the stage succeeds, and stays put (with an inline message) otherwise.
"""

import structlog
from fastapi import APIRouter, Depends, Form, Request

from mechanicbd.api import bookings as bookings_api
from mechanicbd.api import payments as payments_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError, FormValidationError
from mechanicbd.auth.gate import require_roles
from mechanicbd.auth.session import SessionStore
from mechanicbd.dependencies import get_api
from mechanicbd.schemas.booking import Booking, BookingStatus
from mechanicbd.schemas.payment import METHOD_NAMES, PaymentCreateRequest, PaymentVerifyRequest
from mechanicbd.schemas.user import UserRole
from mechanicbd.services import forms
from mechanicbd.services.flash import flash
from mechanicbd.services.payment_wizard import PaymentWizard, WizardStep, WizardTransitionError
from mechanicbd.templating import error_message, error_status, redirect, render
from mechanicbd.utils.rate_limit import FORM_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter(prefix="/payment")

customer_only = require_roles(UserRole.CUSTOMER)


def _precheck(booking: Booking, session: SessionStore, wizard: PaymentWizard) -> tuple[str, int] | None:
    """Reasons this customer cannot pay for the booking, with the status to answer with."""
    if booking.customer is not None and booking.customer.id != session.user.id:
        return "You can only pay for your own bookings", 403
    if booking.status == BookingStatus.CANCELLED:
        return "Cannot pay for cancelled bookings", 409
    if booking.is_paid and wizard.step != WizardStep.SUCCESS:
        return "This booking has already been paid for", 409
    return None


def _page(request: Request, booking: Booking, wizard: PaymentWizard, error: str | None = None,
          form: dict | None = None, status_code: int = 200):
    return render(request, "payments/wizard.html", {
        "booking": booking,
        "wizard": wizard,
        "methods": METHOD_NAMES,
        "error": error,
        "form": form or {},
    }, status_code=status_code)


async def _load(request: Request, booking_id: str, api: ApiClient, session: SessionStore):
    """Fetch the booking and the stored wizard; returns a response instead when a pre-check fails."""
    try:
        booking = await bookings_api.get_booking_by_id(api, booking_id)
    except ApiError as exc:
        return None, None, render(request, "error.html", {
            "title": "Payment unavailable",
            "message": exc.message or "Failed to fetch booking details",
            "back_url": "/dashboard/customer",
        }, status_code=error_status(exc))
    wizard = PaymentWizard.load(request.session, booking_id)
    problem = _precheck(booking, session, wizard)
    if problem is not None:
        message, status_code = problem
        return booking, wizard, render(request, "error.html", {
            "title": "Payment unavailable", "message": message, "back_url": "/dashboard/customer",
        }, status_code=status_code)
    return booking, wizard, None


@router.get("/{booking_id}")
async def payment_page(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    booking, wizard, failure = await _load(request, booking_id, api, session)
    if failure is not None:
        return failure
    return _page(request, booking, wizard)


@router.post("/{booking_id}/method")
@limiter.limit(FORM_RATE_LIMIT)
async def choose_method(
    request: Request,
    booking_id: str,
    payment_method: str = Form("", alias="paymentMethod"),
    sender_number: str = Form("", alias="senderNumber"),
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    booking, wizard, failure = await _load(request, booking_id, api, session)
    if failure is not None:
        return failure
    form = {"paymentMethod": payment_method, "senderNumber": sender_number}
    if wizard.step != WizardStep.METHOD:
        return _page(request, booking, wizard, error="Choose a new method first.", status_code=409)

    try:
        method, number = forms.payment_method_form(payment_method, sender_number)
        created = await payments_api.create_payment(
            api, PaymentCreateRequest(booking_id=booking_id, payment_method=method, sender_number=number)
        )
    except (FormValidationError, ApiError) as exc:
        return _page(request, booking, wizard, error=error_message(exc), form=form, status_code=error_status(exc))

    wizard.payment_created(created.payment, created.payment_instructions.timing, number)
    wizard.save(request.session)
    logger.info("payment_created", booking_id=booking_id, payment_id=created.payment.payment_id,
                method=method.value)
    return redirect(f"/payment/{booking_id}")


async def _move(request: Request, booking_id: str, api: ApiClient, session: SessionStore, step: WizardStep):
    booking, wizard, failure = await _load(request, booking_id, api, session)
    if failure is not None:
        return failure
    try:
        if step == WizardStep.METHOD:
            wizard.reset()
        else:
            wizard.move_to(step)
    except WizardTransitionError as exc:
        flash(request, str(exc), "error")
        return redirect(f"/payment/{booking_id}")
    wizard.save(request.session)
    return redirect(f"/payment/{booking_id}")


@router.post("/{booking_id}/continue")
async def continue_to_verification(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    return await _move(request, booking_id, api, session, WizardStep.VERIFICATION)


@router.post("/{booking_id}/back")
async def back_to_instructions(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    return await _move(request, booking_id, api, session, WizardStep.INSTRUCTIONS)


@router.post("/{booking_id}/change-method")
async def change_method(
    request: Request,
    booking_id: str,
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    return await _move(request, booking_id, api, session, WizardStep.METHOD)


@router.post("/{booking_id}/verify")
@limiter.limit(FORM_RATE_LIMIT)
async def verify(
    request: Request,
    booking_id: str,
    transaction_id: str = Form("", alias="transactionId"),
    transaction_reference: str = Form("", alias="transactionReference"),
    session: SessionStore = Depends(customer_only),
    api: ApiClient = Depends(get_api),
):
    booking, wizard, failure = await _load(request, booking_id, api, session)
    if failure is not None:
        return failure
    form = {"transactionId": transaction_id, "transactionReference": transaction_reference}
    if wizard.step != WizardStep.VERIFICATION or wizard.payment is None:
        return _page(request, booking, wizard, error="Follow the payment instructions first.", status_code=409)

    try:
        txn_id = forms.verification_form(transaction_id)
        await payments_api.verify_payment(api, PaymentVerifyRequest(
            payment_id=wizard.payment.payment_id,
            transaction_id=txn_id,
            transaction_reference=transaction_reference.strip(),
        ))
    except (FormValidationError, ApiError) as exc:
        return _page(request, booking, wizard, error=error_message(exc), form=form, status_code=error_status(exc))

    wizard.move_to(WizardStep.SUCCESS)
    wizard.save(request.session)
    logger.info("payment_verified", booking_id=booking_id, payment_id=wizard.payment.payment_id)
    return redirect(f"/payment/{booking_id}")
