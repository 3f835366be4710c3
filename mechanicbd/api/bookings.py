"""Booking endpoints. Mutations return the updated booking from the response."""

from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, parse_list
from mechanicbd.schemas.booking import (
    AssignMechanicRequest,
    Booking,
    BookingCreateRequest,
    BookingStatus,
    RefundRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)


def _booking_or_none(payload: dict) -> Booking | None:
    data = payload.get("data")
    if isinstance(data, dict) and "booking" in data:
        return parse_data(payload, Booking, "booking")
    return None


async def list_bookings(api: ApiClient, params: dict | None = None) -> list[Booking]:
    payload = await api.get("/bookings", params=params)
    return parse_list(payload, Booking, "bookings")


async def get_booking_by_id(api: ApiClient, booking_id: str) -> Booking:
    payload = await api.get(f"/bookings/{booking_id}")
    return parse_data(payload, Booking, "booking")


async def create_booking(api: ApiClient, body: BookingCreateRequest) -> Booking:
    payload = await api.post("/bookings", body.to_payload())
    return parse_data(payload, Booking, "booking")


async def cancel_booking(api: ApiClient, booking_id: str) -> Booking | None:
    payload = await api.patch(f"/bookings/{booking_id}/cancel", {})
    return _booking_or_none(payload)


async def request_refund(api: ApiClient, booking_id: str, body: RefundRequest | None = None) -> Booking | None:
    payload = await api.post(f"/bookings/{booking_id}/refund", (body or RefundRequest()).to_payload())
    return _booking_or_none(payload)


async def request_reschedule(
    api: ApiClient, booking_id: str, body: RescheduleRequest | None = None
) -> Booking | None:
    payload = await api.post(f"/bookings/{booking_id}/reschedule", (body or RescheduleRequest()).to_payload())
    return _booking_or_none(payload)


async def assign_mechanic(api: ApiClient, booking_id: str, mechanic_id: str) -> Booking | None:
    body = AssignMechanicRequest(mechanic_id=mechanic_id)
    payload = await api.patch(f"/bookings/{booking_id}/assign", body.to_payload())
    return _booking_or_none(payload)


async def update_booking_status(api: ApiClient, booking_id: str, status: BookingStatus) -> Booking | None:
    payload = await api.patch(f"/bookings/{booking_id}/status", StatusUpdateRequest(status=status).to_payload())
    return _booking_or_none(payload)
