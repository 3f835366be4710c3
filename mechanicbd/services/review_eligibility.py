from mechanicbd.schemas.booking import Booking, BookingStatus
from mechanicbd.schemas.review import Review


def eligible_bookings(bookings: list[Booking], reviews: list[Review], service_id: str) -> list[Booking]:
    """Completed bookings of this service that no review in ``reviews`` points at."""
    reviewed = {review.booking for review in reviews if review.booking}
    return [
        booking
        for booking in bookings
        if booking.status == BookingStatus.COMPLETED
        and booking.service is not None
        and booking.service.id == service_id
        and booking.id not in reviewed
    ]


def can_review(bookings: list[Booking], reviews: list[Review], service_id: str) -> bool:
    return bool(eligible_bookings(bookings, reviews, service_id))
