import enum

from pydantic import Field, field_validator

from mechanicbd.schemas.base import ApiModel


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Party(ApiModel):
    id: str = Field(alias="_id")
    full_name: str = ""
    phone_number: str | None = None
    email: str | None = None


class BookingService(ApiModel):
    id: str = Field(alias="_id")
    title: str = ""
    category: str = ""
    base_price: float = 0


class RefundInfo(ApiModel):
    requested: bool = False
    requested_at: str | None = None
    reason: str | None = None
    status: str | None = None


class RescheduleInfo(ApiModel):
    requested: bool = False
    requested_at: str | None = None
    requested_date: str | None = None
    requested_time: str | None = None
    status: str | None = None


class Booking(ApiModel):
    id: str = Field(alias="_id")
    booking_number: str = ""
    service: BookingService | None = None
    customer: Party | None = None
    mechanic: Party | None = None
    scheduled_date: str = ""
    scheduled_time: str = ""
    status: BookingStatus
    payment_status: str = PaymentStatus.PENDING.value
    total_amount: float = 0
    service_location: str = ""
    customer_notes: str | None = None
    service_requirements: str | None = None
    refund: RefundInfo | None = None
    reschedule: RescheduleInfo | None = None
    created_at: str | None = None

    @field_validator("service_location", mode="before")
    @classmethod
    def flatten_location(cls, v):
        # The API stores the location as {"address": ...}
        if isinstance(v, dict):
            return v.get("address") or ""
        return v or ""

    @property
    def can_cancel(self) -> bool:
        return self.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)

    @property
    def can_refund(self) -> bool:
        return self.status == BookingStatus.COMPLETED and not (self.refund and self.refund.requested)

    @property
    def can_reschedule(self) -> bool:
        return self.can_cancel and not (self.reschedule and self.reschedule.requested)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def scheduled_day(self) -> str:
        return self.scheduled_date[:10]


class ServiceLocation(ApiModel):
    address: str


class BookingCreateRequest(ApiModel):
    service_id: str
    scheduled_date: str
    scheduled_time: str
    service_location: ServiceLocation
    customer_notes: str = ""
    service_requirements: str = ""


class RescheduleRequest(ApiModel):
    requested_date: str | None = None
    requested_time: str | None = None
    reason: str | None = None


class RefundRequest(ApiModel):
    reason: str | None = None


class AssignMechanicRequest(ApiModel):
    mechanic_id: str


class StatusUpdateRequest(ApiModel):
    status: BookingStatus
