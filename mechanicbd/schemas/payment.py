import enum
from datetime import datetime
from typing import Literal

from pydantic import Field

from mechanicbd.schemas.base import ApiModel


class PaymentMethod(str, enum.Enum):
    BKASH = "bkash"
    NAGAD = "nagad"
    ROCKET = "rocket"
    UPAY = "upay"
    TAP = "tap"
    SURE_CASH = "sure_cash"


METHOD_NAMES = {
    PaymentMethod.BKASH: "bKash",
    PaymentMethod.NAGAD: "Nagad",
    PaymentMethod.ROCKET: "Rocket",
    PaymentMethod.UPAY: "Upay",
    PaymentMethod.TAP: "Tap",
    PaymentMethod.SURE_CASH: "Sure Cash",
}

PaymentTiming = Literal["before_service", "after_service"]


class MfsDetails(ApiModel):
    receiver_number: str = ""


class Payment(ApiModel):
    id: str = Field(alias="_id")
    payment_id: str
    amount: float
    payment_method: PaymentMethod
    status: str = "pending"
    expires_at: datetime | None = None
    payment_timing: PaymentTiming | None = None
    mfs_details: MfsDetails = MfsDetails()

    @property
    def method_name(self) -> str:
        return METHOD_NAMES[self.payment_method]


class PaymentInstructions(ApiModel):
    timing: PaymentTiming = "before_service"


class PaymentCreated(ApiModel):
    payment: Payment
    payment_instructions: PaymentInstructions = PaymentInstructions()


class PaymentCreateRequest(ApiModel):
    booking_id: str
    payment_method: PaymentMethod
    sender_number: str


class PaymentVerifyRequest(ApiModel):
    payment_id: str
    transaction_id: str
    transaction_reference: str = ""
