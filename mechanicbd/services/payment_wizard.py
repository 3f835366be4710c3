"""Four-stage MFS payment wizard, persisted per booking in the session."""

import enum
from collections.abc import MutableMapping
from datetime import datetime, timezone

import structlog

from mechanicbd.metrics import PAYMENT_WIZARD_TRANSITIONS
from mechanicbd.schemas.payment import METHOD_NAMES, Payment, PaymentMethod, PaymentTiming

logger = structlog.get_logger()

SESSION_KEY_PREFIX = "paymentWizard:"


class WizardStep(str, enum.Enum):
    METHOD = "method"
    INSTRUCTIONS = "instructions"
    VERIFICATION = "verification"
    SUCCESS = "success"


# Each stage only advances when the API call behind it succeeds
ALLOWED_TRANSITIONS: dict[WizardStep, set[WizardStep]] = {
    WizardStep.METHOD: {WizardStep.INSTRUCTIONS},
    WizardStep.INSTRUCTIONS: {WizardStep.VERIFICATION, WizardStep.METHOD},
    WizardStep.VERIFICATION: {WizardStep.SUCCESS, WizardStep.INSTRUCTIONS, WizardStep.METHOD},
    WizardStep.SUCCESS: set(),  # Terminal state
}


class WizardTransitionError(Exception):
    def __init__(self, current: WizardStep, new: WizardStep):
        self.current = current
        self.new = new
        super().__init__(f"Cannot move payment wizard from '{current.value}' to '{new.value}'")


def _instruction_steps(method: PaymentMethod) -> list[str]:
    name = METHOD_NAMES[method]
    return [
        f"Open {name} app on your phone",
        'Go to "Send Money"',
        "Enter receiver number:",
        "Enter amount:",
        "Add transaction reference in message:",
        "Complete the transaction",
    ]


METHOD_INSTRUCTIONS = {method: _instruction_steps(method) for method in PaymentMethod}


def countdown_label(expires_at: datetime | None, now: datetime | None = None) -> str:
    """Remaining time as ``MM:SS``, or ``Expired`` once the deadline has passed."""
    if expires_at is None:
        return ""
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    remaining = int((expires_at - now).total_seconds())
    if remaining <= 0:
        return "Expired"
    minutes, seconds = divmod(remaining, 60)
    return f"{minutes:02d}:{seconds:02d}"


class PaymentWizard:
    def __init__(
        self,
        booking_id: str,
        step: WizardStep = WizardStep.METHOD,
        payment: Payment | None = None,
        timing: PaymentTiming = "before_service",
        sender_number: str = "",
    ):
        self.booking_id = booking_id
        self.step = step
        self.payment = payment
        self.timing = timing
        self.sender_number = sender_number

    def move_to(self, new: WizardStep) -> None:
        if new not in ALLOWED_TRANSITIONS.get(self.step, set()):
            raise WizardTransitionError(self.step, new)
        PAYMENT_WIZARD_TRANSITIONS.labels(from_step=self.step.value, to_step=new.value).inc()
        logger.info("payment_wizard_transition", booking_id=self.booking_id, from_step=self.step.value,
                    to_step=new.value)
        self.step = new

    def payment_created(self, payment: Payment, timing: PaymentTiming, sender_number: str) -> None:
        self.move_to(WizardStep.INSTRUCTIONS)
        self.payment = payment
        self.timing = timing
        self.sender_number = sender_number

    def reset(self) -> None:
        """Go back to method selection, dropping the issued payment."""
        if self.step != WizardStep.METHOD:
            self.move_to(WizardStep.METHOD)
        self.payment = None

    @property
    def instructions(self) -> list[str]:
        if self.payment is None:
            return []
        return METHOD_INSTRUCTIONS[self.payment.payment_method]

    @property
    def countdown(self) -> str:
        return countdown_label(self.payment.expires_at if self.payment else None)

    @property
    def is_expired(self) -> bool:
        return self.countdown == "Expired"

    # Session persistence

    @classmethod
    def load(cls, storage: MutableMapping, booking_id: str) -> "PaymentWizard":
        raw = storage.get(SESSION_KEY_PREFIX + booking_id)
        if not isinstance(raw, dict):
            return cls(booking_id)
        try:
            payment = Payment.model_validate(raw["payment"]) if raw.get("payment") else None
            return cls(
                booking_id,
                step=WizardStep(raw.get("step", WizardStep.METHOD.value)),
                payment=payment,
                timing=raw.get("timing", "before_service"),
                sender_number=raw.get("senderNumber", ""),
            )
        except ValueError:
            logger.warning("payment_wizard_state_discarded", booking_id=booking_id)
            storage.pop(SESSION_KEY_PREFIX + booking_id, None)
            return cls(booking_id)

    def save(self, storage: MutableMapping) -> None:
        storage[SESSION_KEY_PREFIX + self.booking_id] = {
            "step": self.step.value,
            "payment": self.payment.model_dump(by_alias=True, mode="json") if self.payment else None,
            "timing": self.timing,
            "senderNumber": self.sender_number,
        }

    def clear(self, storage: MutableMapping) -> None:
        storage.pop(SESSION_KEY_PREFIX + self.booking_id, None)
