"""Client-side form checks. Each raises ``FormValidationError`` before any call is made."""

from datetime import date

from mechanicbd.api.errors import FormValidationError
from mechanicbd.schemas.booking import BookingCreateRequest, ServiceLocation
from mechanicbd.schemas.chat import GuestSessionCreate
from mechanicbd.schemas.payment import PaymentMethod
from mechanicbd.schemas.review import ReviewCreateRequest
from mechanicbd.schemas.service import CATEGORY_OPTIONS, ServiceCreateRequest
from mechanicbd.schemas.user import (
    Address,
    LoginRequest,
    PasswordUpdateRequest,
    ProfileUpdateRequest,
    RegisterRequest,
)
from mechanicbd.utils.validators import is_bd_phone, is_email

REQUIRED_FIELDS_MESSAGE = "Please fill in all required fields."
MAX_SERVICE_PRICE = 1_000_000
MIN_PASSWORD_LENGTH = 6
MAX_REVIEW_COMMENT = 500


def _clean(value) -> str:
    return (value or "").strip()


def booking_form(
    service_id: str, scheduled_date: str, scheduled_time: str, address: str,
    customer_notes: str = "", service_requirements: str = "", today: date | None = None,
) -> BookingCreateRequest:
    scheduled_date, scheduled_time, address = _clean(scheduled_date), _clean(scheduled_time), _clean(address)
    if not scheduled_date or not scheduled_time or not address:
        raise FormValidationError(REQUIRED_FIELDS_MESSAGE)
    try:
        day = date.fromisoformat(scheduled_date)
    except ValueError:
        raise FormValidationError("Please choose a valid date.", field="scheduledDate")
    if day < (today or date.today()):
        raise FormValidationError("The service date cannot be in the past.", field="scheduledDate")
    return BookingCreateRequest(
        service_id=service_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        service_location=ServiceLocation(address=address),
        customer_notes=_clean(customer_notes),
        service_requirements=_clean(service_requirements),
    )


def login_form(identifier: str, password: str) -> LoginRequest:
    identifier = _clean(identifier)
    if not identifier or not password:
        raise FormValidationError(REQUIRED_FIELDS_MESSAGE)
    if "@" in identifier:
        return LoginRequest(email=identifier, password=password)
    return LoginRequest(phone_number=identifier, password=password)


def register_form(full_name: str, phone_number: str, email: str, password: str) -> RegisterRequest:
    full_name, phone_number, email = _clean(full_name), _clean(phone_number), _clean(email)
    if not full_name or not phone_number or not password:
        raise FormValidationError(REQUIRED_FIELDS_MESSAGE)
    if not is_bd_phone(phone_number):
        raise FormValidationError("Please enter a valid Bangladesh phone number", field="phoneNumber")
    if email and not is_email(email):
        raise FormValidationError("Please enter a valid email address.", field="email")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise FormValidationError("Password must be at least 6 characters long.", field="password")
    return RegisterRequest(full_name=full_name, phone_number=phone_number, email=email or None, password=password)


def service_form(title: str, description: str, category: str, base_price: str, service_area: str) -> ServiceCreateRequest:
    title, description, category, service_area = _clean(title), _clean(description), _clean(category), _clean(service_area)
    base_price = _clean(base_price)
    if not title or not description or not category or not base_price or not service_area:
        raise FormValidationError("All fields are required.")
    if category not in CATEGORY_OPTIONS:
        raise FormValidationError("Please choose a category from the list.", field="category")
    try:
        price = float(base_price)
    except ValueError:
        raise FormValidationError("Base price must be a number.", field="basePrice")
    if not 0 < price <= MAX_SERVICE_PRICE:
        raise FormValidationError("Base price must be greater than 0 and at most 1,000,000.", field="basePrice")
    return ServiceCreateRequest(
        title=title, description=description, category=category, base_price=price, service_area=service_area
    )


def payment_method_form(method: str, sender_number: str) -> tuple[PaymentMethod, str]:
    sender_number = _clean(sender_number)
    if not method or not sender_number:
        raise FormValidationError("Please select a payment method and enter your phone number")
    try:
        payment_method = PaymentMethod(method)
    except ValueError:
        raise FormValidationError("Please select a payment method and enter your phone number", field="paymentMethod")
    if not is_bd_phone(sender_number):
        raise FormValidationError("Please enter a valid Bangladesh phone number", field="senderNumber")
    return payment_method, sender_number


def verification_form(transaction_id: str) -> str:
    transaction_id = _clean(transaction_id)
    if not transaction_id:
        raise FormValidationError("Please enter the transaction ID", field="transactionId")
    return transaction_id


def _optional_number(value: str, cast, field: str, label: str):
    value = _clean(value)
    if not value:
        return None
    try:
        return cast(value)
    except ValueError:
        raise FormValidationError(f"{label} must be a number.", field=field)


def profile_form(form: dict, is_mechanic: bool) -> ProfileUpdateRequest:
    full_name = _clean(form.get("fullName"))
    email = _clean(form.get("email"))
    if not full_name:
        raise FormValidationError("Full name is required.", field="fullName")
    if email and not is_email(email):
        raise FormValidationError("Please enter a valid email address.", field="email")
    experience = hourly_rate = None
    if is_mechanic:
        experience = _optional_number(form.get("experience"), int, "experience", "Experience")
        if experience is not None and not 0 <= experience <= 60:
            raise FormValidationError("Experience must be between 0 and 60 years.", field="experience")
        hourly_rate = _optional_number(form.get("hourlyRate"), float, "hourlyRate", "Hourly rate")
        if hourly_rate is not None and hourly_rate < 0:
            raise FormValidationError("Hourly rate cannot be negative.", field="hourlyRate")
    return ProfileUpdateRequest(
        full_name=full_name,
        email=email or None,
        bio=_clean(form.get("bio")),
        address=Address(
            street=_clean(form.get("street")),
            city=_clean(form.get("city")),
            district=_clean(form.get("district")),
            postal_code=_clean(form.get("postalCode")),
        ),
        experience=experience,
        hourly_rate=hourly_rate,
    )


def password_form(current_password: str, new_password: str, confirm_password: str) -> PasswordUpdateRequest:
    if not current_password or not new_password or not confirm_password:
        raise FormValidationError(REQUIRED_FIELDS_MESSAGE)
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise FormValidationError("New password must be at least 6 characters long.", field="newPassword")
    if new_password != confirm_password:
        raise FormValidationError("New passwords do not match.", field="confirmPassword")
    return PasswordUpdateRequest(current_password=current_password, new_password=new_password)


def contact_form(name: str, email: str, message: str) -> dict:
    name, email, message = _clean(name), _clean(email), _clean(message)
    if not name or not email or not message:
        raise FormValidationError(REQUIRED_FIELDS_MESSAGE)
    if not is_email(email):
        raise FormValidationError("Please enter a valid email address.", field="email")
    return {"name": name, "email": email, "message": message}


def review_form(booking_id: str, service_id: str, rating: str, comment: str) -> ReviewCreateRequest:
    comment = _clean(comment)
    if not booking_id or not rating:
        raise FormValidationError("Please choose a booking and a rating.")
    try:
        value = int(rating)
    except ValueError:
        raise FormValidationError("Rating must be between 1 and 5.", field="rating")
    if not 1 <= value <= 5:
        raise FormValidationError("Rating must be between 1 and 5.", field="rating")
    if len(comment) > MAX_REVIEW_COMMENT:
        raise FormValidationError("Comment must be 500 characters or fewer.", field="comment")
    return ReviewCreateRequest(booking_id=booking_id, service_id=service_id, rating=value, comment=comment)


def guest_form(name: str, phone_number: str, email: str) -> GuestSessionCreate:
    name, phone_number, email = _clean(name), _clean(phone_number), _clean(email)
    if not name:
        raise FormValidationError("Please enter your name to start chatting.", field="name")
    if phone_number and not is_bd_phone(phone_number):
        raise FormValidationError("Please enter a valid Bangladesh phone number", field="phoneNumber")
    if email and not is_email(email):
        raise FormValidationError("Please enter a valid email address.", field="email")
    return GuestSessionCreate(name=name, phone_number=phone_number or None, email=email or None)
