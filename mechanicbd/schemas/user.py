import enum

from pydantic import Field

from mechanicbd.schemas.base import ApiModel


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    MECHANIC = "mechanic"
    ADMIN = "admin"


class User(ApiModel):
    """The session's view of the signed-in user.

    Only these fields are persisted in the session cookie; anything else the
    API returns is dropped.
    """

    id: str = Field(alias="_id")
    full_name: str
    email: str | None = None
    phone_number: str
    role: UserRole
    is_active: bool
    created_at: str | None = None
    updated_at: str | None = None


class Address(ApiModel):
    street: str = ""
    city: str = ""
    district: str = ""
    postal_code: str = ""


class UserProfile(User):
    is_verified: bool = False
    profile_photo: str | None = None
    address: Address | None = None
    bio: str | None = None
    skills: list[str] = []
    experience: int | None = None
    hourly_rate: float | None = None


class UserStats(ApiModel):
    total_bookings: int = 0
    completed_bookings: int = 0
    pending_bookings: int = 0
    in_progress_bookings: int = 0
    total_spent: float = 0
    total_earnings: float = 0
    avg_rating: float = 0
    total_services: int = 0
    active_services: int = 0


class AdminDashboardStats(ApiModel):
    total_users: int = 0
    customers: int = 0
    mechanics: int = 0
    admins: int = 0
    active_users: int = 0
    verified_users: int = 0
    total_bookings: int = 0
    pending_bookings: int = 0
    completed_bookings: int = 0
    total_services: int = 0
    total_revenue: float = 0


class AuthResult(ApiModel):
    token: str
    user: dict


class LoginRequest(ApiModel):
    email: str | None = None
    phone_number: str | None = None
    password: str


class RegisterRequest(ApiModel):
    full_name: str
    phone_number: str
    email: str | None = None
    password: str
    role: UserRole = UserRole.CUSTOMER


class ProfileUpdateRequest(ApiModel):
    full_name: str
    email: str | None = None
    bio: str = ""
    address: Address = Address()
    experience: int | None = None
    hourly_rate: float | None = None


class PasswordUpdateRequest(ApiModel):
    current_password: str
    new_password: str
