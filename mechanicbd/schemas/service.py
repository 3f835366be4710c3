from pydantic import Field

from mechanicbd.schemas.base import ApiModel

CATEGORY_OPTIONS = [
    "HVAC", "Electrical", "Plumbing", "Appliances", "Carpentry", "Painting", "Cleaning", "Other",
]


class MechanicSummary(ApiModel):
    id: str = Field(alias="_id")
    full_name: str = ""
    phone_number: str | None = None
    profile_photo: str | None = None
    average_rating: float | None = None
    total_reviews: int | None = None


class Service(ApiModel):
    id: str = Field(alias="_id")
    title: str
    description: str = ""
    category: str = ""
    base_price: float = 0
    service_area: str = ""
    mechanic: MechanicSummary | None = None
    is_active: bool = True
    created_at: str | None = None


class Pagination(ApiModel):
    page: int = 1
    pages: int = 1
    total: int = 0
    limit: int | None = None


class ServicePage(ApiModel):
    services: list[Service] = []
    pagination: Pagination = Pagination()
    is_fallback: bool = False


class Suggestion(ApiModel):
    text: str
    type: str = "service"
    relevance: float = 0


class ServiceCreateRequest(ApiModel):
    title: str
    description: str
    category: str
    base_price: float
    service_area: str
