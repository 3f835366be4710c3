"""Service listing filters and the development-only sample listings."""

from urllib.parse import urlencode

from pydantic import BaseModel, field_validator

from mechanicbd.schemas.service import MechanicSummary, Pagination, Service, ServicePage

SORT_OPTIONS = [
    ("relevance", "Most Relevant"),
    ("rating", "Highest Rated"),
    ("price", "Price: Low to High"),
    ("price-desc", "Price: High to Low"),
    ("newest", "Newest First"),
    ("popular", "Most Popular"),
]
PRICE_TYPE_OPTIONS = [
    ("", "All Price Types"),
    ("fixed", "Fixed Price"),
    ("hourly", "Hourly Rate"),
    ("negotiable", "Negotiable"),
]
AVAILABILITY_OPTIONS = [
    ("", "Any Time"),
    ("today", "Available Today"),
    ("weekend", "Weekend"),
    ("weekday", "Weekday"),
]

_SORT_VALUES = {value for value, _ in SORT_OPTIONS}
_DEFAULTS = {"sort_by": "relevance", "sort_order": "desc"}
_PARAM_NAMES = {
    "q": "q",
    "category": "category",
    "location": "location",
    "min_price": "minPrice",
    "max_price": "maxPrice",
    "min_rating": "minRating",
    "max_rating": "maxRating",
    "sort_by": "sortBy",
    "sort_order": "sortOrder",
    "price_type": "priceType",
    "availability": "availability",
}


class SearchFilters(BaseModel):
    q: str = ""
    category: str = ""
    location: str = ""
    min_price: str = ""
    max_price: str = ""
    min_rating: str = ""
    max_rating: str = ""
    sort_by: str = "relevance"
    sort_order: str = "desc"
    price_type: str = ""
    availability: str = ""
    page: int = 1

    @field_validator("sort_by")
    @classmethod
    def known_sort(cls, v: str) -> str:
        return v if v in _SORT_VALUES else "relevance"

    @field_validator("sort_order")
    @classmethod
    def known_order(cls, v: str) -> str:
        return v if v in ("asc", "desc") else "desc"

    @field_validator("page", mode="before")
    @classmethod
    def positive_page(cls, v):
        try:
            return max(1, int(v))
        except (TypeError, ValueError):
            return 1

    @field_validator("category")
    @classmethod
    def all_means_none(cls, v: str) -> str:
        return "" if v == "all" else v.strip()

    @property
    def is_empty(self) -> bool:
        """True when no filter beyond the defaults is set (pagination aside)."""
        for field in _PARAM_NAMES:
            value = getattr(self, field)
            if value and value != _DEFAULTS.get(field):
                return False
        return True

    def to_query_params(self, page_size: int) -> dict:
        params = {
            _PARAM_NAMES[field]: getattr(self, field)
            for field in _PARAM_NAMES
            if getattr(self, field)
        }
        params["page"] = self.page
        params["limit"] = page_size
        return params

    def page_link(self, page: int) -> str:
        """Query string for the listing page with the same filters."""
        params = {name: getattr(self, field) for field, name in _PARAM_NAMES.items() if getattr(self, field)}
        params["page"] = page
        return "?" + urlencode(params)


SAMPLE_SERVICES = [
    Service(
        id="1",
        title="Professional AC Repair & Maintenance",
        description="Expert AC repair, maintenance, and installation services. We handle all major brands "
                    "with quick response times and guaranteed work.",
        base_price=1200,
        category="HVAC",
        service_area="Dhaka, Gulshan",
        mechanic=MechanicSummary(id="m1", full_name="Ahmed Khan", average_rating=4.8, total_reviews=127),
    ),
    Service(
        id="2",
        title="Electrical Wiring & Installation",
        description="Complete electrical wiring solutions for homes and offices. Licensed electrician with "
                    "10+ years experience.",
        base_price=800,
        category="Electrical",
        service_area="Dhaka, Banani",
        mechanic=MechanicSummary(id="m2", full_name="Rahim Ali", average_rating=4.6, total_reviews=95),
    ),
    Service(
        id="3",
        title="Plumbing & Pipe Repair",
        description="Emergency plumbing services, pipe repair, faucet installation, and drain cleaning. "
                    "Available 24/7.",
        base_price=600,
        category="Plumbing",
        service_area="Dhaka, Dhanmondi",
        mechanic=MechanicSummary(id="m3", full_name="Karim Hassan", average_rating=4.9, total_reviews=203),
    ),
]


def sample_page() -> ServicePage:
    return ServicePage(
        services=list(SAMPLE_SERVICES),
        pagination=Pagination(page=1, pages=1, total=len(SAMPLE_SERVICES)),
        is_fallback=True,
    )
