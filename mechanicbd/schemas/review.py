from pydantic import Field, field_validator

from mechanicbd.schemas.base import ApiModel, ref_id
from mechanicbd.schemas.booking import Party


class Review(ApiModel):
    id: str = Field(alias="_id")
    booking: str | None = None
    customer: Party | None = None
    rating: int
    comment: str = ""
    created_at: str | None = None

    @field_validator("booking", mode="before")
    @classmethod
    def booking_ref(cls, v):
        return ref_id(v)


class ReviewCreateRequest(ApiModel):
    booking_id: str
    service_id: str
    rating: int = Field(ge=1, le=5)
    comment: str = Field("", max_length=500)
