from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, parse_list
from mechanicbd.schemas.review import Review, ReviewCreateRequest


async def reviews_for_service(api: ApiClient, service_id: str) -> list[Review]:
    payload = await api.get(f"/reviews/service/{service_id}", authenticated=False)
    return parse_list(payload, Review, "reviews")


async def create_review(api: ApiClient, body: ReviewCreateRequest) -> Review:
    payload = await api.post("/reviews", body.to_payload())
    return parse_data(payload, Review, "review")
