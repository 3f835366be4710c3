from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, parse_list
from mechanicbd.schemas.base import ApiModel
from mechanicbd.schemas.service import Pagination, Service, ServiceCreateRequest, ServicePage, Suggestion


class _Suggestions(ApiModel):
    suggestions: list[Suggestion | str] = []


async def list_services(api: ApiClient, params: dict | None = None) -> ServicePage:
    payload = await api.get("/services", params=params, authenticated=False)
    return parse_data(payload, ServicePage)


async def search_services(api: ApiClient, params: dict) -> ServicePage:
    payload = await api.get("/services/search", params=params, authenticated=False)
    return parse_data(payload, ServicePage)


async def get_suggestions(api: ApiClient, query: str, limit: int) -> list[Suggestion]:
    payload = await api.get(
        "/services/search/suggestions", params={"q": query, "limit": limit}, authenticated=False
    )
    items = parse_data(payload, _Suggestions).suggestions
    return [Suggestion(text=item) if isinstance(item, str) else item for item in items][:limit]


async def get_service(api: ApiClient, service_id: str) -> Service:
    payload = await api.get(f"/services/{service_id}", authenticated=False)
    return parse_data(payload, Service, "service")


async def create_service(api: ApiClient, body: ServiceCreateRequest) -> Service:
    payload = await api.post("/services", body.to_payload())
    return parse_data(payload, Service, "service")


async def my_services(api: ApiClient) -> list[Service]:
    payload = await api.get("/services/mechanic/my")
    return parse_list(payload, Service, "services")
