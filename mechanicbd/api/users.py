from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, raw_data
from mechanicbd.schemas.user import AdminDashboardStats, ProfileUpdateRequest, UserProfile, UserStats


async def get_me(api: ApiClient) -> UserProfile:
    payload = await api.get("/users/me")
    return parse_data(payload, UserProfile, "user")


async def update_me(api: ApiClient, body: ProfileUpdateRequest) -> tuple[UserProfile, dict]:
    """Return the parsed profile and the raw user dict for the session store."""
    payload = await api.put("/users/me", body.to_payload())
    profile = parse_data(payload, UserProfile, "user")
    return profile, raw_data(payload, "user")


async def my_stats(api: ApiClient) -> UserStats:
    payload = await api.get("/users/me/stats")
    return parse_data(payload, UserStats, "stats")


async def mechanic_stats(api: ApiClient) -> UserStats:
    payload = await api.get("/users/stats")
    return parse_data(payload, UserStats, "stats")


async def admin_dashboard_stats(api: ApiClient) -> AdminDashboardStats:
    payload = await api.get("/users/admin/dashboard-stats")
    return parse_data(payload, AdminDashboardStats, "stats")
