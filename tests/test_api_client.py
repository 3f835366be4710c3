"""ApiClient error mapping and header handling against a mock transport."""
from unittest.mock import MagicMock

import httpx
import pytest

from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, parse_list, raw_data
from mechanicbd.api.errors import (
    AUTH_ERROR_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    SERVER_ERROR_MESSAGE,
    AuthenticationError,
    BusinessError,
    NetworkError,
    ResponseShapeError,
    ServerError,
)
from mechanicbd.auth.session import SessionStore
from mechanicbd.schemas.booking import Booking
from tests.conftest import UPSTREAM_BASE, booking_payload, user_payload


def _client(handler, session=None, path="/dashboard/customer") -> ApiClient:
    http = httpx.AsyncClient(base_url=UPSTREAM_BASE, transport=httpx.MockTransport(handler))
    return ApiClient(http, session, path)


def _signed_in() -> SessionStore:
    store = SessionStore({}).hydrate()
    store.login("secret-token", user_payload())
    return store


@pytest.mark.asyncio
async def test_success_returns_body_with_auth_and_client_headers():
    """A 2xx body comes back as a dict; the bearer token and client header are attached."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        seen["client"] = request.headers.get("x-client-app")
        seen["path"] = request.url.path
        return httpx.Response(200, json={"success": True, "data": {"ok": 1}})

    api = _client(handler, _signed_in())
    body = await api.get("/bookings")
    assert body == {"success": True, "data": {"ok": 1}}
    assert seen["auth"] == "Bearer secret-token"
    assert seen["client"] == "mechanicbd-web"
    assert seen["path"] == "/api/bookings"


@pytest.mark.asyncio
async def test_unauthenticated_call_omits_token():
    """Public endpoints are called without the Authorization header."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"success": True, "data": {}})

    await _client(handler, _signed_in()).get("/services", authenticated=False)
    assert seen["auth"] is None


@pytest.mark.asyncio
async def test_401_clears_session_and_redirects_to_login():
    """A 401 expires the session and the error carries the login redirect."""
    store = _signed_in()
    api = _client(lambda r: httpx.Response(401, json={"message": "Token expired"}), store)
    with pytest.raises(AuthenticationError) as exc_info:
        await api.get("/users/me")
    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Token expired"
    assert exc_info.value.redirect_to == "/login"
    assert store.is_authenticated is False
    assert store.expired is True


@pytest.mark.asyncio
async def test_403_without_message_uses_default():
    """A bare 403 is treated as an auth failure with the generic message."""
    api = _client(lambda r: httpx.Response(403), _signed_in())
    with pytest.raises(AuthenticationError) as exc_info:
        await api.get("/users/admin/dashboard-stats")
    assert exc_info.value.message == AUTH_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_401_on_login_page_does_not_redirect():
    """Failed credentials on /login surface inline instead of redirecting to /login again."""
    api = _client(lambda r: httpx.Response(401, json={"message": "Invalid credentials"}),
                  SessionStore({}).hydrate(), path="/login")
    with pytest.raises(AuthenticationError) as exc_info:
        await api.post("/auth/login", {}, authenticated=False)
    assert exc_info.value.redirect_to is None


@pytest.mark.asyncio
async def test_concurrent_auth_failures_expire_session_once():
    """However many calls fail with 401, the session is cleared a single time."""
    session = MagicMock()
    session.token = "tok"
    api = _client(lambda r: httpx.Response(401), session)
    for url in ("/bookings", "/users/stats", "/services/mechanic/my"):
        with pytest.raises(AuthenticationError):
            await api.get(url)
    assert session.expire.call_count == 1


@pytest.mark.asyncio
async def test_5xx_maps_to_server_error_with_generic_message():
    """Server errors never leak the upstream message."""
    api = _client(lambda r: httpx.Response(500, json={"message": "stack trace here"}))
    with pytest.raises(ServerError) as exc_info:
        await api.get("/services")
    assert exc_info.value.message == SERVER_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_4xx_surfaces_server_message_verbatim():
    """Business rule failures show the API's own wording."""
    api = _client(lambda r: httpx.Response(400, json={"success": False, "message": "Slot already taken"}))
    with pytest.raises(BusinessError) as exc_info:
        await api.post("/bookings", {})
    assert exc_info.value.message == "Slot already taken"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_success_false_in_2xx_is_business_error():
    api = _client(lambda r: httpx.Response(200, json={"success": False, "error": "Nope"}))
    with pytest.raises(BusinessError) as exc_info:
        await api.get("/bookings")
    assert exc_info.value.message == "Nope"


@pytest.mark.asyncio
async def test_transport_failure_is_network_error():
    """No response at all becomes a NetworkError with the connection message."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkError) as exc_info:
        await _client(handler).get("/services")
    assert exc_info.value.message == NETWORK_ERROR_MESSAGE


class TestEnvelope:
    def test_parse_data_with_key(self):
        booking = parse_data({"success": True, "data": {"booking": booking_payload()}}, Booking, "booking")
        assert booking.id == "b1"
        assert booking.service_location == "House 1, Road 2, Gulshan"

    def test_parse_data_missing_key_is_shape_error(self):
        with pytest.raises(ResponseShapeError):
            parse_data({"success": True, "data": {}}, Booking, "booking")

    def test_parse_list_accepts_bare_list(self):
        bookings = parse_list({"success": True, "data": [booking_payload()]}, Booking, "bookings")
        assert [b.id for b in bookings] == ["b1"]

    def test_parse_list_invalid_item_is_shape_error(self):
        with pytest.raises(ResponseShapeError):
            parse_list({"data": {"bookings": [{"_id": "x"}]}}, Booking, "bookings")

    def test_raw_data_accepts_body_without_envelope(self):
        payload = {"success": True, "sessionId": "g1", "name": "Nadia"}
        assert raw_data(payload)["sessionId"] == "g1"

    def test_raw_data_with_key(self):
        assert raw_data({"data": {"user": {"_id": "u1"}}}, "user") == {"_id": "u1"}

    def test_raw_data_missing_key_is_shape_error(self):
        with pytest.raises(ResponseShapeError):
            raw_data({"success": True, "data": {}}, "user")
