import os
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone

os.environ.setdefault("SESSION_SECRET", "test-session-secret-for-unit-tests-minimum-32-chars")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("API_URL", "http://upstream.test")

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mechanicbd.dependencies import get_upstream
from mechanicbd.main import app

UPSTREAM_BASE = "http://upstream.test/api"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """Stand-in for the REST API, served through ``httpx.MockTransport``.

    Routes are keyed on method and path (without the ``/api`` prefix); anything
    unregistered answers 404 the way the API does.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Handler] = {}
        self.calls: list[httpx.Request] = []

    def add(self, method: str, path: str, json=None, status: int = 200, handler: Handler | None = None):
        if handler is None:
            def handler(request: httpx.Request, _json=json, _status=status) -> httpx.Response:
                return httpx.Response(_status, json=_json)
        self.routes[(method.upper(), path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path.removeprefix("/api")
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "Route not found"})
        return route(request)

    def called(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.calls
            if r.method == method.upper() and r.url.path.removeprefix("/api") == path
        ]


def reset_limiter() -> None:
    from mechanicbd.utils.rate_limit import limiter
    if hasattr(limiter, "_limiter") and hasattr(limiter._limiter, "_storage"):
        limiter._limiter._storage.reset()
    elif hasattr(limiter, "reset"):
        limiter.reset()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def client(upstream: FakeUpstream) -> AsyncGenerator[AsyncClient, None]:
    http = httpx.AsyncClient(base_url=UPSTREAM_BASE, transport=httpx.MockTransport(upstream.handle))
    app.dependency_overrides[get_upstream] = lambda: http

    # Reset rate limiter storage between tests to avoid 429 errors
    reset_limiter()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await http.aclose()


# Payload builders, shaped like the API's responses


def user_payload(role: str = "customer", **overrides) -> dict:
    user = {
        "_id": f"{role}-1",
        "fullName": f"Test {role.title()}",
        "email": f"{role}@test.com",
        "phoneNumber": "01712345678",
        "role": role,
        "isActive": True,
    }
    user.update(overrides)
    return user


def service_payload(service_id: str = "svc1", **overrides) -> dict:
    service = {
        "_id": service_id,
        "title": "Professional AC Repair",
        "description": "AC servicing and gas refill",
        "category": "HVAC",
        "basePrice": 1200,
        "serviceArea": "Dhaka, Gulshan",
        "mechanic": {"_id": "mechanic-1", "fullName": "Ahmed Khan", "averageRating": 4.8, "totalReviews": 12},
        "isActive": True,
    }
    service.update(overrides)
    return service


def booking_payload(booking_id: str = "b1", status: str = "pending", **overrides) -> dict:
    booking = {
        "_id": booking_id,
        "bookingNumber": "BK-0001",
        "service": {"_id": "svc1", "title": "Professional AC Repair", "category": "HVAC", "basePrice": 1200},
        "customer": {"_id": "customer-1", "fullName": "Test Customer"},
        "scheduledDate": "2026-11-01T00:00:00.000Z",
        "scheduledTime": "10:00",
        "status": status,
        "paymentStatus": "pending",
        "totalAmount": 1200,
        "serviceLocation": {"address": "House 1, Road 2, Gulshan"},
    }
    booking.update(overrides)
    return booking


def payment_payload(method: str = "bkash", minutes: int = 15, **overrides) -> dict:
    payment = {
        "_id": "p1",
        "paymentId": "PAY-123",
        "amount": 1200,
        "paymentMethod": method,
        "status": "pending",
        "expiresAt": (datetime.now(timezone.utc) + timedelta(minutes=minutes)).isoformat(),
        "mfsDetails": {"receiverNumber": "01811111111"},
    }
    payment.update(overrides)
    return payment


def envelope(**data) -> dict:
    return {"success": True, "data": data}


async def login_as(client: AsyncClient, upstream: FakeUpstream, role: str = "customer", **overrides) -> dict:
    """Sign the test client in through the real /login form."""
    user = user_payload(role, **overrides)
    upstream.add("POST", "/auth/login", json={"success": True, "token": f"token-{role}", "data": {"user": user}})
    response = await client.post("/login", data={"identifier": user["email"], "password": "password123"})
    assert response.status_code == 303
    return user


@pytest_asyncio.fixture
async def customer(client: AsyncClient, upstream: FakeUpstream) -> dict:
    return await login_as(client, upstream, "customer")


@pytest_asyncio.fixture
async def mechanic(client: AsyncClient, upstream: FakeUpstream) -> dict:
    return await login_as(client, upstream, "mechanic")


@pytest_asyncio.fixture
async def admin(client: AsyncClient, upstream: FakeUpstream) -> dict:
    return await login_as(client, upstream, "admin")
