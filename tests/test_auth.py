import json

import pytest
from httpx import AsyncClient

from tests.conftest import FakeUpstream, envelope, login_as, user_payload


@pytest.mark.asyncio
async def test_login_page_renders(client: AsyncClient):
    response = await client.get("/login?redirect=/services")
    assert response.status_code == 200
    assert 'name="redirect" value="/services"' in response.text


@pytest.mark.asyncio
async def test_login_with_email_sends_email_field(client: AsyncClient, upstream: FakeUpstream):
    """An identifier with '@' is sent as email, without a bearer token."""
    await login_as(client, upstream, "customer")
    request = upstream.called("POST", "/auth/login")[0]
    body = json.loads(request.content)
    assert body == {"email": "customer@test.com", "password": "password123"}
    assert "authorization" not in request.headers


@pytest.mark.asyncio
async def test_login_with_phone_sends_phone_number(client: AsyncClient, upstream: FakeUpstream):
    upstream.add("POST", "/auth/login", json={"success": True, "token": "t", "data": {"user": user_payload()}})
    response = await client.post("/login", data={"identifier": "01712345678", "password": "pw123456"})
    assert response.status_code == 303
    body = json.loads(upstream.called("POST", "/auth/login")[0].content)
    assert body == {"phoneNumber": "01712345678", "password": "pw123456"}


@pytest.mark.asyncio
async def test_login_ignores_offsite_redirect(client: AsyncClient, upstream: FakeUpstream):
    upstream.add("POST", "/auth/login", json={"success": True, "token": "t", "data": {"user": user_payload()}})
    response = await client.post("/login", data={
        "identifier": "customer@test.com", "password": "pw", "redirect": "//evil.example.com",
    })
    assert response.headers["location"] == "/"


@pytest.mark.asyncio
async def test_login_bad_credentials_rendered_inline(client: AsyncClient, upstream: FakeUpstream):
    """A 401 from /auth/login stays on the login page with the API's message."""
    upstream.add("POST", "/auth/login", status=401, json={"success": False, "message": "Invalid credentials"})
    response = await client.post("/login", data={"identifier": "customer@test.com", "password": "wrong"})
    assert response.status_code == 401
    assert "Invalid credentials" in response.text
    assert "location" not in response.headers


@pytest.mark.asyncio
async def test_login_missing_fields_makes_no_call(client: AsyncClient, upstream: FakeUpstream):
    response = await client.post("/login", data={"identifier": "", "password": ""})
    assert response.status_code == 400
    assert "Please fill in all required fields." in response.text
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_login_user_without_role_fails(client: AsyncClient, upstream: FakeUpstream):
    """A user object without a valid role is never stored."""
    user = user_payload()
    del user["role"]
    upstream.add("POST", "/auth/login", json={"success": True, "token": "t", "data": {"user": user}})
    response = await client.post("/login", data={"identifier": "customer@test.com", "password": "pw"})
    assert response.status_code == 400
    assert "Login failed" in response.text

    response = await client.get("/dashboard/customer")
    assert response.status_code == 303
    assert response.headers["location"].startswith("/login")


@pytest.mark.asyncio
async def test_register_signs_in_and_welcomes(client: AsyncClient, upstream: FakeUpstream):
    upstream.add("POST", "/auth/register", status=201,
                 json={"success": True, "token": "t", "data": {"user": user_payload()}})
    response = await client.post("/register", data={
        "fullName": "Test Customer", "phoneNumber": "01712345678", "email": "", "password": "secret12",
    })
    assert response.status_code == 303
    assert response.headers["location"] == "/"
    body = json.loads(upstream.called("POST", "/auth/register")[0].content)
    assert body["role"] == "customer"
    assert "email" not in body

    home = await client.get("/")
    assert "Welcome to Mechanic BD!" in home.text
    assert "Test Customer" in home.text


@pytest.mark.asyncio
async def test_register_invalid_phone_makes_no_call(client: AsyncClient, upstream: FakeUpstream):
    response = await client.post("/register", data={
        "fullName": "Test", "phoneNumber": "12345", "email": "", "password": "secret12",
    })
    assert response.status_code == 400
    assert "valid Bangladesh phone number" in response.text
    assert upstream.calls == []


@pytest.mark.asyncio
async def test_logout_clears_session(client: AsyncClient, upstream: FakeUpstream, customer: dict):
    response = await client.post("/logout")
    assert response.status_code == 303
    response = await client.get("/profile")
    assert response.status_code == 303
    assert response.headers["location"] == "/login?redirect=%2Fprofile"


class TestSessionExpiry:
    @pytest.mark.asyncio
    async def test_401_mid_session_redirects_to_login_once(self, client: AsyncClient, upstream: FakeUpstream,
                                                           customer: dict):
        """A rejected token sends the browser to /login exactly once and drops the session."""
        upstream.add("GET", "/bookings", status=401, json={"success": False, "message": "jwt expired"})
        response = await client.get("/dashboard/customer")
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

        # The session is gone, so the gate redirects without calling the API again
        response = await client.get("/dashboard/customer")
        assert response.status_code == 303
        assert response.headers["location"].startswith("/login?redirect=")
        assert len(upstream.called("GET", "/bookings")) == 1

    @pytest.mark.asyncio
    async def test_parallel_401s_produce_single_redirect(self, client: AsyncClient, upstream: FakeUpstream,
                                                         mechanic: dict):
        """The mechanic dashboard fans out three calls; all failing still yields one redirect."""
        for path in ("/bookings", "/users/stats", "/services/mechanic/my"):
            upstream.add("GET", path, status=401)
        response = await client.get("/dashboard/mechanic")
        assert response.status_code == 303
        assert response.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_401_on_json_request_returns_json(self, client: AsyncClient, upstream: FakeUpstream,
                                                    customer: dict):
        upstream.add("GET", "/bookings", status=401)
        response = await client.get("/dashboard/customer", headers={"Accept": "application/json"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Your session has expired. Please log in again."

    @pytest.mark.asyncio
    async def test_valid_token_renders_dashboard(self, client: AsyncClient, upstream: FakeUpstream,
                                                        customer: dict):
        """Without an auth failure the session stays and the screen renders."""
        upstream.add("GET", "/bookings", json=envelope(bookings=[]))
        response = await client.get("/dashboard/customer")
        assert response.status_code == 200
