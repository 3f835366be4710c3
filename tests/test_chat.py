"""Chat providers against a fake Socket.IO client, plus the chat screens."""
import asyncio
import json
from contextlib import contextmanager

import httpx
import pytest
from httpx import AsyncClient
from socketio.exceptions import ConnectionError as SocketConnectionError
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import FormValidationError
from mechanicbd.auth.session import SessionStore
from mechanicbd.chat.base import MessageStatus
from mechanicbd.chat.guest import NOT_CONNECTED_MESSAGE, NOT_DELIVERED_MESSAGE, GuestChatProvider
from mechanicbd.chat.provider import ChatProvider
from mechanicbd.dependencies import get_socket_factory, get_upstream
from mechanicbd.main import app
from tests.conftest import UPSTREAM_BASE, FakeUpstream, envelope, reset_limiter, user_payload


class FakeSocket:
    """Records emits and lets tests fire server events at the registered handlers."""

    def __init__(self, fail_connect: bool = False, **kwargs):
        self.options = kwargs
        self.fail_connect = fail_connect
        self.handlers = {}
        self.emitted = []
        self.auth = None
        self.url = None

    def on(self, event, handler):
        self.handlers[event] = handler

    async def connect(self, url, auth=None, transports=None, wait_timeout=None):
        if self.fail_connect:
            raise SocketConnectionError("refused")
        self.url, self.auth = url, auth
        await self.handlers["connect"]()

    async def disconnect(self):
        await self.handlers["disconnect"]()

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def fire(self, event, *args):
        await self.handlers[event](*args)


class SocketFactory:
    def __init__(self, fail_connect: bool = False):
        self.fail_connect = fail_connect
        self.sockets: list[FakeSocket] = []

    def __call__(self, **kwargs) -> FakeSocket:
        sock = FakeSocket(self.fail_connect, **kwargs)
        self.sockets.append(sock)
        return sock


def _message(message_id: str, room_id: str = "r1", content: str = "hello", **extra) -> dict:
    data = {"_id": message_id, "roomId": room_id, "content": content,
            "sender": {"_id": "support-1", "fullName": "Support"}, "createdAt": "2026-10-01T10:00:00Z"}
    data.update(extra)
    return data


def _api(upstream: FakeUpstream, store: SessionStore | None = None) -> ApiClient:
    http = httpx.AsyncClient(base_url=UPSTREAM_BASE, transport=httpx.MockTransport(upstream.handle))
    return ApiClient(http, store or SessionStore({}).hydrate(), "/ws/chat")


def _signed_in() -> SessionStore:
    store = SessionStore({}).hydrate()
    store.login("tok", user_payload())
    return store


class TestChatProvider:
    @pytest.mark.asyncio
    async def test_connect_requires_signed_in_user(self, upstream: FakeUpstream):
        factory = SocketFactory()
        provider = ChatProvider(_api(upstream), SessionStore({}).hydrate(), client_factory=factory)
        assert await provider.connect() is False
        assert factory.sockets == []

    @pytest.mark.asyncio
    async def test_connect_sends_token_and_goes_online(self, upstream: FakeUpstream):
        factory = SocketFactory()
        provider = ChatProvider(_api(upstream), _signed_in(), socket_url="http://chat.test", client_factory=factory)
        assert await provider.connect() is True
        sock = factory.sockets[0]
        assert sock.auth == {"token": "tok"}
        assert sock.url == "http://chat.test"
        assert sock.options["reconnection"] is True
        assert ("set_online", None) in sock.emitted
        assert provider.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure_reported(self, upstream: FakeUpstream):
        events = []

        async def listener(event, data):
            events.append((event, data))

        provider = ChatProvider(_api(upstream), _signed_in(), client_factory=SocketFactory(fail_connect=True))
        provider.subscribe(listener)
        assert await provider.connect() is False
        assert events == [("connection", {"connected": False, "error": "Unable to connect to chat."})]

    @pytest.mark.asyncio
    async def test_send_confirmed_from_rest_response(self, upstream: FakeUpstream):
        upstream.add("GET", "/chat/rooms/r1/messages", json=envelope(messages=[_message("m1")]))
        upstream.add("POST", "/chat/rooms/r1/messages", status=201,
                     handler=lambda r: httpx.Response(201, json=envelope(message=_message(
                         "m2", content="need help", clientMessageId=json.loads(r.content)["clientMessageId"]))))
        provider = ChatProvider(_api(upstream, _signed_in()), _signed_in(), client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")
        await provider.load_messages("r1")

        outbound = await provider.send_message("  need help ")
        assert outbound.status == MessageStatus.CONFIRMED
        assert [m.id for m in provider.messages] == ["m1", "m2"]

        # The socket echo of the same message is not shown twice
        await factory_fire(provider, "new_message", _message("m2", clientMessageId=outbound.client_message_id))
        assert [m.id for m in provider.messages] == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_failed_send_can_be_retried(self, upstream: FakeUpstream):
        upstream.add("POST", "/chat/rooms/r1/messages", status=500)
        provider = ChatProvider(_api(upstream, _signed_in()), _signed_in(), client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")

        outbound = await provider.send_message("hello")
        assert outbound.status == MessageStatus.FAILED
        assert outbound.error

        upstream.add("POST", "/chat/rooms/r1/messages", json=envelope(message=_message("m9")))
        retried = await provider.retry(outbound.client_message_id)
        assert retried is outbound
        assert outbound.status == MessageStatus.CONFIRMED
        assert len(upstream.called("POST", "/chat/rooms/r1/messages")) == 2

    @pytest.mark.asyncio
    async def test_retry_unknown_message(self, upstream: FakeUpstream):
        provider = ChatProvider(_api(upstream), _signed_in(), client_factory=SocketFactory())
        with pytest.raises(KeyError):
            await provider.retry("nope")

    @pytest.mark.asyncio
    async def test_send_validation(self, upstream: FakeUpstream):
        provider = ChatProvider(_api(upstream), _signed_in(), client_factory=SocketFactory())
        await provider.connect()
        with pytest.raises(FormValidationError):
            await provider.send_message("   ")
        with pytest.raises(FormValidationError):
            await provider.send_message("hello")
        assert provider.outbox == {}

    @pytest.mark.asyncio
    async def test_confirmed_messages_leave_the_outbox(self, upstream: FakeUpstream):
        upstream.add("POST", "/chat/rooms/r1/messages",
                     handler=lambda r: httpx.Response(200, json=envelope(message=_message(
                         "m2", clientMessageId=json.loads(r.content)["clientMessageId"]))))
        provider = ChatProvider(_api(upstream, _signed_in()), _signed_in(), client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")

        outbound = await provider.send_message("hi")
        assert outbound.status == MessageStatus.CONFIRMED
        assert provider.outbox == {}
        assert provider.snapshot()["outbox"] == []

        # A late echo after leaving the room is not counted as unread
        await provider.leave_room("r1")
        await factory_fire(provider, "new_message", _message("m2", clientMessageId=outbound.client_message_id))
        assert provider.unread == {}

    @pytest.mark.asyncio
    async def test_incoming_messages_and_unread(self, upstream: FakeUpstream):
        upstream.add("PATCH", "/chat/rooms/r2/read", json={"success": True})
        provider = ChatProvider(_api(upstream, _signed_in()), _signed_in(), client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")

        await factory_fire(provider, "new_message", _message("m1", room_id="r1"))
        await factory_fire(provider, "new_message", _message("m1", room_id="r1"))
        await factory_fire(provider, "new_message", _message("m2", room_id="r2"))
        await factory_fire(provider, "new_message", _message("m3", room_id="r2"))
        await factory_fire(provider, "new_message", {"garbage": True})

        assert [m.id for m in provider.messages] == ["m1"]
        assert provider.unread == {"r2": 2}
        assert provider.unread_count == 2

        await provider.mark_as_read("r2")
        assert provider.unread_count == 0
        assert len(upstream.called("PATCH", "/chat/rooms/r2/read")) == 1

    @pytest.mark.asyncio
    async def test_typing_only_tracked_for_current_room(self, upstream: FakeUpstream):
        provider = ChatProvider(_api(upstream), _signed_in(), client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")
        await factory_fire(provider, "user_typing", {"userId": "u1", "roomId": "r1"})
        await factory_fire(provider, "user_typing", {"userId": "u2", "roomId": "r9"})
        assert provider.typing_users == ["u1"]
        await factory_fire(provider, "user_stop_typing", {"userId": "u1", "roomId": "r1"})
        assert provider.typing_users == []

    @pytest.mark.asyncio
    async def test_join_ignored_while_disconnected(self, upstream: FakeUpstream):
        provider = ChatProvider(_api(upstream), _signed_in(), client_factory=SocketFactory())
        await provider.join_room("r1")
        assert provider.current_room is None


async def factory_fire(provider, event: str, *args) -> None:
    await provider._sio.fire(event, *args)


class TestGuestChatProvider:
    @pytest.mark.asyncio
    async def test_connect_uses_guest_token_and_loads_rooms(self, upstream: FakeUpstream):
        upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[{"roomId": "r1", "title": "Help"}]))
        factory = SocketFactory()
        provider = GuestChatProvider(_api(upstream), "g1", client_factory=factory)
        await provider.connect()
        assert factory.sockets[0].auth == {"token": "guest_g1"}
        assert [r.room_id for r in provider.rooms] == ["r1"]
        assert "authorization" not in upstream.called("GET", "/guest/session/g1/rooms")[0].headers

    @pytest.mark.asyncio
    async def test_send_confirmed_by_socket_echo(self, upstream: FakeUpstream):
        upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[]))
        provider = GuestChatProvider(_api(upstream), "g1", ack_timeout=1, client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")

        task = asyncio.create_task(provider.send_message("hi there"))
        while not any(event == "new_message" for event, _ in provider._sio.emitted):
            await asyncio.sleep(0)
        _, payload = [e for e in provider._sio.emitted if e[0] == "new_message"][0]
        assert payload["sessionId"] == "g1"
        assert payload["roomId"] == "r1"

        await factory_fire(provider, "message_received",
                           _message("m5", content="hi there", clientMessageId=payload["clientMessageId"]))
        outbound = await task
        assert outbound.status == MessageStatus.CONFIRMED
        assert [m.id for m in provider.messages] == ["m5"]

    @pytest.mark.asyncio
    async def test_unacknowledged_send_fails_then_retries(self, upstream: FakeUpstream):
        upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[]))
        provider = GuestChatProvider(_api(upstream), "g1", ack_timeout=0.01, client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")

        outbound = await provider.send_message("anyone?")
        assert outbound.status == MessageStatus.FAILED
        assert outbound.error == NOT_DELIVERED_MESSAGE

        await provider.retry(outbound.client_message_id)
        sends = [e for e in provider._sio.emitted if e[0] == "new_message"]
        assert len(sends) == 2
        assert sends[0][1]["clientMessageId"] == sends[1][1]["clientMessageId"]

    @pytest.mark.asyncio
    async def test_typing_flag_false_clears_typing(self, upstream: FakeUpstream):
        """Guest sockets report stop-typing as user_typing with isTyping false."""
        upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[]))
        provider = GuestChatProvider(_api(upstream), "g1", client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")

        await factory_fire(provider, "user_typing", {"userId": "agent", "roomId": "r1", "isTyping": True})
        assert provider.typing_users == ["agent"]
        await factory_fire(provider, "user_typing", {"userId": "agent", "roomId": "r1", "isTyping": False})
        assert provider.typing_users == []

    @pytest.mark.asyncio
    async def test_send_while_disconnected_fails(self, upstream: FakeUpstream):
        upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[]))
        provider = GuestChatProvider(_api(upstream), "g1", client_factory=SocketFactory())
        await provider.connect()
        await provider.join_room("r1")
        await factory_fire(provider, "disconnect")

        outbound = await provider.send_message("hello?")
        assert outbound.status == MessageStatus.FAILED
        assert outbound.error == NOT_CONNECTED_MESSAGE


@pytest.mark.asyncio
async def test_chat_page_offers_guest_form(client: AsyncClient):
    response = await client.get("/chat")
    assert response.status_code == 200
    assert 'action="/chat/guest"' in response.text


@pytest.mark.asyncio
async def test_guest_session_lifecycle(client: AsyncClient, upstream: FakeUpstream):
    """Start a guest chat, open a support request with the session id, then end it."""
    upstream.add("POST", "/guest/session", status=201,
                 json=envelope(sessionId="g1", name="Nadia", phoneNumber="01712345678"))
    upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[{"roomId": "r1", "title": "AC issue"}]))
    upstream.add("POST", "/chat/support", status=201, json=envelope(room={"roomId": "r2", "title": "Payment"}))

    response = await client.post("/chat/guest", data={"name": "Nadia", "phoneNumber": "01712345678"})
    assert response.status_code == 303

    page = await client.get("/chat")
    assert "Chatting as Nadia" in page.text
    assert "AC issue" in page.text

    response = await client.post("/chat/support", data={"issue": "Payment stuck", "category": "payment"})
    assert response.headers["location"] == "/chat?room=r2"
    support = upstream.called("POST", "/chat/support")[0]
    assert json.loads(support.content) == {"issue": "Payment stuck", "category": "payment", "sessionId": "g1"}
    assert "authorization" not in support.headers

    await client.post("/chat/guest/end")
    page = await client.get("/chat")
    assert 'action="/chat/guest"' in page.text


@pytest.mark.asyncio
async def test_guest_name_required(client: AsyncClient, upstream: FakeUpstream):
    await client.post("/chat/guest", data={"name": " "})
    assert upstream.calls == []
    page = await client.get("/chat")
    assert "Please enter your name to start chatting." in page.text


def test_socket_without_identity_is_closed():
    """The relay refuses sockets with neither a signed-in user nor a guest session."""
    with TestClient(app) as tc:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with tc.websocket_connect("/ws/chat"):
                pass
    assert exc_info.value.code == 4401


@pytest.mark.asyncio
async def test_guest_session_without_envelope(client: AsyncClient, upstream: FakeUpstream):
    """A guest session body returned without the data wrapper is still stored."""
    upstream.add("POST", "/guest/session", status=201, json={"success": True, "sessionId": "g1", "name": "Nadia"})
    upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[]))
    response = await client.post("/chat/guest", data={"name": "Nadia"})
    assert response.status_code == 303
    page = await client.get("/chat")
    assert "Chatting as Nadia" in page.text


@contextmanager
def _guest_socket_client(upstream: FakeUpstream, factory: SocketFactory):
    """A TestClient whose session already holds guest session g1."""
    upstream.add("POST", "/guest/session", status=201, json=envelope(sessionId="g1", name="Nadia"))
    upstream.add("GET", "/guest/session/g1/rooms", json=envelope(rooms=[{"roomId": "r1", "title": "AC issue"}]))
    upstream.add("GET", "/chat/messages/r1", json=envelope(messages=[_message("m1")]))
    http = httpx.AsyncClient(base_url=UPSTREAM_BASE, transport=httpx.MockTransport(upstream.handle))
    app.dependency_overrides[get_upstream] = lambda: http
    app.dependency_overrides[get_socket_factory] = lambda: factory
    reset_limiter()
    try:
        with TestClient(app) as tc:
            assert tc.post("/chat/guest", data={"name": "Nadia"}, follow_redirects=False).status_code == 303
            yield tc
    finally:
        app.dependency_overrides.clear()


def test_guest_socket_relay(upstream: FakeUpstream):
    """A guest socket gets the provider state and can join a room."""
    factory = SocketFactory()
    with _guest_socket_client(upstream, factory) as tc:
        with tc.websocket_connect("/ws/chat") as ws:
            assert ws.receive_json() == {"event": "connection", "data": {"connected": True}}
            state = ws.receive_json()
            assert state["event"] == "state"
            assert [r["roomId"] for r in state["data"]["rooms"]] == ["r1"]

            ws.send_json({"action": "join_room", "roomId": "r1"})
            state = ws.receive_json()
            assert state["data"]["currentRoom"] == "r1"
            assert [m["_id"] for m in state["data"]["messages"]] == ["m1"]

            ws.send_json({"action": "fly"})
            assert ws.receive_json() == {"event": "error", "data": {"message": "Unknown command."}}
    assert factory.sockets[0].auth == {"token": "guest_g1"}
    assert upstream.called("GET", "/chat/messages/r1")[0].url.params["sessionId"] == "g1"


def test_malformed_commands_keep_relay_open(upstream: FakeUpstream):
    """Badly typed command fields are answered with an error and the socket stays usable."""
    unknown = {"event": "error", "data": {"message": "Unknown command."}}
    with _guest_socket_client(upstream, SocketFactory()) as tc:
        with tc.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.receive_json()

            ws.send_json({"action": "load_messages", "roomId": "r1", "page": "two"})
            assert ws.receive_json() == unknown
            ws.send_json({"action": "send", "content": 5})
            assert ws.receive_json() == unknown
            ws.send_json({"action": "send", "content": "hi", "attachments": "photo.jpg"})
            assert ws.receive_json() == unknown
            ws.send_json({"action": "join_room", "roomId": ["r1"]})
            assert ws.receive_json() == unknown
            ws.send_text("not json")
            assert ws.receive_json() == unknown

            ws.send_json({"action": "join_room", "roomId": "r1"})
            assert ws.receive_json()["data"]["currentRoom"] == "r1"
