"""Shared state and Socket.IO plumbing for the signed-in and guest chat providers.

A provider owns exactly one ``socketio.AsyncClient`` for its lifetime. Every
outbound message is tracked in ``outbox`` under a client-generated id so a
dropped send ends up ``failed`` and can be retried instead of vanishing.
"""

import enum
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import socketio
import structlog
from pydantic import ValidationError
from socketio.exceptions import ConnectionError as SocketConnectionError

from mechanicbd.api.errors import FormValidationError
from mechanicbd.config import settings
from mechanicbd.metrics import CHAT_MESSAGES
from mechanicbd.schemas.chat import ChatMessage, ChatRoom

logger = structlog.get_logger()

Listener = Callable[[str, dict], Awaitable[None]]

# Confirmed client ids remembered for dropping late echoes after leaving the outbox
RECENT_CONFIRMED_LIMIT = 200


class MessageStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class OutboundMessage:
    room_id: str
    content: str
    message_type: str = "text"
    attachments: list[str] = field(default_factory=list)
    client_message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: MessageStatus = MessageStatus.PENDING
    error: str | None = None
    message: ChatMessage | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "clientMessageId": self.client_message_id,
            "roomId": self.room_id,
            "content": self.content,
            "status": self.status.value,
            "error": self.error,
            "message": self.message.model_dump(by_alias=True, mode="json") if self.message else None,
        }


class BaseChatProvider:
    channel = "base"

    def __init__(self, socket_url: str | None = None, client_factory=socketio.AsyncClient):
        self._socket_url = socket_url or settings.socket_url
        self._client_factory = client_factory
        self._sio: socketio.AsyncClient | None = None
        self._listeners: list[Listener] = []

        self.is_connected = False
        self.is_connecting = False
        self.rooms: list[ChatRoom] = []
        self.current_room: ChatRoom | None = None
        self.messages: list[ChatMessage] = []
        self.unread: dict[str, int] = {}
        self.typing_users: list[str] = []
        self.online_users: list[str] = []
        self.outbox: dict[str, OutboundMessage] = {}
        self._recently_confirmed: deque[str] = deque(maxlen=RECENT_CONFIRMED_LIMIT)

    # Subclass hooks

    def _auth(self) -> dict:
        raise NotImplementedError

    async def _deliver(self, outbound: OutboundMessage) -> None:
        raise NotImplementedError

    async def _on_connected(self) -> None:
        pass

    # Listeners

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, event: str, data: dict) -> None:
        for listener in list(self._listeners):
            await listener(event, data)

    # Connection lifecycle

    @property
    def unread_count(self) -> int:
        return sum(self.unread.values())

    async def connect(self) -> bool:
        if self._sio is not None:
            return self.is_connected
        self.is_connecting = True
        sio = self._client_factory(
            reconnection=True,
            reconnection_attempts=settings.CHAT_RECONNECTION_ATTEMPTS,
            reconnection_delay=1,
        )
        self._register_handlers(sio)
        self._sio = sio
        try:
            await sio.connect(
                self._socket_url,
                auth=self._auth(),
                transports=["websocket", "polling"],
                wait_timeout=10,
            )
        except SocketConnectionError as exc:
            logger.warning("chat_connect_failed", channel=self.channel, error=str(exc))
            self._sio = None
            self.is_connecting = False
            await self._notify("connection", {"connected": False, "error": "Unable to connect to chat."})
            return False
        return True

    async def disconnect(self) -> None:
        sio, self._sio = self._sio, None
        if sio is not None:
            await sio.disconnect()
        self.is_connected = False
        self.is_connecting = False

    def _register_handlers(self, sio) -> None:
        sio.on("connect", self._handle_connect)
        sio.on("disconnect", self._handle_disconnect)
        sio.on("new_message", self._handle_new_message)
        sio.on("message_received", self._handle_message_received)
        sio.on("user_typing", self._handle_user_typing)
        sio.on("user_stop_typing", self._handle_user_stop_typing)
        sio.on("user_online", self._handle_user_online)
        sio.on("user_offline", self._handle_user_offline)

    async def _emit(self, event: str, data=None) -> bool:
        if self._sio is None or not self.is_connected:
            return False
        await self._sio.emit(event, data)
        return True

    # Incoming events

    async def _handle_connect(self) -> None:
        self.is_connected = True
        self.is_connecting = False
        logger.info("chat_connected", channel=self.channel)
        await self._on_connected()
        await self._notify("connection", {"connected": True})

    async def _handle_disconnect(self, *args) -> None:
        self.is_connected = False
        self.is_connecting = False
        logger.info("chat_disconnected", channel=self.channel)
        await self._notify("connection", {"connected": False})

    async def _handle_new_message(self, data: dict) -> None:
        try:
            message = ChatMessage.model_validate(data)
        except ValidationError:
            logger.warning("chat_message_malformed", channel=self.channel)
            return
        await self._receive(message)

    async def _handle_message_received(self, data: dict) -> None:
        await self._handle_new_message(data)

    async def _receive(self, message: ChatMessage) -> None:
        if message.client_message_id and message.client_message_id in self._recently_confirmed:
            return
        outbound = self.outbox.get(message.client_message_id or "")
        if outbound is not None:
            if outbound.status != MessageStatus.CONFIRMED:
                await self._confirm(outbound, message)
            return
        if any(m.id and m.id == message.id for m in self.messages):
            return

        for index, room in enumerate(self.rooms):
            if room.room_id == message.room_id:
                self.rooms[index] = room.model_copy(
                    update={"last_message": message, "last_activity": message.created_at}
                )
        if self.current_room is not None and self.current_room.room_id == message.room_id:
            self.messages.append(message)
        else:
            self.unread[message.room_id] = self.unread.get(message.room_id, 0) + 1
        await self._notify("message", message.model_dump(by_alias=True, mode="json"))

    async def _handle_user_typing(self, data: dict) -> None:
        user_id = data.get("userId")
        if user_id and self._in_current_room(data.get("roomId")):
            self.typing_users = [u for u in self.typing_users if u != user_id] + [user_id]
            await self._notify("typing", {"users": self.typing_users})

    async def _handle_user_stop_typing(self, data: dict) -> None:
        user_id = data.get("userId")
        if user_id and self._in_current_room(data.get("roomId")):
            self.typing_users = [u for u in self.typing_users if u != user_id]
            await self._notify("typing", {"users": self.typing_users})

    async def _handle_user_online(self, data: dict) -> None:
        user_id = data.get("userId")
        if user_id:
            self.online_users = [u for u in self.online_users if u != user_id] + [user_id]
            await self._notify("presence", {"users": self.online_users})

    async def _handle_user_offline(self, data: dict) -> None:
        user_id = data.get("userId")
        if user_id:
            self.online_users = [u for u in self.online_users if u != user_id]
            await self._notify("presence", {"users": self.online_users})

    def _in_current_room(self, room_id: str | None) -> bool:
        return self.current_room is not None and self.current_room.room_id == room_id

    # Rooms

    def _find_room(self, room_id: str) -> ChatRoom:
        for room in self.rooms:
            if room.room_id == room_id:
                return room
        return ChatRoom(room_id=room_id)

    async def join_room(self, room_id: str) -> None:
        if not await self._emit("join_room", room_id):
            return
        self.current_room = self._find_room(room_id)
        self.typing_users = []
        self.unread.pop(room_id, None)

    async def leave_room(self, room_id: str) -> None:
        if not await self._emit("leave_room", room_id):
            return
        if self._in_current_room(room_id):
            self.current_room = None
            self.messages = []
            self.typing_users = []

    async def start_typing(self, room_id: str) -> None:
        await self._emit("typing_start", room_id)

    async def stop_typing(self, room_id: str) -> None:
        await self._emit("typing_stop", room_id)

    # Sending

    async def send_message(
        self, content: str, message_type: str = "text", attachments: list[str] | None = None
    ) -> OutboundMessage:
        content = (content or "").strip()
        if not content:
            raise FormValidationError("Message cannot be empty.", field="content")
        if self.current_room is None:
            raise FormValidationError("Join a conversation before sending.", field="roomId")
        outbound = OutboundMessage(
            room_id=self.current_room.room_id,
            content=content,
            message_type=message_type,
            attachments=list(attachments or []),
        )
        self.outbox[outbound.client_message_id] = outbound
        await self._notify("outbound", outbound.to_dict())
        await self._deliver(outbound)
        return outbound

    async def retry(self, client_message_id: str) -> OutboundMessage:
        outbound = self.outbox.get(client_message_id)
        if outbound is None:
            raise KeyError(client_message_id)
        if outbound.status != MessageStatus.FAILED:
            return outbound
        outbound.status = MessageStatus.PENDING
        outbound.error = None
        await self._notify("outbound", outbound.to_dict())
        await self._deliver(outbound)
        return outbound

    async def _confirm(self, outbound: OutboundMessage, message: ChatMessage) -> None:
        outbound.status = MessageStatus.CONFIRMED
        outbound.error = None
        outbound.message = message
        CHAT_MESSAGES.labels(channel=self.channel, status="confirmed").inc()
        if self._in_current_room(message.room_id) and not any(
            m.id and m.id == message.id for m in self.messages
        ):
            self.messages.append(message)
        await self._notify("outbound", outbound.to_dict())
        self.outbox.pop(outbound.client_message_id, None)
        self._recently_confirmed.append(outbound.client_message_id)

    async def _fail(self, outbound: OutboundMessage, error: str) -> None:
        outbound.status = MessageStatus.FAILED
        outbound.error = error
        CHAT_MESSAGES.labels(channel=self.channel, status="failed").inc()
        logger.warning("chat_send_failed", channel=self.channel, room_id=outbound.room_id,
                       client_message_id=outbound.client_message_id, error=error)
        await self._notify("outbound", outbound.to_dict())

    def snapshot(self) -> dict:
        return {
            "connected": self.is_connected,
            "rooms": [r.model_dump(by_alias=True, mode="json") for r in self.rooms],
            "currentRoom": self.current_room.room_id if self.current_room else None,
            "messages": [m.model_dump(by_alias=True, mode="json") for m in self.messages],
            "unread": dict(self.unread),
            "unreadCount": self.unread_count,
            "typingUsers": list(self.typing_users),
            "onlineUsers": list(self.online_users),
            "outbox": [o.to_dict() for o in self.outbox.values()],
        }
