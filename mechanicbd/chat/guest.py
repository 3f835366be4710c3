"""Anonymous chat: the guest session id stands in for a token on the socket."""

import asyncio

import structlog

from mechanicbd.api import chat as chat_api
from mechanicbd.api import guest as guest_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError
from mechanicbd.chat.base import BaseChatProvider, MessageStatus, OutboundMessage
from mechanicbd.config import settings
from mechanicbd.schemas.chat import ChatMessage, ChatRoom, SupportChatRequest

logger = structlog.get_logger()

NOT_DELIVERED_MESSAGE = "Message not delivered. Tap retry to send it again."
NOT_CONNECTED_MESSAGE = "Chat is offline. Tap retry once you are reconnected."


def guest_token(session_id: str) -> str:
    return f"guest_{session_id}"


class GuestChatProvider(BaseChatProvider):
    channel = "guest"

    def __init__(self, api: ApiClient, session_id: str, ack_timeout: float | None = None, **kwargs):
        super().__init__(**kwargs)
        self._api = api
        self.session_id = session_id
        self._ack_timeout = settings.CHAT_ACK_TIMEOUT_SECONDS if ack_timeout is None else ack_timeout
        self._acks: dict[str, asyncio.Future] = {}

    def _auth(self) -> dict:
        return {"token": guest_token(self.session_id)}

    async def _on_connected(self) -> None:
        try:
            await self.load_rooms()
        except ApiError as exc:
            logger.warning("guest_rooms_unavailable", session_id=self.session_id, error=exc.message)

    async def load_rooms(self) -> list[ChatRoom]:
        self.rooms = await guest_api.session_rooms(self._api, self.session_id)
        return self.rooms

    async def load_messages(self, room_id: str, page: int = 1) -> None:
        messages = await guest_api.session_messages(self._api, self.session_id, room_id)
        if self._in_current_room(room_id):
            self.messages = messages

    async def create_support_chat(self, issue: str, category: str = "general") -> ChatRoom | None:
        room = await chat_api.create_support_chat(
            self._api, SupportChatRequest(issue=issue, category=category, session_id=self.session_id)
        )
        await self.load_rooms()
        return room

    async def _deliver(self, outbound: OutboundMessage) -> None:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._acks[outbound.client_message_id] = future
        try:
            sent = await self._emit("new_message", {
                "roomId": outbound.room_id,
                "content": outbound.content,
                "sessionId": self.session_id,
                "clientMessageId": outbound.client_message_id,
            })
            if not sent:
                await self._fail(outbound, NOT_CONNECTED_MESSAGE)
                return
            try:
                await asyncio.wait_for(asyncio.shield(future), self._ack_timeout)
            except asyncio.TimeoutError:
                if outbound.status == MessageStatus.PENDING:
                    await self._fail(outbound, NOT_DELIVERED_MESSAGE)
        finally:
            self._acks.pop(outbound.client_message_id, None)

    async def _confirm(self, outbound: OutboundMessage, message: ChatMessage) -> None:
        await super()._confirm(outbound, message)
        future = self._acks.get(outbound.client_message_id)
        if future is not None and not future.done():
            future.set_result(message)

    async def _handle_user_typing(self, data: dict) -> None:
        # Guest sockets signal both start and stop through user_typing
        if data.get("isTyping") is False:
            await self._handle_user_stop_typing(data)
            return
        await super()._handle_user_typing(data)
