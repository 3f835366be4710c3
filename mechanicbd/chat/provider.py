"""Chat for signed-in users: history and sends over REST, live events over Socket.IO."""

import structlog

from mechanicbd.api import chat as chat_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError
from mechanicbd.auth.session import SessionStore
from mechanicbd.chat.base import BaseChatProvider, OutboundMessage
from mechanicbd.config import settings
from mechanicbd.schemas.chat import ChatRoom, SendMessageRequest, SupportChatRequest

logger = structlog.get_logger()


class ChatProvider(BaseChatProvider):
    channel = "user"

    def __init__(self, api: ApiClient, session: SessionStore, **kwargs):
        super().__init__(**kwargs)
        self._api = api
        self._session = session

    def _auth(self) -> dict:
        return {"token": self._session.token}

    async def connect(self) -> bool:
        if not self._session.is_authenticated or not self._session.token:
            return False
        return await super().connect()

    async def _on_connected(self) -> None:
        await self._emit("set_online")

    async def load_rooms(self) -> list[ChatRoom]:
        self.rooms = await chat_api.list_rooms(self._api)
        return self.rooms

    async def load_messages(self, room_id: str, page: int = 1) -> None:
        messages = await chat_api.room_messages(
            self._api, room_id, page=page, limit=settings.CHAT_MESSAGES_PAGE_SIZE
        )
        if self._in_current_room(room_id):
            self.messages = messages if page == 1 else messages + self.messages

    async def mark_as_read(self, room_id: str) -> None:
        await chat_api.mark_read(self._api, room_id)
        self.unread.pop(room_id, None)

    async def create_room(self, room_data: dict) -> ChatRoom:
        room = await chat_api.create_room(self._api, room_data)
        self.rooms.insert(0, room)
        return room

    async def create_support_chat(self, issue: str, category: str = "general") -> ChatRoom | None:
        room = await chat_api.create_support_chat(self._api, SupportChatRequest(issue=issue, category=category))
        if room is not None:
            self.rooms.insert(0, room)
        return room

    async def _deliver(self, outbound: OutboundMessage) -> None:
        body = SendMessageRequest(
            content=outbound.content,
            message_type=outbound.message_type,
            attachments=outbound.attachments,
            client_message_id=outbound.client_message_id,
        )
        try:
            message = await chat_api.send_message(self._api, outbound.room_id, body)
        except ApiError as exc:
            await self._fail(outbound, exc.message)
            return
        await self._confirm(outbound, message)
