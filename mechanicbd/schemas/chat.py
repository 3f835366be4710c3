from pydantic import Field

from mechanicbd.schemas.base import ApiModel


class Sender(ApiModel):
    id: str = Field(default="", alias="_id")
    full_name: str = ""
    role: str = ""


class ChatMessage(ApiModel):
    id: str = Field(default="", alias="_id")
    room_id: str
    sender: Sender | None = None
    content: str
    message_type: str = "text"
    attachments: list[str] = []
    is_read: bool = False
    created_at: str | None = None
    client_message_id: str | None = None


class ChatRoom(ApiModel):
    id: str = Field(default="", alias="_id")
    room_id: str
    room_type: str = "support"
    title: str = ""
    last_message: ChatMessage | None = None
    last_activity: str | None = None
    is_active: bool = True
    participants: list[dict] = []


class GuestSession(ApiModel):
    session_id: str
    name: str
    phone_number: str | None = None
    email: str | None = None


class GuestSessionCreate(ApiModel):
    name: str
    phone_number: str | None = None
    email: str | None = None


class SupportChatRequest(ApiModel):
    issue: str
    category: str = "general"
    session_id: str | None = None


class SendMessageRequest(ApiModel):
    content: str
    message_type: str = "text"
    attachments: list[str] = []
    client_message_id: str
