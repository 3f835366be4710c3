from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, parse_list
from mechanicbd.schemas.chat import ChatMessage, ChatRoom, SendMessageRequest, SupportChatRequest


async def list_rooms(api: ApiClient) -> list[ChatRoom]:
    payload = await api.get("/chat/rooms")
    return parse_list(payload, ChatRoom, "rooms")


async def create_room(api: ApiClient, room_data: dict) -> ChatRoom:
    payload = await api.post("/chat/rooms", room_data)
    return parse_data(payload, ChatRoom, "room")


async def room_messages(api: ApiClient, room_id: str, page: int = 1, limit: int = 50) -> list[ChatMessage]:
    payload = await api.get(f"/chat/rooms/{room_id}/messages", params={"page": page, "limit": limit})
    return parse_list(payload, ChatMessage, "messages")


async def send_message(api: ApiClient, room_id: str, body: SendMessageRequest) -> ChatMessage:
    payload = await api.post(f"/chat/rooms/{room_id}/messages", body.to_payload())
    return parse_data(payload, ChatMessage, "message")


async def mark_read(api: ApiClient, room_id: str) -> None:
    await api.patch(f"/chat/rooms/{room_id}/read", {})


async def create_support_chat(api: ApiClient, body: SupportChatRequest) -> ChatRoom | None:
    payload = await api.post("/chat/support", body.to_payload(), authenticated=body.session_id is None)
    data = payload.get("data")
    if isinstance(data, dict) and "room" in data:
        return parse_data(payload, ChatRoom, "room")
    return None
