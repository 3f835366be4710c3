"""Anonymous chat sessions. None of these calls carry a bearer token."""

from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data, parse_list, raw_data
from mechanicbd.schemas.chat import ChatMessage, ChatRoom, GuestSession, GuestSessionCreate


async def create_session(api: ApiClient, body: GuestSessionCreate) -> tuple[GuestSession, dict]:
    payload = await api.post("/guest/session", body.to_payload(), authenticated=False)
    return parse_data(payload, GuestSession), raw_data(payload)


async def update_session(api: ApiClient, session_id: str, data: dict) -> tuple[GuestSession, dict]:
    payload = await api.put(f"/guest/session/{session_id}", data, authenticated=False)
    return parse_data(payload, GuestSession), raw_data(payload)


async def session_rooms(api: ApiClient, session_id: str) -> list[ChatRoom]:
    payload = await api.get(f"/guest/session/{session_id}/rooms", authenticated=False)
    return parse_list(payload, ChatRoom, "rooms")


async def session_messages(api: ApiClient, session_id: str, room_id: str) -> list[ChatMessage]:
    payload = await api.get(f"/chat/messages/{room_id}", params={"sessionId": session_id}, authenticated=False)
    return parse_list(payload, ChatMessage, "messages")
