import asyncio

import structlog
from fastapi import APIRouter, Depends, Form, Request, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from mechanicbd.api import chat as chat_api
from mechanicbd.api import guest as guest_api
from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ApiError, FormValidationError
from mechanicbd.auth.session import SessionStore
from mechanicbd.chat.base import BaseChatProvider
from mechanicbd.chat.guest import GuestChatProvider
from mechanicbd.chat.provider import ChatProvider
from mechanicbd.dependencies import get_api, get_session, get_socket_factory
from mechanicbd.schemas.chat import ChatRoom, SupportChatRequest
from mechanicbd.services import forms
from mechanicbd.services.flash import flash
from mechanicbd.templating import error_message, redirect, render
from mechanicbd.utils.rate_limit import FORM_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()

SUPPORT_CATEGORIES = ["general", "booking", "payment", "technical", "other"]

# Close code sent when the socket has neither a signed-in user nor a guest session
WS_UNAUTHORIZED = 4401

UNKNOWN_COMMAND = "Unknown command."


class InvalidCommand(ValueError):
    """A relay command whose fields have the wrong types."""


def _command_page(command: dict) -> int:
    try:
        page = int(command.get("page") or 1)
    except (TypeError, ValueError):
        raise InvalidCommand("page")
    if page < 1:
        raise InvalidCommand("page")
    return page


def _command_send(command: dict) -> tuple[str, str, list[str]]:
    content = command.get("content", "")
    message_type = command.get("messageType", "text")
    attachments = command.get("attachments") or []
    if not isinstance(content, str) or not isinstance(message_type, str):
        raise InvalidCommand("content")
    if not isinstance(attachments, list) or not all(isinstance(a, str) for a in attachments):
        raise InvalidCommand("attachments")
    return content, message_type, attachments


@router.get("/chat")
async def chat_page(
    request: Request,
    room: str = "",
    session: SessionStore = Depends(get_session),
    api: ApiClient = Depends(get_api),
):
    rooms: list[ChatRoom] = []
    error = None
    try:
        if session.is_authenticated:
            rooms = await chat_api.list_rooms(api)
        elif session.guest_session_id:
            rooms = await guest_api.session_rooms(api, session.guest_session_id)
    except ApiError as exc:
        error = exc.message
    return render(request, "chat/chat.html", {
        "rooms": rooms,
        "selected_room": room,
        "guest": session.guest_data,
        "guest_session_id": session.guest_session_id,
        "support_categories": SUPPORT_CATEGORIES,
        "error": error,
    })


@router.post("/chat/guest")
@limiter.limit(FORM_RATE_LIMIT)
async def start_guest_chat(
    request: Request,
    name: str = Form(""),
    phone_number: str = Form("", alias="phoneNumber"),
    email: str = Form(""),
    session: SessionStore = Depends(get_session),
    api: ApiClient = Depends(get_api),
):
    """Open an anonymous chat identity, or update the existing one."""
    try:
        body = forms.guest_form(name, phone_number, email)
        if session.guest_session_id:
            guest, raw = await guest_api.update_session(
                api, session.guest_session_id, body.model_dump(by_alias=True, exclude_none=True)
            )
        else:
            guest, raw = await guest_api.create_session(api, body)
    except (FormValidationError, ApiError) as exc:
        flash(request, error_message(exc), "error")
        return redirect("/chat")

    session.save_guest(guest.session_id, raw)
    logger.info("guest_session_started", session_id=guest.session_id)
    return redirect("/chat")


@router.post("/chat/guest/end")
async def end_guest_chat(request: Request, session: SessionStore = Depends(get_session)):
    session.clear_guest()
    return redirect("/chat")


@router.post("/chat/support")
@limiter.limit(FORM_RATE_LIMIT)
async def open_support_chat(
    request: Request,
    issue: str = Form(""),
    category: str = Form("general"),
    session: SessionStore = Depends(get_session),
    api: ApiClient = Depends(get_api),
):
    issue = issue.strip()
    if not issue:
        flash(request, "Please describe your issue.", "error")
        return redirect("/chat")
    if category not in SUPPORT_CATEGORIES:
        category = "general"
    if not session.is_authenticated and not session.guest_session_id:
        flash(request, "Please log in or start a guest chat first.", "error")
        return redirect("/chat")

    body = SupportChatRequest(
        issue=issue,
        category=category,
        session_id=None if session.is_authenticated else session.guest_session_id,
    )
    try:
        room = await chat_api.create_support_chat(api, body)
    except ApiError as exc:
        flash(request, exc.message, "error")
        return redirect("/chat")

    flash(request, "Support chat created. Our team will reply shortly.")
    return redirect(f"/chat?room={room.room_id}" if room else "/chat")


class ChatRelay:
    """Bridges one browser WebSocket to one chat provider."""

    def __init__(self, websocket: WebSocket, provider: BaseChatProvider):
        self.websocket = websocket
        self.provider = provider
        self._tasks: set[asyncio.Task] = set()
        provider.subscribe(self.push)

    async def push(self, event: str, data: dict) -> None:
        if self.websocket.application_state != WebSocketState.CONNECTED:
            return
        await self.websocket.send_json({"event": event, "data": data})

    async def push_state(self) -> None:
        await self.push("state", self.provider.snapshot())

    async def push_error(self, message: str) -> None:
        await self.push("error", {"message": message})

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(self._guarded(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, coro) -> None:
        try:
            await coro
        except (FormValidationError, ApiError) as exc:
            await self.push_error(error_message(exc))
        except KeyError:
            await self.push_error("Unknown message.")
        except (TypeError, ValueError):
            await self.push_error(UNKNOWN_COMMAND)

    async def handle(self, command: dict) -> None:
        action = command.get("action")
        room_id = command.get("roomId") or ""
        if not isinstance(room_id, str):
            raise InvalidCommand("roomId")
        provider = self.provider

        if action == "join_room" and room_id:
            await provider.join_room(room_id)
            await provider.load_messages(room_id)
            await self.push_state()
        elif action == "leave_room" and room_id:
            await provider.leave_room(room_id)
            await self.push_state()
        elif action == "send":
            # Sends wait for delivery; keep reading commands meanwhile
            self._spawn(provider.send_message(*_command_send(command)))
        elif action == "retry":
            self._spawn(provider.retry(str(command.get("clientMessageId") or "")))
        elif action == "typing_start" and room_id:
            await provider.start_typing(room_id)
        elif action == "typing_stop" and room_id:
            await provider.stop_typing(room_id)
        elif action == "load_messages" and room_id:
            await provider.load_messages(room_id, _command_page(command))
            await self.push_state()
        elif action == "mark_read" and room_id:
            if isinstance(provider, ChatProvider):
                await provider.mark_as_read(room_id)
            else:
                provider.unread.pop(room_id, None)
            await self.push_state()
        else:
            await self.push_error(UNKNOWN_COMMAND)

    async def run(self) -> None:
        try:
            await self.provider.connect()
            await self.push_state()
            while True:
                try:
                    command = await self.websocket.receive_json()
                except ValueError:
                    await self.push_error(UNKNOWN_COMMAND)
                    continue
                if not isinstance(command, dict):
                    await self.push_error(UNKNOWN_COMMAND)
                    continue
                try:
                    await self.handle(command)
                except (FormValidationError, ApiError) as exc:
                    await self.push_error(error_message(exc))
                except InvalidCommand:
                    await self.push_error(UNKNOWN_COMMAND)
        except WebSocketDisconnect:
            pass
        finally:
            self.provider.unsubscribe(self.push)
            for task in list(self._tasks):
                task.cancel()
            await self.provider.disconnect()


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    session: SessionStore = Depends(get_session),
    api: ApiClient = Depends(get_api),
    socket_factory=Depends(get_socket_factory),
):
    """One provider per browser socket, torn down when the socket closes."""
    if session.is_authenticated:
        provider = ChatProvider(api, session, client_factory=socket_factory)
    elif session.guest_session_id:
        provider = GuestChatProvider(api, session.guest_session_id, client_factory=socket_factory)
    else:
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    await websocket.accept()
    relay = ChatRelay(websocket, provider)
    if isinstance(provider, ChatProvider):
        try:
            await provider.load_rooms()
        except ApiError as exc:
            await relay.push_error(exc.message)
    logger.info("chat_socket_opened", channel=provider.channel)
    await relay.run()
    logger.info("chat_socket_closed", channel=provider.channel)
