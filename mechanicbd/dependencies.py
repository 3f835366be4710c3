import httpx
import socketio
import structlog
from fastapi import Depends
from starlette.requests import HTTPConnection

from mechanicbd.api.client import ApiClient, get_http_client
from mechanicbd.auth.session import SessionStore
from mechanicbd.schemas.user import User

logger = structlog.get_logger()


def get_upstream() -> httpx.AsyncClient:
    """The shared upstream HTTP client. Tests override this with a mock transport."""
    return get_http_client()


def get_socket_factory():
    """Factory for chat Socket.IO clients, one per provider."""
    return socketio.AsyncClient


async def get_session(conn: HTTPConnection) -> SessionStore:
    """Hydrate one session store per request (or WebSocket) from the signed cookie."""
    store = getattr(conn.state, "session_store", None)
    if store is None:
        store = SessionStore(conn.session).hydrate()
        conn.state.session_store = store
    return store


async def get_api(
    conn: HTTPConnection,
    session: SessionStore = Depends(get_session),
    http: httpx.AsyncClient = Depends(get_upstream),
) -> ApiClient:
    return ApiClient(http, session, conn.url.path)


async def get_current_user(session: SessionStore = Depends(get_session)) -> User | None:
    """The signed-in user, or None for anonymous visitors."""
    return session.user
