import time as _time
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from mechanicbd.api.errors import (
    ApiError,
    AuthenticationError,
    BusinessError,
    NetworkError,
    ServerError,
)
from mechanicbd.config import settings
from mechanicbd.metrics import API_CALL_DURATION, AUTH_REDIRECTS

if TYPE_CHECKING:
    from mechanicbd.auth.session import SessionStore

logger = structlog.get_logger()

LOGIN_PATH = "/login"

_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Return the process-wide upstream client, creating it on first use."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            base_url=settings.api_base,
            timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


def _error_message(payload: dict) -> str | None:
    for key in ("message", "error", "detail"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _outcome(status_code: int) -> str:
    if status_code < 400:
        return "ok"
    if status_code in (401, 403):
        return "auth_error"
    if status_code >= 500:
        return "server_error"
    return "client_error"


class ApiClient:
    """Request-scoped wrapper around the shared upstream ``httpx.AsyncClient``.

    Every call gets the bearer token from the session and the client header.
    Responses are normalised: 2xx bodies are returned as dicts, everything
    else becomes an ``ApiError`` subclass. A 401/403 clears the session once
    per client, however many in-flight calls fail with it.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        session: "SessionStore | None" = None,
        current_path: str | None = None,
    ):
        self._http = http
        self._session = session
        self._current_path = current_path
        self._auth_failure_handled = False

    @property
    def on_login_page(self) -> bool:
        return self._current_path == LOGIN_PATH

    def _prepare_headers(self, extra: dict[str, str] | None, authenticated: bool) -> dict[str, str]:
        headers = {settings.CLIENT_HEADER_NAME: settings.CLIENT_HEADER_VALUE}
        token = self._session.token if (authenticated and self._session is not None) else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    def _handle_auth_failure(self, status_code: int) -> None:
        if self._auth_failure_handled:
            return
        self._auth_failure_handled = True
        if self._session is not None:
            self._session.expire()
        if not self.on_login_page:
            AUTH_REDIRECTS.labels(status_code=str(status_code)).inc()
            logger.info("api_auth_failure_session_cleared", status_code=status_code, path=self._current_path)

    def _handle_response(self, method: str, url: str, response: httpx.Response) -> dict:
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"data": payload}

        status_code = response.status_code
        if status_code in (401, 403):
            self._handle_auth_failure(status_code)
            raise AuthenticationError(
                _error_message(payload),
                status_code=status_code,
                payload=payload,
                redirect_to=None if self.on_login_page else LOGIN_PATH,
            )
        if status_code >= 500:
            logger.error("api_server_error", method=method, url=url, status_code=status_code)
            raise ServerError(status_code=status_code, payload=payload)
        if status_code >= 400:
            logger.info("api_request_rejected", method=method, url=url, status_code=status_code)
            raise BusinessError(_error_message(payload), status_code=status_code, payload=payload)
        if payload.get("success") is False:
            raise BusinessError(_error_message(payload), status_code=status_code, payload=payload)
        return payload

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict | None = None,
        headers: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> dict:
        start = _time.monotonic()
        try:
            response = await self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._prepare_headers(headers, authenticated),
            )
        except httpx.TransportError as exc:
            API_CALL_DURATION.labels(method=method, outcome="network_error").observe(_time.monotonic() - start)
            logger.warning("api_network_error", method=method, url=url, error=str(exc))
            raise NetworkError() from exc

        API_CALL_DURATION.labels(method=method, outcome=_outcome(response.status_code)).observe(
            _time.monotonic() - start
        )
        return self._handle_response(method, url, response)

    async def get(self, url: str, **kwargs) -> dict:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, data: Any = None, **kwargs) -> dict:
        return await self.request("POST", url, json=data, **kwargs)

    async def put(self, url: str, data: Any = None, **kwargs) -> dict:
        return await self.request("PUT", url, json=data, **kwargs)

    async def patch(self, url: str, data: Any = None, **kwargs) -> dict:
        return await self.request("PATCH", url, json=data, **kwargs)

    async def delete(self, url: str, **kwargs) -> dict:
        return await self.request("DELETE", url, **kwargs)


__all__ = ["ApiClient", "ApiError", "get_http_client", "close_http_client", "LOGIN_PATH"]
