"""Error types raised by the upstream API client.

Screens catch ``ApiError`` and show ``message``; the subclasses let callers
branch on the failure kind without probing status codes or payload fields.
"""

NETWORK_ERROR_MESSAGE = "Unable to reach the server. Please check your connection and try again."
SERVER_ERROR_MESSAGE = "Something went wrong on our side. Please try again later."
AUTH_ERROR_MESSAGE = "Your session has expired. Please log in again."
SHAPE_ERROR_MESSAGE = "Unexpected response from the server. Please try again later."
DEFAULT_REQUEST_ERROR_MESSAGE = "Request failed. Please check your input and try again."


class ApiError(Exception):
    """Base class for all upstream API failures."""

    default_message = DEFAULT_REQUEST_ERROR_MESSAGE

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        payload: dict | None = None,
    ):
        self.message = message or self.default_message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(self.message)


class NetworkError(ApiError):
    """No response was received (connection refused, DNS, timeout)."""

    default_message = NETWORK_ERROR_MESSAGE


class AuthenticationError(ApiError):
    """The API rejected the credentials (401) or the role (403).

    The session has already been cleared by the time this is raised.
    """

    default_message = AUTH_ERROR_MESSAGE

    def __init__(self, message: str | None = None, status_code: int | None = None,
                 payload: dict | None = None, redirect_to: str | None = "/login"):
        super().__init__(message, status_code, payload)
        self.redirect_to = redirect_to


class ServerError(ApiError):
    """The API answered with a 5xx."""

    default_message = SERVER_ERROR_MESSAGE


class BusinessError(ApiError):
    """A 4xx carrying a server-provided message, surfaced verbatim."""


class ResponseShapeError(ApiError):
    """A 2xx whose body does not match the expected model."""

    default_message = SHAPE_ERROR_MESSAGE


class FormValidationError(Exception):
    """Client-side validation failed; no request was sent."""

    def __init__(self, message: str, field: str | None = None):
        self.message = message
        self.field = field
        super().__init__(message)
