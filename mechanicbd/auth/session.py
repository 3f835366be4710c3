"""Per-request view over the signed session cookie.

The cookie carries the same keys the browser app kept in local storage:
``token``, ``user`` (JSON), ``role`` for signed-in users and
``guestSessionId`` / ``guestData`` for anonymous chat.
"""

import json
from collections.abc import MutableMapping

import structlog
from pydantic import ValidationError

from mechanicbd.schemas.user import User, UserRole

logger = structlog.get_logger()

TOKEN_KEY = "token"
USER_KEY = "user"
ROLE_KEY = "role"
GUEST_SESSION_KEY = "guestSessionId"
GUEST_DATA_KEY = "guestData"

AUTH_KEYS = (TOKEN_KEY, USER_KEY, ROLE_KEY)


class InvalidUserData(ValueError):
    """The user object has no recognised role or is otherwise malformed."""


def _parse_user(raw) -> User | None:
    if raw is None:
        return None
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        return User.model_validate(data)
    except (ValueError, TypeError, ValidationError):
        return None


class SessionStore:
    def __init__(self, storage: MutableMapping):
        self._storage = storage
        self._user: User | None = None
        self._loading = True
        self.expired = False

    @property
    def loading(self) -> bool:
        return self._loading

    def hydrate(self) -> "SessionStore":
        """Read token/user/role from storage, wiping them if the user is invalid."""
        token = self._storage.get(TOKEN_KEY)
        raw_user = self._storage.get(USER_KEY)
        if token and raw_user is not None:
            user = _parse_user(raw_user)
            if user is None:
                logger.warning("session_user_invalid_cleared")
                self._clear_auth()
            else:
                self._user = user
                if self._storage.get(ROLE_KEY) != user.role.value:
                    self._storage[ROLE_KEY] = user.role.value
        elif token or raw_user is not None:
            # Half-written session
            self._clear_auth()
        self._loading = False
        return self

    def login(self, token: str, user: dict | User) -> User:
        parsed = user if isinstance(user, User) else _parse_user(user)
        if not token or parsed is None:
            self._clear_auth()
            self._loading = False
            raise InvalidUserData("User data is missing a valid role")
        self._storage[TOKEN_KEY] = token
        self._storage[USER_KEY] = parsed.model_dump_json(by_alias=True)
        self._storage[ROLE_KEY] = parsed.role.value
        self._user = parsed
        self._loading = False
        return parsed

    def refresh_user(self, user: dict | User) -> User:
        """Replace the stored user after a profile edit, keeping the token."""
        return self.login(self.token or "", user)

    def logout(self) -> None:
        self._clear_auth()

    def expire(self) -> None:
        """Log out because the API rejected the token."""
        self._clear_auth()
        self.expired = True

    def _clear_auth(self) -> None:
        for key in AUTH_KEYS:
            self._storage.pop(key, None)
        self._user = None

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def token(self) -> str | None:
        if self._user is None:
            return None
        return self._storage.get(TOKEN_KEY)

    @property
    def role(self) -> UserRole | None:
        return self._user.role if self._user else None

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    # Guest chat identity

    @property
    def guest_session_id(self) -> str | None:
        return self._storage.get(GUEST_SESSION_KEY)

    @property
    def guest_data(self) -> dict | None:
        raw = self._storage.get(GUEST_DATA_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def save_guest(self, session_id: str, data: dict) -> None:
        self._storage[GUEST_SESSION_KEY] = session_id
        self._storage[GUEST_DATA_KEY] = json.dumps(data)

    def clear_guest(self) -> None:
        self._storage.pop(GUEST_SESSION_KEY, None)
        self._storage.pop(GUEST_DATA_KEY, None)
