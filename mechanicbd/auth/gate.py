"""Role gate for screens.

``evaluate_access`` is the pure decision; ``require_roles`` turns it into a
FastAPI dependency that raises ``GateRedirect`` before any screen code runs.
"""

import enum
from dataclasses import dataclass
from urllib.parse import urlencode

from fastapi import Depends
from starlette.requests import HTTPConnection

from mechanicbd.auth.session import SessionStore
from mechanicbd.dependencies import get_session
from mechanicbd.schemas.user import UserRole

LOGIN_PATH = "/login"

DASHBOARDS = {
    UserRole.CUSTOMER: "/dashboard/customer",
    UserRole.MECHANIC: "/dashboard/mechanic",
    UserRole.ADMIN: "/dashboard/admin",
}


class GateState(str, enum.Enum):
    PENDING = "pending"
    REDIRECT = "redirect"
    ALLOW = "allow"


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    location: str | None = None


class GateRedirect(Exception):
    def __init__(self, location: str):
        self.location = location
        super().__init__(location)


def dashboard_for(role: UserRole | None) -> str:
    return DASHBOARDS.get(role, "/")


def evaluate_access(
    store: SessionStore,
    allowed_roles=None,
    redirect_to: str = LOGIN_PATH,
) -> GateDecision:
    if store.loading:
        return GateDecision(GateState.PENDING)
    if not store.is_authenticated:
        return GateDecision(GateState.REDIRECT, redirect_to)
    if allowed_roles and store.role not in allowed_roles:
        return GateDecision(GateState.REDIRECT, dashboard_for(store.role))
    return GateDecision(GateState.ALLOW)


def require_roles(*roles: UserRole, redirect_to: str = LOGIN_PATH):
    """Dependency factory: pass through for allowed roles, redirect otherwise."""
    allowed = frozenset(roles)

    async def _gate(conn: HTTPConnection, store: SessionStore = Depends(get_session)) -> SessionStore:
        decision = evaluate_access(store, allowed, redirect_to)
        if decision.state == GateState.ALLOW:
            return store
        # A hydrated store is never pending
        location = decision.location or redirect_to
        if not store.is_authenticated and location == LOGIN_PATH:
            location = f"{LOGIN_PATH}?{urlencode({'redirect': conn.url.path})}"
        raise GateRedirect(location)

    return _gate
