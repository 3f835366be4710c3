from mechanicbd.api.client import ApiClient
from mechanicbd.api.errors import ResponseShapeError
from mechanicbd.schemas.user import AuthResult, LoginRequest, PasswordUpdateRequest, RegisterRequest


def _auth_result(payload: dict) -> AuthResult:
    # The token sits beside the envelope, the user inside it
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    token = payload.get("token") or data.get("token")
    user = data.get("user")
    if not token or not isinstance(user, dict):
        raise ResponseShapeError(payload=payload)
    return AuthResult(token=token, user=user)


async def login(api: ApiClient, body: LoginRequest) -> AuthResult:
    payload = await api.post("/auth/login", body.to_payload(), authenticated=False)
    return _auth_result(payload)


async def register(api: ApiClient, body: RegisterRequest) -> AuthResult:
    payload = await api.post("/auth/register", body.to_payload(), authenticated=False)
    return _auth_result(payload)


async def update_password(api: ApiClient, body: PasswordUpdateRequest) -> None:
    await api.put("/auth/update-password", body.to_payload())
