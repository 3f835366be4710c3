"""One-shot messages stored in the session and shown on the next render."""

from starlette.requests import Request

FLASH_KEY = "_flashes"


def flash(request: Request, message: str, category: str = "success") -> None:
    request.session.setdefault(FLASH_KEY, []).append({"message": message, "category": category})


def pop_flashes(request: Request) -> list[dict]:
    if "session" not in request.scope:
        return []
    return request.session.pop(FLASH_KEY, [])
