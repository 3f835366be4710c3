"""Client-side field checks shared by the form screens."""

import re

# Bangladeshi mobile numbers: operator prefix 013-019 followed by 8 digits
BD_PHONE_RE = re.compile(r"^01[3-9]\d{8}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_bd_phone(value: str | None) -> bool:
    return bool(value) and BD_PHONE_RE.match(value) is not None


def is_email(value: str | None) -> bool:
    return bool(value) and EMAIL_RE.match(value) is not None


def is_safe_redirect(target: str | None) -> bool:
    """Only same-site absolute paths are accepted as post-login redirects."""
    return bool(target) and target.startswith("/") and not target.startswith("//")
