"""Log masking utilities.

Keeps customer emails and phone numbers out of INFO-level logs, which may be
shipped to third-party log aggregators (Sentry, hosted log search).
"""


def mask_email(email: str | None) -> str:
    """Mask an email address for logging: 'user@domain.com' -> 'u***@domain.com'."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.rsplit("@", 1)
    if len(local) <= 1:
        return f"{local}***@{domain}"
    return f"{local[0]}***@{domain}"


def mask_phone(phone: str | None) -> str:
    """Mask a phone number for logging: '01712345678' -> '017*****678'."""
    if not phone or len(phone) < 7:
        return "***"
    return f"{phone[:3]}{'*' * (len(phone) - 6)}{phone[-3:]}"


def mask_identifier(identifier: str | None) -> str:
    """Mask a login identifier, which is either an email or a phone number."""
    if identifier and "@" in identifier:
        return mask_email(identifier)
    return mask_phone(identifier)
