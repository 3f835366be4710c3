from starlette.requests import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

import os

from mechanicbd.config import settings


def get_real_ip(request: Request) -> str:
    """Extract the real client IP, respecting TRUSTED_PROXY_COUNT.

    When TRUSTED_PROXY_COUNT is 0 (default), ignore X-Forwarded-For entirely
    and use the direct connection IP. When > 0, pick the IP at position
    len(ips) - trusted_proxy_count from X-Forwarded-For to prevent spoofing.
    """
    trusted_proxy_count = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))
    if trusted_proxy_count > 0:
        forwarded = request.headers.get("X-Forwarded-For", "")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]
            index = max(0, len(ips) - trusted_proxy_count)
            return ips[index]
    return get_remote_address(request)


_is_dev = settings.APP_ENV == "development"

limiter = Limiter(
    key_func=get_real_ip,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    default_limits=["300/minute" if _is_dev else "120/minute"],
)

# Per-endpoint limits for form posts that hit the upstream API
AUTH_RATE_LIMIT = "30/minute" if _is_dev else "5/minute"
FORM_RATE_LIMIT = "30/minute" if _is_dev else "10/minute"
# Typeahead fires on keystrokes (debounced), so it gets a wider budget
SUGGESTIONS_RATE_LIMIT = "240/minute" if _is_dev else "90/minute"
