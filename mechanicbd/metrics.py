"""Custom Prometheus metrics for the Mechanic BD web frontend."""

from prometheus_client import Counter, Histogram

# Upstream REST API calls
API_CALL_DURATION = Histogram(
    "mechanicbd_web_api_call_duration_seconds",
    "Duration of upstream API calls",
    ["method", "outcome"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)

# Sessions cleared and redirected to /login after a 401/403
AUTH_REDIRECTS = Counter(
    "mechanicbd_web_auth_redirects_total",
    "Sessions cleared after an authentication failure from the API",
    ["status_code"],
)

# Chat outbound messages by final status
CHAT_MESSAGES = Counter(
    "mechanicbd_web_chat_messages_total",
    "Outbound chat messages",
    ["channel", "status"],
)

# Payment wizard stage changes
PAYMENT_WIZARD_TRANSITIONS = Counter(
    "mechanicbd_web_payment_wizard_transitions_total",
    "Payment wizard stage transitions",
    ["from_step", "to_step"],
)

# Search fell back to the built-in sample listings
SEARCH_FALLBACKS = Counter(
    "mechanicbd_web_search_fallbacks_total",
    "Service searches served from the sample dataset after an API failure",
)
