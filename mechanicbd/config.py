import warnings

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

_WEAK_SECRETS = {"changeme", "change-me", "secret", "change-this-to-a-long-random-string-in-production"}

_DEFAULT_API_BASE = "http://localhost:5000/api"
_DEV_SOCKET_URL = "http://localhost:5000"
_PROD_SOCKET_URL = "https://mechanicbd-backend.onrender.com"


class Settings(BaseSettings):
    # Upstream REST API origin. The API itself is mounted under /api.
    API_URL: str = ""
    # Upstream Socket.IO origin for chat
    SOCKET_URL: str = ""

    # Public site
    SITE_URL: str = "http://localhost:8000"
    GOOGLE_SITE_VERIFICATION: str = ""

    # Session cookie (holds token / user / role / guest session)
    SESSION_SECRET: str  # Required, no default. Must be set in .env
    SESSION_COOKIE_NAME: str = "mechanicbd_session"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 7

    @field_validator("SESSION_SECRET")
    @classmethod
    def validate_session_secret(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters long")
        if v.lower() in _WEAK_SECRETS:
            raise ValueError("SESSION_SECRET is using a known weak default, generate a proper random secret")
        return v

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 15.0
    CLIENT_HEADER_NAME: str = "X-Client-App"
    CLIENT_HEADER_VALUE: str = "mechanicbd-web"

    # Chat
    CHAT_ACK_TIMEOUT_SECONDS: float = 10.0
    CHAT_RECONNECTION_ATTEMPTS: int = 5
    CHAT_MESSAGES_PAGE_SIZE: int = 50

    # Search
    SEARCH_PAGE_SIZE: int = 12
    SUGGESTIONS_LIMIT: int = 8

    # Sentry
    SENTRY_DSN: str = ""

    # Metrics
    METRICS_API_KEY: str = ""

    # Rate limiting backend for slowapi ("memory://" or a redis:// URI)
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # App
    APP_ENV: str = "development"

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}, got '{v}'")
        return v

    @field_validator("API_URL", "SOCKET_URL", "SITE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Fail in production for missing endpoints, warn in development."""
        if self.is_production:
            if not self.API_URL:
                raise ValueError("API_URL must be set in production.")
            if not self.SENTRY_DSN:
                raise ValueError(
                    "SENTRY_DSN must be set in production for error monitoring."
                )
        else:
            if not self.API_URL:
                warnings.warn(
                    f"API_URL is empty, using {_DEFAULT_API_BASE}.",
                    stacklevel=2,
                )
        return self

    @property
    def api_base(self) -> str:
        if not self.API_URL:
            return _DEFAULT_API_BASE
        return f"{self.API_URL}/api"

    @property
    def socket_url(self) -> str:
        if self.SOCKET_URL:
            return self.SOCKET_URL
        if self.APP_ENV == "development":
            return _DEV_SOCKET_URL
        return _PROD_SOCKET_URL

    @property
    def is_production(self) -> bool:
        return self.APP_ENV in ("production", "staging")

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
