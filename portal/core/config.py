"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    VERSION: str = "0.04.00"

    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///./portal.db"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # Dev-only: every request is treated as an admin session
    AUTH_BYPASS: bool = False

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Linear API
    LINEAR_API_KEY: str = ""
    LINEAR_API_URL: str = "https://api.linear.app/graphql"
    LINEAR_FILE_URL_EXPIRES_IN: int = 300  # Signed upload URLs lifetime (seconds)
    LINEAR_HTTP_TIMEOUT_SECONDS: float = 15.0

    # Linear webhooks
    LINEAR_WEBHOOK_SECRET: str = ""
    WEBHOOK_MAX_SKEW_SECONDS: int = 60
    WEBHOOK_MAX_PAYLOAD_BYTES: int = 1024 * 1024  # 1 MB

    # Read-through caches
    TICKET_CACHE_TTL_SECONDS: float = 30.0
    WORKFLOW_STATE_CACHE_TTL_SECONDS: float = 60.0

    # Activity feed
    ACTIVITY_POLL_INTERVAL_SECONDS: float = 45.0

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 120
    RATE_LIMIT_WEBHOOK: int = 100

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets


settings = Settings()
