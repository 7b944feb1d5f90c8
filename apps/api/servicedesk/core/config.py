"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./servicedesk.db"

    # Staff session token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4

    # Customer portal token
    PORTAL_JWT_EXPIRES_HOURS: int = 24

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 60

    LOG_LEVEL: str = "INFO"

    # Attachments
    LOCAL_STORAGE_PATH: str = "/tmp/servicedesk-attachments"
    MAX_ATTACHMENT_BYTES: int = 10 * 1024 * 1024
    MAX_ATTACHMENTS_PER_UPLOAD: int = 5

    # Ticket numbering
    TICKET_NUMBER_PREFIX: str = "TKT-"
    TICKET_NUMBER_WIDTH: int = 6

    # Reject status changes outside the transition graph (off = any -> any)
    TICKET_STRICT_TRANSITIONS: bool = False

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
