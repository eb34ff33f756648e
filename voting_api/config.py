"""Configuration management for the student voting API."""
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

# Shipped default; sessions stay disabled until it is replaced
INSECURE_SESSION_SECRET = "change-me-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Service configuration
    SERVICE_NAME: str = "student-voting-api"
    API_VERSION: str = "v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Storage backend: "postgres" for deployments, "memory" for local runs
    STORAGE_BACKEND: Literal["postgres", "memory"] = "postgres"

    # PostgreSQL configuration
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "student_voting"
    POSTGRES_USER: str = "voting_user"
    POSTGRES_PASSWORD: str = "voting_pass"
    POSTGRES_POOL_MIN_SIZE: int = 2
    POSTGRES_POOL_MAX_SIZE: int = 10
    POSTGRES_COMMAND_TIMEOUT: float = 30.0

    # Eligibility gate
    ELIGIBLE_EMAIL_DOMAIN: str = "nsut.ac.in"
    ACCEPTED_EMAILS_PATH: str = "public/acceptedEmail.json"

    # Google sign-in
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CERTS_URL: str = "https://www.googleapis.com/oauth2/v3/certs"
    GOOGLE_ISSUERS: list[str] = ["accounts.google.com", "https://accounts.google.com"]
    GOOGLE_CERTS_CACHE_SECONDS: int = 3600

    # Session tokens
    SESSION_SECRET: str = INSECURE_SESSION_SECRET
    SESSION_ALGORITHM: str = "HS256"
    SESSION_TTL_HOURS: int = 24

    # Administrative operations are disabled while unset
    ADMIN_TOKEN: Optional[str] = None

    # Live results
    LIVE_STREAM_INTERVAL_SECONDS: float = 3.0
    LIVE_RECENT_WINDOW_SECONDS: int = 300

    # Rate limiting
    VOTE_RATE_LIMIT: str = "30/minute"

    # CORS settings
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    @property
    def postgres_dsn(self) -> str:
        """Generate PostgreSQL connection string."""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def sessions_configured(self) -> bool:
        """True once SESSION_SECRET holds a private value."""
        return bool(self.SESSION_SECRET) and self.SESSION_SECRET != INSECURE_SESSION_SECRET


settings = Settings()
