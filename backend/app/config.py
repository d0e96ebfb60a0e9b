"""
Recipe Manager Media Backend — Application Configuration
=========================================================

What:  Upload limits, storage location, URL host selection, token settings,
       retention and cache knobs, read from the environment.
Why:   An out-of-range size cap or log level fails at import time rather
       than on the first upload.
How:   A pydantic-settings model (env vars or .env) exposed as the
       module-level `settings` instance.
When:  Loaded once at import; production secrets are checked in lifespan.

Environment selection:
    ENVIRONMENT=production  → asset URLs use https://{PUBLIC_HOST}:{BACKEND_PORT}
    anything else           → asset URLs use http://localhost:{BACKEND_PORT}
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEV_JWT_SECRET = "dev-only-secret-change-me-in-production-please"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development.
    Production deployments MUST override JWT_SECRET and PUBLIC_HOST.
    """

    # ── Deployment ────────────────────────────────────────────────────────
    environment: str = Field(default="development")

    # ── Upload Storage ────────────────────────────────────────────────────
    # Flat directory holding every derived asset; created on first use
    upload_dir: str = Field(default="./uploads")

    # Default: 10MB = 10 * 1024 * 1024 = 10485760
    # Valid range: 1MB to 50MB
    max_file_size: int = Field(default=10_485_760, ge=1_048_576, le=52_428_800)

    # Comma-separated MIME allow-list (parsed by property below)
    allowed_file_types: str = Field(default="image/jpeg,image/png,image/webp")

    # ── Server ────────────────────────────────────────────────────────────
    public_host: str = Field(default="localhost")
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=3001, ge=1024, le=65535)

    # ── Authentication ────────────────────────────────────────────────────
    jwt_secret: str = Field(default=DEV_JWT_SECRET, min_length=32)
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=15, ge=1, le=60 * 24 * 30)

    # ── Retention ─────────────────────────────────────────────────────────
    # Startup sweep removes files older than this many days
    retention_days: int = Field(default=30, ge=1, le=3650)
    # 0 = sweep at startup only; >0 = also sweep every N hours in-process
    retention_interval_hours: int = Field(default=0, ge=0, le=24 * 30)

    # ── Response Cache ────────────────────────────────────────────────────
    # Seconds a cached GET response stays fresh; 0 disables caching
    response_cache_ttl: int = Field(default=300, ge=0, le=86400)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:5173")

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")

    # ── Rate Limiting (upload routes) ─────────────────────────────────────
    rate_limit_requests: int = Field(default=50, ge=1, le=10000)
    rate_limit_window: int = Field(default=900, ge=1, le=86400)  # seconds

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Restricts ENVIRONMENT to the three deployment modes we know about."""
        valid = {"development", "production", "test"}
        lower = v.lower()
        if lower not in valid:
            raise ValueError(f"Invalid environment '{v}'. Must be one of: {valid}")
        return lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @property
    def allowed_file_types_list(self) -> List[str]:
        return [t.strip() for t in self.allowed_file_types.split(",") if t.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def public_base_url(self) -> str:
        """
        What:  Scheme, host and port prefixed to every asset URL.
        How:   Production serves over HTTPS on the configured public hostname;
               every other environment uses plain HTTP on localhost.
        """
        protocol = "https" if self.is_production else "http"
        hostname = self.public_host if self.is_production else "localhost"
        return f"{protocol}://{hostname}:{self.backend_port}"

    @property
    def cache_enabled(self) -> bool:
        # Caching hides changes while debugging, so development skips it
        return self.response_cache_ttl > 0 and self.environment != "development"

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that security-sensitive settings are configured.
        When:  Called during app startup (lifespan).
        Raises: ValueError listing every problem found.
        """
        errors = []
        if self.is_production and self.jwt_secret == DEV_JWT_SECRET:
            errors.append("JWT_SECRET is still the development placeholder.")
        if self.is_production and self.public_host == "localhost":
            errors.append("PUBLIC_HOST must be set to the public hostname in production.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


settings = Settings()
