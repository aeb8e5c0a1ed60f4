"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings

from shared.config.constants import DEFAULT_CORS_ORIGINS


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    # Database
    database_url: str = "sqlite:///./table_checkin.db"

    # Redis (token store, active sessions, pub/sub bus)
    redis_url: str = "redis://localhost:6379"
    redis_pool_max_connections: int = 50
    redis_sync_pool_max_connections: int = 20
    redis_socket_timeout: int = 5  # Socket timeout in seconds (connect and read/write)
    redis_max_reconnect_attempts: int = 20  # Subscriber gives up after this many attempts
    redis_max_reconnect_delay: int = 30  # Backoff cap in seconds
    redis_pubsub_cleanup_timeout: float = 5.0

    # QR table check-in
    qr_token_length: int = 24  # ~143 bits of entropy with base62
    qr_token_ttl_seconds: int = 300
    qr_session_ttl_seconds: int = 7200
    qr_bind_to_ip: bool = False
    qr_table_cache_ttl_seconds: int = 300

    # Rate limiting (per client IP, slowapi)
    rate_limit_storage_uri: str = "memory://"
    qr_issue_rate_limit: int = 5
    qr_issue_rate_window: int = 60
    qr_consume_rate_limit: int = 30
    qr_consume_rate_window: int = 60

    # Reverse proxies whose X-Forwarded-For / X-Real-IP are believed.
    # Comma-separated addresses or CIDRs; empty means use the socket peer only
    trusted_proxies: str = ""

    # Rate limiting (per table, Redis counter)
    qr_table_issue_limit: int = 60
    qr_table_issue_window: int = 60

    # Client app, may be a comma-separated list; the first entry builds deep links
    client_url: str = "http://localhost:3001"

    # JWT Configuration (staff/admin bearer tokens, issued elsewhere)
    jwt_secret: str = "dev-secret-change-me-in-production"
    jwt_issuer: str = "cafe-platform"
    jwt_audience: str = "cafe-platform-users"

    # Comma-separated list of allowed origins (empty uses default localhost list)
    allowed_origins: str = ""

    # Server ports
    rest_api_port: int = 8000
    ws_gateway_port: int = 8001

    # Environment
    environment: str = "development"
    debug: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def deep_link_base(self) -> str:
        """First entry of CLIENT_URL, without a trailing slash."""
        return self.client_url.split(",")[0].strip().rstrip("/")

    @property
    def cors_origins(self) -> list[str]:
        """ALLOWED_ORIGINS as a list, or the localhost defaults when unset."""
        if self.allowed_origins:
            return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return list(DEFAULT_CORS_ORIGINS)

    @property
    def trusted_proxy_list(self) -> list[str]:
        return [p.strip() for p in self.trusted_proxies.split(",") if p.strip()]

    def validate_production_secrets(self) -> list[str]:
        """
        Validate that secrets and check-in parameters are sane for production.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        WEAK_SECRETS = {
            "dev-secret-change-me-in-production",
            "secret",
            "password",
            "changeme",
            "default",
        }

        if self.qr_token_length < 16:
            errors.append("QR_TOKEN_LENGTH must be at least 16")
        if self.qr_token_ttl_seconds <= 0:
            errors.append("QR_TOKEN_TTL_SECONDS must be positive")
        if self.qr_session_ttl_seconds <= 0:
            errors.append("QR_SESSION_TTL_SECONDS must be positive")

        if self.is_production:
            if self.jwt_secret in WEAK_SECRETS or len(self.jwt_secret) < 32:
                errors.append(
                    "JWT_SECRET must be at least 32 characters and not a default value in production"
                )

            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed domains)"
                )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()

DATABASE_URL = settings.database_url
JWT_SECRET = settings.jwt_secret
JWT_ISSUER = settings.jwt_issuer
JWT_AUDIENCE = settings.jwt_audience
