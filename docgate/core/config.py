"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List

_DEFAULT_JWT_SECRET = "dev-insecure-key-change-me"


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


class Settings(BaseSettings):
    """
    Application settings with validation.

    Uses Pydantic for configuration validation, preventing
    common security issues like wildcard CORS or default signing keys.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./docgate.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    # Session authentication
    # JWT_SECRET_KEY signs local session tokens. Default is insecure; override in production.
    jwt_secret_key: str = Field(
        default=_DEFAULT_JWT_SECRET,
        description="Session token signing secret (override in production)"
    )
    jwt_algorithm: str = Field(default="HS256")
    session_token_hours: int = Field(
        default=24,
        description="Lifetime of a login session token"
    )
    session_cookie_name: str = Field(
        default="docgate_session",
        description="Cookie carrying the session token for browser redirects (OIDC authorize)"
    )
    login_url: str = Field(
        default="/auth/signin",
        description="Where the authorize endpoint sends callers without a session"
    )

    # OIDC bridge towards the document backend
    # OIDC_ISSUER empty = derive from the request origin.
    oidc_issuer: str = Field(default="", description="Issuer advertised in discovery and tokens")
    oidc_client_id: str = Field(default="mayan-edms", description="The single registered OIDC client")
    oidc_client_secret: str = Field(
        default="",
        description="Client secret checked at the token endpoint (empty = no client authentication)"
    )
    oidc_audience: str = Field(default="mayan-edms", description="aud claim of issued ID tokens")
    oidc_signing_secret: str = Field(
        default="",
        description="HS256 secret for ID tokens (empty = reuse JWT_SECRET_KEY)"
    )
    id_token_ttl_seconds: int = Field(default=3600, ge=60)
    authorization_code_ttl_seconds: int = Field(default=120, ge=10)

    # Document backend
    document_backend_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the document-management backend"
    )

    # Access snapshot freshness advertised to clients of /api/user/access.
    access_snapshot_ttl_seconds: int = Field(default=60, ge=0)

    # Audit Log Retention
    audit_retention_days: int = Field(
        default=365,
        description="Days to keep audit log entries (0 = keep forever)"
    )

    # Rate Limiting (credential endpoints only)
    rate_limit_per_minute: int = Field(
        default=30,
        description="Maximum login/token requests per client per minute"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    @property
    def id_token_secret(self) -> str:
        return self.oidc_signing_secret or self.jwt_secret_key

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        # SECURITY: Prevent wildcard CORS
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('jwt_algorithm')
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        if v != "HS256":
            raise ValueError("Only HS256 is supported")
        return v

    @field_validator('document_backend_url', 'oidc_issuer')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')

    def insecure_settings(self) -> List[str]:
        """Describe every security-relevant setting still at an unsafe value."""
        problems: List[str] = []

        if self.jwt_secret_key == _DEFAULT_JWT_SECRET:
            problems.append(
                "JWT_SECRET_KEY is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )
        if not self.oidc_signing_secret:
            problems.append(
                "OIDC_SIGNING_SECRET is empty; ID tokens are signed with the session key. "
                "HS256 with a shared secret is a stopgap: move to asymmetric keys with rotation."
            )
        if not self.oidc_client_secret:
            problems.append("OIDC_CLIENT_SECRET is empty; the token endpoint does not authenticate its client.")

        origins = self.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            problems.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )
        return problems

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if security-critical settings use insecure defaults.
        In development, main.py logs the same findings as warnings.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors = self.insecure_settings()
        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
