"""
Configuration management for the session store service.

This module provides centralized configuration loading and validation using
Pydantic settings. Secrets (cookie signing and encryption keys) are loaded
from environment variables or .env files, with environment-specific files
(.env.development, .env.staging, .env.production) layered over the base .env.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from session.codec import KeyPair, key_pairs_from
from session.models import Options
from session.serializers import SERIALIZERS

# Redis URL used in development when none is configured
DEFAULT_DEVELOPMENT_REDIS_URL = "redis://localhost:6379/0"


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the list of .env files to load for the given environment.

    Files are loaded in order, with later files overriding earlier ones.

    Args:
        environment: The target environment.

    Returns:
        Tuple of .env file paths to load.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    env_specific_file = env_file_map.get(environment, ".env.development")

    return (".env", env_specific_file)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    List values (signing keys, encryption keys, CORS origins) are given as
    JSON arrays, e.g. ``SESSION_SECRET_KEYS='["new-key", "old-key"]'``.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Redis Configuration
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for session storage"
    )
    session_operation_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Timeout applied to each Redis call, unbounded when unset"
    )

    # Session Store Configuration
    session_key_prefix: str = Field(
        default="session_",
        description="Namespace prepended to session ids to form Redis keys"
    )
    session_max_length: int = Field(
        default=4096,
        ge=0,
        description="Maximum serialized session size in bytes, 0 for unbounded"
    )
    session_serializer: str = Field(
        default="json",
        description="Session value serializer: 'json' or 'pickle'"
    )
    session_secret_keys: List[str] = Field(
        ...,
        description="Cookie signing keys, newest first"
    )
    session_encryption_keys: List[str] = Field(
        default_factory=list,
        description="Cookie encryption keys paired by index with the signing keys"
    )
    session_codec_max_age: Optional[int] = Field(
        default=None,
        gt=0,
        description="Seconds a signed cookie value stays valid (30 days when unset)"
    )

    # Session Cookie Configuration
    session_cookie_name: str = Field(
        default="session",
        description="Name of the session cookie"
    )
    session_max_age: int = Field(
        default=4096,
        description="Session lifetime in seconds; also the Redis TTL"
    )
    session_cookie_path: str = Field(default="/", description="Session cookie path")
    session_cookie_domain: Optional[str] = Field(
        default=None,
        description="Session cookie domain"
    )
    session_cookie_secure: bool = Field(
        default=False,
        description="Send the session cookie over HTTPS only"
    )
    session_cookie_http_only: bool = Field(
        default=True,
        description="Hide the session cookie from client-side scripts"
    )
    session_cookie_same_site: Optional[str] = Field(
        default="lax",
        description="SameSite attribute: 'lax', 'strict' or 'none'"
    )

    # Administration
    session_admin_token: Optional[str] = Field(
        default=None,
        description="Token expected in X-Admin-Token; admin endpoints are refused when unset"
    )

    # Observability Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that redis_url uses a Redis scheme."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("redis_url must start with redis://, rediss:// or unix://")
        return v

    @field_validator("session_secret_keys")
    @classmethod
    def validate_session_secret_keys(cls, v: List[str]) -> List[str]:
        """Validate that at least one non-empty signing key is configured."""
        keys = [key.strip() for key in v]
        if not keys:
            raise ValueError("session_secret_keys needs at least one key")
        if any(not key for key in keys):
            raise ValueError("session_secret_keys cannot contain empty keys")
        return keys

    @field_validator("session_serializer")
    @classmethod
    def validate_session_serializer(cls, v: str) -> str:
        """Validate that session_serializer names a known serializer."""
        v = v.strip().lower()
        if v not in SERIALIZERS:
            raise ValueError(
                f"session_serializer must be one of: {', '.join(sorted(SERIALIZERS))}"
            )
        return v

    @field_validator("session_cookie_same_site")
    @classmethod
    def validate_session_cookie_same_site(cls, v: Optional[str]) -> Optional[str]:
        """Validate the SameSite attribute value."""
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if v not in {"lax", "strict", "none"}:
            raise ValueError("session_cookie_same_site must be 'lax', 'strict' or 'none'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins format and reject wildcard patterns."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if origin == "*" or "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}. "
                    "Specify exact frontend domains for security."
                )
            if not (origin.startswith("http://") or origin.startswith("https://")):
                raise ValueError(
                    f"Invalid CORS origin format: {origin}. "
                    "Must start with http:// or https://"
                )
            validated_origins.append(origin)
        return validated_origins

    @model_validator(mode="after")
    def validate_session_store_config(self) -> "Settings":
        """Validate Redis and key configuration across fields."""
        if not self.redis_url and self.environment != Environment.DEVELOPMENT:
            raise ValueError("redis_url is required in non-development environments")
        if len(self.session_encryption_keys) > len(self.session_secret_keys):
            raise ValueError(
                "session_encryption_keys cannot outnumber session_secret_keys"
            )
        return self

    @property
    def effective_redis_url(self) -> str:
        """Redis URL to connect to, falling back to localhost in development."""
        return self.redis_url or DEFAULT_DEVELOPMENT_REDIS_URL

    def session_key_pairs(self) -> List[KeyPair]:
        """Build the cookie codec key pairs, newest first."""
        keys: List[str] = []
        for i, secret in enumerate(self.session_secret_keys):
            block = self.session_encryption_keys[i] if i < len(self.session_encryption_keys) else ""
            keys.extend([secret, block])
        return key_pairs_from(*keys)

    def session_options(self) -> Options:
        """Build the default session options."""
        return Options(
            path=self.session_cookie_path,
            domain=self.session_cookie_domain,
            max_age=self.session_max_age,
            secure=self.session_cookie_secure,
            http_only=self.session_cookie_http_only,
            same_site=self.session_cookie_same_site,
        )


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Factory function to create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected from
                    ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the specified environment.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()]
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        # Extract field-level errors from Pydantic ValidationError
        if hasattr(e, 'errors'):
            for error in e.errors():
                field_name = '.'.join(str(loc) for loc in error.get('loc', []))
                error_type = error.get('type', '')
                error_msg = error.get('msg', str(error))

                if error_type == 'missing':
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name or "settings"] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The validated application settings.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Mostly useful for tests that reload settings with different environment
    variables.
    """
    global _settings_cache
    _settings_cache = None


def validate_startup() -> None:
    """
    Validate cross-cutting settings at application startup.

    Raises:
        ConfigurationError: If any setting is unsafe for the environment.
    """
    settings = get_settings()
    validation_errors = {}

    if settings.session_cookie_same_site == "none" and not settings.session_cookie_secure:
        validation_errors["session_cookie_same_site"] = (
            "SameSite=None cookies must also be Secure"
        )

    if settings.environment == Environment.PRODUCTION:
        if not settings.session_cookie_secure:
            validation_errors["session_cookie_secure"] = (
                "Production environment requires secure session cookies"
            )
        if settings.session_max_length == 0:
            validation_errors["session_max_length"] = (
                "Production environment requires a bounded session size"
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
