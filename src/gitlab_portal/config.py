"""Settings for GitLab Portal.

Values come from CLI flags, ``GITLAB_PORTAL_*`` environment variables
(a ``.env`` file is honoured), an optional JSON/YAML file and the model
defaults, in that order of precedence.
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from gitlab_portal.security import redact

logger = logging.getLogger(__name__)

ENV_PREFIX = "GITLAB_PORTAL_"


class ConfigError(Exception):
    """Raised when configuration validation fails."""


class LogLevel(str, Enum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Environment(str, Enum):
    """Deployment environments."""

    LOCAL = "local"
    DEV = "dev"
    STAGE = "stage"
    PROD = "prod"


class AuthScheme(str, Enum):
    """Authentication scheme active for a deployment."""

    OAUTH = "oauth"
    LOCAL = "local"


class Config(BaseModel):
    """Runtime settings for the portal.

    The model validates the OAuth fields only when auth_scheme is
    OAuth; see load_config for where the values come from.
    """

    # Core settings
    app_name: str = Field(default="GitLab Portal", description="Application name")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    environment: Environment = Field(
        default=Environment.LOCAL, description="Deployment environment"
    )

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server bind host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server bind port")
    base_url: str = Field(default="/", description="Base URL the app is mounted under")

    auth_scheme: AuthScheme = Field(
        default=AuthScheme.OAUTH, description="Authentication scheme for this deployment"
    )

    # GitLab settings
    gitlab_url: str = Field(
        default="https://gitlab.com", description="GitLab instance base URL"
    )
    http_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for upstream requests"
    )

    # OAuth 2.0 (Authorization Code)
    oauth_client_id: str | None = Field(default=None, description="OAuth application id")
    oauth_client_secret: SecretStr | None = Field(
        default=None, description="OAuth application secret"
    )
    oauth_redirect_uri: str | None = Field(
        default=None, description="OAuth callback/redirect URI"
    )
    oauth_scope: str = Field(
        default="read_api read_user", description="OAuth scopes (space-separated)"
    )

    # Sessions
    session_cookie_name: str = Field(default="session_id", description="Session cookie name")
    session_timeout_seconds: int = Field(
        default=86400, ge=60, description="Idle timeout for sessions"
    )
    session_store_path: str | None = Field(
        default=None, description="Path for persistent, encrypted session storage"
    )
    session_encryption_key: SecretStr | None = Field(
        default=None, description="Fernet encryption key for session storage"
    )

    # Document storage
    snippet_store_path: str | None = Field(
        default=None, description="Path of the snippet document file"
    )
    user_store_path: str | None = Field(
        default=None, description="Path of the local user document file"
    )

    model_config = {
        "extra": "ignore",
        "validate_assignment": True,
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("environment", "auth_scheme", mode="before")
    @classmethod
    def normalize_lowercase(cls, v: Any) -> Any:
        """Normalize enum strings to lowercase."""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("gitlab_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_oauth(self) -> Config:
        """Validate OAuth configuration for the oauth scheme."""
        if self.auth_scheme == AuthScheme.OAUTH:
            required_fields = [
                ("oauth_client_id", self.oauth_client_id),
                ("oauth_client_secret", self.oauth_client_secret),
                ("oauth_redirect_uri", self.oauth_redirect_uri),
            ]
            missing = [name for name, value in required_fields if not value]
            if missing:
                msg = (
                    f"OAuth authentication is enabled but missing required fields: "
                    f"{', '.join(missing)}"
                )
                raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_session_store(self) -> Config:
        """Validate session store configuration."""
        if self.session_store_path and not self.session_encryption_key:
            msg = "session_encryption_key is required when session_store_path is set"
            raise ValueError(msg)
        return self

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.gitlab_url}/oauth/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.gitlab_url}/oauth/token"

    @property
    def userinfo_endpoint(self) -> str:
        return f"{self.gitlab_url}/api/v4/user"


def _env_overrides(prefix: str = ENV_PREFIX) -> dict[str, str]:
    """Collect ``GITLAB_PORTAL_<FIELD>`` variables; pydantic coerces the strings."""
    overrides: dict[str, str] = {}
    for field_name in Config.model_fields:
        value = os.environ.get(f"{prefix}{field_name.upper()}")
        if value is not None:
            overrides[field_name] = value
    return overrides


def _file_overrides(path: str | Path) -> dict[str, Any]:
    """Read a JSON or YAML settings file.

    Raises:
        ConfigError: If the file is missing, unsupported or not a mapping
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text()

    if suffix == ".json":
        data = json.loads(text)
    elif suffix in (".yaml", ".yml"):
        import yaml

        data = yaml.safe_load(text) or {}
    else:
        raise ConfigError(f"Unsupported configuration file format: {suffix}")

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return data


def _redact_for_log(key: str, value: Any) -> str:
    """Redact sensitive values for logging."""
    secret_keys = {"oauth_client_secret", "session_encryption_key"}
    if key in secret_keys:
        return redact(str(value) if value else None)
    return str(value)


def load_config(
    path: str | Path | None = None,
    cli_args: dict[str, Any] | None = None,
) -> Config:
    """Load and validate configuration.

    Precedence (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Configuration file
    4. Model defaults

    Args:
        path: Optional path to configuration file
        cli_args: Optional CLI argument overrides

    Returns:
        Validated Config instance

    Raises:
        ConfigError: If configuration is invalid
    """
    load_dotenv()

    config_dict: dict[str, Any] = {}
    if path:
        logger.debug("Loading configuration from file: %s", path)
        config_dict.update(_file_overrides(path))

    for key, value in _env_overrides().items():
        config_dict[key] = value
        logger.debug("Config %s from environment: %s", key, _redact_for_log(key, value))

    if cli_args:
        for key, value in cli_args.items():
            if value is not None:
                config_dict[key] = value
                logger.debug("Config %s from CLI: %s", key, _redact_for_log(key, value))

    try:
        return Config(**config_dict)
    except Exception as e:
        msg = f"Configuration validation failed: {e}"
        raise ConfigError(msg) from e
