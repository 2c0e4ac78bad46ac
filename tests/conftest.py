"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from gitlab_portal.config import AuthScheme, Config, Environment, LogLevel


@pytest.fixture
def oauth_config() -> Config:
    """Create a GitLab OAuth configuration for testing."""
    return Config(
        app_name="Portal Test",
        gitlab_url="https://gitlab.example.com",
        oauth_client_id="test-client-id",
        oauth_client_secret="test-client-secret",
        oauth_redirect_uri="http://localhost:8000/account/auth/gitlab",
    )


@pytest.fixture
def local_config() -> Config:
    """Create a local-accounts configuration for testing."""
    return Config(
        app_name="Portal Test",
        auth_scheme=AuthScheme.LOCAL,
    )


@pytest.fixture
def dev_config() -> Config:
    """Create a development configuration for testing."""
    return Config(
        app_name="Portal Dev",
        log_level=LogLevel.DEBUG,
        environment=Environment.DEV,
        auth_scheme=AuthScheme.LOCAL,
        host="127.0.0.1",
        port=8080,
    )
