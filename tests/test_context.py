"""Tests for the dependency bundle."""

from __future__ import annotations

import pytest

from gitlab_portal.accounts.login import LocalLoginManager
from gitlab_portal.config import Config
from gitlab_portal.context import build_context
from gitlab_portal.oauth.manager import OAuthFlowManager


class TestBuildContext:
    """Tests for build_context and the scheme accessors."""

    def test_oauth_context(self, oauth_config: Config) -> None:
        """Test an OAuth deployment has no local account members."""
        context = build_context(oauth_config)

        assert isinstance(context.require_oauth_manager(), OAuthFlowManager)
        with pytest.raises(RuntimeError, match="Local account login"):
            context.require_local_login()
        with pytest.raises(RuntimeError, match="Local accounts"):
            context.require_users()

    def test_local_context(self, local_config: Config) -> None:
        """Test a local deployment has no OAuth manager."""
        context = build_context(local_config)

        assert isinstance(context.require_local_login(), LocalLoginManager)
        assert context.require_users() is context.users
        with pytest.raises(RuntimeError, match="GitLab OAuth"):
            context.require_oauth_manager()
