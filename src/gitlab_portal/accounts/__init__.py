"""Local username/password accounts."""

from gitlab_portal.accounts.login import LocalLoginManager
from gitlab_portal.accounts.users import (
    InMemoryUserRepository,
    JsonFileUserRepository,
    User,
    UserRepository,
    create_user_repository,
)

__all__ = [
    "InMemoryUserRepository",
    "JsonFileUserRepository",
    "LocalLoginManager",
    "User",
    "UserRepository",
    "create_user_repository",
]
