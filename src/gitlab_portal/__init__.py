"""GitLab Portal.

GitLab OAuth login, a thin proxy over the GitLab REST/GraphQL API and
user-owned text snippets.
"""

__version__ = "0.1.0"

from gitlab_portal.config import Config, ConfigError, load_config
from gitlab_portal.web import create_web_app

__all__ = [
    "Config",
    "ConfigError",
    "__version__",
    "create_web_app",
    "load_config",
]
