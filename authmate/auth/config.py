"""
Web authentication configuration.
"""

import os
from functools import lru_cache


class AuthConfig:
    """Configuration for the authentication module.

    Required environment variables:
    - BASE_URL: public URL of this service

    Optional:
    - AUTHMATE_TOKEN_MINUTES: session lifetime (default 30)
    - AUTHMATE_ADMIN_EMAIL: email invited to the application at startup
    """

    def __init__(self):
        self.base_url = os.getenv("BASE_URL", "")
        self.admin_email = os.getenv("AUTHMATE_ADMIN_EMAIL")
        self.session_cookie_name = "session"
        # Cookie lives as long as the bearer token inside it
        self.session_cookie_max_age = int(os.getenv("AUTHMATE_TOKEN_MINUTES", "30")) * 60
        self.login_path = "/login"
        self.default_return_path = "/dashboard"

    @property
    def secure_cookies(self) -> bool:
        return self.base_url.startswith("https")

    def safe_return_path(self, return_url: str | None) -> str:
        """Only same-site paths are followed after a flow; anything else goes to the default."""
        if not return_url or not return_url.startswith("/") or return_url.startswith("//"):
            return self.default_return_path
        if "\\" in return_url:
            return self.default_return_path
        return return_url

    def login_error_url(self, error: str) -> str:
        return f"{self.login_path}?error={error}"

    def validate(self) -> None:
        """Validate required configuration. Call at startup to fail fast."""
        if not self.base_url:
            raise ValueError("BASE_URL environment variable is required")


@lru_cache()
def get_auth_config() -> AuthConfig:
    """Get authentication configuration (singleton)."""
    return AuthConfig()
