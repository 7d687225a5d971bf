# backend/core/config.py
# Hub settings (environment + .env)

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_list(key: str, default: List[int]) -> List[int]:
    value = os.getenv(key)
    if not value:
        return list(default)
    try:
        return [int(v) for v in value.split(",") if v.strip()]
    except ValueError:
        return list(default)


class Settings:
    """Runtime settings, read once at import"""

    def __init__(self):
        # Site
        self.PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN", "amyloid.ca")
        self.BASE_URL = f"https://{self.PRODUCTION_DOMAIN}"
        self.ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # Zoho OAuth / CRM / Campaigns
        self.ZOHO_CLIENT_ID: Optional[str] = os.getenv("ZOHO_CLIENT_ID")
        self.ZOHO_CLIENT_SECRET: Optional[str] = os.getenv("ZOHO_CLIENT_SECRET")
        self.ZOHO_REFRESH_TOKEN: Optional[str] = os.getenv("ZOHO_REFRESH_TOKEN")
        self.ZOHO_AUTH_URL = os.getenv("ZOHO_AUTH_URL", "https://accounts.zoho.com")
        self.ZOHO_API_BASE_URL = os.getenv("ZOHO_API_BASE_URL", "https://www.zohoapis.com/crm/v2")
        self.ZOHO_CAMPAIGNS_URL = os.getenv("ZOHO_CAMPAIGNS_URL", "https://campaigns.zoho.com/api/v1.1")
        self.ZOHO_ORG_ID: Optional[str] = os.getenv("ZOHO_ORG_ID")
        self.ZOHO_REDIRECT_URI = os.getenv(
            "ZOHO_REDIRECT_URI",
            f"{self.BASE_URL}/api/zoho/callback" if self.is_production
            else "http://localhost:5000/api/zoho/callback"
        )
        self.NEWSLETTER_LIST_KEY: Optional[str] = os.getenv("NEWSLETTER_LIST_KEY")

        # OAuth proxy
        self.OAUTH_PROXY_ENABLED = _env_bool("OAUTH_PROXY_ENABLED", False)
        self.OAUTH_BACKEND_HOST = os.getenv("OAUTH_BACKEND_HOST", "localhost")
        self.OAUTH_BACKEND_PORT = os.getenv("OAUTH_BACKEND_PORT", "5000")
        self.OAUTH_BACKEND_PROTOCOL = os.getenv("OAUTH_BACKEND_PROTOCOL", "http")

        # Auth
        self.SECRET_KEY = os.getenv("CAS_SECRET_KEY", "cas_dev_secret_key_change_in_production")
        self.AUTOMATION_API_KEY = os.getenv("AUTOMATION_API_KEY", "dev-automation-key-change-in-production")
        self.ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
        self.ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

        # Tuning
        self.FORM_CONFIG_CACHE_SECONDS = _env_int("FORM_CONFIG_CACHE_SECONDS", 300)
        self.TOKEN_REFRESH_BUFFER_SECONDS = _env_int("TOKEN_REFRESH_BUFFER_SECONDS", 300)
        self.RETRY_MAX_ATTEMPTS = _env_int("RETRY_MAX_ATTEMPTS", 3)
        self.RETRY_DELAYS_SECONDS = _env_list("RETRY_DELAYS_SECONDS", [5, 15, 60])
        self.CONTACT_RATE_LIMIT = _env_int("CONTACT_RATE_LIMIT", 3)
        self.CONTACT_RATE_WINDOW_SECONDS = _env_int("CONTACT_RATE_WINDOW_SECONDS", 3600)

    @property
    def is_production(self) -> bool:
        return os.getenv("ENVIRONMENT", "development") == "production"

    @property
    def oauth_backend_url(self) -> str:
        return f"{self.OAUTH_BACKEND_PROTOCOL}://{self.OAUTH_BACKEND_HOST}:{self.OAUTH_BACKEND_PORT}"

    @property
    def api_base_url(self) -> str:
        return f"{self.BASE_URL}/api"

    def zoho_configured(self) -> bool:
        return bool(self.ZOHO_CLIENT_ID and self.ZOHO_CLIENT_SECRET and self.ZOHO_REFRESH_TOKEN)


settings = Settings()
