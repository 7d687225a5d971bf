# backend/crm/token_manager.py
# Zoho OAuth access-token cache + refresh

import asyncio
import time
from typing import Dict, Optional
from urllib.parse import urlencode

import httpx

from core import settings as default_settings, get_logger, TokenError, ConfigurationError
from core.config import Settings

logger = get_logger("ZohoTokenManager")

SCOPE = "ZohoCRM.modules.leads.ALL,ZohoCRM.settings.fields.ALL"


class ZohoTokenManager:
    """Hands out a valid access token, refreshing at most once at a time"""

    def __init__(self, config: Settings = None, transport: httpx.AsyncBaseTransport = None):
        self.config = config or default_settings
        self.transport = transport
        self.access_token: Optional[str] = None
        self.token_expiry: Optional[float] = None
        self._lock = asyncio.Lock()

        missing = [k for k in ("ZOHO_CLIENT_ID", "ZOHO_CLIENT_SECRET") if not getattr(self.config, k)]
        if missing:
            logger.warning(f"Missing credentials: {', '.join(missing)}")

    @property
    def token_endpoint(self) -> str:
        return f"{self.config.ZOHO_AUTH_URL}/oauth/v2/token"

    def is_configured(self) -> bool:
        return self.config.zoho_configured()

    def _cached_token_valid(self) -> bool:
        if not self.access_token or self.token_expiry is None:
            return False
        return time.time() < self.token_expiry - self.config.TOKEN_REFRESH_BUFFER_SECONDS

    async def get_valid_access_token(self) -> str:
        if not self.config.ZOHO_REFRESH_TOKEN:
            raise TokenError("No refresh token available. Please complete OAuth authorization first.")

        if self._cached_token_valid():
            return self.access_token

        # callers queued behind an in-flight refresh reuse its result
        async with self._lock:
            if self._cached_token_valid():
                return self.access_token
            return await self._refresh_access_token()

    async def _refresh_access_token(self) -> str:
        if not (self.config.ZOHO_CLIENT_ID and self.config.ZOHO_CLIENT_SECRET):
            raise TokenError("Missing required credentials for token refresh")

        logger.info(f"Requesting new token from {self.token_endpoint}")
        try:
            data = await self._post_token({
                "refresh_token": self.config.ZOHO_REFRESH_TOKEN,
                "client_id": self.config.ZOHO_CLIENT_ID,
                "client_secret": self.config.ZOHO_CLIENT_SECRET,
                "grant_type": "refresh_token"
            })
            if not data.get("access_token"):
                raise TokenError("No access token received from Zoho")
        except TokenError:
            self.access_token = None
            self.token_expiry = None
            raise

        self.access_token = data["access_token"]
        self.token_expiry = time.time() + (data.get("expires_in") or 3600)
        logger.info(f"Access token refreshed, expires in {data.get('expires_in', 3600)}s")
        return self.access_token

    async def _post_token(self, form: Dict[str, str]) -> Dict:
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                response = await client.post(
                    self.token_endpoint,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"}
                )
        except httpx.HTTPError as e:
            raise TokenError(f"Token request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Token request failed: {response.status_code}")
            raise TokenError(f"Token refresh failed: {response.status_code} {response.text}")
        try:
            return response.json()
        except ValueError as e:
            raise TokenError("Invalid token response from Zoho") from e

    def invalidate(self):
        self.access_token = None
        self.token_expiry = None

    # ─────────────────────────────────────────────────────────────────────
    # Authorization-code flow
    # ─────────────────────────────────────────────────────────────────────

    def get_authorization_url(self, redirect_uri: str = None) -> str:
        if not self.config.ZOHO_CLIENT_ID:
            raise ConfigurationError("ZOHO_CLIENT_ID is not configured")

        params = {
            "scope": SCOPE,
            "client_id": self.config.ZOHO_CLIENT_ID,
            "response_type": "code",
            "access_type": "offline",
            "redirect_uri": redirect_uri or self.config.ZOHO_REDIRECT_URI,
            "prompt": "consent"
        }
        return f"{self.config.ZOHO_AUTH_URL}/oauth/v2/auth?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str = None) -> Dict:
        """Trade an authorization code for access + refresh tokens"""
        if not (self.config.ZOHO_CLIENT_ID and self.config.ZOHO_CLIENT_SECRET):
            raise ConfigurationError("Missing ZOHO_CLIENT_ID or ZOHO_CLIENT_SECRET")

        logger.info("Exchanging authorization code for tokens")
        data = await self._post_token({
            "code": code,
            "client_id": self.config.ZOHO_CLIENT_ID,
            "client_secret": self.config.ZOHO_CLIENT_SECRET,
            "redirect_uri": redirect_uri or self.config.ZOHO_REDIRECT_URI,
            "grant_type": "authorization_code"
        })

        if not data.get("access_token") or not data.get("refresh_token"):
            raise TokenError(f"Invalid token response: {data.get('error', 'missing tokens')}")

        self.access_token = data["access_token"]
        self.token_expiry = time.time() + (data.get("expires_in") or 3600)
        return {
            "access_token": data["access_token"],
            "refresh_token": data["refresh_token"],
            "expires_in": data.get("expires_in", 3600)
        }


# Global instance
token_manager = ZohoTokenManager()
