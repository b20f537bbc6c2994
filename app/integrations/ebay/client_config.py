"""
Explicit marketplace client configuration.
Built once from settings and passed into every sync component; sync logic never reads
settings directly.
"""

import base64

from pydantic import BaseModel

from app.config import Settings, settings as default_settings

EBAY_SCOPES = [
    "https://api.ebay.com/oauth/api_scope",
    "https://api.ebay.com/oauth/api_scope/sell.inventory",
    "https://api.ebay.com/oauth/api_scope/sell.fulfillment",
    "https://api.ebay.com/oauth/api_scope/sell.account.readonly",
]


class MarketplaceClientConfig(BaseModel):
    """Credentials and endpoints for one eBay app."""

    client_id: str
    client_secret: str
    runame: str = ""
    environment: str = "sandbox"
    trading_compatibility_level: int = 1209
    trading_site_id: int = 0
    token_max_attempts: int = 3
    token_initial_delay: float = 1.0
    token_backoff_multiplier: float = 2.0

    class Config:
        frozen = True

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "MarketplaceClientConfig":
        s = source or default_settings
        return cls(
            client_id=s.ebay_client_id,
            client_secret=s.ebay_client_secret,
            runame=s.ebay_runame,
            environment=s.ebay_environment,
            trading_compatibility_level=s.ebay_trading_compatibility_level,
            trading_site_id=s.ebay_trading_site_id,
            token_max_attempts=s.max_retry_attempts,
            token_initial_delay=s.retry_initial_delay_seconds,
            token_backoff_multiplier=s.retry_backoff_multiplier,
        )

    def for_environment(self, environment: str) -> "MarketplaceClientConfig":
        """Same app credentials pointed at another environment (per-connection)."""
        if environment == self.environment:
            return self
        return self.model_copy(update={"environment": environment})

    @property
    def is_sandbox(self) -> bool:
        return self.environment == "sandbox"

    @property
    def api_base_url(self) -> str:
        return "https://api.sandbox.ebay.com" if self.is_sandbox else "https://api.ebay.com"

    @property
    def trading_url(self) -> str:
        return f"{self.api_base_url}/ws/api.dll"

    @property
    def token_url(self) -> str:
        return f"{self.api_base_url}/identity/v1/oauth2/token"

    @property
    def authorize_url(self) -> str:
        if self.is_sandbox:
            return "https://auth.sandbox.ebay.com/oauth2/authorize"
        return "https://auth.ebay.com/oauth2/authorize"

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def basic_auth_header(self) -> str:
        credentials = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        return "Basic " + base64.b64encode(credentials).decode("ascii")
