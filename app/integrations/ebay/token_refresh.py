"""
eBay OAuth token lifecycle.
Exchanges authorization codes for tokens, and hands out a currently valid access token per
connection, refreshing it against the token endpoint (HTTP Basic app credentials) when the
stored expiry has been reached.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
import structlog

from app.integrations.ebay.client_config import EBAY_SCOPES, MarketplaceClientConfig
from app.integrations.ebay.errors import MarketplaceRejected, TokenInvalid, ValidationFailed
from app.models.database import Connection
from app.models.ebay import EbayTokenResponse
from app.services.repositories import ConnectionRepository
from app.utils.retry import call_with_backoff

logger = structlog.get_logger()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


class EbayTokenManager:
    """Sole writer of Connection records."""

    def __init__(
        self,
        config: MarketplaceClientConfig,
        connections: ConnectionRepository,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.connections = connections
        self.http_client = http_client
        self.clock = clock
        # One lock per connection so concurrent callers refresh once
        self._refresh_locks: dict[str, asyncio.Lock] = {}

    def _refresh_lock(self, connection_id: str) -> asyncio.Lock:
        lock = self._refresh_locks.get(connection_id)
        if lock is None:
            lock = self._refresh_locks[connection_id] = asyncio.Lock()
        return lock

    def is_expired(self, connection: Connection) -> bool:
        """True when the access token's expiry is at or before now."""
        return _as_utc(connection.expires_at) <= _as_utc(self.clock())

    async def get_valid_token(
        self, tenant_id: str, connection_id: str | None = None
    ) -> Connection | None:
        """
        Return the connection with a currently valid access token.

        Without connection_id the tenant's most recently connected account is used.
        Returns None if no connection exists.

        Raises:
            TokenInvalid: The token is expired and could not be refreshed.
        """
        if connection_id:
            connection = self.connections.get(tenant_id, connection_id)
        else:
            connection = self.connections.latest_for_tenant(tenant_id)
        if connection is None:
            return None

        if not self.is_expired(connection):
            return connection

        async with self._refresh_lock(connection.id):
            # Re-fetch: another caller may have refreshed while we waited
            fresh = self.connections.get(tenant_id, connection.id)
            if fresh is None:
                return None
            if not self.is_expired(fresh):
                return fresh
            return await self.refresh(fresh)

    async def refresh(self, connection: Connection) -> Connection:
        """
        Exchange the stored refresh token for a new access token and persist it.

        Raises:
            TokenInvalid: No refresh token, or the token endpoint refused or was unreachable.
        """
        if not connection.refresh_token:
            logger.error(
                "No eBay refresh token for expired connection",
                tenant_id=connection.tenant_id,
                connection_id=connection.id,
            )
            raise TokenInvalid("Access token expired and no refresh token is stored", connection.id)

        if not self.config.is_configured:
            raise TokenInvalid("eBay app credentials not configured", connection.id)

        config = self.config.for_environment(connection.environment)
        try:
            token = await self._post_token(
                config,
                {
                    "grant_type": "refresh_token",
                    "refresh_token": connection.refresh_token,
                    "scope": " ".join(EBAY_SCOPES),
                },
            )
        except (MarketplaceRejected, httpx.RequestError) as e:
            logger.error(
                "eBay token refresh failed",
                tenant_id=connection.tenant_id,
                connection_id=connection.id,
                error=str(e),
            )
            raise TokenInvalid(f"Token refresh failed: {e}", connection.id) from e

        now = _as_utc(self.clock())
        patch: dict[str, Any] = {
            "access_token": token.access_token,
            "expires_at": now + timedelta(seconds=token.expires_in),
            "token_refreshed_at": now,
        }
        if token.refresh_token and token.refresh_token != connection.refresh_token:
            patch["refresh_token"] = token.refresh_token
            patch["refresh_expires_at"] = now + timedelta(seconds=token.refresh_token_expires_in)

        updated = self.connections.update(connection.tenant_id, connection.id, patch)
        logger.info(
            "eBay token refreshed",
            tenant_id=connection.tenant_id,
            connection_id=connection.id,
            expires_at=updated.expires_at.isoformat(),
            refresh_token_rotated="refresh_token" in patch,
        )
        return updated

    def build_authorize_url(self, add_new: bool = False) -> str:
        """Consent URL for the authorization-code flow."""
        if not self.config.client_id or not self.config.runame:
            raise ValidationFailed("eBay app not configured (missing App ID or RuName)")
        params = {
            "client_id": self.config.client_id,
            "response_type": "code",
            "redirect_uri": self.config.runame,
            "scope": " ".join(EBAY_SCOPES),
            "state": "ebay_add" if add_new else "ebay",
        }
        if add_new:
            # Force the login screen so another seller account can sign in
            params["prompt"] = "login"
        return f"{self.config.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, tenant_id: str, code: str, add_new: bool = False) -> Connection:
        """
        Exchange an authorization code and upsert the tenant's Connection.

        Updates the most recent connection in place unless add_new is set or the tenant
        has none, in which case a new connection is created.
        """
        code = (code or "").strip()
        if not code:
            raise ValidationFailed("Missing code")
        if not self.config.is_configured or not self.config.runame:
            raise ValidationFailed("eBay app not configured")

        token = await self._post_token(
            self.config,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.runame,
            },
        )

        now = _as_utc(self.clock())
        fields: dict[str, Any] = {
            "access_token": token.access_token,
            "refresh_token": token.refresh_token,
            "expires_at": now + timedelta(seconds=token.expires_in),
            "refresh_expires_at": now + timedelta(seconds=token.refresh_token_expires_in),
            "environment": self.config.environment,
            "connected_at": now,
        }

        existing = None if add_new else self.connections.latest_for_tenant(tenant_id)
        if existing is not None:
            connection = self.connections.update(tenant_id, existing.id, fields)
        else:
            connection = self.connections.create(tenant_id, fields)

        logger.info(
            "eBay connection authorized",
            tenant_id=tenant_id,
            connection_id=connection.id,
            environment=connection.environment,
            created=existing is None,
        )
        return connection

    def disconnect(self, tenant_id: str, connection_id: str) -> bool:
        """Delete a connection (tenant disconnect action)."""
        deleted = self.connections.delete(tenant_id, connection_id)
        logger.info("eBay connection removed", tenant_id=tenant_id, connection_id=connection_id, deleted=deleted)
        return deleted

    async def _post_token(self, config: MarketplaceClientConfig, form: dict[str, str]) -> EbayTokenResponse:
        """POST the token endpoint. Transport failures are retried with backoff."""

        async def _send(client: httpx.AsyncClient) -> httpx.Response:
            return await client.post(
                config.token_url,
                data=form,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Authorization": config.basic_auth_header(),
                },
                timeout=30.0,
            )

        async def _attempt() -> httpx.Response:
            if self.http_client is not None:
                return await _send(self.http_client)
            async with httpx.AsyncClient() as client:
                return await _send(client)

        response = await call_with_backoff(
            _attempt,
            max_attempts=config.token_max_attempts,
            initial_delay=config.token_initial_delay,
            multiplier=config.token_backoff_multiplier,
        )

        if response.status_code != 200:
            logger.error(
                "eBay token endpoint error",
                grant_type=form.get("grant_type"),
                status_code=response.status_code,
                response_text=response.text[:500],
            )
            raise MarketplaceRejected.from_response(response, "Failed to obtain eBay token")

        try:
            return EbayTokenResponse(**response.json())
        except Exception as e:
            raise MarketplaceRejected(response.status_code, "No access token in eBay response", detail=response.text[:500]) from e
