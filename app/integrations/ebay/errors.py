"""
Error taxonomy for the eBay sync engine.
"""

from typing import Any

import httpx


class MarketplaceSyncError(Exception):
    """Base exception for sync engine errors."""

    pass


class Unauthorized(MarketplaceSyncError):
    """Missing or invalid caller credential. Raised before any marketplace call."""

    pass


class ValidationFailed(MarketplaceSyncError):
    """Malformed caller input."""

    pass


class TokenInvalid(MarketplaceSyncError):
    """Token refresh failed; the connection is unusable until the tenant re-authorizes."""

    def __init__(self, message: str, connection_id: str | None = None):
        self.connection_id = connection_id
        super().__init__(message)


class MarketplaceRejected(MarketplaceSyncError):
    """
    Non-2xx response or a Failure acknowledgement from either eBay API.
    Carries eBay's own error detail verbatim.
    """

    def __init__(self, status_code: int, message: str, detail: Any = None):
        self.status_code = status_code
        self.message = message
        self.detail = detail
        super().__init__(f"eBay API error {status_code}: {message}")

    @classmethod
    def from_response(cls, response: httpx.Response, fallback: str) -> "MarketplaceRejected":
        """Build from an eBay REST error body ({"errors": [{"message", "longMessage"}]})."""
        try:
            body = response.json()
        except ValueError:
            body = response.text[:1000] if response.text else None

        message = fallback
        if isinstance(body, dict):
            errors = body.get("errors") or []
            if errors and isinstance(errors[0], dict):
                message = errors[0].get("longMessage") or errors[0].get("message") or fallback
            elif body.get("error_description"):
                message = body["error_description"]
        return cls(response.status_code, message, detail=body)


class PartialDiscovery(MarketplaceSyncError):
    """
    One listing source stopped paging early after a fetch error.
    Never raised to callers; attached to the discovery result as a note.
    """

    def __init__(self, source: str, reason: str, pages_fetched: int = 0):
        self.source = source
        self.reason = reason
        self.pages_fetched = pages_fetched
        super().__init__(f"{source} discovery stopped early after {pages_fetched} page(s): {reason}")
