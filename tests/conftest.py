from datetime import UTC, datetime, timedelta

import httpx
import pytest

from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.services.document_store import CONNECTIONS, InMemoryDocumentStore
from app.services.ebay_services import EbayServices

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
TENANT = "tenant-1"
SANDBOX = "https://api.sandbox.ebay.com"


@pytest.fixture
def config():
    # Single attempt, no sleeping between token retries
    return MarketplaceClientConfig(
        client_id="app-id",
        client_secret="cert-id",
        runame="Test-RuName",
        environment="sandbox",
        token_max_attempts=1,
        token_initial_delay=0,
    )


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def make_services(store, config):
    """Build services whose HTTP traffic goes to `handler(request) -> httpx.Response`."""
    clients = []

    def _make(handler=None, clock=lambda: NOW):
        if handler is None:
            def handler(request):
                raise AssertionError(f"unexpected request {request.method} {request.url}")
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return EbayServices(store, config, http_client=client, clock=clock)

    return _make


@pytest.fixture
def add_connection(store):
    """Seed a Connection document directly in the store."""

    def _add(
        connection_id="conn-1",
        tenant_id=TENANT,
        expires_at=NOW + timedelta(hours=1),
        refresh_token="v^1.1#refresh",
        connected_at=NOW - timedelta(days=1),
        access_token="access-1",
    ):
        store.set(
            CONNECTIONS,
            tenant_id,
            connection_id,
            {
                "id": connection_id,
                "tenant_id": tenant_id,
                "access_token": access_token,
                "refresh_token": refresh_token,
                "expires_at": expires_at,
                "environment": "sandbox",
                "connected_at": connected_at,
            },
            merge=False,
        )
        return connection_id

    return _add


def trading_envelope(call_name: str, body: str = "", ack: str = "Success") -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<{call_name}Response xmlns="urn:ebay:apis:eBLBaseComponents">'
        f"<Ack>{ack}</Ack>{body}"
        f"</{call_name}Response>"
    )


def active_list_xml(items: list[str], total_pages: int = 1) -> str:
    return trading_envelope(
        "GetMyeBaySelling",
        "<ActiveList><ItemArray>"
        + "".join(items)
        + "</ItemArray><PaginationResult>"
        f"<TotalNumberOfPages>{total_pages}</TotalNumberOfPages>"
        f"<TotalNumberOfEntries>{len(items)}</TotalNumberOfEntries>"
        "</PaginationResult></ActiveList>",
    )
