"""
Fulfillment submitter: mark selected line items of an eBay order as shipped.
Only line items of a stored order that are still NOT_STARTED or IN_PROGRESS can be shipped.
The stored order is not touched; the next order sync picks up eBay's new status.
"""

import re
from dataclasses import dataclass

import httpx
import structlog

from app.integrations.ebay.api_client import EbayRestClient
from app.integrations.ebay.client_config import MarketplaceClientConfig
from app.integrations.ebay.errors import ValidationFailed
from app.integrations.ebay.token_refresh import EbayTokenManager
from app.services.repositories import OrderRepository

logger = structlog.get_logger()


@dataclass
class FulfillmentLine:
    line_item_id: str
    quantity: int


@dataclass
class FulfillmentResult:
    ok: bool
    fulfillment_id: str | None = None


def build_fulfillment_payload(
    line_items: list[FulfillmentLine],
    carrier_code: str | None = None,
    tracking_number: str | None = None,
    shipped_date: str | None = None,
) -> dict:
    """
    Validate input and build the shipping_fulfillment request body.

    Raises:
        ValidationFailed: No line items, a bad line item, or carrier/tracking not given together.
    """
    carrier_code = (carrier_code or "").strip() or None
    tracking_number = re.sub(r"\s", "", tracking_number or "") or None
    shipped_date = (shipped_date or "").strip() or None

    if not line_items:
        raise ValidationFailed("lineItems (with lineItemId and quantity) are required")
    for li in line_items:
        if not li.line_item_id or li.quantity < 1:
            raise ValidationFailed("Each line item needs a lineItemId and a positive quantity")
    if tracking_number and not carrier_code:
        raise ValidationFailed("shippingCarrierCode is required when trackingNumber is provided")
    if carrier_code and not tracking_number:
        raise ValidationFailed("trackingNumber is required when shippingCarrierCode is provided")

    payload: dict = {
        "lineItems": [{"lineItemId": li.line_item_id, "quantity": li.quantity} for li in line_items],
    }
    if carrier_code:
        payload["shippingCarrierCode"] = carrier_code
        payload["trackingNumber"] = tracking_number
    if shipped_date:
        payload["shippedDate"] = shipped_date
    return payload


class FulfillmentSubmitter:
    def __init__(
        self,
        config: MarketplaceClientConfig,
        tokens: EbayTokenManager,
        orders: OrderRepository,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.tokens = tokens
        self.orders = orders
        self.http_client = http_client

    async def fulfill_order(
        self,
        tenant_id: str,
        connection_id: str | None,
        order_id: str,
        line_items: list[FulfillmentLine],
        carrier_code: str | None = None,
        tracking_number: str | None = None,
        shipped_date: str | None = None,
    ) -> FulfillmentResult:
        """
        Create a shipping fulfillment on eBay.

        Raises:
            ValidationFailed: Bad input, an unknown or already shipped line item, or no
                connection (checked before any eBay call).
            TokenInvalid: Token could not be refreshed.
            MarketplaceRejected: eBay refused the fulfillment.
        """
        order_id = (order_id or "").strip()
        if not order_id:
            raise ValidationFailed("orderId is required")
        payload = build_fulfillment_payload(line_items, carrier_code, tracking_number, shipped_date)
        self._check_fulfillable(tenant_id, order_id, line_items)

        connection = await self.tokens.get_valid_token(tenant_id, connection_id)
        if connection is None:
            raise ValidationFailed("No eBay connection. Connect your eBay account first.")

        rest = EbayRestClient(
            self.config.for_environment(connection.environment),
            connection.access_token,
            self.http_client,
        )
        try:
            body = await rest.create_shipping_fulfillment(order_id, payload)
        finally:
            await rest.close()

        logger.info(
            "eBay shipping fulfillment created",
            tenant_id=tenant_id,
            connection_id=connection.id,
            order_id=order_id,
            line_items=len(line_items),
            has_tracking="trackingNumber" in payload,
        )
        return FulfillmentResult(ok=True, fulfillment_id=body.get("fulfillmentId"))

    def _check_fulfillable(self, tenant_id: str, order_id: str, line_items: list[FulfillmentLine]):
        order = self.orders.get(tenant_id, order_id)
        if order is None:
            raise ValidationFailed(f"Order {order_id} has not been synced")
        stored = {li.line_item_id: li for li in order.line_items if li.line_item_id}
        for requested in line_items:
            item = stored.get(requested.line_item_id)
            if item is None:
                raise ValidationFailed(f"Line item {requested.line_item_id} is not part of order {order_id}")
            if not item.is_fulfillable:
                raise ValidationFailed(
                    f"Line item {requested.line_item_id} cannot be fulfilled "
                    f"(status {item.fulfillment_status})"
                )
