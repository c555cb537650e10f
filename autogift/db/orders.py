"""
Order Gateway — hands an approved auto-gift to checkout.

Writes an `orders` row in 'automated_pending' plus its `order_items`;
the payment processor picks it up from there. `orders.idempotency_key`
is unique, so a second attempt for the same execution is rejected with
DuplicateOrderError instead of producing a second charge.

If the items insert fails, the just-written `orders` row is deleted so
no half-built order reaches checkout and the key is free for a retry.
"""

import logging
from typing import Optional, Protocol

from supabase import Client

from autogift.core.errors import DuplicateOrderError, OrderCreationError
from autogift.db.supabase_client import is_unique_violation
from autogift.models.addresses import ShippingAddress
from autogift.models.executions import OrderResult, ProductStub

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
ORDER_ITEMS_TABLE = "order_items"


class OrderGateway(Protocol):
    def create_order(
        self,
        *,
        user_id: str,
        recipient_id: Optional[str],
        items: list[ProductStub],
        total_amount: float,
        shipping_address: ShippingAddress,
        gift_message: str,
        execution_id: str,
        idempotency_key: str,
    ) -> OrderResult: ...

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[OrderResult]: ...


class SupabaseOrderGateway:
    def __init__(self, client: Client):
        self._client = client

    def create_order(
        self,
        *,
        user_id: str,
        recipient_id: Optional[str],
        items: list[ProductStub],
        total_amount: float,
        shipping_address: ShippingAddress,
        gift_message: str,
        execution_id: str,
        idempotency_key: str,
    ) -> OrderResult:
        row = {
            "user_id": user_id,
            "recipient_id": recipient_id,
            "subtotal": total_amount,
            "total_amount": total_amount,
            "shipping_info": shipping_address.model_dump(),
            "status": "automated_pending",
            "is_gift": True,
            "gift_options": {
                "isGift": True,
                "giftMessage": gift_message,
                "isAutomated": True,
            },
            "auto_gift_execution_id": execution_id,
            "idempotency_key": idempotency_key,
        }

        try:
            result = self._client.table(ORDERS_TABLE).insert(row).execute()
        except Exception as exc:
            if is_unique_violation(exc):
                raise DuplicateOrderError(idempotency_key) from exc
            raise OrderCreationError(f"Order creation failed: {exc}") from exc

        order = result.data[0]
        item_rows = [
            {
                "order_id": order["id"],
                "product_id": item.product_id,
                "product_name": item.name,
                "unit_price": item.price,
                "total_price": item.price,
                "quantity": 1,
                "product_image": item.image_url,
            }
            for item in items
        ]
        try:
            self._client.table(ORDER_ITEMS_TABLE).insert(item_rows).execute()
        except Exception as exc:
            self._discard_order(order["id"], execution_id)
            raise OrderCreationError(f"Order items could not be saved: {exc}") from exc

        logger.info(
            "Created order %s for execution %s (%d items, total=%.2f)",
            order["id"][:8], execution_id[:8], len(item_rows), total_amount,
        )
        return OrderResult(order_id=order["id"], status=order.get("status", "automated_pending"))

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[OrderResult]:
        result = (
            self._client.table(ORDERS_TABLE)
            .select("id, status")
            .eq("idempotency_key", idempotency_key)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        order = result.data[0]
        return OrderResult(order_id=order["id"], status=order.get("status", "automated_pending"))

    def _discard_order(self, order_id: str, execution_id: str) -> None:
        try:
            self._client.table(ORDERS_TABLE).delete().eq("id", order_id).execute()
            logger.warning(
                "Discarded order %s for execution %s after items insert failed",
                order_id[:8], execution_id[:8],
            )
        except Exception as exc:
            logger.error(
                "Could not discard incomplete order %s for execution %s: %s",
                order_id[:8], execution_id[:8], exc,
            )
