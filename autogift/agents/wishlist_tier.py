"""
Wishlist Tier Node — prefer what the recipient asked for.

Scans the recipient's public wishlist items newest first and picks the
first one whose price falls inside the rule's bounds and whose name
does not match an excluded keyword. The newest item is skipped if it is
over budget; an older in-budget item wins instead.

Store errors are logged and treated as an empty tier so selection can
fall through to the catalog.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from autogift.agents.state import SelectionState
from autogift.core.config import WISHLIST_SCAN_LIMIT
from autogift.db.wishlists import WishlistProvider
from autogift.models.executions import ProductStub

logger = logging.getLogger(__name__)


def matches_excluded(name: str, exclude_items: list[str]) -> bool:
    lowered = name.lower()
    return any(excluded.lower() in lowered for excluded in exclude_items if excluded)


def _to_stub(item: dict[str, Any]) -> Optional[ProductStub]:
    try:
        price = float(item.get("price"))
    except (TypeError, ValueError):
        return None

    product_id = item.get("product_id") or item.get("id")
    if not product_id:
        return None

    try:
        return ProductStub(
            product_id=str(product_id),
            name=item.get("name") or item.get("title") or "Wishlist item",
            price=price,
            image_url=item.get("image_url"),
            source="wishlist",
        )
    except ValidationError as exc:
        logger.info("Skipping invalid wishlist item %s: %s", str(product_id)[:8], exc)
        return None


def pick_wishlist_item(
    items: list[dict[str, Any]],
    price_min: float,
    price_max: float,
    exclude_items: list[str],
) -> Optional[ProductStub]:
    """
    First eligible item from a newest-first list, or None.

    Eligible means a parsable price with price_min <= price <= price_max
    and a name free of excluded keywords.
    """
    for item in items:
        stub = _to_stub(item)
        if stub is None:
            continue
        if not (price_min <= stub.price <= price_max):
            continue
        if matches_excluded(stub.name, exclude_items):
            continue
        return stub
    return None


def make_wishlist_node(
    wishlists: WishlistProvider,
) -> Callable[[SelectionState], Awaitable[dict[str, Any]]]:
    """Build the select_from_wishlist node bound to a wishlist provider."""

    async def select_from_wishlist(state: SelectionState) -> dict[str, Any]:
        rule = state.rule
        if not rule.recipient_id:
            # Recipient is not on the platform yet, so there is no wishlist
            return {"selected": []}

        try:
            items = wishlists.list_public_wishlist_items(
                rule.recipient_id, limit=WISHLIST_SCAN_LIMIT,
            )
        except Exception as exc:
            logger.warning(
                "Wishlist tier failed for rule %s: %s", rule.id[:8], exc,
            )
            return {
                "selected": [],
                "tier_errors": state.tier_errors + [f"wishlist: {exc}"],
            }

        pick = pick_wishlist_item(
            items,
            state.price_min,
            state.price_max,
            rule.gift_selection_criteria.exclude_items,
        )
        if pick is None:
            logger.info(
                "Wishlist tier: no eligible item among %d for rule %s",
                len(items), rule.id[:8],
            )
            return {"selected": []}

        logger.info(
            "Wishlist tier selected '%s' ($%.2f) for rule %s",
            pick.name, pick.price, rule.id[:8],
        )
        return {"selected": [pick]}

    return select_from_wishlist
