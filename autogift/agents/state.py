"""
Selection State Schema — Pydantic models for the LangGraph gift selection graph.

Defines the state that flows through the selection graph:
1. select_from_wishlist — Newest eligible item on the recipient's public wishlists
2. select_from_catalog — Best-rated catalog product within the price bounds
3. select_specific_product — The exact product a rule names

Every tier writes `selected` (zero or one ProductStub). A tier that hits a
collaborator error records it in `tier_errors` and selects nothing.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from autogift.models.executions import ProductStub
from autogift.models.rules import AutoGiftRule, AutoGiftSettings


class CatalogProduct(BaseModel):
    """A product as returned by the catalog search service."""

    product_id: str
    title: str
    price: float
    image_url: Optional[str] = None
    category: Optional[str] = None
    stars: float = 0.0
    num_reviews: int = 0

    def to_stub(self, source: str) -> ProductStub:
        return ProductStub(
            product_id=self.product_id,
            name=self.title,
            price=self.price,
            image_url=self.image_url,
            source=source,
        )


class SelectionState(BaseModel):
    """
    Complete state for the gift selection graph.

    Input fields are populated by GiftSelector before invocation;
    output fields are filled by the tier nodes.
    """

    # --- Input ---
    rule: AutoGiftRule
    settings: AutoGiftSettings
    source: str
    price_min: float
    price_max: float

    # --- Output ---
    selected: list[ProductStub] = Field(default_factory=list)
    tier_errors: list[str] = Field(default_factory=list)
