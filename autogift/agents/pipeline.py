"""
Gift Selection Pipeline — LangGraph graph composing the selection tiers.

Routing by the rule's effective gift source:
- "wishlist" / "both" — wishlist tier first; catalog tier only if the
  wishlist tier selected nothing
- "ai" — catalog tier only
- "specific" — the rule's specific_product_id, nothing else

A tier that fails (store or HTTP error) selects nothing, so a wishlist
error falls through to the catalog and a catalog error ends selection
empty. The orchestrator turns an empty result into a failed execution.
"""

import logging
from typing import Any

from langgraph.graph import END, START, StateGraph

from autogift.agents.catalog_tier import make_catalog_node, make_specific_node
from autogift.agents.state import SelectionState
from autogift.agents.wishlist_tier import make_wishlist_node
from autogift.db.wishlists import WishlistProvider
from autogift.models.executions import ProductStub
from autogift.models.rules import AutoGiftRule, AutoGiftSettings
from autogift.services.catalog import CatalogProvider

logger = logging.getLogger(__name__)


# ======================================================================
# Conditional edge functions
# ======================================================================

def _route_by_source(state: SelectionState) -> str:
    if state.source == "ai":
        return "catalog"
    if state.source == "specific":
        return "specific"
    return "wishlist"


def _check_after_wishlist(state: SelectionState) -> str:
    """Wishlist pick wins; otherwise fall through to the catalog."""
    if state.selected:
        return "done"
    return "fallback"


# ======================================================================
# Graph construction
# ======================================================================

def build_selection_graph(
    wishlists: WishlistProvider,
    catalog: CatalogProvider,
) -> StateGraph:
    """
    Build the LangGraph StateGraph for gift selection.

    Returns the uncompiled StateGraph (call .compile() to get the
    executable CompiledStateGraph).

    Node names:
    - "wishlist_tier"
    - "catalog_tier"
    - "specific_product"
    """
    graph = StateGraph(SelectionState)

    graph.add_node("wishlist_tier", make_wishlist_node(wishlists))
    graph.add_node("catalog_tier", make_catalog_node(catalog))
    graph.add_node("specific_product", make_specific_node(catalog))

    graph.add_conditional_edges(
        START,
        _route_by_source,
        {
            "wishlist": "wishlist_tier",
            "catalog": "catalog_tier",
            "specific": "specific_product",
        },
    )

    graph.add_conditional_edges(
        "wishlist_tier",
        _check_after_wishlist,
        {"done": END, "fallback": "catalog_tier"},
    )
    graph.add_edge("catalog_tier", END)
    graph.add_edge("specific_product", END)

    return graph


# ======================================================================
# Selector
# ======================================================================

class GiftSelector:
    """Compiled selection graph bound to its data providers."""

    def __init__(self, wishlists: WishlistProvider, catalog: CatalogProvider):
        self._graph = build_selection_graph(wishlists, catalog).compile()

    async def select(
        self, rule: AutoGiftRule, settings: AutoGiftSettings,
    ) -> list[ProductStub]:
        """
        Choose the gift(s) for one rule.

        Returns:
            Zero or one ProductStub, always priced within the rule's
            bounds (MIN_GIFT_PRICE floor, effective budget ceiling).
        """
        price_min, price_max = rule.price_bounds(settings)
        source = rule.effective_source(settings)

        logger.info(
            "Selecting gift for rule %s (source=%s, bounds=$%.2f-$%.2f)",
            rule.id[:8], source, price_min, price_max,
        )

        if price_min > price_max:
            logger.warning(
                "Rule %s budget $%.2f is below the minimum gift price $%.2f",
                rule.id[:8], price_max, price_min,
            )
            return []

        state = SelectionState(
            rule=rule,
            settings=settings,
            source=source,
            price_min=price_min,
            price_max=price_max,
        )
        result: dict[str, Any] = await self._graph.ainvoke(state)

        selected = result.get("selected", [])
        tier_errors = result.get("tier_errors", [])
        if tier_errors:
            logger.warning(
                "Selection for rule %s hit %d tier error(s): %s",
                rule.id[:8], len(tier_errors), tier_errors,
            )
        return selected
