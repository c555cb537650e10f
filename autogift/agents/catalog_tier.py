"""
Catalog Tier Node — generic recommendations when the wishlist has nothing.

1. Build an occasion query ("birthday gift", "anniversary gift", ...)
   prefixed by the rule's categories
2. Search the catalog within the rule's price bounds
3. If nothing comes back, retry once with a broader fallback query
4. Re-check the bounds, drop excluded keywords, rank by stars then
   review count, keep the top product

Also holds the node for rules that name one specific product.
"""

import logging
from typing import Any, Awaitable, Callable

from autogift.agents.state import CatalogProduct, SelectionState
from autogift.agents.wishlist_tier import matches_excluded
from autogift.core.config import CATALOG_SEARCH_LIMIT
from autogift.services.catalog import CatalogProvider

logger = logging.getLogger(__name__)

# Catalog tier returns at most this many products
MAX_CATALOG_PICKS = 1

_OCCASION_QUERIES = [
    ("birthday", "birthday gift"),
    ("anniversary", "anniversary gift"),
    ("wedding", "wedding gift"),
    ("graduation", "graduation gift"),
]

_FALLBACK_QUERIES = [
    ("birthday", "birthday gift popular"),
    ("anniversary", "anniversary gift ideas"),
    ("wedding", "wedding gift popular"),
    ("graduation", "graduation gift ideas"),
]


# ======================================================================
# Query building
# ======================================================================

def build_search_query(date_type: str, categories: list[str]) -> str:
    """Occasion query prefixed by category preferences."""
    occasion = (date_type or "").lower()
    query = "gift"
    for keyword, occasion_query in _OCCASION_QUERIES:
        if keyword in occasion:
            query = occasion_query
            break

    if categories:
        query = f"{' '.join(categories)} {query}"
    return query


def build_fallback_query(date_type: str) -> str:
    occasion = (date_type or "").lower()
    for keyword, fallback in _FALLBACK_QUERIES:
        if keyword in occasion:
            return fallback
    return "popular gift ideas"


# ======================================================================
# Ranking
# ======================================================================

def rank_catalog_products(
    products: list[CatalogProduct],
    price_min: float,
    price_max: float,
    exclude_items: list[str],
) -> list[CatalogProduct]:
    """
    Filter to the price bounds and excluded keywords, then sort by
    stars (desc) and review count (desc).
    """
    eligible = [
        p for p in products
        if price_min <= p.price <= price_max
        and not matches_excluded(p.title, exclude_items)
    ]
    return sorted(eligible, key=lambda p: (p.stars, p.num_reviews), reverse=True)


# ======================================================================
# Nodes
# ======================================================================

def make_catalog_node(
    catalog: CatalogProvider,
) -> Callable[[SelectionState], Awaitable[dict[str, Any]]]:
    """Build the select_from_catalog node bound to a catalog provider."""

    async def select_from_catalog(state: SelectionState) -> dict[str, Any]:
        rule = state.rule
        criteria = rule.gift_selection_criteria

        async def _search(query: str) -> list[CatalogProduct]:
            return await catalog.search(
                query,
                limit=CATALOG_SEARCH_LIMIT,
                price_min=state.price_min,
                price_max=state.price_max,
                categories=criteria.categories or None,
            )

        try:
            query = build_search_query(rule.date_type, criteria.categories)
            products = await _search(query)
            if not products:
                fallback = build_fallback_query(rule.date_type)
                logger.info(
                    "Catalog tier: '%s' returned nothing, retrying with '%s'",
                    query, fallback,
                )
                products = await _search(fallback)
        except Exception as exc:
            logger.warning(
                "Catalog tier failed for rule %s: %s", rule.id[:8], exc,
            )
            return {
                "selected": [],
                "tier_errors": state.tier_errors + [f"catalog: {exc}"],
            }

        ranked = rank_catalog_products(
            products, state.price_min, state.price_max, criteria.exclude_items,
        )
        picks = [p.to_stub("recommendation") for p in ranked[:MAX_CATALOG_PICKS]]

        if picks:
            logger.info(
                "Catalog tier selected '%s' ($%.2f) for rule %s",
                picks[0].name, picks[0].price, rule.id[:8],
            )
        else:
            logger.info(
                "Catalog tier: no eligible product among %d for rule %s",
                len(products), rule.id[:8],
            )
        return {"selected": picks}

    return select_from_catalog


def make_specific_node(
    catalog: CatalogProvider,
) -> Callable[[SelectionState], Awaitable[dict[str, Any]]]:
    """Build the select_specific_product node bound to a catalog provider."""

    async def select_specific_product(state: SelectionState) -> dict[str, Any]:
        rule = state.rule
        product_id = rule.gift_selection_criteria.specific_product_id

        try:
            product = await catalog.get_product(product_id)
        except Exception as exc:
            logger.warning(
                "Specific product lookup failed for rule %s: %s", rule.id[:8], exc,
            )
            return {
                "selected": [],
                "tier_errors": state.tier_errors + [f"specific: {exc}"],
            }

        if product is None:
            logger.info("Specific product %s no longer exists", product_id)
            return {"selected": []}

        if not (state.price_min <= product.price <= state.price_max):
            logger.info(
                "Specific product %s at $%.2f is outside $%.2f-$%.2f",
                product_id, product.price, state.price_min, state.price_max,
            )
            return {"selected": []}

        return {"selected": [product.to_stub("specific")]}

    return select_specific_product
