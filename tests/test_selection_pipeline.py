"""
Tests for the LangGraph gift selection pipeline.

Tests cover:
- Graph structure (nodes and routing by gift source)
- Wishlist tier: newest in-budget item wins, over-budget items skipped
- Wishlist precedence: no catalog result while a wishlist item qualifies
- Catalog fallback: empty wishlist, fallback query, ranking, exclusions
- Specific-product rules and the 'ai' source
- Tier errors: wishlist error falls through, catalog error ends empty
- Every selected product respects the rule's price bounds

Run with: pytest tests/test_selection_pipeline.py -v
"""

from datetime import timedelta

import pytest

from autogift.agents.catalog_tier import (
    build_fallback_query,
    build_search_query,
    rank_catalog_products,
)
from autogift.agents.pipeline import (
    _check_after_wishlist,
    _route_by_source,
    build_selection_graph,
)
from autogift.agents.state import SelectionState
from autogift.agents.wishlist_tier import matches_excluded, pick_wishlist_item
from autogift.models.rules import AutoGiftRule, AutoGiftSettings

from tests.fakes import (
    FIXED_NOW,
    OWNER_ID,
    RECIPIENT_ID,
    make_catalog_product,
    make_rule_row,
    make_stub,
)


def _rule(**overrides) -> AutoGiftRule:
    return AutoGiftRule(**make_rule_row(**overrides))


def _settings(**overrides) -> AutoGiftSettings:
    return AutoGiftSettings(**{"user_id": OWNER_ID, **overrides})


def _state(source="wishlist", selected=None, **rule_overrides) -> SelectionState:
    rule = _rule(**rule_overrides)
    return SelectionState(
        rule=rule,
        settings=_settings(),
        source=source,
        price_min=10,
        price_max=50,
        selected=selected or [],
    )


# ======================================================================
# Graph structure and routing
# ======================================================================

class TestGraphStructure:
    def test_graph_has_tier_nodes(self, wishlists, catalog):
        graph = build_selection_graph(wishlists, catalog)
        assert {"wishlist_tier", "catalog_tier", "specific_product"} <= set(graph.nodes)

    def test_graph_compiles(self, wishlists, catalog):
        compiled = build_selection_graph(wishlists, catalog).compile()
        assert compiled is not None

    @pytest.mark.parametrize("source,route", [
        ("wishlist", "wishlist"),
        ("both", "wishlist"),
        ("ai", "catalog"),
        ("specific", "specific"),
    ])
    def test_route_by_source(self, source, route):
        assert _route_by_source(_state(source=source)) == route

    def test_wishlist_pick_ends_selection(self):
        assert _check_after_wishlist(_state(selected=[make_stub()])) == "done"

    def test_empty_wishlist_falls_back(self):
        assert _check_after_wishlist(_state()) == "fallback"


# ======================================================================
# Wishlist tier
# ======================================================================

class TestWishlistTier:
    @pytest.mark.asyncio
    async def test_older_in_budget_item_beats_newer_over_budget(self, selector, wishlists):
        wishlists.add_item(RECIPIENT_ID, "Ceramic Mug Set", 45.0, FIXED_NOW - timedelta(days=1))
        wishlists.add_item(RECIPIENT_ID, "Espresso Machine", 80.0, FIXED_NOW)

        selected = await selector.select(_rule(budget_limit=50), _settings())

        assert len(selected) == 1
        assert selected[0].name == "Ceramic Mug Set"
        assert selected[0].price == 45.0
        assert selected[0].source == "wishlist"

    @pytest.mark.asyncio
    async def test_newest_eligible_item_wins(self, selector, wishlists):
        wishlists.add_item(RECIPIENT_ID, "Old Scarf", 30.0, FIXED_NOW - timedelta(days=5))
        wishlists.add_item(RECIPIENT_ID, "New Book", 20.0, FIXED_NOW)

        selected = await selector.select(_rule(), _settings())

        assert selected[0].name == "New Book"

    @pytest.mark.asyncio
    async def test_wishlist_match_never_returns_catalog_result(
        self, selector, wishlists, catalog,
    ):
        wishlists.add_item(RECIPIENT_ID, "Board Game", 35.0, FIXED_NOW)
        catalog.default_results = [make_catalog_product(price=20.0, stars=5.0)]

        selected = await selector.select(_rule(), _settings())

        assert [p.source for p in selected] == ["wishlist"]
        assert catalog.queries == []

    @pytest.mark.asyncio
    async def test_both_source_prefers_wishlist(self, selector, wishlists, catalog):
        wishlists.add_item(RECIPIENT_ID, "Candle", 25.0, FIXED_NOW)
        catalog.default_results = [make_catalog_product(price=20.0)]

        selected = await selector.select(
            _rule(gift_selection_criteria={"source": "both"}), _settings(),
        )

        assert selected[0].source == "wishlist"

    def test_pick_skips_items_below_minimum_price(self):
        items = [
            {"product_id": "p1", "name": "Sticker", "price": 4.0},
            {"product_id": "p2", "name": "Notebook", "price": 15.0},
        ]
        pick = pick_wishlist_item(items, 10, 50, [])
        assert pick.product_id == "p2"

    def test_pick_skips_excluded_keywords(self):
        items = [
            {"product_id": "p1", "name": "Chocolate Box", "price": 20.0},
            {"product_id": "p2", "name": "Tea Sampler", "price": 22.0},
        ]
        pick = pick_wishlist_item(items, 10, 50, ["chocolate"])
        assert pick.product_id == "p2"

    def test_pick_skips_unparseable_price(self):
        items = [{"product_id": "p1", "name": "Mystery", "price": None}]
        assert pick_wishlist_item(items, 10, 50, []) is None

    def test_pick_skips_negative_price(self):
        items = [
            {"product_id": "p1", "name": "Refund line", "price": -5.0},
            {"product_id": "p2", "name": "Scarf", "price": 20.0},
        ]
        assert pick_wishlist_item(items, 0, 50, []).product_id == "p2"

    @pytest.mark.asyncio
    async def test_invalid_wishlist_row_falls_through_to_catalog(
        self, selector, wishlists, catalog,
    ):
        wishlists.add_item(RECIPIENT_ID, "Broken Row", -5.0, FIXED_NOW)
        catalog.default_results = [make_catalog_product(title="Desk Lamp", price=25.0)]

        selected = await selector.select(_rule(), _settings())

        assert [p.name for p in selected] == ["Desk Lamp"]
        assert selected[0].source == "recommendation"

    def test_matches_excluded_is_case_insensitive(self):
        assert matches_excluded("Dark CHOCOLATE bar", ["chocolate"])
        assert not matches_excluded("Tea", ["", "coffee"])

    @pytest.mark.asyncio
    async def test_pending_recipient_skips_wishlist(self, selector, wishlists, catalog):
        catalog.default_results = [make_catalog_product(price=30.0)]

        selected = await selector.select(
            _rule(recipient_id=None, pending_recipient_email="sam@example.com"),
            _settings(),
        )

        assert wishlists.calls == 0
        assert selected[0].source == "recommendation"


# ======================================================================
# Catalog tier
# ======================================================================

class TestCatalogTier:
    @pytest.mark.asyncio
    async def test_empty_wishlist_uses_catalog(self, selector, catalog):
        catalog.default_results = [make_catalog_product(title="Travel Pillow", price=18.0)]

        selected = await selector.select(_rule(budget_limit=20), _settings())

        assert len(selected) == 1
        assert selected[0].price == 18.0
        assert selected[0].source == "recommendation"

    @pytest.mark.asyncio
    async def test_search_passes_price_bounds(self, selector, catalog):
        catalog.default_results = [make_catalog_product(price=18.0)]

        await selector.select(_rule(budget_limit=20), _settings())

        assert catalog.search_kwargs[0]["price_min"] == 10
        assert catalog.search_kwargs[0]["price_max"] == 20

    @pytest.mark.asyncio
    async def test_fallback_query_when_first_search_empty(self, selector, catalog):
        catalog.results["birthday gift popular"] = [make_catalog_product(price=25.0)]

        selected = await selector.select(_rule(), _settings())

        assert catalog.queries == ["birthday gift", "birthday gift popular"]
        assert len(selected) == 1

    @pytest.mark.asyncio
    async def test_highest_rated_product_wins(self, selector, catalog):
        catalog.default_results = [
            make_catalog_product(title="Okay Gift", price=25.0, stars=4.0, num_reviews=900),
            make_catalog_product(title="Great Gift", price=30.0, stars=4.8, num_reviews=50),
            make_catalog_product(title="Pricey Gift", price=90.0, stars=5.0, num_reviews=999),
        ]

        selected = await selector.select(_rule(), _settings())

        assert [p.name for p in selected] == ["Great Gift"]

    @pytest.mark.asyncio
    async def test_ai_source_skips_wishlist(self, selector, wishlists, catalog):
        wishlists.add_item(RECIPIENT_ID, "Board Game", 35.0, FIXED_NOW)
        catalog.default_results = [make_catalog_product(price=40.0)]

        selected = await selector.select(
            _rule(gift_selection_criteria={"source": "ai"}), _settings(),
        )

        assert wishlists.calls == 0
        assert selected[0].source == "recommendation"

    def test_ranking_breaks_ties_by_review_count(self):
        a = make_catalog_product(title="A", price=20.0, stars=4.5, num_reviews=10)
        b = make_catalog_product(title="B", price=20.0, stars=4.5, num_reviews=500)
        ranked = rank_catalog_products([a, b], 10, 50, [])
        assert [p.title for p in ranked] == ["B", "A"]

    def test_ranking_drops_excluded_and_out_of_bounds(self):
        products = [
            make_catalog_product(title="Wine Glasses", price=30.0),
            make_catalog_product(title="Cheap Keychain", price=5.0),
            make_catalog_product(title="Photo Frame", price=22.0),
        ]
        ranked = rank_catalog_products(products, 10, 50, ["wine"])
        assert [p.title for p in ranked] == ["Photo Frame"]

    def test_search_query_uses_occasion_and_categories(self):
        assert build_search_query("birthday", []) == "birthday gift"
        assert build_search_query("Anniversary", ["jewelry"]) == "jewelry anniversary gift"
        assert build_search_query("custom", []) == "gift"

    def test_fallback_query_for_unknown_occasion(self):
        assert build_fallback_query("retirement") == "popular gift ideas"


# ======================================================================
# Specific product
# ======================================================================

class TestSpecificProduct:
    @pytest.mark.asyncio
    async def test_specific_product_selected(self, selector, catalog):
        product = make_catalog_product(product_id="B00GIFT", title="Record Player", price=45.0)
        catalog.products["B00GIFT"] = product

        selected = await selector.select(
            _rule(gift_selection_criteria={
                "source": "specific", "specific_product_id": "B00GIFT",
            }),
            _settings(),
        )

        assert [(p.product_id, p.source) for p in selected] == [("B00GIFT", "specific")]

    @pytest.mark.asyncio
    async def test_specific_product_over_budget_selects_nothing(self, selector, catalog):
        catalog.products["B00GIFT"] = make_catalog_product(product_id="B00GIFT", price=120.0)

        selected = await selector.select(
            _rule(gift_selection_criteria={
                "source": "specific", "specific_product_id": "B00GIFT",
            }),
            _settings(),
        )

        assert selected == []

    @pytest.mark.asyncio
    async def test_missing_specific_product_selects_nothing(self, selector, catalog):
        selected = await selector.select(
            _rule(gift_selection_criteria={
                "source": "specific", "specific_product_id": "GONE",
            }),
            _settings(),
        )

        assert selected == []


# ======================================================================
# Errors and bounds
# ======================================================================

class TestTierErrors:
    @pytest.mark.asyncio
    async def test_wishlist_error_falls_through_to_catalog(self, selector, wishlists, catalog):
        wishlists.error = RuntimeError("wishlist table unavailable")
        catalog.default_results = [make_catalog_product(price=25.0)]

        selected = await selector.select(_rule(), _settings())

        assert selected[0].source == "recommendation"

    @pytest.mark.asyncio
    async def test_catalog_error_ends_empty(self, selector, catalog):
        catalog.error = RuntimeError("catalog timed out")

        selected = await selector.select(_rule(), _settings())

        assert selected == []

    @pytest.mark.asyncio
    async def test_budget_below_minimum_selects_nothing(self, selector, wishlists, catalog):
        wishlists.add_item(RECIPIENT_ID, "Sticker", 5.0, FIXED_NOW)
        catalog.default_results = [make_catalog_product(price=5.0)]

        selected = await selector.select(_rule(budget_limit=8), _settings())

        assert selected == []
        assert wishlists.calls == 0

    @pytest.mark.asyncio
    async def test_selection_always_within_bounds(self, selector, wishlists, catalog):
        wishlists.add_item(RECIPIENT_ID, "Over Budget", 75.0, FIXED_NOW)
        catalog.default_results = [
            make_catalog_product(price=60.0, stars=5.0),
            make_catalog_product(price=9.0, stars=5.0),
            make_catalog_product(price=35.0, stars=3.0),
        ]
        rule = _rule(budget_limit=50)

        selected = await selector.select(rule, _settings())

        price_min, price_max = rule.price_bounds(_settings())
        assert selected
        assert all(price_min <= p.price <= price_max for p in selected)
