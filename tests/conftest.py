"""
Pytest fixtures wiring the in-memory fakes into the real services and app.
"""

import pytest
from fastapi.testclient import TestClient

from autogift.agents.pipeline import GiftSelector
from autogift.api import dependencies as deps
from autogift.core.security import get_current_user_id
from autogift.main import app
from autogift.services.address_collection import AddressCollectionGate
from autogift.services.notifications import OwnerNotifier
from autogift.services.nudges import NudgeDispatcher
from autogift.services.order_materializer import OrderMaterializer
from autogift.services.orchestrator import AutoGiftOrchestrator

from tests.fakes import (
    FakeAddressStore,
    FakeCatalog,
    FakeEmailSender,
    FakeExecutionStore,
    FakeNudgeStore,
    FakeOrderGateway,
    FakeProfileStore,
    FakePushSender,
    FakeRuleStore,
    FakeTextGenerator,
    FakeWishlistProvider,
    OWNER_ID,
    fixed_clock,
)


# ======================================================================
# Fixtures
# ======================================================================

@pytest.fixture
def rule_store():
    return FakeRuleStore()


@pytest.fixture
def execution_store():
    return FakeExecutionStore()


@pytest.fixture
def address_store():
    return FakeAddressStore()


@pytest.fixture
def profile_store():
    return FakeProfileStore()


@pytest.fixture
def nudge_store():
    return FakeNudgeStore()


@pytest.fixture
def wishlists():
    return FakeWishlistProvider()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def orders():
    return FakeOrderGateway()


@pytest.fixture
def email():
    return FakeEmailSender()


@pytest.fixture
def push():
    return FakePushSender()


@pytest.fixture
def ai():
    return FakeTextGenerator()


@pytest.fixture
def selector(wishlists, catalog):
    return GiftSelector(wishlists, catalog)


@pytest.fixture
def notifier(email, profile_store, push):
    return OwnerNotifier(email, profile_store, push)


@pytest.fixture
def materializer(execution_store, rule_store, address_store, profile_store, orders, email):
    return OrderMaterializer(
        execution_store, rule_store, address_store, profile_store, orders, email,
        clock=fixed_clock,
    )


@pytest.fixture
def orchestrator(execution_store, rule_store, selector, materializer, notifier):
    return AutoGiftOrchestrator(execution_store, rule_store, selector, materializer, notifier)


@pytest.fixture
def gate(address_store, execution_store, orchestrator, notifier):
    return AddressCollectionGate(
        address_store, execution_store, orchestrator, notifier, clock=fixed_clock,
    )


@pytest.fixture
def dispatcher(nudge_store, profile_store, ai, email):
    return NudgeDispatcher(nudge_store, profile_store, ai, email, clock=fixed_clock)


@pytest.fixture
def client(
    rule_store, execution_store, address_store, profile_store, nudge_store,
    wishlists, catalog, orders, email, push, ai,
):
    """TestClient with every leaf dependency replaced by a fake and auth as OWNER_ID."""
    overrides = {
        deps.get_rule_store: lambda: rule_store,
        deps.get_execution_store: lambda: execution_store,
        deps.get_address_store: lambda: address_store,
        deps.get_profile_store: lambda: profile_store,
        deps.get_nudge_store: lambda: nudge_store,
        deps.get_wishlist_provider: lambda: wishlists,
        deps.get_catalog: lambda: catalog,
        deps.get_order_gateway: lambda: orders,
        deps.get_email_sender: lambda: email,
        deps.get_push_sender: lambda: push,
        deps.get_text_generator: lambda: ai,
        get_current_user_id: lambda: OWNER_ID,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield TestClient(app)
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)
