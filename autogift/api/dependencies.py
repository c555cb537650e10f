"""
FastAPI dependency wiring.

Leaf providers build the Supabase-backed stores and the outbound
clients; composite providers assemble the pipeline services from them.
Tests replace leaves through `app.dependency_overrides` and get the
real services running on in-memory fakes.
"""

from fastapi import Depends

from autogift.agents.pipeline import GiftSelector
from autogift.db.addresses import AddressStore, SupabaseAddressStore
from autogift.db.executions import ExecutionStore, SupabaseExecutionStore
from autogift.db.nudges import NudgeStore, SupabaseNudgeStore
from autogift.db.orders import OrderGateway, SupabaseOrderGateway
from autogift.db.profiles import ProfileStore, SupabaseProfileStore
from autogift.db.rules import RuleStore, SupabaseRuleStore
from autogift.db.supabase_client import get_service_client
from autogift.db.wishlists import SupabaseWishlistProvider, WishlistProvider
from autogift.services.address_collection import AddressCollectionGate
from autogift.services.ai_text import ClaudeTextGenerator, TextGenerator
from autogift.services.apns import ApnsPushSender, PushSender
from autogift.services.catalog import CatalogProvider, HttpCatalogClient
from autogift.services.email import EmailSender, ResendEmailSender
from autogift.services.notifications import OwnerNotifier
from autogift.services.nudges import NudgeDispatcher
from autogift.services.order_materializer import OrderMaterializer
from autogift.services.orchestrator import AutoGiftOrchestrator


# --- Stores ---

def get_rule_store() -> RuleStore:
    return SupabaseRuleStore(get_service_client())


def get_execution_store() -> ExecutionStore:
    return SupabaseExecutionStore(get_service_client())


def get_address_store() -> AddressStore:
    return SupabaseAddressStore(get_service_client())


def get_profile_store() -> ProfileStore:
    return SupabaseProfileStore(get_service_client())


def get_nudge_store() -> NudgeStore:
    return SupabaseNudgeStore(get_service_client())


def get_wishlist_provider() -> WishlistProvider:
    return SupabaseWishlistProvider(get_service_client())


def get_order_gateway() -> OrderGateway:
    return SupabaseOrderGateway(get_service_client())


# --- Outbound clients ---

def get_catalog() -> CatalogProvider:
    return HttpCatalogClient()


def get_email_sender() -> EmailSender:
    return ResendEmailSender()


def get_push_sender() -> PushSender:
    return ApnsPushSender()


def get_text_generator() -> TextGenerator:
    return ClaudeTextGenerator()


# --- Services ---

def get_owner_notifier(
    email: EmailSender = Depends(get_email_sender),
    profiles: ProfileStore = Depends(get_profile_store),
    push: PushSender = Depends(get_push_sender),
) -> OwnerNotifier:
    return OwnerNotifier(email, profiles, push)


def get_orchestrator(
    executions: ExecutionStore = Depends(get_execution_store),
    rules: RuleStore = Depends(get_rule_store),
    addresses: AddressStore = Depends(get_address_store),
    profiles: ProfileStore = Depends(get_profile_store),
    wishlists: WishlistProvider = Depends(get_wishlist_provider),
    catalog: CatalogProvider = Depends(get_catalog),
    orders: OrderGateway = Depends(get_order_gateway),
    email: EmailSender = Depends(get_email_sender),
    notifier: OwnerNotifier = Depends(get_owner_notifier),
) -> AutoGiftOrchestrator:
    materializer = OrderMaterializer(executions, rules, addresses, profiles, orders, email)
    return AutoGiftOrchestrator(
        executions,
        rules,
        GiftSelector(wishlists, catalog),
        materializer,
        notifier,
    )


def get_address_gate(
    addresses: AddressStore = Depends(get_address_store),
    executions: ExecutionStore = Depends(get_execution_store),
    orchestrator: AutoGiftOrchestrator = Depends(get_orchestrator),
    notifier: OwnerNotifier = Depends(get_owner_notifier),
) -> AddressCollectionGate:
    return AddressCollectionGate(addresses, executions, orchestrator, notifier)


def get_nudge_dispatcher(
    nudges: NudgeStore = Depends(get_nudge_store),
    profiles: ProfileStore = Depends(get_profile_store),
    ai: TextGenerator = Depends(get_text_generator),
    email: EmailSender = Depends(get_email_sender),
) -> NudgeDispatcher:
    return NudgeDispatcher(nudges, profiles, ai, email)
