"""
In-memory fakes for every store and collaborator, plus test factories.

The fakes keep the same guard semantics as the Supabase stores:
- transition() only writes while the row's status is in `expected`
- consume() only writes while collected_at is null and expires_at > now
- create_execution() refuses a second execution for the same event
- create_order() refuses a second order for the same idempotency key
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from autogift.agents.state import CatalogProduct
from autogift.core.errors import DuplicateOrderError
from autogift.models.addresses import PendingRecipientAddress, ShippingAddress
from autogift.models.executions import (
    AutomatedGiftEvent,
    Execution,
    ExecutionStatus,
    OrderResult,
    ProductStub,
)
from autogift.models.nudges import ConnectionProfile, NudgeRecord
from autogift.models.rules import AutoGiftSettings

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
OWNER_ID = "user-owner-0001"
RECIPIENT_ID = "user-recipient-0001"

SAMPLE_ADDRESS = {
    "name": "Alice Example",
    "address_line1": "12 Main St",
    "city": "Austin",
    "state": "TX",
    "zip_code": "78701",
    "country": "US",
}


def fixed_clock() -> datetime:
    return FIXED_NOW


# ======================================================================
# Stores
# ======================================================================

class FakeRuleStore:
    def __init__(self):
        self.rules: dict[str, dict[str, Any]] = {}
        self.settings: dict[str, AutoGiftSettings] = {}
        self.spend_calls: list[tuple[str, float]] = []

    def get_rule(self, rule_id):
        row = self.rules.get(rule_id)
        return dict(row) if row else None

    def list_rules(self, user_id):
        return [dict(r) for r in self.rules.values() if r.get("user_id") == user_id]

    def insert_rule(self, row):
        saved = {**row, "id": row.get("id") or f"rule-{uuid.uuid4().hex[:12]}"}
        self.rules[saved["id"]] = saved
        return dict(saved)

    def update_rule(self, rule_id, user_id, fields):
        row = self.rules.get(rule_id)
        if row is None or row.get("user_id") != user_id:
            return None
        row.update(fields)
        return dict(row)

    def get_settings(self, user_id):
        return self.settings.get(user_id) or AutoGiftSettings(user_id=user_id)

    def save_settings(self, settings):
        self.settings[settings.user_id] = settings
        return settings

    def record_spend(self, user_id, amount):
        self.spend_calls.append((user_id, amount))
        settings = self.get_settings(user_id)
        settings.budget_tracking.spent_this_month += amount
        settings.budget_tracking.spent_this_year += amount
        return self.save_settings(settings)


class FakeExecutionStore:
    def __init__(self):
        self.events: dict[str, AutomatedGiftEvent] = {}
        self.executions: dict[str, Execution] = {}
        self.lose_create_race = False
        self._tick = 0

    def _next_time(self) -> datetime:
        self._tick += 1
        return FIXED_NOW + timedelta(seconds=self._tick)

    def add_event(self, rule_id, user_id=OWNER_ID, event_id=None) -> AutomatedGiftEvent:
        event = AutomatedGiftEvent(
            id=event_id or f"event-{uuid.uuid4().hex[:12]}",
            rule_id=rule_id,
            user_id=user_id,
            occasion_date="2026-03-08",
        )
        self.events[event.id] = event
        return event

    def add_execution(self, **fields) -> Execution:
        data = {
            "id": f"exec-{uuid.uuid4().hex[:12]}",
            "user_id": OWNER_ID,
            "rule_id": "rule-missing",
            "event_id": f"event-{uuid.uuid4().hex[:12]}",
            "status": ExecutionStatus.PROCESSING,
            "created_at": self._next_time(),
        }
        data.update(fields)
        execution = Execution(**data)
        self.executions[execution.id] = execution
        return execution

    def get_event(self, event_id):
        return self.events.get(event_id)

    def get_execution(self, execution_id):
        return self.executions.get(execution_id)

    def find_by_event(self, event_id):
        for execution in self.executions.values():
            if execution.event_id == event_id:
                return execution
        return None

    def create_execution(self, event):
        if self.lose_create_race:
            # A concurrent delivery inserts first
            self.add_execution(
                user_id=event.user_id, rule_id=event.rule_id, event_id=event.id,
                status=ExecutionStatus.PENDING_APPROVAL,
            )
            return None
        if self.find_by_event(event.id) is not None:
            return None
        return self.add_execution(
            user_id=event.user_id, rule_id=event.rule_id, event_id=event.id,
        )

    def transition(self, execution_id, expected, fields):
        current = self.executions.get(execution_id)
        if current is None or current.status not in expected:
            return None
        data = current.model_dump()
        data.update(fields)
        data["updated_at"] = self._next_time()
        updated = Execution(**data)
        self.executions[execution_id] = updated
        return updated

    def list_for_user(self, user_id, limit=50):
        mine = [e for e in self.executions.values() if e.user_id == user_id]
        mine.sort(key=lambda e: e.created_at, reverse=True)
        return mine[:limit]


class FakeAddressStore:
    def __init__(self):
        self.records: dict[str, PendingRecipientAddress] = {}

    def create_request(self, record):
        saved = record.model_copy(update={"id": f"addr-{uuid.uuid4().hex[:8]}"})
        self.records[saved.token] = saved
        return saved

    def get_by_token(self, token):
        return self.records.get(token)

    def consume(self, token, address, now):
        record = self.records.get(token)
        if record is None or record.collected_at is not None or record.expires_at <= now:
            return None
        updated = record.model_copy(update={"collected_at": now, "shipping_address": address})
        self.records[token] = updated
        return updated

    def get_collected_for_execution(self, execution_id):
        for record in self.records.values():
            if record.execution_id == execution_id and record.collected_at is not None:
                return record
        return None


class FakeProfileStore:
    def __init__(self):
        self.profiles: dict[str, dict[str, Any]] = {
            OWNER_ID: {"id": OWNER_ID, "name": "Olivia Owner", "email": "olivia@example.com"},
        }
        self.giver_addresses: dict[tuple[str, str], dict[str, Any]] = {}
        self.device_tokens: dict[str, str] = {}
        self.connections: dict[str, ConnectionProfile] = {}

    def get_profile(self, user_id):
        return self.profiles.get(user_id)

    def get_giver_provided_address(self, user_id, *, recipient_id=None, recipient_email=None):
        return self.giver_addresses.get((user_id, recipient_id or recipient_email))

    def get_device_token(self, user_id):
        return self.device_tokens.get(user_id)

    def get_connection(self, connection_id, user_id):
        connection = self.connections.get(connection_id)
        if connection is None or connection.user_id != user_id:
            return None
        return connection


class FakeNudgeStore:
    def __init__(self):
        self.records: list[NudgeRecord] = []
        self.fail_reads = False

    def add(self, user_id, connection_id, created_at):
        self.records.append(NudgeRecord(
            id=f"nudge-{uuid.uuid4().hex[:8]}",
            user_id=user_id,
            connection_id=connection_id,
            recipient_email="friend@example.com",
            custom_message="earlier nudge",
            created_at=created_at,
        ))

    def list_since(self, user_id, connection_id, since):
        if self.fail_reads:
            raise RuntimeError("connection reset")
        matches = [
            r for r in self.records
            if r.user_id == user_id and r.connection_id == connection_id and r.created_at >= since
        ]
        return sorted(matches, key=lambda r: r.created_at, reverse=True)

    def insert(self, record):
        saved = record.model_copy(update={"id": f"nudge-{uuid.uuid4().hex[:8]}"})
        self.records.append(saved)
        return saved


class FakeWishlistProvider:
    def __init__(self):
        self.items: dict[str, list[dict[str, Any]]] = {}
        self.error: Optional[Exception] = None
        self.calls = 0

    def add_item(self, recipient_id, name, price, created_at, product_id=None):
        self.items.setdefault(recipient_id, []).append({
            "id": f"wi-{uuid.uuid4().hex[:8]}",
            "product_id": product_id or f"prod-{uuid.uuid4().hex[:8]}",
            "name": name,
            "price": price,
            "image_url": None,
            "created_at": created_at.isoformat(),
        })

    def list_public_wishlist_items(self, recipient_id, limit):
        self.calls += 1
        if self.error is not None:
            raise self.error
        items = sorted(
            self.items.get(recipient_id, []), key=lambda i: i["created_at"], reverse=True,
        )
        return items[:limit]


# ======================================================================
# Collaborators
# ======================================================================

def make_catalog_product(title="Catalog Gift", price=25.0, stars=4.5, num_reviews=100, **kw):
    return CatalogProduct(
        product_id=kw.pop("product_id", f"cat-{uuid.uuid4().hex[:8]}"),
        title=title,
        price=price,
        stars=stars,
        num_reviews=num_reviews,
        **kw,
    )


class FakeCatalog:
    def __init__(self):
        self.results: dict[str, list[CatalogProduct]] = {}
        self.default_results: list[CatalogProduct] = []
        self.products: dict[str, CatalogProduct] = {}
        self.error: Optional[Exception] = None
        self.queries: list[str] = []
        self.search_kwargs: list[dict[str, Any]] = []

    async def search(self, query, *, limit, price_min=None, price_max=None, categories=None):
        self.queries.append(query)
        self.search_kwargs.append({
            "limit": limit, "price_min": price_min, "price_max": price_max,
            "categories": categories,
        })
        if self.error is not None:
            raise self.error
        return list(self.results.get(query, self.default_results))

    async def get_product(self, product_id):
        if self.error is not None:
            raise self.error
        return self.products.get(product_id)


class FakeOrderGateway:
    def __init__(self):
        self.orders: dict[str, dict[str, Any]] = {}
        self.error: Optional[Exception] = None

    def create_order(self, *, user_id, recipient_id, items, total_amount, shipping_address,
                     gift_message, execution_id, idempotency_key):
        if self.error is not None:
            raise self.error
        if idempotency_key in self.orders:
            raise DuplicateOrderError(idempotency_key)
        order_id = f"order-{uuid.uuid4().hex[:8]}"
        self.orders[idempotency_key] = {
            "order_id": order_id,
            "user_id": user_id,
            "recipient_id": recipient_id,
            "items": list(items),
            "total_amount": total_amount,
            "shipping_address": shipping_address,
            "gift_message": gift_message,
            "execution_id": execution_id,
        }
        return OrderResult(order_id=order_id, status="automated_pending")

    def get_by_idempotency_key(self, idempotency_key):
        order = self.orders.get(idempotency_key)
        if order is None:
            return None
        return OrderResult(order_id=order["order_id"], status="automated_pending")


class FakeEmailSender:
    def __init__(self):
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.error: Optional[Exception] = None

    async def send(self, template, to, variables):
        if self.error is not None:
            raise self.error
        self.sent.append((template, to, dict(variables)))
        return True

    def templates(self) -> list[str]:
        return [t for t, _, _ in self.sent]


class FakePushSender:
    def __init__(self):
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def send(self, device_token, payload):
        self.sent.append((device_token, payload))
        return True


class FakeTextGenerator:
    def __init__(self, reply: str = "Hey Sam! Mind sharing your address so gifts find you?"):
        self.reply = reply
        self.error: Optional[Exception] = None
        self.prompts: list[str] = []

    async def generate(self, prompt, system=""):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


# ======================================================================
# Factories
# ======================================================================

def make_rule_row(**overrides) -> dict[str, Any]:
    row = {
        "id": f"rule-{uuid.uuid4().hex[:12]}",
        "user_id": OWNER_ID,
        "recipient_id": RECIPIENT_ID,
        "pending_recipient_email": None,
        "date_type": "birthday",
        "budget_limit": 50.0,
        "gift_selection_criteria": {"source": "wishlist", "categories": []},
        "notification_preferences": {"enabled": True, "days_before": [7]},
        "gift_message": "Happy birthday!",
        "is_active": True,
    }
    row.update(overrides)
    return row


def make_stub(price=30.0, product_id=None, source="wishlist", name="Gift") -> ProductStub:
    return ProductStub(
        product_id=product_id or f"prod-{uuid.uuid4().hex[:8]}",
        name=name,
        price=price,
        source=source,
    )


def shipping_address(**overrides) -> ShippingAddress:
    return ShippingAddress(**{**SAMPLE_ADDRESS, **overrides})
