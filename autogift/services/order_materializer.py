"""
Order Materializer — turn an approved execution into an order.

1. Resolve a shipping address, in order of preference:
   a. the address the recipient submitted for this execution
   b. the recipient's profile address
   c. an address the owner entered for a not-yet-accepted connection
2. No address: park the execution in 'approved' with
   address_collection_status='requested' and email the recipient an
   address collection link. A second call while parked does nothing.
3. Address found: create the order with the execution id as the
   idempotency key, then move the execution to 'completed' and add the
   total to the owner's budget tracking.

Any order creation error fails the execution with the error message.
A duplicate idempotency key means an earlier call already placed the
order; the execution is completed against that existing order, so an
attempt that died between placing the order and writing 'completed'
is recovered on the next approval.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from autogift.core.clock import Clock, utcnow
from autogift.core.config import ADDRESS_TOKEN_TTL_HOURS
from autogift.core.errors import DuplicateOrderError, RecipientUnavailableError
from autogift.db.addresses import AddressStore
from autogift.db.executions import ExecutionStore
from autogift.db.orders import OrderGateway
from autogift.db.profiles import ProfileStore
from autogift.db.rules import RuleStore
from autogift.models.addresses import ResolvedAddress, ShippingAddress
from autogift.models.executions import Execution, ExecutionStatus
from autogift.models.rules import AutoGiftRule, AutoGiftSettings
from autogift.services.address_collection import build_collect_url, issue_address_token
from autogift.services.email import EmailSender
from autogift.services.execution_state import advance, fail, update_in_place

logger = logging.getLogger(__name__)

DEFAULT_GIFT_MESSAGE = "Happy celebrating! Sent with love."


def _parse_address(raw: Optional[dict[str, Any]]) -> Optional[ShippingAddress]:
    if not raw:
        return None
    try:
        return ShippingAddress(**raw)
    except (TypeError, ValidationError) as exc:
        logger.info("Ignoring incomplete stored address: %s", exc)
        return None


class OrderMaterializer:
    def __init__(
        self,
        executions: ExecutionStore,
        rules: RuleStore,
        addresses: AddressStore,
        profiles: ProfileStore,
        orders: OrderGateway,
        email: EmailSender,
        clock: Clock = utcnow,
    ):
        self._executions = executions
        self._rules = rules
        self._addresses = addresses
        self._profiles = profiles
        self._orders = orders
        self._email = email
        self._clock = clock

    # ------------------------------------------------------------------
    # Address resolution
    # ------------------------------------------------------------------

    def resolve_address(
        self, execution: Execution, rule: AutoGiftRule,
    ) -> Optional[ResolvedAddress]:
        collected = self._addresses.get_collected_for_execution(execution.id)
        if collected is not None and collected.shipping_address is not None:
            return ResolvedAddress(
                address=collected.shipping_address,
                source="recipient_provided",
                is_verified=True,
            )

        if rule.recipient_id:
            profile = self._profiles.get_profile(rule.recipient_id) or {}
            address = _parse_address(profile.get("shipping_address"))
            if address is not None:
                return ResolvedAddress(
                    address=address,
                    source="user_verified",
                    is_verified=bool(profile.get("address_verified")),
                )

        giver_provided = _parse_address(
            self._profiles.get_giver_provided_address(
                rule.user_id,
                recipient_id=rule.recipient_id,
                recipient_email=rule.pending_recipient_email,
            )
        )
        if giver_provided is not None:
            return ResolvedAddress(address=giver_provided, source="giver_provided")

        return None

    def _recipient_email(self, rule: AutoGiftRule) -> Optional[str]:
        if rule.pending_recipient_email:
            return rule.pending_recipient_email
        profile = self._profiles.get_profile(rule.recipient_id) or {}
        return profile.get("email")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def materialize(
        self,
        execution: Execution,
        rule: AutoGiftRule,
        settings: AutoGiftSettings,
    ) -> Execution:
        """Drive an 'approved' execution to 'completed', 'failed', or parked."""
        if execution.status != ExecutionStatus.APPROVED:
            return execution

        try:
            resolved = self.resolve_address(execution, rule)
        except Exception as exc:
            return fail(self._executions, execution, f"Address lookup failed: {exc}")

        if resolved is None:
            try:
                return await self._request_address(execution, rule)
            except RecipientUnavailableError as exc:
                return fail(self._executions, execution, str(exc))

        logger.info(
            "Placing order for execution %s (address source: %s)",
            execution.id[:8], resolved.source,
        )
        try:
            order = self._orders.create_order(
                user_id=execution.user_id,
                recipient_id=rule.recipient_id,
                items=execution.selected_products,
                total_amount=execution.total_amount or 0.0,
                shipping_address=resolved.address,
                gift_message=rule.gift_message or DEFAULT_GIFT_MESSAGE,
                execution_id=execution.id,
                idempotency_key=execution.id,
            )
        except DuplicateOrderError:
            order = self._orders.get_by_idempotency_key(execution.id)
            if order is None:
                logger.warning(
                    "Duplicate order key for execution %s but no order found",
                    execution.id[:8],
                )
                return self._executions.get_execution(execution.id) or execution
            logger.info(
                "Order %s for execution %s already exists, completing with it",
                order.order_id[:8], execution.id[:8],
            )
        except Exception as exc:
            return fail(self._executions, execution, str(exc))

        completed = advance(
            self._executions,
            execution,
            ExecutionStatus.COMPLETED,
            order_id=order.order_id,
            error_message=None,
        )
        if completed is None:
            return self._executions.get_execution(execution.id) or execution

        try:
            self._rules.record_spend(execution.user_id, completed.total_amount or 0.0)
        except Exception as exc:
            logger.error(
                "Failed to record spend for execution %s: %s", execution.id[:8], exc,
            )
        return completed

    async def _request_address(
        self, execution: Execution, rule: AutoGiftRule,
    ) -> Execution:
        if execution.address_collection_status == "requested":
            logger.info(
                "Execution %s still waiting for the recipient's address", execution.id[:8],
            )
            return execution

        recipient_email = self._recipient_email(rule)
        if not recipient_email:
            raise RecipientUnavailableError(
                "Recipient has no shipping address or email on file"
            )

        parked = update_in_place(
            self._executions, execution, address_collection_status="requested",
        )
        if parked is None:
            return self._executions.get_execution(execution.id) or execution

        try:
            record = issue_address_token(
                self._addresses,
                execution_id=execution.id,
                requested_by=execution.user_id,
                recipient_email=recipient_email,
                now=self._clock(),
            )
        except Exception as exc:
            return fail(self._executions, parked, f"Address request failed: {exc}")

        try:
            owner = self._profiles.get_profile(execution.user_id) or {}
            await self._email.send(
                "address_request",
                recipient_email,
                {
                    "giver_name": owner.get("name") or "Someone special",
                    "collect_url": build_collect_url(record.token),
                    "expires_hours": ADDRESS_TOKEN_TTL_HOURS,
                },
            )
        except Exception as exc:
            logger.warning(
                "Address request email failed for execution %s: %s", execution.id[:8], exc,
            )

        logger.info(
            "Execution %s parked awaiting address from recipient", execution.id[:8],
        )
        return parked
