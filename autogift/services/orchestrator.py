"""
Auto-Gift Orchestrator — drives an execution from event to terminal state.

process_event(event_id):
1. Create the execution for the event in 'processing' (one per event;
   re-delivery of the same event returns the existing execution)
2. Load and validate the rule and the owner's settings
3. Select a gift (wishlist first, catalog fallback)
4. Move to 'pending_approval' with the selection and its total
5. Auto-approve when the owner allows it and the total fits the budget;
   otherwise notify the owner and wait

approve_execution(execution_id, decision, selected_product_ids):
- Terminal executions are returned unchanged
- 'rejected' cancels a pending or parked execution
- 'approved' re-checks the budget, moves to 'approved' and hands off to
  the order materializer (also the re-entry point after address
  collection)

Each stage turns its own errors into a 'failed' execution carrying a
readable error_message. Nothing here retries.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from autogift.agents.pipeline import GiftSelector
from autogift.core.errors import (
    AutoGiftError,
    EventNotFoundError,
    ExecutionNotFoundError,
    InvalidSelectionError,
    InvalidTransitionError,
    MalformedRuleError,
    RuleNotFoundError,
    SelectionExhaustedError,
)
from autogift.db.executions import ExecutionStore
from autogift.db.rules import RuleStore
from autogift.models.executions import Execution, ExecutionStatus, total_of
from autogift.models.rules import AutoGiftRule, AutoGiftSettings
from autogift.services.execution_state import advance, fail
from autogift.services.notifications import OwnerNotifier
from autogift.services.order_materializer import OrderMaterializer

logger = logging.getLogger(__name__)

RULE_INACTIVE_MESSAGE = "Auto-gifting rule is inactive"


class AutoGiftOrchestrator:
    def __init__(
        self,
        executions: ExecutionStore,
        rules: RuleStore,
        selector: GiftSelector,
        materializer: OrderMaterializer,
        notifier: Optional[OwnerNotifier] = None,
    ):
        self._executions = executions
        self._rules = rules
        self._selector = selector
        self._materializer = materializer
        self._notifier = notifier

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_rule(self, rule_id: str) -> tuple[AutoGiftRule, AutoGiftSettings]:
        """
        Raises:
            RuleNotFoundError: no rule with this id.
            MalformedRuleError: the stored document does not validate.
        """
        row = self._rules.get_rule(rule_id)
        if row is None:
            raise RuleNotFoundError(rule_id)
        try:
            rule = AutoGiftRule(**row)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            raise MalformedRuleError(f"Auto-gifting rule is malformed ({fields})") from exc
        return rule, self._rules.get_settings(rule.user_id)

    def _refresh(self, execution: Execution) -> Execution:
        return self._executions.get_execution(execution.id) or execution

    def _fail_unless_terminal(self, execution: Execution, message: str) -> Execution:
        current = self._refresh(execution)
        if current.is_terminal:
            return current
        return fail(self._executions, current, message)

    # ------------------------------------------------------------------
    # process_event
    # ------------------------------------------------------------------

    async def process_event(self, event_id: str) -> Execution:
        """
        Entry point for the scheduler.

        Raises:
            EventNotFoundError: the event id is unknown.
        """
        event = self._executions.get_event(event_id)
        if event is None:
            raise EventNotFoundError(event_id)

        existing = self._executions.find_by_event(event_id)
        if existing is not None:
            logger.info(
                "Event %s already has execution %s (%s) — nothing to do",
                event_id[:8], existing.id[:8], existing.status.value,
            )
            return existing

        execution = self._executions.create_execution(event)
        if execution is None:
            # Lost the insert race to a concurrent delivery of the same event
            winner = self._executions.find_by_event(event_id)
            if winner is None:
                raise AutoGiftError(f"Execution for event {event_id} could not be created")
            return winner

        logger.info(
            "Processing event %s as execution %s (rule %s)",
            event_id[:8], execution.id[:8], event.rule_id[:8],
        )
        try:
            return await self._select_and_park(execution)
        except Exception as exc:
            logger.exception("Execution %s crashed during processing", execution.id[:8])
            return self._fail_unless_terminal(execution, str(exc))

    async def _select_and_park(self, execution: Execution) -> Execution:
        try:
            rule, settings = self._load_rule(execution.rule_id)
        except (RuleNotFoundError, MalformedRuleError) as exc:
            return fail(self._executions, execution, str(exc))

        if not rule.is_active:
            return fail(self._executions, execution, RULE_INACTIVE_MESSAGE)

        products = await self._selector.select(rule, settings)
        if not products:
            return fail(self._executions, execution, str(SelectionExhaustedError()))

        total = total_of(products)
        pending = advance(
            self._executions,
            execution,
            ExecutionStatus.PENDING_APPROVAL,
            selected_products=[p.model_dump() for p in products],
            total_amount=total,
        )
        if pending is None:
            return self._refresh(execution)

        budget = rule.effective_budget(settings)
        if settings.auto_approve_gifts and total <= budget:
            logger.info(
                "Auto-approving execution %s ($%.2f <= $%.2f)",
                pending.id[:8], total, budget,
            )
            return await self._approve_pending(pending, rule, settings, None)

        if self._notifier is not None:
            await self._notifier.notify_approval_needed(pending, rule, settings)
        return pending

    # ------------------------------------------------------------------
    # approve_execution
    # ------------------------------------------------------------------

    async def approve_execution(
        self,
        execution_id: str,
        decision: str = "approved",
        selected_product_ids: Optional[list[str]] = None,
    ) -> Execution:
        """
        Approve or reject an execution.

        Raises:
            ExecutionNotFoundError: unknown execution id.
            InvalidTransitionError: the execution is still 'processing'.
            InvalidSelectionError: selected_product_ids matched nothing.
        """
        execution = self._executions.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)

        if execution.is_terminal:
            logger.info(
                "Execution %s is already %s — approval is a no-op",
                execution_id[:8], execution.status.value,
            )
            return execution

        if execution.status == ExecutionStatus.PROCESSING:
            raise InvalidTransitionError(execution.status.value, ExecutionStatus.APPROVED.value)

        if decision == "rejected":
            logger.info("Execution %s rejected by owner", execution_id[:8])
            cancelled = advance(self._executions, execution, ExecutionStatus.CANCELLED)
            return cancelled or self._refresh(execution)

        try:
            rule, settings = self._load_rule(execution.rule_id)
        except (RuleNotFoundError, MalformedRuleError) as exc:
            return fail(self._executions, execution, str(exc))

        try:
            if execution.status == ExecutionStatus.PENDING_APPROVAL:
                return await self._approve_pending(
                    execution, rule, settings, selected_product_ids,
                )
            return await self._materializer.materialize(execution, rule, settings)
        except InvalidSelectionError:
            raise
        except Exception as exc:
            logger.exception("Execution %s crashed during approval", execution_id[:8])
            return self._fail_unless_terminal(execution, str(exc))

    async def _approve_pending(
        self,
        execution: Execution,
        rule: AutoGiftRule,
        settings: AutoGiftSettings,
        selected_product_ids: Optional[list[str]],
    ) -> Execution:
        products = execution.selected_products
        if selected_product_ids is not None:
            wanted = set(selected_product_ids)
            products = [p for p in products if p.product_id in wanted]
            if not products:
                raise InvalidSelectionError(
                    "None of the selected products belong to this execution"
                )

        total = total_of(products)
        budget = rule.effective_budget(settings)
        if total > budget:
            return fail(
                self._executions,
                execution,
                f"Total amount ${total:.2f} exceeds budget limit ${budget:.2f}",
            )

        approved = advance(
            self._executions,
            execution,
            ExecutionStatus.APPROVED,
            selected_products=[p.model_dump() for p in products],
            total_amount=total,
        )
        if approved is None:
            return self._refresh(execution)

        return await self._materializer.materialize(approved, rule, settings)
