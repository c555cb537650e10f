"""
Tests for the rule, settings and execution models.

Tests cover:
- Rule recipient exclusivity (recipient_id XOR pending_recipient_email)
- NULL JSON blobs on stored rules treated as empty objects
- Effective budget, effective source and price bounds
- Gift selection criteria validation ('specific' needs a product id)
- Execution state machine: allowed transitions and terminal states
- Request models: approval subset, nudge data types, address fields

Run with: pytest tests/test_rule_models.py -v
"""

import pytest
from pydantic import ValidationError

from autogift.core.config import MIN_GIFT_PRICE
from autogift.models.addresses import ShippingAddress
from autogift.models.executions import (
    ApproveExecutionRequest,
    Execution,
    ExecutionStatus,
    TERMINAL_STATUSES,
    can_transition,
    sources_for,
    total_of,
)
from autogift.models.nudges import NudgeRequest
from autogift.models.rules import (
    AutoGiftRule,
    AutoGiftSettings,
    GiftSelectionCriteria,
    NotificationPreferences,
    RuleCreateRequest,
)

from tests.fakes import SAMPLE_ADDRESS, make_rule_row, make_stub


def _settings(**overrides) -> AutoGiftSettings:
    return AutoGiftSettings(**{"user_id": "user-owner-0001", **overrides})


# ======================================================================
# AutoGiftRule
# ======================================================================

class TestAutoGiftRule:
    def test_valid_rule_parses(self):
        rule = AutoGiftRule(**make_rule_row())
        assert rule.recipient_id == "user-recipient-0001"
        assert rule.gift_selection_criteria.source == "wishlist"

    def test_pending_email_recipient_is_valid(self):
        rule = AutoGiftRule(**make_rule_row(
            recipient_id=None, pending_recipient_email="sam@example.com",
        ))
        assert rule.pending_recipient_email == "sam@example.com"

    def test_both_recipient_fields_rejected(self):
        with pytest.raises(ValidationError):
            AutoGiftRule(**make_rule_row(pending_recipient_email="sam@example.com"))

    def test_neither_recipient_field_rejected(self):
        with pytest.raises(ValidationError):
            AutoGiftRule(**make_rule_row(recipient_id=None))

    def test_null_blobs_become_defaults(self):
        rule = AutoGiftRule(**make_rule_row(
            gift_selection_criteria=None, notification_preferences=None,
        ))
        assert rule.gift_selection_criteria.source is None
        assert rule.gift_selection_criteria.categories == []
        assert rule.notification_preferences.days_before == [7]

    def test_non_positive_budget_rejected(self):
        with pytest.raises(ValidationError):
            AutoGiftRule(**make_rule_row(budget_limit=0))

    def test_effective_budget_falls_back_to_settings(self):
        rule = AutoGiftRule(**make_rule_row(budget_limit=None))
        assert rule.effective_budget(_settings(default_budget_limit=80)) == 80

    def test_effective_source_falls_back_to_settings(self):
        rule = AutoGiftRule(**make_rule_row(gift_selection_criteria={}))
        assert rule.effective_source(_settings(default_gift_source="ai")) == "ai"

    def test_price_bounds_floor_and_ceiling(self):
        rule = AutoGiftRule(**make_rule_row(budget_limit=50))
        assert rule.price_bounds(_settings()) == (MIN_GIFT_PRICE, 50)

    def test_price_bounds_respect_criteria(self):
        rule = AutoGiftRule(**make_rule_row(
            budget_limit=100,
            gift_selection_criteria={"source": "ai", "min_price": 25, "max_price": 60},
        ))
        assert rule.price_bounds(_settings()) == (25, 60)

    def test_criteria_max_above_budget_is_capped(self):
        rule = AutoGiftRule(**make_rule_row(
            budget_limit=40,
            gift_selection_criteria={"max_price": 90},
        ))
        assert rule.price_bounds(_settings())[1] == 40


class TestGiftSelectionCriteria:
    def test_specific_requires_product_id(self):
        with pytest.raises(ValidationError):
            GiftSelectionCriteria(source="specific")

    def test_specific_with_product_id(self):
        criteria = GiftSelectionCriteria(source="specific", specific_product_id="B00X")
        assert criteria.specific_product_id == "B00X"

    def test_unknown_source_rejected(self):
        with pytest.raises(ValidationError):
            GiftSelectionCriteria(source="lottery")

    def test_min_above_max_rejected(self):
        with pytest.raises(ValidationError):
            GiftSelectionCriteria(min_price=50, max_price=20)

    def test_days_before_sorted_and_deduped(self):
        prefs = NotificationPreferences(days_before=[1, 7, 3, 7])
        assert prefs.days_before == [7, 3, 1]


class TestRuleCreateRequest:
    def test_email_normalized(self):
        req = RuleCreateRequest(
            pending_recipient_email="  Sam@Example.COM ",
            date_type="birthday",
            budget_limit=40,
        )
        assert req.pending_recipient_email == "sam@example.com"

    def test_budget_required_positive(self):
        with pytest.raises(ValidationError):
            RuleCreateRequest(recipient_id="r1", date_type="birthday", budget_limit=-5)


# ======================================================================
# Execution state machine
# ======================================================================

class TestExecutionStateMachine:
    def test_happy_path_is_allowed(self):
        assert can_transition(ExecutionStatus.PROCESSING, ExecutionStatus.PENDING_APPROVAL)
        assert can_transition(ExecutionStatus.PENDING_APPROVAL, ExecutionStatus.APPROVED)
        assert can_transition(ExecutionStatus.APPROVED, ExecutionStatus.COMPLETED)

    def test_processing_cannot_skip_to_approved(self):
        assert not can_transition(ExecutionStatus.PROCESSING, ExecutionStatus.APPROVED)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_states_have_no_exits(self, terminal):
        for target in ExecutionStatus:
            assert not can_transition(terminal, target)

    def test_sources_for_failed(self):
        assert set(sources_for(ExecutionStatus.FAILED)) == {
            ExecutionStatus.PROCESSING,
            ExecutionStatus.PENDING_APPROVAL,
            ExecutionStatus.APPROVED,
        }

    def test_execution_null_products(self):
        execution = Execution(
            id="e1", user_id="u1", rule_id="r1", event_id="ev1",
            status="processing", selected_products=None,
        )
        assert execution.selected_products == []
        assert not execution.is_terminal

    def test_total_of_rounds_to_cents(self):
        assert total_of([make_stub(price=10.1), make_stub(price=20.2)]) == 30.3


# ======================================================================
# Request models
# ======================================================================

class TestRequestModels:
    def test_empty_subset_rejected(self):
        with pytest.raises(ValidationError):
            ApproveExecutionRequest(selected_product_ids=[])

    def test_default_decision_is_approved(self):
        assert ApproveExecutionRequest().decision == "approved"

    def test_nudge_types_deduped(self):
        req = NudgeRequest(connection_id="c1", missing_data_types=["shipping", "shipping", "email"])
        assert req.missing_data_types == ["shipping", "email"]

    def test_nudge_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            NudgeRequest(connection_id="c1", missing_data_types=["shoe_size"])

    def test_blank_address_field_rejected(self):
        with pytest.raises(ValidationError):
            ShippingAddress(**{**SAMPLE_ADDRESS, "city": "   "})

    def test_blank_line2_becomes_none(self):
        address = ShippingAddress(**{**SAMPLE_ADDRESS, "address_line2": "  "})
        assert address.address_line2 is None
