"""
Rule Store — auto_gifting_rules and auto_gifting_settings tables.

Rules come back as raw rows: the orchestrator validates them into
AutoGiftRule itself so a malformed document fails the execution with a
configuration error. Settings are parsed here; a user without a row
gets the defaults.
"""

import logging
from typing import Any, Optional, Protocol

from supabase import Client

from autogift.db.supabase_client import is_unique_violation
from autogift.models.rules import AutoGiftSettings

logger = logging.getLogger(__name__)

RULES_TABLE = "auto_gifting_rules"
SETTINGS_TABLE = "auto_gifting_settings"

SPEND_UPDATE_ATTEMPTS = 5


class RuleStore(Protocol):
    def get_rule(self, rule_id: str) -> Optional[dict[str, Any]]: ...

    def list_rules(self, user_id: str) -> list[dict[str, Any]]: ...

    def insert_rule(self, row: dict[str, Any]) -> dict[str, Any]: ...

    def update_rule(
        self, rule_id: str, user_id: str, fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]: ...

    def get_settings(self, user_id: str) -> AutoGiftSettings: ...

    def save_settings(self, settings: AutoGiftSettings) -> AutoGiftSettings: ...

    def record_spend(self, user_id: str, amount: float) -> AutoGiftSettings: ...


class SupabaseRuleStore:
    """RuleStore backed by PostgREST through the service-role client."""

    def __init__(self, client: Client):
        self._client = client

    # --- Rules ---

    def get_rule(self, rule_id: str) -> Optional[dict[str, Any]]:
        result = (
            self._client.table(RULES_TABLE)
            .select("*")
            .eq("id", rule_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def list_rules(self, user_id: str) -> list[dict[str, Any]]:
        result = (
            self._client.table(RULES_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    def insert_rule(self, row: dict[str, Any]) -> dict[str, Any]:
        result = self._client.table(RULES_TABLE).insert(row).execute()
        return result.data[0]

    def update_rule(
        self, rule_id: str, user_id: str, fields: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        # user_id in the filter keeps one user from editing another's rule
        result = (
            self._client.table(RULES_TABLE)
            .update(fields)
            .eq("id", rule_id)
            .eq("user_id", user_id)
            .execute()
        )
        return result.data[0] if result.data else None

    # --- Settings ---

    def get_settings(self, user_id: str) -> AutoGiftSettings:
        row = self._settings_row(user_id)
        if row is None:
            return AutoGiftSettings(user_id=user_id)
        return AutoGiftSettings(**row)

    def save_settings(self, settings: AutoGiftSettings) -> AutoGiftSettings:
        result = (
            self._client.table(SETTINGS_TABLE)
            .upsert(settings.model_dump(), on_conflict="user_id")
            .execute()
        )
        return AutoGiftSettings(**result.data[0])

    def record_spend(self, user_id: str, amount: float) -> AutoGiftSettings:
        """
        Add a completed order's total to the owner's spend counters.

        The update only matches while budget_tracking still holds the
        values just read, so two orders completing together cannot
        overwrite each other's increment; a lost race re-reads and
        tries again. A user with no settings row gets one inserted, and
        a concurrent insert is retried the same way.

        Counters only ever grow here; resetting them at period rollover
        belongs to a separate job.
        """
        for _ in range(SPEND_UPDATE_ATTEMPTS):
            row = self._settings_row(user_id)
            settings = AutoGiftSettings(**row) if row else AutoGiftSettings(user_id=user_id)
            previous = settings.budget_tracking.model_dump()
            tracking = settings.budget_tracking
            tracking.spent_this_month = round(tracking.spent_this_month + amount, 2)
            tracking.spent_this_year = round(tracking.spent_this_year + amount, 2)

            saved = self._write_tracking(settings, previous, insert=row is None)
            if saved is not None:
                logger.info(
                    "Recorded auto-gift spend of %.2f for user %s (month=%.2f, year=%.2f)",
                    amount, user_id[:8],
                    saved.budget_tracking.spent_this_month,
                    saved.budget_tracking.spent_this_year,
                )
                return saved
            logger.info("Spend counters for user %s changed underneath, retrying", user_id[:8])

        raise RuntimeError(
            f"Could not record spend for user {user_id[:8]} after "
            f"{SPEND_UPDATE_ATTEMPTS} attempts"
        )

    def _settings_row(self, user_id: str) -> Optional[dict[str, Any]]:
        result = (
            self._client.table(SETTINGS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def _write_tracking(
        self,
        settings: AutoGiftSettings,
        previous: dict[str, float],
        insert: bool,
    ) -> Optional[AutoGiftSettings]:
        """Write the new counters. None means another writer got there first."""
        if insert:
            try:
                result = self._client.table(SETTINGS_TABLE).insert(settings.model_dump()).execute()
            except Exception as exc:
                if is_unique_violation(exc):
                    return None
                raise
        else:
            result = (
                self._client.table(SETTINGS_TABLE)
                .update({"budget_tracking": settings.budget_tracking.model_dump()})
                .eq("user_id", settings.user_id)
                .contains("budget_tracking", previous)
                .execute()
            )
        return AutoGiftSettings(**result.data[0]) if result.data else None
