"""
Execution Store — automated_gift_events and automated_gift_executions.

Every status change goes through `transition()`, a single conditional
UPDATE filtered on the row's current status:

    UPDATE automated_gift_executions SET ...
    WHERE id = :id AND status IN (:expected)

Zero matched rows means another invocation moved the execution first;
the caller re-reads and reports the winner's state. No row is locked.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

from supabase import Client

from autogift.db.supabase_client import is_unique_violation
from autogift.models.executions import (
    AutomatedGiftEvent,
    Execution,
    ExecutionStatus,
)

logger = logging.getLogger(__name__)

EVENTS_TABLE = "automated_gift_events"
EXECUTIONS_TABLE = "automated_gift_executions"


class ExecutionStore(Protocol):
    def get_event(self, event_id: str) -> Optional[AutomatedGiftEvent]: ...

    def get_execution(self, execution_id: str) -> Optional[Execution]: ...

    def find_by_event(self, event_id: str) -> Optional[Execution]: ...

    def create_execution(self, event: AutomatedGiftEvent) -> Optional[Execution]: ...

    def transition(
        self,
        execution_id: str,
        expected: Sequence[ExecutionStatus],
        fields: dict[str, Any],
    ) -> Optional[Execution]: ...

    def list_for_user(self, user_id: str, limit: int = 50) -> list[Execution]: ...


class SupabaseExecutionStore:
    def __init__(self, client: Client):
        self._client = client

    def get_event(self, event_id: str) -> Optional[AutomatedGiftEvent]:
        result = (
            self._client.table(EVENTS_TABLE)
            .select("id, rule_id, user_id, occasion_date")
            .eq("id", event_id)
            .limit(1)
            .execute()
        )
        return AutomatedGiftEvent(**result.data[0]) if result.data else None

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        result = (
            self._client.table(EXECUTIONS_TABLE)
            .select("*")
            .eq("id", execution_id)
            .limit(1)
            .execute()
        )
        return Execution(**result.data[0]) if result.data else None

    def find_by_event(self, event_id: str) -> Optional[Execution]:
        result = (
            self._client.table(EXECUTIONS_TABLE)
            .select("*")
            .eq("event_id", event_id)
            .limit(1)
            .execute()
        )
        return Execution(**result.data[0]) if result.data else None

    def create_execution(self, event: AutomatedGiftEvent) -> Optional[Execution]:
        """
        Insert the execution for an event in 'processing'.

        event_id is unique on the table, so a concurrent duplicate insert
        fails with a unique violation and this returns None.
        """
        row = {
            "user_id": event.user_id,
            "rule_id": event.rule_id,
            "event_id": event.id,
            "status": ExecutionStatus.PROCESSING.value,
        }
        try:
            result = self._client.table(EXECUTIONS_TABLE).insert(row).execute()
        except Exception as exc:
            if is_unique_violation(exc):
                logger.info(
                    "Execution for event %s already exists — insert lost the race",
                    event.id[:8],
                )
                return None
            raise
        return Execution(**result.data[0])

    def transition(
        self,
        execution_id: str,
        expected: Sequence[ExecutionStatus],
        fields: dict[str, Any],
    ) -> Optional[Execution]:
        payload = {
            **fields,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = (
            self._client.table(EXECUTIONS_TABLE)
            .update(payload)
            .eq("id", execution_id)
            .in_("status", [s.value for s in expected])
            .execute()
        )
        return Execution(**result.data[0]) if result.data else None

    def list_for_user(self, user_id: str, limit: int = 50) -> list[Execution]:
        result = (
            self._client.table(EXECUTIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [Execution(**row) for row in (result.data or [])]
