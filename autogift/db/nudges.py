"""
Nudge Store — connection_nudges history used for rate limiting.
"""

from datetime import datetime
from typing import Protocol

from supabase import Client

from autogift.models.nudges import NudgeRecord

NUDGES_TABLE = "connection_nudges"


class NudgeStore(Protocol):
    def list_since(
        self, user_id: str, connection_id: str, since: datetime,
    ) -> list[NudgeRecord]: ...

    def insert(self, record: NudgeRecord) -> NudgeRecord: ...


class SupabaseNudgeStore:
    def __init__(self, client: Client):
        self._client = client

    def list_since(
        self, user_id: str, connection_id: str, since: datetime,
    ) -> list[NudgeRecord]:
        """Nudges from user to connection at or after `since`, newest first."""
        result = (
            self._client.table(NUDGES_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("connection_id", connection_id)
            .gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .execute()
        )
        return [NudgeRecord(**row) for row in (result.data or [])]

    def insert(self, record: NudgeRecord) -> NudgeRecord:
        row = record.model_dump(mode="json", exclude={"id"})
        result = self._client.table(NUDGES_TABLE).insert(row).execute()
        return NudgeRecord(**result.data[0])
