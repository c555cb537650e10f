"""
Address Store — pending_recipient_addresses capability tokens.

`consume()` is the only concurrency control for address submission:

    UPDATE pending_recipient_addresses
    SET shipping_address = :addr, collected_at = :now
    WHERE token = :token AND collected_at IS NULL AND expires_at > :now

The first submission matches one row; every later one (including a
concurrent duplicate) matches none.
"""

import logging
from datetime import datetime
from typing import Optional, Protocol

from supabase import Client

from autogift.models.addresses import PendingRecipientAddress, ShippingAddress

logger = logging.getLogger(__name__)

PENDING_ADDRESSES_TABLE = "pending_recipient_addresses"


class AddressStore(Protocol):
    def create_request(self, record: PendingRecipientAddress) -> PendingRecipientAddress: ...

    def get_by_token(self, token: str) -> Optional[PendingRecipientAddress]: ...

    def consume(
        self, token: str, address: ShippingAddress, now: datetime,
    ) -> Optional[PendingRecipientAddress]: ...

    def get_collected_for_execution(
        self, execution_id: str,
    ) -> Optional[PendingRecipientAddress]: ...


class SupabaseAddressStore:
    def __init__(self, client: Client):
        self._client = client

    def create_request(self, record: PendingRecipientAddress) -> PendingRecipientAddress:
        row = record.model_dump(mode="json", exclude={"id"}, exclude_none=True)
        result = self._client.table(PENDING_ADDRESSES_TABLE).insert(row).execute()
        return PendingRecipientAddress(**result.data[0])

    def get_by_token(self, token: str) -> Optional[PendingRecipientAddress]:
        result = (
            self._client.table(PENDING_ADDRESSES_TABLE)
            .select("*")
            .eq("token", token)
            .limit(1)
            .execute()
        )
        return PendingRecipientAddress(**result.data[0]) if result.data else None

    def consume(
        self, token: str, address: ShippingAddress, now: datetime,
    ) -> Optional[PendingRecipientAddress]:
        result = (
            self._client.table(PENDING_ADDRESSES_TABLE)
            .update({
                "shipping_address": address.model_dump(),
                "collected_at": now.isoformat(),
            })
            .eq("token", token)
            .is_("collected_at", "null")
            .gt("expires_at", now.isoformat())
            .execute()
        )
        if not result.data:
            return None
        return PendingRecipientAddress(**result.data[0])

    def get_collected_for_execution(
        self, execution_id: str,
    ) -> Optional[PendingRecipientAddress]:
        result = (
            self._client.table(PENDING_ADDRESSES_TABLE)
            .select("*")
            .eq("execution_id", execution_id)
            .not_.is_("collected_at", "null")
            .order("collected_at", desc=True)
            .limit(1)
            .execute()
        )
        return PendingRecipientAddress(**result.data[0]) if result.data else None
