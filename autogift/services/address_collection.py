"""
Address Collection Gate — capability tokens for recipient shipping addresses.

When an approved execution has no address on file, the order
materializer issues a PendingRecipientAddress token and emails the
recipient a link to /collect-address?token=... The recipient needs no
account; the token is the only credential.

A token is usable once and only until it expires. The consume step is
a single conditional update on `collected_at IS NULL AND expires_at > now`,
so of two concurrent submissions exactly one wins. The winner re-invokes
approval in the same request so the order is placed right away.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Protocol

from autogift.core.clock import Clock, utcnow
from autogift.core.config import ADDRESS_TOKEN_TTL_HOURS, PUBLIC_BASE_URL
from autogift.core.errors import AutoGiftError, TokenInvalidError
from autogift.db.addresses import AddressStore
from autogift.db.executions import ExecutionStore
from autogift.models.addresses import (
    AddressSubmitResponse,
    PendingRecipientAddress,
    ShippingAddress,
)
from autogift.models.executions import Execution, ExecutionStatus
from autogift.services.execution_state import update_in_place
from autogift.services.notifications import OwnerNotifier

logger = logging.getLogger(__name__)


class ApprovalEntrypoint(Protocol):
    async def approve_execution(
        self,
        execution_id: str,
        decision: str = "approved",
        selected_product_ids: Optional[list[str]] = None,
    ) -> Execution: ...


# ======================================================================
# Token issuing
# ======================================================================

def build_collect_url(token: str) -> str:
    return f"{PUBLIC_BASE_URL}/collect-address?token={token}"


def issue_address_token(
    addresses: AddressStore,
    *,
    execution_id: str,
    requested_by: str,
    recipient_email: str,
    now: datetime,
) -> PendingRecipientAddress:
    """Create a fresh single-use token expiring ADDRESS_TOKEN_TTL_HOURS from now."""
    record = PendingRecipientAddress(
        token=secrets.token_urlsafe(32),
        execution_id=execution_id,
        requested_by=requested_by,
        recipient_email=recipient_email,
        expires_at=now + timedelta(hours=ADDRESS_TOKEN_TTL_HOURS),
    )
    saved = addresses.create_request(record)
    logger.info(
        "Issued address token for execution %s (expires %s)",
        execution_id[:8], saved.expires_at.isoformat(),
    )
    return saved


# ======================================================================
# Gate
# ======================================================================

class AddressCollectionGate:
    def __init__(
        self,
        addresses: AddressStore,
        executions: ExecutionStore,
        approvals: ApprovalEntrypoint,
        notifier: Optional[OwnerNotifier] = None,
        clock: Clock = utcnow,
    ):
        self._addresses = addresses
        self._executions = executions
        self._approvals = approvals
        self._notifier = notifier
        self._clock = clock

    def validate(self, token: str) -> PendingRecipientAddress:
        """
        Look up a token for rendering the form.

        Raises:
            TokenInvalidError: unknown, expired or already used.
        """
        record = self._addresses.get_by_token(token) if token else None
        if record is None:
            raise TokenInvalidError()
        if not record.is_usable(self._clock()):
            raise TokenInvalidError(already_collected=record.collected_at is not None)
        return record

    async def submit(self, token: str, address: ShippingAddress) -> AddressSubmitResponse:
        """
        Consume the token, store the address and resume the execution.

        Raises:
            TokenInvalidError: the token did not match the usable predicate
                (unknown, expired, or another submission got there first).
        """
        record = self._addresses.consume(token, address, self._clock()) if token else None
        if record is None:
            existing = self._addresses.get_by_token(token) if token else None
            already_collected = existing is not None and existing.collected_at is not None
            logger.info(
                "Rejected address submission (already_collected=%s)", already_collected,
            )
            raise TokenInvalidError(already_collected=already_collected)

        logger.info("Address collected for execution %s", record.execution_id[:8])

        execution = self._executions.get_execution(record.execution_id)
        if execution is not None and execution.status == ExecutionStatus.APPROVED:
            update_in_place(self._executions, execution, address_collection_status="received")
            if self._notifier is not None:
                await self._notifier.notify_address_collected(execution, record.recipient_email)

        execution_status = execution.status.value if execution else None
        try:
            resumed = await self._approvals.approve_execution(record.execution_id, "approved")
            execution_status = resumed.status.value
        except AutoGiftError as exc:
            # The address is saved either way; the owner sees the outcome in their feed
            logger.warning(
                "Could not resume execution %s after address collection: %s",
                record.execution_id[:8], exc,
            )

        return AddressSubmitResponse(
            success=True,
            status="collected",
            message="Thank you! Your address has been saved and your gift is on its way.",
            execution_status=execution_status,
        )
