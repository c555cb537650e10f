"""
Execution state transitions.

`advance()` is the only way services change an execution's status. It
checks the move against ALLOWED_TRANSITIONS, then issues a conditional
write that only matches while the row is still in the status the caller
last saw. A None return means another invocation got there first.
"""

import logging
from typing import Any, Optional

from autogift.core.errors import InvalidTransitionError
from autogift.db.executions import ExecutionStore
from autogift.models.executions import Execution, ExecutionStatus, can_transition

logger = logging.getLogger(__name__)


def advance(
    store: ExecutionStore,
    execution: Execution,
    target: ExecutionStatus,
    **fields: Any,
) -> Optional[Execution]:
    """
    Move `execution` to `target`, writing `fields` in the same update.

    Raises:
        InvalidTransitionError: target is not reachable from the current
            status (including any move out of a terminal status).
    """
    if not can_transition(execution.status, target):
        raise InvalidTransitionError(execution.status.value, target.value)

    updated = store.transition(
        execution.id,
        expected=[execution.status],
        fields={**fields, "status": target.value},
    )
    if updated is None:
        logger.info(
            "Execution %s left '%s' before it could move to '%s'",
            execution.id[:8], execution.status.value, target.value,
        )
        return None

    logger.info(
        "Execution %s: %s → %s",
        execution.id[:8], execution.status.value, target.value,
    )
    return updated


def update_in_place(
    store: ExecutionStore,
    execution: Execution,
    **fields: Any,
) -> Optional[Execution]:
    """Write `fields` without changing status, guarded on the current status."""
    return store.transition(execution.id, expected=[execution.status], fields=fields)


def fail(
    store: ExecutionStore,
    execution: Execution,
    message: str,
) -> Execution:
    """
    Move a non-terminal execution to 'failed' with `message`.

    If the write loses a race, returns the winner's state instead.
    """
    logger.warning("Execution %s failed: %s", execution.id[:8], message)
    updated = advance(store, execution, ExecutionStatus.FAILED, error_message=message)
    if updated is not None:
        return updated
    return store.get_execution(execution.id) or execution
