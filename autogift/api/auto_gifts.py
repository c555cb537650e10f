"""
Auto-Gifts API — scheduler webhook, owner approval and the activity feed.

- POST /api/v1/auto-gifts/events/process — QStash delivers a detected
  occasion; runs the execution up to approval (or further when
  auto-approve applies)
- POST /api/v1/auto-gifts/executions/{execution_id}/approve — owner
  approves (optionally a subset of products) or rejects
- GET /api/v1/auto-gifts/executions — owner's executions, newest first,
  with error messages verbatim
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError

from autogift.api.dependencies import get_execution_store, get_orchestrator
from autogift.core.errors import (
    EventNotFoundError,
    ExecutionNotFoundError,
    InvalidSelectionError,
    InvalidTransitionError,
)
from autogift.core.security import get_current_user_id, verify_scheduler_request
from autogift.db.executions import ExecutionStore
from autogift.models.executions import (
    ApproveExecutionRequest,
    ApproveExecutionResponse,
    ExecutionListResponse,
    ProcessEventRequest,
    ProcessEventResponse,
)
from autogift.services.orchestrator import AutoGiftOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auto-gifts", tags=["auto-gifts"])


# ===================================================================
# POST /api/v1/auto-gifts/events/process — QStash webhook
# ===================================================================

@router.post(
    "/events/process",
    status_code=status.HTTP_200_OK,
    response_model=ProcessEventResponse,
)
async def process_event(
    body: bytes = Depends(verify_scheduler_request),
    orchestrator: AutoGiftOrchestrator = Depends(get_orchestrator),
) -> ProcessEventResponse:
    """
    Turn a detected occasion into an execution.

    Safe to re-deliver: an event that already has an execution returns
    that execution's current state.

    Returns:
        200: Execution state after processing (including 'failed').
        401: Invalid or missing QStash signature.
        404: Unknown event id.
        422: Invalid payload.
    """
    try:
        payload = ProcessEventRequest(**json.loads(body))
    except (ValueError, TypeError, ValidationError) as exc:
        logger.error("Invalid event payload: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid event payload: {exc}",
        )

    try:
        execution = await orchestrator.process_event(payload.event_id)
    except EventNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    return ProcessEventResponse(
        execution_id=execution.id,
        status=execution.status,
        error_message=execution.error_message,
    )


# ===================================================================
# POST /api/v1/auto-gifts/executions/{execution_id}/approve
# ===================================================================

@router.post(
    "/executions/{execution_id}/approve",
    status_code=status.HTTP_200_OK,
    response_model=ApproveExecutionResponse,
)
async def approve_execution(
    execution_id: str,
    payload: ApproveExecutionRequest,
    user_id: str = Depends(get_current_user_id),
    executions: ExecutionStore = Depends(get_execution_store),
    orchestrator: AutoGiftOrchestrator = Depends(get_orchestrator),
) -> ApproveExecutionResponse:
    """
    Approve or reject one of the caller's executions.

    Approving an execution that is already completed, failed or
    cancelled returns its state unchanged.

    Returns:
        200: Execution state after the decision.
        401: Missing or invalid auth token.
        404: Execution not found or owned by another user.
        409: Execution is still being processed.
        422: selected_product_ids matched none of the execution's products.
    """
    existing = executions.get_execution(execution_id)
    if existing is None or existing.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Execution not found.")

    try:
        execution = await orchestrator.approve_execution(
            execution_id, payload.decision, payload.selected_product_ids,
        )
    except ExecutionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Execution not found.")
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except InvalidSelectionError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    return ApproveExecutionResponse(
        execution_id=execution.id,
        status=execution.status,
        error_message=execution.error_message,
        address_collection_status=execution.address_collection_status,
        order_id=execution.order_id,
    )


# ===================================================================
# GET /api/v1/auto-gifts/executions — activity feed
# ===================================================================

@router.get(
    "/executions",
    status_code=status.HTTP_200_OK,
    response_model=ExecutionListResponse,
)
async def list_executions(
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    executions: ExecutionStore = Depends(get_execution_store),
) -> ExecutionListResponse:
    """Return the caller's executions, newest first."""
    try:
        items = executions.list_for_user(user_id, limit=limit)
    except Exception as exc:
        logger.error("Failed to load executions for user %s: %s", user_id[:8], exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load auto-gift activity.",
        )
    return ExecutionListResponse(executions=items, count=len(items))
