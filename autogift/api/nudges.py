"""
Nudges API — ask a connection to fill in data auto-gifting needs.

- GET  /api/v1/nudges/eligibility/{connection_id} — rate-limit check
- POST /api/v1/nudges — send a personalized nudge

A rate-limit denial is a 200 with eligible=false and a reason.
"""

import logging

from fastapi import APIRouter, Depends, status

from autogift.api.dependencies import get_nudge_dispatcher
from autogift.core.security import get_current_user_id
from autogift.models.nudges import NudgeEligibility, NudgeRequest, NudgeResult
from autogift.services.nudges import NudgeDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/nudges", tags=["nudges"])


@router.get(
    "/eligibility/{connection_id}",
    status_code=status.HTTP_200_OK,
    response_model=NudgeEligibility,
)
async def nudge_eligibility(
    connection_id: str,
    user_id: str = Depends(get_current_user_id),
    dispatcher: NudgeDispatcher = Depends(get_nudge_dispatcher),
) -> NudgeEligibility:
    return dispatcher.check_eligibility(user_id, connection_id)


@router.post("", status_code=status.HTTP_200_OK, response_model=NudgeResult)
async def send_nudge(
    payload: NudgeRequest,
    user_id: str = Depends(get_current_user_id),
    dispatcher: NudgeDispatcher = Depends(get_nudge_dispatcher),
) -> NudgeResult:
    """
    Send an intelligent nudge to one of the caller's connections.

    Returns:
        200: NudgeResult. success=false with eligible=false when rate
             limited; success=false with an error for a missing
             connection or a delivery failure.
        401: Missing or invalid auth token.
        422: Invalid payload.
    """
    return await dispatcher.send_intelligent_nudge(user_id, payload)
