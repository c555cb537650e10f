"""
Auto-Gifting Rules API — rule and settings management for gift owners.

Rules are never hard-deleted: executions keep referring to them, so
DELETE only sets is_active = false.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from autogift.api.dependencies import get_rule_store
from autogift.core.security import get_current_user_id
from autogift.db.rules import RuleStore
from autogift.models.rules import (
    AutoGiftRule,
    AutoGiftSettings,
    RuleCreateRequest,
    RuleListResponse,
    RuleUpdateRequest,
    SettingsUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auto-gifts", tags=["auto-gift-rules"])


def _store_error(action: str, exc: Exception) -> HTTPException:
    logger.error("Failed to %s: %s", action, exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}. Please try again.",
    )


def _set_fields(payload) -> dict:
    """Non-null fields the client actually sent, with nested models dumped whole."""
    return {
        key: value
        for key, value in payload.model_dump().items()
        if key in payload.model_fields_set and value is not None
    }


# ===================================================================
# Rules
# ===================================================================

@router.get("/rules", status_code=status.HTTP_200_OK, response_model=RuleListResponse)
async def list_rules(
    user_id: str = Depends(get_current_user_id),
    rules: RuleStore = Depends(get_rule_store),
) -> RuleListResponse:
    try:
        rows = rules.list_rules(user_id)
    except Exception as exc:
        raise _store_error("load auto-gifting rules", exc)

    parsed = []
    for row in rows:
        try:
            parsed.append(AutoGiftRule(**row))
        except ValidationError as exc:
            logger.warning("Skipping malformed rule %s: %s", str(row.get("id"))[:8], exc)
    return RuleListResponse(rules=parsed, count=len(parsed))


@router.post("/rules", status_code=status.HTTP_201_CREATED, response_model=AutoGiftRule)
async def create_rule(
    payload: RuleCreateRequest,
    user_id: str = Depends(get_current_user_id),
    rules: RuleStore = Depends(get_rule_store),
) -> AutoGiftRule:
    """
    Create an auto-gifting rule for one recipient and occasion.

    Returns:
        201: The stored rule.
        401: Missing or invalid auth token.
        422: Validation error (budget <= 0, both or neither recipient fields, ...).
    """
    row = {**payload.model_dump(), "user_id": user_id, "is_active": True}
    try:
        saved = rules.insert_rule(row)
    except Exception as exc:
        raise _store_error("create auto-gifting rule", exc)

    logger.info("Created auto-gifting rule %s for user %s", saved["id"][:8], user_id[:8])
    return AutoGiftRule(**saved)


@router.patch("/rules/{rule_id}", status_code=status.HTTP_200_OK, response_model=AutoGiftRule)
async def update_rule(
    rule_id: str,
    payload: RuleUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    rules: RuleStore = Depends(get_rule_store),
) -> AutoGiftRule:
    """
    Partially update a rule.

    Returns:
        200: The updated rule.
        404: Rule not found or owned by another user.
        422: Empty update or validation error.
    """
    fields = _set_fields(payload)
    if not fields:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No fields to update.",
        )

    try:
        saved = rules.update_rule(rule_id, user_id, fields)
    except Exception as exc:
        raise _store_error("update auto-gifting rule", exc)

    if saved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found.")
    return AutoGiftRule(**saved)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_200_OK, response_model=AutoGiftRule)
async def deactivate_rule(
    rule_id: str,
    user_id: str = Depends(get_current_user_id),
    rules: RuleStore = Depends(get_rule_store),
) -> AutoGiftRule:
    """Soft-delete: the rule stops triggering but stays referenced by its executions."""
    try:
        saved = rules.update_rule(rule_id, user_id, {"is_active": False})
    except Exception as exc:
        raise _store_error("deactivate auto-gifting rule", exc)

    if saved is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found.")
    logger.info("Deactivated auto-gifting rule %s", rule_id[:8])
    return AutoGiftRule(**saved)


# ===================================================================
# Settings
# ===================================================================

@router.get("/settings", status_code=status.HTTP_200_OK, response_model=AutoGiftSettings)
async def get_settings(
    user_id: str = Depends(get_current_user_id),
    rules: RuleStore = Depends(get_rule_store),
) -> AutoGiftSettings:
    try:
        return rules.get_settings(user_id)
    except Exception as exc:
        raise _store_error("load auto-gifting settings", exc)


@router.put("/settings", status_code=status.HTTP_200_OK, response_model=AutoGiftSettings)
async def update_settings(
    payload: SettingsUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    rules: RuleStore = Depends(get_rule_store),
) -> AutoGiftSettings:
    """Update defaults. Budget tracking counters cannot be written here."""
    try:
        current = rules.get_settings(user_id)
        updated = current.model_copy(update=_set_fields(payload))
        return rules.save_settings(updated)
    except Exception as exc:
        raise _store_error("update auto-gifting settings", exc)
