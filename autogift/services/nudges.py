"""
Nudge Dispatcher — ask a connection for the data auto-gifting needs.

When a connection's profile lacks a shipping address, birthday or
email, the user can send them a nudge. Rate limits per (user,
connection) pair:

- at most NUDGE_MAX_PER_WINDOW nudges in a rolling NUDGE_WINDOW_DAYS window
- at least NUDGE_MIN_INTERVAL_HOURS between consecutive nudges

A denied nudge is a normal result with a reason, never an error, and
nothing is sent. Messages are personalized by Claude; any AI failure
falls back to a fixed template so a nudge is never blocked on the AI.
"""

import logging
from datetime import timedelta
from typing import Optional

from autogift.core.clock import Clock, utcnow
from autogift.core.config import (
    NUDGE_MAX_PER_WINDOW,
    NUDGE_MIN_INTERVAL_HOURS,
    NUDGE_WINDOW_DAYS,
    PUBLIC_BASE_URL,
)
from autogift.db.nudges import NudgeStore
from autogift.db.profiles import ProfileStore
from autogift.models.nudges import (
    ConnectionProfile,
    NudgeEligibility,
    NudgeRecord,
    NudgeRequest,
    NudgeResult,
)
from autogift.services.ai_text import TextGenerator
from autogift.services.email import EmailSender

logger = logging.getLogger(__name__)

_MISSING_DATA_LABELS = {
    "shipping": "shipping address",
    "birthday": "birthday",
    "email": "email address",
}


# ======================================================================
# Message building
# ======================================================================

def detect_missing_data(connection: ConnectionProfile) -> list[str]:
    missing = []
    if not connection.shipping_address:
        missing.append("shipping")
    if not connection.birthday:
        missing.append("birthday")
    if not connection.email:
        missing.append("email")
    return missing


def _missing_text(missing: list[str]) -> str:
    return " and ".join(_MISSING_DATA_LABELS.get(m, m) for m in missing)


def build_nudge_prompt(
    connection: ConnectionProfile,
    missing: list[str],
    custom_relationship: Optional[str] = None,
) -> str:
    relationship = custom_relationship or connection.relationship_type
    missing_text = _missing_text(missing)
    return (
        f"Generate a friendly, personalized message to request {missing_text} "
        f"for auto-gifting setup.\n\n"
        f"Context:\n"
        f"- Recipient: {connection.name}\n"
        f"- Relationship: {relationship}\n"
        f"- Missing data: {missing_text}\n"
        f"- Purpose: Setting up automatic gift delivery\n\n"
        f"Guidelines:\n"
        f"- Be warm and friendly, not pushy\n"
        f"- Explain the benefit (never miss important occasions)\n"
        f"- Make it feel personal, not automated\n"
        f"- Keep it conversational and casual\n\n"
        f"Write it as a friend who wants to make sure they never miss "
        f"important moments in {connection.name}'s life."
    )


def fallback_nudge_message(connection: ConnectionProfile, missing: list[str]) -> str:
    return (
        f"Hi {connection.name}! I'm setting up automatic gift delivery so I never "
        f"miss your special occasions. Could you share your {_missing_text(missing)} "
        f"with me? This way I can make sure perfect gifts reach you right on time "
        f"for birthdays and other celebrations!"
    )


# ======================================================================
# Dispatcher
# ======================================================================

class NudgeDispatcher:
    def __init__(
        self,
        nudges: NudgeStore,
        profiles: ProfileStore,
        ai: TextGenerator,
        email: EmailSender,
        clock: Clock = utcnow,
    ):
        self._nudges = nudges
        self._profiles = profiles
        self._ai = ai
        self._email = email
        self._clock = clock

    def check_eligibility(self, user_id: str, connection_id: str) -> NudgeEligibility:
        now = self._clock()
        window = timedelta(days=NUDGE_WINDOW_DAYS)
        min_interval = timedelta(hours=NUDGE_MIN_INTERVAL_HOURS)

        try:
            recent = self._nudges.list_since(user_id, connection_id, now - window)
        except Exception as exc:
            logger.error(
                "Nudge history lookup failed for connection %s: %s", connection_id[:8], exc,
            )
            return NudgeEligibility(eligible=False, reason="Unable to verify nudge history")

        recent = sorted(recent, key=lambda n: n.created_at, reverse=True)

        if len(recent) >= NUDGE_MAX_PER_WINDOW:
            # A slot frees up when the oldest nudge counted against the limit ages out
            oldest_counted = recent[NUDGE_MAX_PER_WINDOW - 1]
            return NudgeEligibility(
                eligible=False,
                reason=f"Maximum {NUDGE_MAX_PER_WINDOW} nudges per week to avoid spam",
                nudges_in_window=len(recent),
                next_eligible_at=oldest_counted.created_at + window,
            )

        if recent and now - recent[0].created_at < min_interval:
            return NudgeEligibility(
                eligible=False,
                reason=f"Wait {NUDGE_MIN_INTERVAL_HOURS} hours between nudges",
                nudges_in_window=len(recent),
                next_eligible_at=recent[0].created_at + min_interval,
            )

        return NudgeEligibility(eligible=True, nudges_in_window=len(recent))

    async def _personalize(
        self,
        connection: ConnectionProfile,
        missing: list[str],
        custom_relationship: Optional[str],
    ) -> tuple[str, bool]:
        try:
            prompt = build_nudge_prompt(connection, missing, custom_relationship)
            return await self._ai.generate(prompt), True
        except Exception as exc:
            logger.warning(
                "AI nudge message unavailable for connection %s, using template: %s",
                connection.connection_id[:8], exc,
            )
            return fallback_nudge_message(connection, missing), False

    async def send_intelligent_nudge(self, user_id: str, request: NudgeRequest) -> NudgeResult:
        eligibility = self.check_eligibility(user_id, request.connection_id)
        if not eligibility.eligible:
            logger.info(
                "Nudge to connection %s denied: %s",
                request.connection_id[:8], eligibility.reason,
            )
            return NudgeResult(success=False, eligible=False, error=eligibility.reason)

        connection = self._profiles.get_connection(request.connection_id, user_id)
        if connection is None:
            return NudgeResult(success=False, error="Connection not found")
        if not connection.email:
            return NudgeResult(success=False, error="Connection has no email address to nudge")

        missing = list(request.missing_data_types or detect_missing_data(connection))
        if not missing:
            return NudgeResult(
                success=False,
                error=f"{connection.name}'s profile already has everything auto-gifting needs",
            )

        message, personalized = await self._personalize(
            connection, missing, request.custom_relationship,
        )

        try:
            record = self._nudges.insert(NudgeRecord(
                user_id=user_id,
                connection_id=connection.connection_id,
                recipient_email=connection.email,
                custom_message=message,
                created_at=self._clock(),
            ))
        except Exception as exc:
            logger.error(
                "Failed to record nudge for connection %s: %s", connection.connection_id[:8], exc,
            )
            return NudgeResult(success=False, error="Failed to create nudge record")

        try:
            sender = self._profiles.get_profile(user_id) or {}
            await self._email.send(
                "auto_gift_nudge",
                connection.email,
                {
                    "sender_name": sender.get("name") or "A friend",
                    "message": message,
                    "profile_url": f"{PUBLIC_BASE_URL}/profile",
                },
            )
        except Exception as exc:
            logger.warning(
                "Nudge email to connection %s failed: %s", connection.connection_id[:8], exc,
            )
            return NudgeResult(
                success=False,
                error="Failed to deliver nudge email",
                nudge_id=record.id,
                personalized=personalized,
            )

        logger.info(
            "Nudge sent to connection %s (missing: %s, personalized=%s)",
            connection.connection_id[:8], ", ".join(missing), personalized,
        )
        return NudgeResult(
            success=True,
            message=f"Smart nudge sent to {connection.name}!",
            nudge_id=record.id,
            personalized=personalized,
        )
