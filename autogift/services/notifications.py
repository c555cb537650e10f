"""
Owner Notifications — keep the gift owner informed.

- approval_needed: an execution parked in pending_approval (email and,
  when the owner enabled push, an APNs alert)
- address_collected: the recipient answered an address request

Delivery is best-effort. Every failure is logged and swallowed so a
broken email provider never fails an execution.
"""

import logging
from typing import Optional

from autogift.core.config import PUBLIC_BASE_URL
from autogift.db.profiles import ProfileStore
from autogift.models.executions import Execution
from autogift.models.rules import AutoGiftRule, AutoGiftSettings
from autogift.services.apns import PushSender, build_approval_payload
from autogift.services.email import EmailSender

logger = logging.getLogger(__name__)


class OwnerNotifier:
    def __init__(
        self,
        email: EmailSender,
        profiles: ProfileStore,
        push: Optional[PushSender] = None,
    ):
        self._email = email
        self._profiles = profiles
        self._push = push

    def _recipient_name(self, rule: AutoGiftRule) -> str:
        if rule.recipient_id:
            try:
                profile = self._profiles.get_profile(rule.recipient_id)
            except Exception as exc:
                logger.warning("Recipient lookup failed for rule %s: %s", rule.id[:8], exc)
                profile = None
            if profile and profile.get("name"):
                return profile["name"]
        return rule.pending_recipient_email or "your recipient"

    async def notify_approval_needed(
        self,
        execution: Execution,
        rule: AutoGiftRule,
        settings: AutoGiftSettings,
    ) -> None:
        recipient_name = self._recipient_name(rule)
        product_names = ", ".join(p.name for p in execution.selected_products)
        total = execution.total_amount or 0.0

        if settings.email_notifications:
            await self._send_owner_email(
                execution.user_id,
                "approval_needed",
                {
                    "recipient_name": recipient_name,
                    "product_names": product_names,
                    "total_amount": f"{total:.2f}",
                    "occasion": rule.date_type,
                    "review_url": f"{PUBLIC_BASE_URL}/auto-gifts/executions/{execution.id}",
                },
            )

        if settings.push_notifications and self._push is not None:
            try:
                device_token = self._profiles.get_device_token(execution.user_id)
                if not device_token:
                    logger.info(
                        "No device token for user %s — skipping push",
                        execution.user_id[:8],
                    )
                    return
                payload = build_approval_payload(
                    execution_id=execution.id,
                    recipient_name=recipient_name,
                    product_name=product_names,
                    total_amount=total,
                )
                await self._push.send(device_token, payload)
            except Exception as exc:
                logger.warning(
                    "Approval push failed for execution %s: %s", execution.id[:8], exc,
                )

    async def notify_address_collected(
        self, execution: Execution, recipient_email: str,
    ) -> None:
        await self._send_owner_email(
            execution.user_id,
            "address_collected",
            {"recipient_email": recipient_email},
        )

    async def _send_owner_email(self, user_id: str, template: str, variables: dict) -> None:
        try:
            owner = self._profiles.get_profile(user_id)
            if not owner or not owner.get("email"):
                logger.info("Owner %s has no email — skipping '%s'", user_id[:8], template)
                return
            await self._email.send(template, owner["email"], variables)
        except Exception as exc:
            logger.warning(
                "Owner email '%s' failed for user %s: %s", template, user_id[:8], exc,
            )
