"""
APNs Push Service — tell a gift owner their auto-gift needs approval.

JWT-authenticated (ES256) HTTP/2 delivery to Apple Push Notification
service. The provider token is cached for 50 minutes; Apple accepts
tokens up to 60 minutes old.
"""

import logging
import time
from pathlib import Path
from typing import Any, Protocol

import httpx
import jwt

from autogift.core.config import (
    APNS_AUTH_KEY_PATH,
    APNS_BUNDLE_ID,
    APNS_KEY_ID,
    APNS_TEAM_ID,
    APNS_USE_SANDBOX,
    is_apns_configured,
)

logger = logging.getLogger(__name__)

APNS_PRODUCTION_URL = "https://api.push.apple.com"
APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"
TOKEN_REFRESH_INTERVAL = 50 * 60

_cached_token: str | None = None
_token_generated_at: float = 0


class PushSender(Protocol):
    async def send(self, device_token: str, payload: dict[str, Any]) -> bool: ...


def _provider_token() -> str:
    global _cached_token, _token_generated_at

    now = time.time()
    if _cached_token and (now - _token_generated_at) < TOKEN_REFRESH_INTERVAL:
        return _cached_token

    key_path = Path(APNS_AUTH_KEY_PATH)
    if not key_path.exists():
        raise FileNotFoundError(f"APNs auth key file not found: {APNS_AUTH_KEY_PATH}")

    _cached_token = jwt.encode(
        {"iss": APNS_TEAM_ID, "iat": int(now)},
        key_path.read_text(),
        algorithm="ES256",
        headers={"kid": APNS_KEY_ID},
    )
    _token_generated_at = now
    return _cached_token


def build_approval_payload(
    *,
    execution_id: str,
    recipient_name: str,
    product_name: str,
    total_amount: float,
) -> dict[str, Any]:
    """
    APNs payload for an execution waiting in pending_approval.

    The "AUTO_GIFT_APPROVAL" category carries the app's Approve / Review
    actions; `execution_id` lets the app deep-link to the approval screen.
    """
    return {
        "aps": {
            "alert": {
                "title": f"Approve your gift for {recipient_name}",
                "body": f"{product_name} · ${total_amount:.2f}. Tap to review.",
            },
            "sound": "default",
            "category": "AUTO_GIFT_APPROVAL",
        },
        "execution_id": execution_id,
    }


class ApnsPushSender:
    """PushSender backed by Apple's HTTP/2 APNs API."""

    async def send(self, device_token: str, payload: dict[str, Any]) -> bool:
        """
        Deliver one notification.

        Returns:
            True if APNs accepted it, False if APNs is not configured or
            rejected the device token.
        """
        if not is_apns_configured():
            logger.info("APNs not configured — skipping push")
            return False

        base_url = APNS_SANDBOX_URL if APNS_USE_SANDBOX else APNS_PRODUCTION_URL
        headers = {
            "authorization": f"bearer {_provider_token()}",
            "apns-topic": APNS_BUNDLE_ID,
            "apns-push-type": "alert",
            "apns-priority": "10",
        }

        async with httpx.AsyncClient(http2=True, timeout=10.0) as client:
            response = await client.post(
                f"{base_url}/3/device/{device_token}", json=payload, headers=headers,
            )

        if response.status_code == 200:
            logger.info(
                "Push delivered: apns_id=%s, device=%s...",
                response.headers.get("apns-id"), device_token[:16],
            )
            return True

        logger.warning(
            "APNs delivery failed: status=%d, body=%s, device=%s...",
            response.status_code, response.text, device_token[:16],
        )
        return False
