"""
QStash Webhook Verification — authenticate scheduler callbacks.

The external scheduler delivers automated gift events through Upstash
QStash. Each delivery carries an `Upstash-Signature` header: an HS256
JWT whose claims bind it to our URL (`sub`) and to the exact request
body (`body` = SHA-256 of the raw bytes, hex or base64url encoded).

Both the current and next signing keys are accepted so keys can be
rotated without dropping deliveries.
"""

import base64
import hashlib
import logging
from typing import Any

import jwt

from autogift.core.config import QSTASH_CURRENT_SIGNING_KEY, QSTASH_NEXT_SIGNING_KEY

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["iss", "sub", "exp", "nbf", "iat", "jti", "body"]


class SignatureError(ValueError):
    """The Upstash-Signature header is missing, forged, stale, or mismatched."""


def _body_hashes(body: bytes) -> set[str]:
    digest = hashlib.sha256(body).digest()
    return {
        digest.hex(),
        base64.urlsafe_b64encode(digest).decode().rstrip("="),
    }


def _signing_keys() -> list[tuple[str, str]]:
    keys = []
    if QSTASH_CURRENT_SIGNING_KEY:
        keys.append(("current", QSTASH_CURRENT_SIGNING_KEY))
    if QSTASH_NEXT_SIGNING_KEY:
        keys.append(("next", QSTASH_NEXT_SIGNING_KEY))
    return keys


def verify_qstash_signature(signature: str, body: bytes, url: str) -> dict[str, Any]:
    """
    Verify a QStash delivery.

    Args:
        signature: Upstash-Signature header value.
        body: Raw request body.
        url: The URL QStash was told to deliver to.

    Returns:
        The decoded JWT claims.

    Raises:
        SignatureError: on any verification failure.
    """
    if not signature:
        raise SignatureError("Missing Upstash-Signature header")

    keys = _signing_keys()
    if not keys:
        raise SignatureError("No QStash signing keys configured")

    errors: list[str] = []
    for key_name, signing_key in keys:
        try:
            claims = jwt.decode(
                signature,
                signing_key,
                algorithms=["HS256"],
                issuer="Upstash",
                options={"require": REQUIRED_CLAIMS, "verify_aud": False},
            )
        except jwt.ExpiredSignatureError:
            raise SignatureError("QStash signature has expired")
        except jwt.InvalidTokenError as exc:
            errors.append(f"{key_name}: {exc}")
            continue

        # A valid JWT for a different URL or body is a replay, not a key mismatch
        if claims["sub"] != url:
            raise SignatureError(f"Signature was issued for {claims['sub']}")
        if claims["body"] not in _body_hashes(body):
            raise SignatureError("Request body does not match the signed hash")

        logger.info(
            "QStash signature verified with %s key (message_id=%s)",
            key_name, claims.get("jti"),
        )
        return claims

    raise SignatureError(f"Invalid QStash signature ({'; '.join(errors)})")
