"""
Security — request authentication for the three kinds of caller.

- Gift owners: a Supabase access token in `Authorization: Bearer ...`,
  validated against Supabase Auth (`get_current_user_id`)
- The scheduler: a signed QStash delivery (`verify_scheduler_request`)
- Recipients: no account; the address form's capability token is
  checked by the address collection gate itself

Usage in route handlers:
    from autogift.core.security import get_current_user_id

    @router.get("/executions")
    async def list_executions(user_id: str = Depends(get_current_user_id)):
        ...
"""

import logging
from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from autogift.core.config import SUPABASE_ANON_KEY, SUPABASE_URL
from autogift.services.qstash import SignatureError, verify_qstash_signature

logger = logging.getLogger(__name__)

AUTH_TIMEOUT = 10.0  # seconds

# auto_error=False so a missing header gets our 401 instead of FastAPI's 403
_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _fetch_auth_user(token: str) -> dict[str, Any]:
    """Ask Supabase Auth who owns `token`. Raises 401 on any failure."""
    try:
        async with httpx.AsyncClient(timeout=AUTH_TIMEOUT) as client:
            response = await client.get(
                f"{SUPABASE_URL}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {token}",
                    # Kong requires the anon key on every request
                    "apikey": SUPABASE_ANON_KEY,
                },
            )
    except httpx.RequestError as exc:
        logger.error("Supabase Auth unreachable: %s", exc)
        raise _unauthorized("Authentication service unavailable. Please try again.") from exc

    if response.status_code != 200:
        raise _unauthorized("Invalid or expired authentication token.")

    try:
        return response.json()
    except ValueError as exc:
        raise _unauthorized("Authentication service returned an invalid response.") from exc


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """
    FastAPI dependency returning the authenticated gift owner's user id.

    Raises:
        HTTPException(401): token missing, invalid, or expired.
    """
    if credentials is None:
        raise _unauthorized(
            "Missing authentication token. Provide a Bearer token in the Authorization header."
        )

    user = await _fetch_auth_user(credentials.credentials)
    user_id = user.get("id")
    if not user_id:
        raise _unauthorized("Invalid authentication token — no user ID found.")
    return user_id


async def verify_scheduler_request(
    request: Request,
    upstash_signature: str | None = Header(None, alias="Upstash-Signature"),
) -> bytes:
    """
    FastAPI dependency that authenticates a QStash delivery.

    Returns:
        The raw request body, already covered by the signature.

    Raises:
        HTTPException(401): signature missing or invalid.
    """
    body = await request.body()
    try:
        verify_qstash_signature(upstash_signature or "", body, str(request.url))
    except SignatureError as exc:
        logger.warning("QStash signature verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid QStash signature: {exc}",
        ) from exc
    return body
