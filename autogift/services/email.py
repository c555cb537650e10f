"""
Email Service — transactional email through Resend.

Templates are small inline HTML snippets keyed by name. Every variable
is HTML-escaped before interpolation.

Templates:
- address_request: ask a recipient for their shipping address (token link)
- approval_needed: tell the owner a gift is waiting for approval
- address_collected: tell the owner the recipient's address arrived
- auto_gift_nudge: ask a connection to fill in missing profile data

Callers treat email as best-effort: `send()` raises EmailDeliveryError
and the pipeline logs it without failing the execution.
"""

import asyncio
import html
import logging
from typing import Any, Protocol

import resend

from autogift.core.config import EMAIL_FROM, RESEND_API_KEY, is_resend_configured

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, template: str, to: str, variables: dict[str, Any]) -> bool: ...


class EmailDeliveryError(RuntimeError):
    """Resend rejected the message or the template is unknown."""


# ======================================================================
# Templates
# ======================================================================

_BUTTON_STYLE = (
    "background-color: #7c3aed; color: #fff; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; display: inline-block;"
)


def _wrap(body: str) -> str:
    return (
        '<html><body style="font-family: sans-serif; padding: 20px; color: #111;">'
        f"{body}"
        "</body></html>"
    )


def _address_request(v: dict[str, str]) -> tuple[str, str]:
    subject = f"{v['giver_name']} has a gift for you"
    body = f"""
        <h2>{v['giver_name']} is sending you a gift!</h2>
        <p>To make sure it arrives, please tell us where to ship it.
        You don't need an account.</p>
        <p><a href="{v['collect_url']}" style="{_BUTTON_STYLE}">Share my address</a></p>
        <p style="color: #666; font-size: 14px;">
            This link expires in {v['expires_hours']} hours and can be used once.
        </p>
    """
    return subject, _wrap(body)


def _approval_needed(v: dict[str, str]) -> tuple[str, str]:
    subject = f"Approve your auto-gift for {v['recipient_name']}"
    body = f"""
        <h2>Your auto-gift is ready for review</h2>
        <p>We picked <strong>{v['product_names']}</strong> (${v['total_amount']})
        for {v['recipient_name']}'s {v['occasion']}.</p>
        <p><a href="{v['review_url']}" style="{_BUTTON_STYLE}">Review gift</a></p>
    """
    return subject, _wrap(body)


def _address_collected(v: dict[str, str]) -> tuple[str, str]:
    subject = "Shipping address received for your auto-gift"
    body = f"""
        <h2>Good news!</h2>
        <p>{v['recipient_email']} shared their shipping address.
        Your gift is being ordered now.</p>
    """
    return subject, _wrap(body)


def _auto_gift_nudge(v: dict[str, str]) -> tuple[str, str]:
    subject = f"{v['sender_name']} wants to make sure your gifts arrive"
    body = f"""
        <p>{v['message']}</p>
        <p><a href="{v['profile_url']}" style="{_BUTTON_STYLE}">Update my profile</a></p>
    """
    return subject, _wrap(body)


TEMPLATES = {
    "address_request": _address_request,
    "approval_needed": _approval_needed,
    "address_collected": _address_collected,
    "auto_gift_nudge": _auto_gift_nudge,
}


def render(template: str, variables: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, html) for a template with escaped variables."""
    builder = TEMPLATES.get(template)
    if builder is None:
        raise EmailDeliveryError(f"Unknown email template: {template}")
    escaped = {k: html.escape(str(v)) for k, v in variables.items()}
    return builder(escaped)


# ======================================================================
# Resend sender
# ======================================================================

class ResendEmailSender:
    """EmailSender backed by the Resend API."""

    def __init__(self, api_key: str = RESEND_API_KEY, from_address: str = EMAIL_FROM):
        self._api_key = api_key
        self._from = from_address

    async def send(self, template: str, to: str, variables: dict[str, Any]) -> bool:
        """
        Render and send one email.

        Returns:
            True if Resend accepted it, False if email is not configured.

        Raises:
            EmailDeliveryError: unknown template or Resend error.
        """
        subject, body = render(template, variables)

        if not self._api_key or not is_resend_configured():
            logger.warning("Resend not configured — skipping '%s' email", template)
            return False

        resend.api_key = self._api_key
        try:
            # resend's client is synchronous
            response = await asyncio.to_thread(
                resend.Emails.send,
                {
                    "from": self._from,
                    "to": [to],
                    "subject": subject,
                    "html": body,
                },
            )
        except Exception as exc:
            raise EmailDeliveryError(f"Resend rejected '{template}' email: {exc}") from exc

        logger.info("Sent '%s' email (id=%s)", template, (response or {}).get("id"))
        return True
