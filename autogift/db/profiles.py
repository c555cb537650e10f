"""
Profile Store — people on the platform and the connections between them.

Used to resolve a recipient's shipping address, find the email to send
an address request to, look up device tokens for push, and load the
connection a nudge is about.
"""

import logging
from typing import Any, Optional, Protocol

from supabase import Client

from autogift.models.nudges import ConnectionProfile

logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]: ...

    def get_giver_provided_address(
        self,
        user_id: str,
        *,
        recipient_id: Optional[str] = None,
        recipient_email: Optional[str] = None,
    ) -> Optional[dict[str, Any]]: ...

    def get_device_token(self, user_id: str) -> Optional[str]: ...

    def get_connection(self, connection_id: str, user_id: str) -> Optional[ConnectionProfile]: ...


class SupabaseProfileStore:
    def __init__(self, client: Client):
        self._client = client

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        result = (
            self._client.table("profiles")
            .select("id, name, email, birthday, shipping_address, address_verified")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_giver_provided_address(
        self,
        user_id: str,
        *,
        recipient_id: Optional[str] = None,
        recipient_email: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Address the giver typed in for a connection that has not been
        accepted yet (user_connections.pending_shipping_address).
        """
        if not recipient_id and not recipient_email:
            return None

        query = (
            self._client.table("user_connections")
            .select("pending_shipping_address")
            .eq("user_id", user_id)
        )
        if recipient_id:
            query = query.eq("connected_user_id", recipient_id)
        else:
            query = query.eq("pending_recipient_email", recipient_email)

        result = query.limit(1).execute()
        if not result.data:
            return None
        return result.data[0].get("pending_shipping_address") or None

    def get_device_token(self, user_id: str) -> Optional[str]:
        result = (
            self._client.table("users")
            .select("device_token")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return result.data[0].get("device_token") or None

    def get_connection(self, connection_id: str, user_id: str) -> Optional[ConnectionProfile]:
        result = (
            self._client.table("user_connections")
            .select(
                "id, user_id, connected_user_id, relationship_type, "
                "pending_recipient_email, pending_recipient_name, pending_shipping_address, "
                "profiles!connected_user_id(name, email, birthday, shipping_address)"
            )
            .eq("id", connection_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        profile = row.get("profiles") or {}
        # PostgREST returns a list for some embedded relations
        if isinstance(profile, list):
            profile = profile[0] if profile else {}

        return ConnectionProfile(
            connection_id=row["id"],
            user_id=row["user_id"],
            connected_user_id=row.get("connected_user_id"),
            name=profile.get("name") or row.get("pending_recipient_name") or "your friend",
            email=profile.get("email") or row.get("pending_recipient_email"),
            birthday=profile.get("birthday"),
            shipping_address=(
                profile.get("shipping_address") or row.get("pending_shipping_address")
            ),
            relationship_type=row.get("relationship_type") or "friend",
        )
