"""
Wishlist Provider — a recipient's public wishlist items, newest first.
"""

from typing import Any, Protocol

from supabase import Client


class WishlistProvider(Protocol):
    def list_public_wishlist_items(
        self, recipient_id: str, limit: int,
    ) -> list[dict[str, Any]]: ...


class SupabaseWishlistProvider:
    def __init__(self, client: Client):
        self._client = client

    def list_public_wishlist_items(
        self, recipient_id: str, limit: int,
    ) -> list[dict[str, Any]]:
        # Inner join so private wishlists drop out of the result entirely
        result = (
            self._client.table("wishlist_items")
            .select(
                "id, product_id, name, title, price, image_url, created_at, "
                "wishlists!inner(user_id, is_public)"
            )
            .eq("wishlists.user_id", recipient_id)
            .eq("wishlists.is_public", True)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data or []
