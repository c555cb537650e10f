"""
Catalog Search Client — generic product catalog used when a recipient's
wishlist has nothing suitable.

Talks to the catalog search service over HTTP:

    POST {CATALOG_SEARCH_URL}/search   {query, limit, price_min, price_max, categories}
    GET  {CATALOG_SEARCH_URL}/products/{product_id}

Unlike the wishlist store, errors here are raised to the caller. The
selection graph decides whether a failed search means "no results".
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from autogift.agents.state import CatalogProduct
from autogift.core.config import (
    CATALOG_API_KEY,
    CATALOG_SEARCH_URL,
    is_catalog_configured,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds


class CatalogProvider(Protocol):
    async def search(
        self,
        query: str,
        *,
        limit: int,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        categories: Optional[list[str]] = None,
    ) -> list[CatalogProduct]: ...

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]: ...


class CatalogUnavailableError(RuntimeError):
    """The catalog service is not configured or returned an error."""


class HttpCatalogClient:
    """Async client for the catalog search service."""

    def __init__(
        self,
        base_url: str = CATALOG_SEARCH_URL,
        api_key: str = CATALOG_API_KEY,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def search(
        self,
        query: str,
        *,
        limit: int,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        categories: Optional[list[str]] = None,
    ) -> list[CatalogProduct]:
        """
        Search the catalog.

        Returns:
            Products in the order the service ranked them. Items the
            service returns without a usable price are dropped.

        Raises:
            CatalogUnavailableError: not configured, HTTP error or timeout.
        """
        if not self._base_url or not is_catalog_configured():
            raise CatalogUnavailableError("Catalog search service is not configured")

        payload: dict[str, Any] = {"query": query.strip(), "limit": limit}
        if price_min is not None:
            payload["price_min"] = price_min
        if price_max is not None:
            payload["price_max"] = price_max
        if categories:
            payload["categories"] = categories

        data = await self._request("POST", "/search", json=payload)
        raw_products = data.get("results") or data.get("products") or []

        products = []
        for item in raw_products:
            product = _normalize_product(item)
            if product is not None:
                products.append(product)

        logger.info(
            "Catalog search '%s' returned %d products (%d usable)",
            query, len(raw_products), len(products),
        )
        return products

    async def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        if not self._base_url or not is_catalog_configured():
            raise CatalogUnavailableError("Catalog search service is not configured")

        try:
            data = await self._request("GET", f"/products/{product_id}")
        except CatalogUnavailableError as exc:
            if isinstance(exc.__cause__, httpx.HTTPStatusError) and exc.__cause__.response.status_code == 404:
                return None
            raise
        return _normalize_product(data.get("product") or data)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method, f"{self._base_url}{path}", headers=self._headers(), **kwargs,
                )
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise CatalogUnavailableError("Catalog search timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise CatalogUnavailableError(
                f"Catalog search returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CatalogUnavailableError(f"Catalog search request failed: {exc}") from exc


def _normalize_product(item: dict[str, Any]) -> Optional[CatalogProduct]:
    """Convert a raw catalog item to CatalogProduct, or None if it has no price or id."""
    product_id = item.get("product_id") or item.get("id")
    try:
        price = float(item.get("price"))
    except (TypeError, ValueError):
        return None
    if not product_id or price <= 0:
        return None

    try:
        stars = float(item.get("stars") or 0)
    except (TypeError, ValueError):
        stars = 0.0
    try:
        num_reviews = int(item.get("num_reviews") or 0)
    except (TypeError, ValueError):
        num_reviews = 0

    return CatalogProduct(
        product_id=str(product_id),
        title=item.get("title") or item.get("name") or "Untitled product",
        price=price,
        image_url=item.get("image") or item.get("image_url"),
        category=item.get("category"),
        stars=stars,
        num_reviews=num_reviews,
    )
