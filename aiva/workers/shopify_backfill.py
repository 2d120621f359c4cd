"""Shopify historical backfill.

Run once when a store is first connected: pages through all customers and
the last 90 days of orders via the Admin GraphQL API and upserts each by
its Shopify id. A record that fails to store is logged and skipped.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx

from aiva.config import settings
from aiva.workspace.store import WorkspaceStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

PAGE_SIZE = 50

# A store's permanent admin host; the request URL is built from it
SHOP_DOMAIN_PATTERN = r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$"
ORDER_LOOKBACK_DAYS = 90

_background_tasks: set[asyncio.Task] = set()

_CUSTOMERS_QUERY = """
query Customers($first: Int!, $after: String) {
  customers(first: $first, after: $after) {
    edges {
      cursor
      node { id email numberOfOrders amountSpent { amount } tags }
    }
    pageInfo { hasNextPage }
  }
}
"""

_ORDERS_QUERY = """
query Orders($first: Int!, $after: String, $query: String) {
  orders(first: $first, after: $after, query: $query) {
    edges {
      cursor
      node {
        id name email createdAt displayFinancialStatus displayFulfillmentStatus
        customer { displayName }
        totalPriceSet { shopMoney { amount currencyCode } }
        lineItems(first: 10) { edges { node { title quantity } } }
      }
    }
    pageInfo { hasNextPage }
  }
}
"""


class ShopifyError(RuntimeError):
    """The Admin API rejected a request."""


@dataclass
class BackfillResult:
    customers_count: int = 0
    orders_count: int = 0
    skipped: int = 0


class ShopifyClient:
    """Minimal Admin GraphQL client."""

    def __init__(self, shop_domain: str, access_token: str, client: httpx.AsyncClient) -> None:
        if not re.fullmatch(SHOP_DOMAIN_PATTERN, shop_domain):
            raise ShopifyError(f"Not a myshopify.com domain: {shop_domain!r}")
        self._url = f"https://{shop_domain}/admin/api/{settings.shopify_api_version}/graphql.json"
        self._headers = {"X-Shopify-Access-Token": access_token}
        self._client = client

    async def query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        resp = await self._client.post(
            self._url, json={"query": query, "variables": variables}, headers=self._headers
        )
        if resp.status_code != 200:
            raise ShopifyError(f"Shopify API error: {resp.status_code}")
        body = resp.json()
        if body.get("errors"):
            raise ShopifyError(f"Shopify GraphQL error: {body['errors']}")
        return body.get("data") or {}

    async def paginate(
        self, query: str, root: str, variables: dict[str, Any] | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield every node of a cursor-paginated connection."""
        after: str | None = None
        while True:
            data = await self.query(
                query, {**(variables or {}), "first": PAGE_SIZE, "after": after}
            )
            connection = data.get(root) or {}
            edges = connection.get("edges") or []
            for edge in edges:
                yield edge["node"]
            if not edges or not (connection.get("pageInfo") or {}).get("hasNextPage"):
                return
            after = edges[-1]["cursor"]


def _money(value: dict[str, Any] | None, default: str = "0.00") -> str:
    return str((value or {}).get("amount") or default)


async def _store_customer(store: WorkspaceStore, user_id: str, node: dict[str, Any]) -> None:
    await store.upsert_customer(
        user_id,
        node["id"],
        email=node.get("email") or "",
        orders_count=int(node.get("numberOfOrders") or 0),
        total_spent=_money(node.get("amountSpent")),
        tags=node.get("tags") or [],
    )


async def _store_order(store: WorkspaceStore, user_id: str, node: dict[str, Any]) -> None:
    price = (node.get("totalPriceSet") or {}).get("shopMoney") or {}
    line_items = [
        {"title": e["node"]["title"], "qty": e["node"]["quantity"]}
        for e in (node.get("lineItems") or {}).get("edges") or []
    ]
    await store.upsert_order(
        user_id,
        node["id"],
        order_name=node.get("name") or "",
        customer_name=(node.get("customer") or {}).get("displayName") or "",
        customer_email=node.get("email") or "",
        financial_status=(node.get("displayFinancialStatus") or "pending").lower(),
        fulfillment_status=(node.get("displayFulfillmentStatus") or "unfulfilled").lower(),
        total_price=_money(price),
        currency=price.get("currencyCode") or "USD",
        line_items=line_items,
        created_at=node.get("createdAt"),
    )


async def run_shopify_backfill(
    user_id: str,
    shop_domain: str,
    access_token: str,
    *,
    store: WorkspaceStore | None = None,
    client: httpx.AsyncClient | None = None,
    now: datetime | None = None,
) -> BackfillResult:
    """Import customers and recent orders. API failures propagate."""
    store = store or WorkspaceStore.get()
    since = (now or datetime.now(UTC)) - timedelta(days=ORDER_LOOKBACK_DAYS)
    result = BackfillResult()

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=30)
    try:
        shopify = ShopifyClient(shop_domain, access_token, client)

        async for node in shopify.paginate(_CUSTOMERS_QUERY, "customers"):
            try:
                await _store_customer(store, user_id, node)
                result.customers_count += 1
            except Exception:
                logger.exception("Skipping customer %s", node.get("id"))
                result.skipped += 1

        order_filter = {"query": f"created_at:>{since.date().isoformat()}"}
        async for node in shopify.paginate(_ORDERS_QUERY, "orders", order_filter):
            try:
                await _store_order(store, user_id, node)
                result.orders_count += 1
            except Exception:
                logger.exception("Skipping order %s", node.get("id"))
                result.skipped += 1
    finally:
        if owns_client:
            await client.aclose()

    logger.info(
        "Shopify backfill for %s (%s): %d customers, %d orders, %d skipped",
        user_id, shop_domain, result.customers_count, result.orders_count, result.skipped,
    )
    return result


async def _run_detached(user_id: str, shop_domain: str, access_token: str) -> None:
    try:
        await run_shopify_backfill(user_id, shop_domain, access_token)
    except Exception:
        logger.exception("Shopify backfill for %s failed (non-fatal)", shop_domain)


def spawn_shopify_backfill(user_id: str, shop_domain: str, access_token: str) -> asyncio.Task:
    """Start a backfill detached from the caller."""
    task = asyncio.create_task(_run_detached(user_id, shop_domain, access_token))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
