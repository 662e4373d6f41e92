"""
Shopping Cart Store (Redis)

Carts are ephemeral JSON blobs under ``cart:{user_id}``:

    {"items": {"prod_1": {"title": "...", "price": 45.99, "quantity": 2}}}

Every write refreshes the key's TTL.
"""

import json
from datetime import timedelta
from typing import Any, Dict, Optional, Union

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


def cart_key(user_id: str) -> str:
    return f"cart:{user_id}"


def empty_cart() -> Dict[str, Any]:
    return {"items": {}}


class CartStore:
    """
    Cart persistence on top of a Redis client.

    Example:
        carts = CartStore(redis, ttl=3600)
        await carts.add_item("user-1", "prod_1", "DDIA", 45.99)
    """

    def __init__(self, client: Redis, ttl: Optional[Union[int, timedelta]] = None):
        self.client = client
        if isinstance(ttl, timedelta):
            ttl = int(ttl.total_seconds())
        self.ttl = ttl

    async def get(self, user_id: str) -> Dict[str, Any]:
        """Return the user's cart, or an empty cart if none is stored."""
        cart = await self.load(user_id)
        return cart if cart is not None else empty_cart()

    async def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored cart or None when the key does not exist."""
        value = await self.client.get(cart_key(user_id))
        if value is None:
            return None
        return json.loads(value)

    async def add_item(
        self,
        user_id: str,
        product_id: str,
        title: Optional[str],
        price: Optional[float],
    ) -> Dict[str, Any]:
        """
        Add one unit of a product.

        A product already in the cart has its quantity incremented; title and
        price keep the values from the first add.
        """
        cart = await self.get(user_id)
        items = cart.setdefault("items", {})

        if product_id in items:
            items[product_id]["quantity"] += 1
        else:
            items[product_id] = {"title": title, "price": price, "quantity": 1}

        await self.save(user_id, cart)
        return cart

    async def save(self, user_id: str, cart: Dict[str, Any]) -> None:
        serialized = json.dumps(cart, default=str)
        if self.ttl:
            await self.client.setex(cart_key(user_id), self.ttl, serialized)
        else:
            await self.client.set(cart_key(user_id), serialized)

    async def clear(self, user_id: str) -> bool:
        """Delete the cart; True if one existed."""
        deleted = await self.client.delete(cart_key(user_id))
        if deleted:
            logger.debug("Cart cleared", user_id=user_id)
        return deleted > 0
