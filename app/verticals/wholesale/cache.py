from __future__ import annotations

import json
from typing import Any, Optional

import redis

from app.core.logging_config import logger

from .engine.context import PriceResolution

KEY_PREFIX = "wholesale"


def price_key(shop: str, product_id: str, customer_id: Optional[str], quantity: int, variant_id: Optional[str]) -> str:
    return f"{KEY_PREFIX}:{shop}:price:{product_id}:{customer_id or 'guest'}:{quantity}:{variant_id or '-'}"


def type_key(shop: str, customer_id: str) -> str:
    return f"{KEY_PREFIX}:{shop}:type:{customer_id}"


class PriceCache:
    """
    Optional Redis memoization of resolutions and customer types.
    Without a URL (and without an injected client) every call is a miss / no-op.
    Redis failures never fail a pricing call: they are logged and treated as a miss.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client: Any = None,
        price_ttl: int = 300,
        type_ttl: int = 300,
    ):
        if client is None and url:
            client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=5)
        self.client = client
        self.price_ttl = int(price_ttl)
        self.type_ttl = int(type_ttl)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    # -----------------
    # raw json helpers
    # -----------------

    def _get_json(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.bind(key=key, error=str(e)).warning("cache_get_failed")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.bind(key=key).warning("cache_malformed_entry")
            self._delete(key)
            return None

    def _set_json(self, key: str, value: Any, ttl: int) -> None:
        if not self.enabled:
            return
        try:
            self.client.setex(key, ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.bind(key=key, error=str(e)).warning("cache_set_failed")

    def _delete(self, *keys: str) -> int:
        if not self.enabled or not keys:
            return 0
        try:
            return int(self.client.delete(*keys) or 0)
        except redis.RedisError as e:
            logger.bind(keys=len(keys), error=str(e)).warning("cache_delete_failed")
            return 0

    def _delete_pattern(self, pattern: str) -> int:
        if not self.enabled:
            return 0
        try:
            keys = list(self.client.scan_iter(match=pattern))
        except redis.RedisError as e:
            logger.bind(pattern=pattern, error=str(e)).warning("cache_scan_failed")
            return 0
        return self._delete(*keys)

    # -----------------
    # resolutions
    # -----------------

    def get_price(
        self,
        shop: str,
        product_id: str,
        customer_id: Optional[str],
        quantity: int,
        variant_id: Optional[str] = None,
    ) -> Optional[PriceResolution]:
        data = self._get_json(price_key(shop, product_id, customer_id, quantity, variant_id))
        if data is None:
            return None
        try:
            return PriceResolution.from_dict(data)
        except (KeyError, TypeError, ValueError, ArithmeticError):
            logger.bind(shop=shop, product_id=product_id).warning("cache_malformed_entry")
            self._delete(price_key(shop, product_id, customer_id, quantity, variant_id))
            return None

    def set_price(
        self,
        shop: str,
        resolution: PriceResolution,
        customer_id: Optional[str],
        variant_id: Optional[str] = None,
        *,
        ttl: Optional[int] = None,
    ) -> None:
        """`ttl` can only shorten the configured price TTL."""
        key = price_key(shop, resolution.product_id, customer_id, resolution.quantity, variant_id)
        self._set_json(key, resolution.as_dict(), self.price_ttl if ttl is None else min(int(ttl), self.price_ttl))

    # -----------------
    # customer types
    # -----------------

    def get_customer_type(self, shop: str, customer_id: str) -> Optional[dict]:
        data = self._get_json(type_key(shop, customer_id))
        return data if isinstance(data, dict) else None

    def set_customer_type(self, shop: str, customer_id: str, value: dict) -> None:
        self._set_json(type_key(shop, customer_id), value, self.type_ttl)

    # -----------------
    # invalidation
    # -----------------

    def invalidate_product(self, shop: str, product_id: str) -> int:
        return self._delete_pattern(f"{KEY_PREFIX}:{shop}:price:{product_id}:*")

    def invalidate_customer(self, shop: str, customer_id: str) -> int:
        removed = self._delete_pattern(f"{KEY_PREFIX}:{shop}:price:*:{customer_id}:*")
        return removed + self._delete(type_key(shop, customer_id))

    def invalidate_shop(self, shop: str) -> int:
        return self._delete_pattern(f"{KEY_PREFIX}:{shop}:*")
