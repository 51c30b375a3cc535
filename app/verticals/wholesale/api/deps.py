from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException

from app.core.settings import get_settings
from app.verticals.wholesale.cache import PriceCache
from app.verticals.wholesale.engine.pricing_service import PricingService
from app.verticals.wholesale.storage.document_store import DocumentStore
from app.verticals.wholesale.storage.repository import PricingRepository


@lru_cache(maxsize=1)
def get_pricing_service() -> PricingService:
    """One service per process, wired from Settings. Tests override this dependency."""
    s = get_settings()
    store = DocumentStore(s.wholesale_db_path)
    cache = PriceCache(
        s.redis_url,
        price_ttl=s.price_cache_ttl_seconds,
        type_ttl=s.type_cache_ttl_seconds,
    )
    return PricingService(PricingRepository(store), cache)


def get_shop_domain(x_shop_domain: str | None = Header(default=None)) -> str:
    shop = (x_shop_domain or "").strip().lower()
    if not shop:
        raise HTTPException(status_code=400, detail="X-Shop-Domain header is required")
    return shop
