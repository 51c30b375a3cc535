from __future__ import annotations

import fnmatch
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.verticals.wholesale.cache import PriceCache
from app.verticals.wholesale.domain.registry import CustomerTypeRegistry
from app.verticals.wholesale.engine.pricing_service import PricingService
from app.verticals.wholesale.storage.document_store import DocumentStore
from app.verticals.wholesale.storage.repository import PricingRepository

SHOP = "test-shop.myshopify.com"

CUSTOMER_TYPES = [
    {"id": "t_salon", "tag": "salon", "name": "Salon", "defaultDiscount": 20, "moqDefault": 0},
    {"id": "t_esth", "tag": "esthetician", "name": "Esthetician", "defaultDiscount": 15, "moqDefault": 2},
    {
        "id": "t_student",
        "tag": "student",
        "name": "Student",
        "defaultDiscount": 10,
        "moqDefault": 0,
        "requiresApproval": False,
    },
]


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    return CustomerTypeRegistry.from_documents(CUSTOMER_TYPES)


@pytest.fixture
def salon(registry):
    return registry.get("t_salon")


@pytest.fixture
def regular_price():
    return Decimal("100.00")


class FakeRedis:
    """In-memory stand-in for the handful of redis-py calls PriceCache makes."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for k in keys:
            if k in self.data:
                del self.data[k]
                removed += 1
        return removed

    def scan_iter(self, match=None):
        return [k for k in list(self.data) if match is None or fnmatch.fnmatchcase(k, match)]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(tmp_path):
    return DocumentStore(str(tmp_path / "wholesale.db"))


@pytest.fixture
def repo(store):
    return PricingRepository(store)


@pytest.fixture
def service(repo, fake_redis):
    svc = PricingService(repo, PriceCache(client=fake_redis))
    svc.save_settings(SHOP, CUSTOMER_TYPES)
    return svc


@pytest.fixture
def shop():
    return SHOP


@pytest.fixture
def customer_types():
    return [dict(t) for t in CUSTOMER_TYPES]
