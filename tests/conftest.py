import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.verticals.wholesale.api.deps import get_pricing_service
from app.verticals.wholesale.cache import PriceCache
from app.verticals.wholesale.engine.pricing_service import PricingService
from app.verticals.wholesale.storage.document_store import DocumentStore
from app.verticals.wholesale.storage.repository import PricingRepository

SHOP = "api-shop.myshopify.com"


@pytest.fixture
def service(tmp_path):
    store = DocumentStore(str(tmp_path / "api.db"))
    return PricingService(PricingRepository(store), PriceCache())


@pytest.fixture
def client(service):
    app.dependency_overrides[get_pricing_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return {"X-Shop-Domain": SHOP}


@pytest.fixture
def seeded(client, headers):
    r = client.put(
        "/api/wholesale/settings",
        headers=headers,
        json={
            "customerTypes": [
                {"id": "t_salon", "tag": "salon", "name": "Salon", "defaultDiscount": 20},
                {"id": "t_esth", "tag": "esthetician", "name": "Esthetician", "defaultDiscount": 15, "moqDefault": 2},
            ]
        },
    )
    assert r.status_code == 200
    return client
