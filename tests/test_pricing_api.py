def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"]


def test_shop_header_is_required(client):
    r = client.post("/api/wholesale/pricing/resolve", json={"productId": "P"})

    assert r.status_code == 400


def test_resolve_approved_customer_with_tier(seeded, headers):
    r = seeded.post(
        "/api/wholesale/pricing/bulk-update",
        headers=headers,
        json={"products": [{"productId": "P", "typeTiers": {"salon": [{"qty": 10, "discount": 10}]}}]},
    )
    assert r.status_code == 200
    assert r.json()["count"] == 1

    r = seeded.post(
        "/api/wholesale/pricing/resolve",
        headers=headers,
        json={"productId": "P", "regularPrice": "100", "quantity": 12, "tags": "salon, pro-pricing"},
    )

    assert r.status_code == 200
    body = r.json()
    assert body["version"] == "v1"
    res = body["resolution"]
    assert res["unitPrice"] == "72.00"
    assert res["tierApplied"] is True
    assert res["tier"] == {"qty": 10, "discount": "10"}
    assert res["approvalState"] == "approved"
    assert res["customerTypeId"] == "t_salon"


def test_resolve_rejects_fractional_quantity(seeded, headers):
    r = seeded.post(
        "/api/wholesale/pricing/resolve",
        headers=headers,
        json={"productId": "P", "regularPrice": 10, "quantity": "1.5"},
    )

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "INVALID_QUANTITY"


def test_resolve_rejects_unknown_fields(seeded, headers):
    r = seeded.post(
        "/api/wholesale/pricing/resolve",
        headers=headers,
        json={"productId": "P", "discount": 99},
    )

    assert r.status_code == 422


def test_catalog_uses_first_customer_type(seeded, headers):
    r = seeded.post(
        "/api/wholesale/pricing/catalog",
        headers=headers,
        json={"products": [{"productId": "A", "regularPrice": "50"}, {"productId": "B", "regularPrice": 10}]},
    )

    assert r.status_code == 200
    prices = r.json()["prices"]
    assert [p["unitPrice"] for p in prices] == ["40.00", "8.00"]
    assert all(p["tierApplied"] is False for p in prices)


def test_bulk_update_rejects_bad_percentage(seeded, headers):
    r = seeded.post(
        "/api/wholesale/pricing/bulk-update",
        headers=headers,
        json={"products": [{"productId": "P", "value": 150}]},
    )

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "PCT_OUT_OF_RANGE"


def test_reset_and_default(seeded, headers):
    seeded.post(
        "/api/wholesale/pricing/bulk-update",
        headers=headers,
        json={"products": [{"productId": "A", "value": 10}, {"productId": "B", "value": 10}]},
    )

    r = seeded.post("/api/wholesale/pricing/reset", headers=headers, json={"productIds": ["A", "Q"]})
    assert r.json()["count"] == 1

    r = seeded.put("/api/wholesale/pricing/default", headers=headers, json={"discount": 18})
    assert r.status_code == 200
    doc = r.json()["document"]
    assert doc["defaultDiscount"] == 18.0
    assert [p["productId"] for p in doc["productOverrides"]] == ["B"]

    r = seeded.get("/api/wholesale/pricing", headers=headers)
    assert r.json()["document"]["defaultDiscount"] == 18.0


def test_cart_discount(seeded, headers):
    seeded.post(
        "/api/wholesale/pricing/bulk-update",
        headers=headers,
        json={"products": [{"productId": "P", "moq": {"salon": 5}}]},
    )

    r = seeded.get(
        "/api/wholesale/pricing/cart-discount",
        headers=headers,
        params={"productId": "P", "customerId": "c1", "tags": "salon,pro-pricing", "quantity": "6"},
    )

    assert r.status_code == 200
    body = r.json()
    assert body["discount"] == 20.0
    assert body["type"] == "default"
    assert body["meetsMinimum"] is True

    r = seeded.get(
        "/api/wholesale/pricing/cart-discount",
        headers=headers,
        params={"productId": "P"},
    )
    assert r.json()["message"] == "Not logged in"


def test_product_pricing(seeded, headers):
    r = seeded.get(
        "/api/wholesale/pricing/product/P",
        headers=headers,
        params={"regularPrice": "100", "tags": "esthetician,pro-pricing"},
    )

    assert r.status_code == 200
    body = r.json()
    assert body["customerStatus"] == "approved"
    assert body["displayPrice"]["unitPrice"] == "80.00"
    assert body["price"]["unitPrice"] == "85.00"
    assert body["moq"] == 2


def test_settings_roundtrip(seeded, headers):
    r = seeded.get("/api/wholesale/settings", headers=headers)

    types = r.json()["document"]["customerTypes"]
    assert [t["id"] for t in types] == ["t_salon", "t_esth"]


def test_settings_reject_duplicate_tags(client, headers):
    r = client.put(
        "/api/wholesale/settings",
        headers=headers,
        json={"customerTypes": [{"id": "a", "tag": "x"}, {"id": "b", "tag": "x"}]},
    )

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "DUPLICATE"


def test_settings_reject_overlong_tag(client, headers):
    r = client.put(
        "/api/wholesale/settings",
        headers=headers,
        json={"customerTypes": [{"id": "a", "tag": "t" * 101}]},
    )

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "TAG_TOO_LONG"
