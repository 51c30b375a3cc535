from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.verticals.wholesale.api.deps import get_pricing_service, get_shop_domain
from app.verticals.wholesale.domain.values import parse_decimal, parse_optional_decimal
from app.verticals.wholesale.engine.classifier import parse_tags
from app.verticals.wholesale.engine.context import PricingQuery
from app.verticals.wholesale.engine.normalize import pricing_rules_to_document
from app.verticals.wholesale.engine.pricing_service import PricingService
from app.verticals.wholesale.schemas.pricing_input_v1 import (
    BulkUpdateInputV1,
    CatalogInputV1,
    DefaultDiscountInputV1,
    ResetInputV1,
    ResolveInputV1,
)
from app.verticals.wholesale.schemas.pricing_output_v1 import (
    CartDiscountOutputV1,
    CatalogOutputV1,
    DocumentV1,
    ResolveOutputV1,
    WriteResultV1,
)

router = APIRouter(prefix="/api/wholesale/pricing", tags=["wholesale", "pricing"])


@router.get("", response_model=DocumentV1)
def get_pricing_rules(
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    rules = svc.pricing_rules(shop)
    return DocumentV1(shop_domain=shop, document=pricing_rules_to_document(rules))


@router.post("/resolve", response_model=ResolveOutputV1)
def resolve(
    payload: ResolveInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    query = PricingQuery(
        product_id=payload.product_id,
        regular_price=parse_optional_decimal(payload.regular_price, source="regularPrice"),
        quantity=payload.quantity,
        customer_id=payload.customer_id,
        tags=PricingQuery.tag_set(parse_tags(payload.tags)) if payload.tags is not None else None,
        customer_type_id=payload.customer_type_id,
        variant_id=payload.variant_id,
    )

    res = svc.resolve(shop, query)
    return ResolveOutputV1.model_validate({"shopDomain": shop, "resolution": res.as_dict()})


@router.post("/catalog", response_model=CatalogOutputV1)
def catalog(
    payload: CatalogInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    products = [
        {
            "productId": p.product_id,
            "regularPrice": parse_decimal(p.regular_price, source=f"products[{i}].regularPrice"),
        }
        for i, p in enumerate(payload.products)
    ]
    prices = svc.catalog(shop, products)
    return CatalogOutputV1.model_validate({"shopDomain": shop, "prices": [r.as_dict() for r in prices]})


@router.get("/product/{product_id}")
def product_pricing(
    product_id: str,
    regular_price: str = Query(..., alias="regularPrice"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    tags: Optional[str] = Query(None),
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return svc.product_pricing(
        shop,
        product_id,
        parse_decimal(regular_price, source="regularPrice"),
        customer_id=customer_id,
        tags=tags,
    )


@router.get("/cart-discount", response_model=CartDiscountOutputV1)
def cart_discount(
    product_id: str = Query(..., alias="productId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    tags: Optional[str] = Query(None),
    quantity: str = Query("1"),
    regular_price: Optional[str] = Query(None, alias="regularPrice"),
    variant_id: Optional[str] = Query(None, alias="variantId"),
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    out = svc.cart_discount(
        shop,
        product_id,
        customer_id=customer_id,
        tags=tags,
        quantity=quantity,
        regular_price=parse_optional_decimal(regular_price, source="regularPrice"),
        variant_id=variant_id,
    )
    return CartDiscountOutputV1.model_validate(out)


@router.put("/default", response_model=DocumentV1)
def set_default_discount(
    payload: DefaultDiscountInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    rules = svc.set_default_discount(shop, payload.discount)
    return DocumentV1(shop_domain=shop, document=pricing_rules_to_document(rules))


@router.post("/bulk-update", response_model=WriteResultV1)
def bulk_update(
    payload: BulkUpdateInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    count = svc.bulk_update(shop, payload.products)
    return WriteResultV1(count=count, message=f"Updated pricing for {count} products")


@router.post("/reset", response_model=WriteResultV1)
def reset(
    payload: ResetInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    removed = svc.reset(shop, [str(p) for p in payload.product_ids])
    return WriteResultV1(count=removed, message=f"Reset {removed} products to default pricing")
