from __future__ import annotations

from fastapi import APIRouter, Depends

from app.verticals.wholesale.api.deps import get_pricing_service, get_shop_domain
from app.verticals.wholesale.engine.pricing_service import PricingService
from app.verticals.wholesale.schemas.pricing_input_v1 import SettingsInputV1
from app.verticals.wholesale.schemas.pricing_output_v1 import DocumentV1

router = APIRouter(prefix="/api/wholesale/settings", tags=["wholesale", "settings"])


@router.get("", response_model=DocumentV1)
def get_settings(
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return DocumentV1(shop_domain=shop, document=svc.settings(shop).as_dict())


@router.put("", response_model=DocumentV1)
def put_settings(
    payload: SettingsInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    saved = svc.save_settings(
        shop,
        payload.customer_types,
        guest_pricing_type_id=payload.guest_pricing_type_id,
        app_name=payload.app_name,
    )
    return DocumentV1(shop_domain=shop, document=saved.as_dict())
