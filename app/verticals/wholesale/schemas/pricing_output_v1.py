# app/verticals/wholesale/schemas/pricing_output_v1.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Output(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class TierV1(_Output):
    qty: int
    discount: str


class PriceResolutionV1(_Output):
    """
    Output lock for one resolution:
    - money and percentages as decimal strings (no float drift)
    - steps is the render-safe explain trail, in resolution order
    """

    product_id: str
    quantity: int
    unit_price: Optional[str] = None
    regular_price: Optional[str] = None
    discount_percent: str
    applied_rule_kind: str
    tier_applied: bool
    tier: Optional[TierV1] = None
    moq_required: int
    moq_satisfied: bool
    customer_type_id: Optional[str] = None
    approval_state: Literal["guest", "pending", "approved", "rejected"]
    source: Literal["customer_type", "customer_overlay"]
    steps: List[str]


class ResolveOutputV1(_Output):
    version: Literal["v1"] = "v1"
    shop_domain: str
    resolution: PriceResolutionV1


class CatalogOutputV1(_Output):
    version: Literal["v1"] = "v1"
    shop_domain: str
    prices: List[PriceResolutionV1]


class WriteResultV1(_Output):
    success: bool = True
    count: int
    message: str


class CartDiscountOutputV1(_Output):
    discount: float
    type: str
    quantity: int
    message: str
    customer_type_id: Optional[str] = None
    meets_minimum: Optional[bool] = None
    moq_required: Optional[int] = None


class ClassificationV1(_Output):
    approval_state: Literal["guest", "pending", "approved", "rejected"]
    customer_type_id: Optional[str] = None
    pricing_type_id: Optional[str] = None


class TagsResultV1(_Output):
    customer_id: Optional[str] = None
    tags: List[str]
    classification: Optional[ClassificationV1] = None


class BatchTagsResultV1(_Output):
    success: bool = True
    updated: int
    total: int
    customers: List[TagsResultV1]
    errors: List[Dict[str, Any]]


class LoginStatusV1(_Output):
    can_login: bool
    reason: Optional[str] = None
    customer_type: Optional[str] = None


class OverlayPriceV1(_Output):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int
    regular_price: str
    final_price: str
    applied_rule: Optional[str] = None
    tier_applied: bool
    steps: List[str]


class DocumentV1(_Output):
    """Stored document echoed back as-is (settings, pricing rules, customer pricing)."""

    version: Literal["v1"] = "v1"
    shop_domain: str
    document: Dict[str, Any]
