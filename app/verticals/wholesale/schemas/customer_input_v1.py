# app/verticals/wholesale/schemas/customer_input_v1.py
from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, constr
from pydantic.alias_generators import to_camel

Number = Union[float, int, str]
Tags = Union[str, List[str]]


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


# ----------------------------
# customer-specific pricing
# ----------------------------


class CustomerProfileInputV1(_Input):
    customer_email: Optional[str] = None
    customer_type: Optional[str] = None
    base_discount: Optional[Number] = None


class ProductRuleInputV1(_Input):
    product_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    rule_type: str
    value: Number
    variant_id: Optional[str] = None
    product_title: Optional[str] = None
    retail_price: Optional[Number] = None
    note: Optional[str] = None
    expires_at: Optional[str] = None
    updated_by: Optional[str] = None


class ProductRulePatchV1(_Input):
    rule_type: Optional[str] = None
    value: Optional[Number] = None
    variant_id: Optional[str] = None
    product_title: Optional[str] = None
    retail_price: Optional[Number] = None
    note: Optional[str] = None
    expires_at: Optional[str] = None
    updated_by: Optional[str] = None


class OverlayTierInputV1(_Input):
    quantity: Number
    discount: Number
    discount_type: str = "percentage"


class TierRuleInputV1(_Input):
    applies_to: str = "all_products"
    product_id: Optional[str] = None
    product_title: Optional[str] = None
    tiers: List[OverlayTierInputV1] = Field(min_length=1)
    updated_by: Optional[str] = None


class CalculateInputV1(_Input):
    product_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    regular_price: Number
    variant_id: Optional[str] = None
    quantity: Number = 1


# ----------------------------
# customer tags
# ----------------------------


class ClassifyInputV1(_Input):
    tags: Optional[Tags] = None
    customer_id: Optional[str] = None


class ReviewInputV1(_Input):
    customer_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    tags: Optional[Tags] = None
    action: Literal["approve", "reject", "archive"]


class AssignTypeInputV1(_Input):
    customer_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    tags: Optional[Tags] = None
    customer_type_id: constr(strip_whitespace=True, min_length=1)  # type: ignore


class LoginStatusInputV1(_Input):
    tags: Optional[Tags] = None


class RegistrationTagsInputV1(_Input):
    customer_type_id: Optional[str] = None


class BatchCustomerV1(_Input):
    customer_id: str
    tags: Optional[Tags] = None


class BatchReviewInputV1(_Input):
    customers: List[BatchCustomerV1] = Field(min_length=1)
    action: Literal["approve", "reject", "archive"]


class BatchAssignTypeInputV1(_Input):
    customers: List[BatchCustomerV1] = Field(min_length=1)
    customer_type_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
