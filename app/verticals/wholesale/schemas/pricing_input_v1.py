# app/verticals/wholesale/schemas/pricing_input_v1.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, constr
from pydantic.alias_generators import to_camel

# Numbers stay loose here; the engine owns range / shape validation
# so every pricing error carries the same code + meta.
Number = Union[float, int, str]
Tags = Union[str, List[str]]


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class ResolveInputV1(_Input):
    product_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    regular_price: Optional[Number] = None
    quantity: Number = 1
    variant_id: Optional[str] = None
    customer_id: Optional[str] = None
    tags: Optional[Tags] = None
    customer_type_id: Optional[str] = None


class CatalogProductV1(_Input):
    product_id: constr(strip_whitespace=True, min_length=1)  # type: ignore
    regular_price: Number


class CatalogInputV1(_Input):
    products: List[CatalogProductV1] = Field(min_length=1)


class DefaultDiscountInputV1(_Input):
    discount: Number


class BulkUpdateInputV1(_Input):
    """
    Product overrides in any historical shape (legacy type/value, per-type maps,
    flat typeDiscounts, moq-by-tag). Normalized server-side.
    """

    products: List[Dict[str, Any]] = Field(min_length=1)


class ResetInputV1(_Input):
    product_ids: List[Union[str, int]] = Field(min_length=1)


class SettingsInputV1(_Input):
    customer_types: List[Dict[str, Any]] = Field(default_factory=list)
    guest_pricing_type_id: Optional[str] = None
    app_name: Optional[str] = None
