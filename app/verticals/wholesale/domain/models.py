from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple
from uuid import uuid4

from ..errors import InvalidInput

D = Decimal

_ZERO = D("0")
_HUNDRED = D("100")

# type tags are embedded in explain lines (240 char cap)
MAX_TAG_LENGTH = 100


def _new_id() -> str:
    return uuid4().hex


# -----------------------------
# Enums
# -----------------------------


class ApprovalState(str, Enum):
    GUEST = "guest"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DiscountKind(str, Enum):
    FIXED = "fixed"  # absolute override price
    PERCENTAGE = "percentage"


class RuleType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FIXED_PRICE = "fixed_price"


class TierScope(str, Enum):
    ALL_PRODUCTS = "all_products"
    SPECIFIC_PRODUCT = "specific_product"


class TierDiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


def _check_pct(value: D, *, source: str) -> None:
    if value < _ZERO or value > _HUNDRED:
        raise InvalidInput(
            "PCT_OUT_OF_RANGE",
            f"{source}: percentage must be between 0 and 100, got {value}",
            {"field": source, "value": str(value)},
        )


def _check_non_negative(value: D, *, source: str) -> None:
    if value < _ZERO:
        raise InvalidInput(
            "NEGATIVE_VALUE", f"{source}: value must be >= 0, got {value}", {"field": source}
        )


# -----------------------------
# Customer types (settings-owned)
# -----------------------------


@dataclass(frozen=True)
class CustomerType:
    id: str
    tag: str
    name: str
    default_discount_pct: D = _ZERO
    moq_default: int = 0
    display_order: int = 0
    requires_approval: bool = True
    is_active: bool = True

    def __post_init__(self) -> None:
        if not self.id:
            raise InvalidInput("REQUIRED", "customer type id is required", {"field": "id"})
        if not self.tag:
            raise InvalidInput("REQUIRED", "customer type tag is required", {"field": "tag"})
        if len(self.tag) > MAX_TAG_LENGTH:
            raise InvalidInput(
                "TAG_TOO_LONG",
                f"customerTypes[{self.id}].tag must be at most {MAX_TAG_LENGTH} characters",
                {"field": "tag", "length": len(self.tag)},
            )
        _check_pct(self.default_discount_pct, source=f"customerTypes[{self.id}].defaultDiscount")
        if self.moq_default < 0:
            raise InvalidInput(
                "NEGATIVE_VALUE",
                f"customerTypes[{self.id}].moqDefault must be >= 0",
                {"field": "moqDefault"},
            )


# -----------------------------
# Per-type product overrides
# -----------------------------


@dataclass(frozen=True)
class Discount:
    kind: DiscountKind
    value: D

    def __post_init__(self) -> None:
        _check_non_negative(self.value, source="discount.value")
        if self.kind == DiscountKind.PERCENTAGE:
            _check_pct(self.value, source="discount.value")

    @property
    def is_fixed(self) -> bool:
        return self.kind == DiscountKind.FIXED

    @staticmethod
    def neutral() -> "Discount":
        return Discount(kind=DiscountKind.PERCENTAGE, value=_ZERO)


@dataclass(frozen=True)
class Tier:
    """Quantity step: `discount` % extra off the already discounted price from `qty` units."""

    qty: int
    discount: D

    def __post_init__(self) -> None:
        if self.qty < 1:
            raise InvalidInput("OUT_OF_RANGE", f"tier qty must be >= 1, got {self.qty}", {"field": "qty"})
        _check_pct(self.discount, source="tier.discount")


@dataclass(frozen=True)
class ProductOverride:
    """
    Canonical shape of one product's pricing exception.
    Per-type maps are keyed by CustomerType.id; legacy_moq is keyed by type tag.
    """

    product_id: str
    legacy: Optional[Discount] = None
    per_type_discounts: Dict[str, Discount] = field(default_factory=dict)
    per_type_moq: Dict[str, int] = field(default_factory=dict)
    per_type_tiers: Dict[str, Tuple[Tier, ...]] = field(default_factory=dict)
    legacy_moq: Dict[str, int] = field(default_factory=dict)
    legacy_tiers: Tuple[Tier, ...] = ()
    updated_at: Optional[datetime] = None

    @property
    def has_per_type_discounts(self) -> bool:
        return bool(self.per_type_discounts)


@dataclass(frozen=True)
class PricingRules:
    """One document per shop: default discount + product overrides (insertion ordered)."""

    shop_domain: str
    default_discount_pct: D = _ZERO
    overrides: Dict[str, ProductOverride] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _check_pct(self.default_discount_pct, source="defaultDiscount")

    def override_for(self, product_id: str) -> Optional[ProductOverride]:
        return self.overrides.get(str(product_id))


# -----------------------------
# Customer-specific overlay
# -----------------------------


@dataclass(frozen=True)
class ProductRule:
    product_id: str
    rule_type: RuleType
    value: D
    id: str = field(default_factory=_new_id)
    variant_id: Optional[str] = None
    retail_price: Optional[D] = None
    product_title: Optional[str] = None
    note: str = ""
    expires_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    def __post_init__(self) -> None:
        _check_non_negative(self.value, source="productRule.value")
        if self.rule_type == RuleType.PERCENTAGE:
            _check_pct(self.value, source="productRule.value")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def matches(self, product_id: str, variant_id: Optional[str]) -> bool:
        if self.product_id != str(product_id):
            return False
        return self.variant_id is None or self.variant_id == variant_id


@dataclass(frozen=True)
class OverlayTier:
    quantity: int
    discount: D
    discount_type: TierDiscountType = TierDiscountType.PERCENTAGE

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidInput(
                "OUT_OF_RANGE", f"tier quantity must be >= 1, got {self.quantity}", {"field": "quantity"}
            )
        _check_non_negative(self.discount, source="tier.discount")
        if self.discount_type == TierDiscountType.PERCENTAGE:
            _check_pct(self.discount, source="tier.discount")


@dataclass(frozen=True)
class TierRule:
    tiers: Tuple[OverlayTier, ...]
    applies_to: TierScope = TierScope.ALL_PRODUCTS
    product_id: Optional[str] = None
    product_title: Optional[str] = None
    id: str = field(default_factory=_new_id)
    updated_by: Optional[str] = None

    def __post_init__(self) -> None:
        if self.applies_to == TierScope.SPECIFIC_PRODUCT and not self.product_id:
            raise InvalidInput(
                "REQUIRED",
                "productId is required when appliesTo is specific_product",
                {"field": "productId"},
            )

    def covers(self, product_id: str) -> bool:
        if self.applies_to == TierScope.ALL_PRODUCTS:
            return True
        return self.product_id == str(product_id)


@dataclass(frozen=True)
class CustomerPricingOverlay:
    customer_id: str
    shop_domain: str = ""
    customer_email: str = ""
    customer_type: Optional[str] = None
    base_discount_pct: D = _ZERO
    product_rules: Tuple[ProductRule, ...] = ()
    tier_rules: Tuple[TierRule, ...] = ()

    def __post_init__(self) -> None:
        _check_pct(self.base_discount_pct, source="baseDiscount")

    @property
    def is_empty(self) -> bool:
        return not self.product_rules and not self.tier_rules and self.base_discount_pct <= _ZERO
