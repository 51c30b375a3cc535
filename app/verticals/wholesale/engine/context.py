from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..domain.models import ApprovalState

D = Decimal


class AppliedRuleKind(str, Enum):
    # type-based engine
    PER_TYPE_PERCENTAGE = "per_type_percentage"
    PER_TYPE_FIXED = "per_type_fixed"
    OVERRIDE_PERCENTAGE = "override_percentage"
    OVERRIDE_FIXED = "override_fixed"
    REGISTRY_DEFAULT = "registry_default"
    SHOP_DEFAULT = "shop_default"
    NONE = "none"

    # customer-specific overlay
    FIXED_PRICE = "fixed_price"
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BASE_DISCOUNT = "base_discount"


class PricingSource(str, Enum):
    CUSTOMER_TYPE = "customer_type"
    CUSTOMER_OVERLAY = "customer_overlay"


# -----------------------------
# Input
# -----------------------------


@dataclass
class PricingQuery:
    """
    One pricing request. Either `tags` (raw Shopify customer tags) or an
    explicit `customer_type_id` identifies the customer type.
    """

    product_id: str
    regular_price: Optional[D] = None
    quantity: int = 1
    customer_id: Optional[str] = None
    tags: Optional[FrozenSet[str]] = None
    customer_type_id: Optional[str] = None
    variant_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.product_id = str(self.product_id)
        if self.tags is not None and not isinstance(self.tags, frozenset):
            self.tags = frozenset(self.tags)

    @staticmethod
    def tag_set(tags: Optional[Iterable[str]]) -> Optional[FrozenSet[str]]:
        return frozenset(tags) if tags is not None else None


# -----------------------------
# Output (contract v1)
# -----------------------------


@dataclass(frozen=True)
class PriceResolution:
    product_id: str
    quantity: int
    unit_price: Optional[D]
    regular_price: Optional[D]
    discount_percent: D
    applied_rule_kind: AppliedRuleKind
    tier_applied: bool = False
    tier_qty: Optional[int] = None
    tier_discount: Optional[D] = None
    moq_required: int = 0
    moq_satisfied: bool = True
    customer_type_id: Optional[str] = None
    approval_state: ApprovalState = ApprovalState.GUEST
    source: PricingSource = PricingSource.CUSTOMER_TYPE
    steps: List[str] = field(default_factory=list)

    @property
    def granted_discount_percent(self) -> D:
        """What a checkout should actually grant: nothing below MOQ."""
        return self.discount_percent if self.moq_satisfied else D("0")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "quantity": self.quantity,
            "unitPrice": _num(self.unit_price),
            "regularPrice": _num(self.regular_price),
            "discountPercent": _num(self.discount_percent),
            "appliedRuleKind": self.applied_rule_kind.value,
            "tierApplied": self.tier_applied,
            "tier": (
                {"qty": self.tier_qty, "discount": _num(self.tier_discount)}
                if self.tier_qty is not None
                else None
            ),
            "moqRequired": self.moq_required,
            "moqSatisfied": self.moq_satisfied,
            "customerTypeId": self.customer_type_id,
            "approvalState": self.approval_state.value,
            "source": self.source.value,
            "steps": list(self.steps),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "PriceResolution":
        tier = d.get("tier") or None
        return PriceResolution(
            product_id=str(d["productId"]),
            quantity=int(d["quantity"]),
            unit_price=_dec(d.get("unitPrice")),
            regular_price=_dec(d.get("regularPrice")),
            discount_percent=_dec(d.get("discountPercent")) or D("0"),
            applied_rule_kind=AppliedRuleKind(d["appliedRuleKind"]),
            tier_applied=bool(d.get("tierApplied")),
            tier_qty=int(tier["qty"]) if tier else None,
            tier_discount=_dec(tier.get("discount")) if tier else None,
            moq_required=int(d.get("moqRequired") or 0),
            moq_satisfied=bool(d.get("moqSatisfied", True)),
            customer_type_id=d.get("customerTypeId"),
            approval_state=ApprovalState(d.get("approvalState") or ApprovalState.GUEST.value),
            source=PricingSource(d.get("source") or PricingSource.CUSTOMER_TYPE.value),
            steps=list(d.get("steps") or []),
        )


def _num(v: Optional[D]) -> Optional[str]:
    # Decimal as string: no float drift in cached / API payloads
    return None if v is None else str(v)


def _dec(v: Any) -> Optional[D]:
    return None if v is None else D(str(v))
