from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

from ..domain.models import ApprovalState, CustomerType
from ..domain.registry import CustomerTypeRegistry

# Reserved approval tags (Shopify customer tags)
TAG_APPROVED = "pro-pricing"
TAG_PENDING = "pending-approval"
TAG_REJECTED = "rejected"
TAG_ARCHIVED = "archived"

RESERVED_TAGS = (TAG_APPROVED, TAG_PENDING, TAG_REJECTED)


@dataclass(frozen=True)
class Classification:
    state: ApprovalState
    customer_type_id: Optional[str] = None
    # type whose pricing is shown: the matched type once approved, else the guest pricing type
    pricing_type_id: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.state == ApprovalState.APPROVED

    @staticmethod
    def guest(pricing_type_id: Optional[str] = None) -> "Classification":
        return Classification(state=ApprovalState.GUEST, pricing_type_id=pricing_type_id)


def parse_tags(raw: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """
    Shopify hands tags back as "a, b, c"; the API accepts lists too.
    Empty fragments are dropped, order is kept.
    """
    if raw is None:
        return ()
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    out = []
    for p in parts:
        s = str(p).strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)


def approval_state_from_tags(tags: Iterable[str], *, has_type: bool) -> ApprovalState:
    """
    Reserved tag precedence: pending-approval, rejected, pro-pricing.
    A type tag without any reserved tag counts as pending (not yet reviewed).
    """
    tag_set = set(tags)
    if TAG_PENDING in tag_set:
        return ApprovalState.PENDING
    if TAG_REJECTED in tag_set:
        return ApprovalState.REJECTED
    if TAG_APPROVED in tag_set:
        return ApprovalState.APPROVED
    if has_type:
        return ApprovalState.PENDING
    return ApprovalState.GUEST


def match_customer_type(tags: Iterable[str], registry: CustomerTypeRegistry) -> Optional[CustomerType]:
    """First registry entry (registry order) whose tag is present."""
    tag_set = set(tags)
    for ct in registry:
        if ct.tag in tag_set:
            return ct
    return None


def classify(
    tags: Union[str, Iterable[str], None],
    registry: CustomerTypeRegistry,
    guest_pricing_type_id: Optional[str] = None,
) -> Classification:
    """
    Map a customer's tag set to (approval state, customer type).
    Total: never raises, an empty registry yields guest.
    """
    if not registry:
        return Classification.guest()

    tag_list = parse_tags(tags)
    matched = match_customer_type(tag_list, registry)
    state = approval_state_from_tags(tag_list, has_type=matched is not None)

    matched_id = matched.id if matched is not None else None

    if state == ApprovalState.APPROVED:
        return Classification(state=state, customer_type_id=matched_id, pricing_type_id=matched_id)

    # not approved: only the guest pricing type (display only) may apply
    guest_type = registry.get(guest_pricing_type_id)
    return Classification(
        state=state,
        customer_type_id=matched_id,
        pricing_type_id=guest_type.id if guest_type is not None else None,
    )
