from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from ..domain.models import CustomerType
from ..domain.registry import CustomerTypeRegistry
from ..errors import InvalidInput, NotFound
from .classifier import (
    TAG_APPROVED,
    TAG_ARCHIVED,
    TAG_PENDING,
    TAG_REJECTED,
    parse_tags,
)

TAG_CONSUMER = "consumer"

ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_ARCHIVE = "archive"
REVIEW_ACTIONS = (ACTION_APPROVE, ACTION_REJECT, ACTION_ARCHIVE)


def _dedupe(tags: Iterable[str]) -> List[str]:
    out: List[str] = []
    for t in tags:
        if t not in out:
            out.append(t)
    return out


def registration_tags(customer_type: Optional[CustomerType]) -> List[str]:
    """Tags for a freshly registered customer."""
    if customer_type is None:
        return [TAG_CONSUMER]
    if customer_type.requires_approval:
        return [TAG_PENDING, customer_type.tag]
    return [customer_type.tag, TAG_APPROVED]


def review_action(action: str) -> str:
    act = str(action or "").strip().lower()
    if act not in REVIEW_ACTIONS:
        raise InvalidInput(
            "UNKNOWN_ACTION",
            f"Unknown review action: {action!r}. Allowed: {list(REVIEW_ACTIONS)}",
            {"action": action},
        )
    return act


def review_tags(tags: Union[str, Iterable[str], None], action: str) -> List[str]:
    """
    Admin review transition on the tag set.
    approve/reject also drop the opposite verdict tag.
    """
    current = list(parse_tags(tags))
    act = review_action(action)

    if act == ACTION_APPROVE:
        drop = {TAG_PENDING, TAG_ARCHIVED, TAG_REJECTED}
        return _dedupe([t for t in current if t not in drop] + [TAG_APPROVED])

    if act == ACTION_REJECT:
        drop = {TAG_PENDING, TAG_ARCHIVED, TAG_APPROVED}
        return _dedupe([t for t in current if t not in drop] + [TAG_REJECTED])

    return _dedupe([t for t in current if t != TAG_PENDING] + [TAG_ARCHIVED])


def assign_type_tags(
    tags: Union[str, Iterable[str], None],
    registry: CustomerTypeRegistry,
    customer_type_id: str,
) -> List[str]:
    """Replace whatever type tag the customer carries with the tag of `customer_type_id`."""
    target = registry.get(customer_type_id)
    if target is None:
        raise NotFound(
            "CUSTOMER_TYPE_NOT_FOUND",
            f"Customer type not found: {customer_type_id}",
            {"customerTypeId": customer_type_id},
        )
    type_tags = set(registry.tags)
    kept = [t for t in parse_tags(tags) if t not in type_tags]
    return _dedupe(kept + [target.tag])


@dataclass(frozen=True)
class LoginStatus:
    can_login: bool
    reason: Optional[str] = None
    customer_type: Optional[str] = None  # "professional" | "consumer"

    def as_dict(self) -> dict:
        return {"canLogin": self.can_login, "reason": self.reason, "customerType": self.customer_type}


def login_status(tags: Union[str, Iterable[str], None]) -> LoginStatus:
    tag_set = set(parse_tags(tags))
    if TAG_PENDING in tag_set:
        return LoginStatus(can_login=False, reason="pending_approval")
    if TAG_REJECTED in tag_set:
        return LoginStatus(can_login=False, reason="rejected")
    return LoginStatus(
        can_login=True,
        customer_type="professional" if TAG_APPROVED in tag_set else "consumer",
    )
