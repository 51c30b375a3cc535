from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional

from ..errors import InvalidInput
from .models import CustomerType
from .values import parse_moq, parse_percentage, to_str


class CustomerTypeRegistry:
    """
    Ordered, read-only set of customer classifications for one shop.

    Order is the input order (settings document order) and is significant:
    classification is first-match-wins and display mode uses the first entry.
    """

    def __init__(self, types: Iterable[CustomerType] = ()):
        self._types: List[CustomerType] = list(types)
        self._by_id: Dict[str, CustomerType] = {}
        self._by_tag: Dict[str, CustomerType] = {}

        for t in self._types:
            if t.id in self._by_id:
                raise InvalidInput("DUPLICATE", f"Duplicate customer type id: {t.id}", {"id": t.id})
            if t.tag in self._by_tag:
                raise InvalidInput("DUPLICATE", f"Duplicate customer type tag: {t.tag}", {"tag": t.tag})
            self._by_id[t.id] = t
            self._by_tag[t.tag] = t

    @classmethod
    def from_documents(cls, raw_types: Optional[Iterable[Dict[str, Any]]]) -> "CustomerTypeRegistry":
        """
        Build from the settings document `customerTypes` array.
        Accepts `id` or Mongo-style `_id`; keeps the array order.
        """
        out: List[CustomerType] = []
        for idx, raw in enumerate(raw_types or []):
            src = f"customerTypes[{idx}]"
            type_id = to_str(raw.get("id") or raw.get("_id"))
            tag = to_str(raw.get("tag"))
            out.append(
                CustomerType(
                    id=type_id,
                    tag=tag,
                    name=to_str(raw.get("name")) or tag,
                    default_discount_pct=parse_percentage(
                        raw.get("defaultDiscount", 0) or 0, source=f"{src}.defaultDiscount"
                    ),
                    moq_default=parse_moq(raw.get("moqDefault"), source=f"{src}.moqDefault"),
                    display_order=int(raw.get("displayOrder") or 0),
                    requires_approval=bool(raw.get("requiresApproval", True)),
                    is_active=bool(raw.get("isActive", True)),
                )
            )
        return cls(out)

    def to_documents(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": t.id,
                "tag": t.tag,
                "name": t.name,
                "defaultDiscount": float(t.default_discount_pct),
                "moqDefault": t.moq_default,
                "displayOrder": t.display_order,
                "requiresApproval": t.requires_approval,
                "isActive": t.is_active,
            }
            for t in self._types
        ]

    def get(self, type_id: Optional[str]) -> Optional[CustomerType]:
        if type_id is None:
            return None
        return self._by_id.get(str(type_id))

    def by_tag(self, tag: str) -> Optional[CustomerType]:
        return self._by_tag.get(tag)

    def first(self) -> Optional[CustomerType]:
        return self._types[0] if self._types else None

    @property
    def tags(self) -> List[str]:
        return [t.tag for t in self._types]

    def __iter__(self) -> Iterator[CustomerType]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __bool__(self) -> bool:
        return bool(self._types)
