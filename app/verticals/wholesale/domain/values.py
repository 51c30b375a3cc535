from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from ..errors import InvalidInput

D = Decimal

ZERO = D("0")
HUNDRED = D("100")
CENT = D("0.01")


def to_str(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def parse_decimal(value: Any, *, source: str) -> D:
    """
    Strict number parsing for persisted / posted pricing values.
    Accepts int/float/Decimal and numeric strings; bools and junk are rejected.
    """
    if value is None:
        raise InvalidInput("INVALID_NUMBER", f"{source}: value is null", {"field": source})
    if isinstance(value, bool):
        raise InvalidInput("INVALID_NUMBER", f"{source}: boolean is not a number", {"field": source})
    if isinstance(value, D):
        out = value
    elif isinstance(value, (int, float)):
        out = D(str(value))
    elif isinstance(value, str):
        s = value.strip()
        if s == "":
            raise InvalidInput("INVALID_NUMBER", f"{source}: empty number", {"field": source})
        try:
            out = D(s)
        except InvalidOperation:
            raise InvalidInput(
                "INVALID_NUMBER", f"{source}: invalid number: {value!r}", {"field": source}
            ) from None
    else:
        raise InvalidInput(
            "INVALID_NUMBER",
            f"{source}: expected str/number, got {type(value).__name__}",
            {"field": source},
        )

    if not out.is_finite():
        raise InvalidInput("INVALID_NUMBER", f"{source}: number must be finite", {"field": source})
    return out


def parse_optional_decimal(value: Any, *, source: str) -> Optional[D]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return parse_decimal(value, source=source)


def parse_percentage(value: Any, *, source: str) -> D:
    pct = parse_decimal(value, source=source)
    if pct < ZERO or pct > HUNDRED:
        raise InvalidInput(
            "PCT_OUT_OF_RANGE",
            f"{source}: percentage must be between 0 and 100, got {pct}",
            {"field": source, "value": str(pct)},
        )
    return pct


def parse_non_negative(value: Any, *, source: str) -> D:
    v = parse_decimal(value, source=source)
    if v < ZERO:
        raise InvalidInput(
            "NEGATIVE_VALUE", f"{source}: value must be >= 0, got {v}", {"field": source}
        )
    return v


def parse_quantity(value: Any, *, source: str = "quantity") -> int:
    """
    Integer quantity. Non-numeric and fractional values are rejected;
    zero / negative values pass through (the engine floors them to 1).
    """
    q = parse_decimal(value, source=source)
    if q != q.to_integral_value():
        raise InvalidInput(
            "INVALID_QUANTITY", f"{source}: must be a whole number, got {q}", {"field": source}
        )
    return int(q)


def parse_moq(value: Any, *, source: str) -> int:
    """MOQ: absent / null / negative collapse to 0 ("no minimum")."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return 0
    q = parse_quantity(value, source=source)
    return q if q > 0 else 0


def effective_quantity(quantity: int) -> int:
    return quantity if quantity >= 1 else 1


def money(amount: D) -> D:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_price(amount: D) -> D:
    return amount if amount > ZERO else ZERO


def parse_datetime(value: Any, *, source: str) -> Optional[datetime]:
    """ISO-8601 string or datetime -> aware UTC datetime. Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise InvalidInput(
                "INVALID_DATETIME", f"{source}: invalid datetime: {value!r}", {"field": source}
            ) from None
    else:
        raise InvalidInput(
            "INVALID_DATETIME",
            f"{source}: expected ISO string/datetime, got {type(value).__name__}",
            {"field": source},
        )

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
