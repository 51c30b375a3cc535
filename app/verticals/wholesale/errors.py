from __future__ import annotations

from typing import Any, Dict, Optional


class PricingError(Exception):
    """
    Base for all wholesale pricing errors.
    Carries a stable code (UPPER_SNAKE) + message + meta for API responses.
    """

    def __init__(self, code: str, message: str, meta: Optional[Dict[str, Any]] = None):
        self.code = str(code)
        self.message = str(message)
        self.meta = meta or {}
        super().__init__(f"{self.code}: {self.message}")

    def as_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "meta": self.meta}


class InvalidInput(PricingError, ValueError):
    """Rejected before computation: bad quantity, unknown rule type, pct out of range."""


class NotFound(PricingError, KeyError):
    """Referenced rule / customer type does not exist."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the args
        return f"{self.code}: {self.message}"
