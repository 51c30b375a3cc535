from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class BreakdownKind(str, Enum):
    STEP = "STEP"
    CHECK = "CHECK"
    META = "META"


class CheckStatus(str, Enum):
    OK = "OK"
    FAIL = "FAIL"


_CODE_RE = re.compile(r"^[A-Z][A-Z0-9_]{2,63}$")  # e.g. BASE_DISCOUNT, TIER_STEP, MOQ


def _validate_code(code: str) -> str:
    if not isinstance(code, str):
        raise TypeError("breakdown code must be str")
    code = code.strip()
    if not _CODE_RE.match(code):
        raise ValueError(f"invalid breakdown code '{code}'. Expected UPPER_SNAKE (3-64 chars)")
    return code


def _validate_message(message: str) -> str:
    if not isinstance(message, str):
        raise TypeError("breakdown message must be str")
    msg = message.strip()
    if not msg:
        raise ValueError("breakdown message must be non-empty")
    # render-safe for storefront widgets / admin tables
    if "\n" in msg or "\r" in msg or "\t" in msg:
        raise ValueError("breakdown message may not contain newlines or tabs")
    if len(msg) > 240:
        raise ValueError("breakdown message too long (max 240 chars)")
    return msg


@dataclass(frozen=True)
class BreakdownEntry:
    seq: int
    kind: BreakdownKind
    code: str
    message: str
    status: Optional[CheckStatus] = None


@dataclass
class Breakdown:
    """Ordered explain trail for one price resolution."""

    _entries: List[BreakdownEntry] = field(default_factory=list)
    _seq: int = 0

    @property
    def entries(self) -> List[BreakdownEntry]:
        return list(self._entries)

    def as_strings(self) -> List[str]:
        return BreakdownBuilder().build(self)

    def add_step(self, code: str, message: str) -> None:
        self._append(kind=BreakdownKind.STEP, code=code, message=message, status=None)

    def add_check(self, code: str, message: str, status: str | CheckStatus = CheckStatus.OK) -> None:
        self._append(kind=BreakdownKind.CHECK, code=code, message=message, status=CheckStatus(status))

    def add_meta(self, code: str, message: str) -> None:
        self._append(kind=BreakdownKind.META, code=code, message=message, status=None)

    def _append(
        self,
        *,
        kind: BreakdownKind,
        code: str,
        message: str,
        status: Optional[CheckStatus],
    ) -> None:
        c = _validate_code(code)
        m = _validate_message(message)
        self._seq += 1
        self._entries.append(BreakdownEntry(seq=self._seq, kind=kind, code=c, message=m, status=status))


class BreakdownBuilder:
    """Converts a Breakdown into the contract output: list[str]."""

    def build(self, breakdown: Breakdown) -> List[str]:
        if not isinstance(breakdown, Breakdown):
            raise TypeError("BreakdownBuilder.build expects a Breakdown instance")
        return [self._render(e) for e in sorted(breakdown.entries, key=lambda e: e.seq)]

    def _render(self, e: BreakdownEntry) -> str:
        if e.kind == BreakdownKind.CHECK:
            prefix = "OK" if e.status == CheckStatus.OK else "FAIL"
            return f"{prefix}: {e.message}"
        if e.kind == BreakdownKind.META:
            return f"META: {e.message}"
        return e.message
