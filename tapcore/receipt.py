"""Receipts: single signed promises of payment, and the check context."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Any, TypeVar

from .crypto import parse_address
from .eip712 import Eip712Struct

T = TypeVar("T")

_U64 = 2**64


def current_timestamp_ns() -> int:
    """Current Unix time in nanoseconds, truncated to 64 bits."""
    return time.time_ns() % _U64


@dataclass(frozen=True)
class Receipt(Eip712Struct):
    """A promise of payment for one allocation."""

    allocation_id: str
    timestamp_ns: int
    nonce: int
    value: int

    eip712_name = "Receipt"
    eip712_fields = (
        ("allocation_id", "address", "allocation_id"),
        ("timestamp_ns", "uint64", "timestamp_ns"),
        ("nonce", "uint64", "nonce"),
        ("value", "uint128", "value"),
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "allocation_id", parse_address(self.allocation_id))


def new_receipt(allocation_id: str, value: int) -> Receipt:
    """Create a receipt stamped with the current time and a random nonce."""
    return Receipt(allocation_id, current_timestamp_ns(), secrets.randbits(64), value)


class Context:
    """A map holding at most one value of each type, passed to checks."""

    def __init__(self) -> None:
        self._items: dict[type, Any] = {}

    def insert(self, value: Any) -> Any:
        """Store ``value`` under its type; return the value it replaced, if any."""
        previous = self._items.get(type(value))
        self._items[type(value)] = value
        return previous

    def get(self, kind: type[T]) -> T | None:
        return self._items.get(kind)

    def __contains__(self, kind: type) -> bool:
        return kind in self._items

    def __len__(self) -> int:
        return len(self._items)