"""Receipt checks: user-defined checks and the built-in batch checks."""

from __future__ import annotations

import abc
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .errors import FailedCheck, InvalidTimestampError, NonUniqueReceiptError
from .receipt import Context
from .received_receipt import ReceiptWithState

BatchResult = "tuple[list[ReceiptWithState], list[ReceiptWithState]]"


class Check(abc.ABC):
    """A check run on a receipt before it is stored or aggregated.

    Implementations raise ``FailedCheck`` when the receipt is invalid and
    ``RetryableCheck`` when the check could not be completed for now.
    """

    @abc.abstractmethod
    async def check(self, ctx: Context, receipt: ReceiptWithState) -> None:
        """Validate ``receipt``; return normally when it passes."""


class CheckList(Sequence):
    """An immutable, ordered list of checks."""

    def __init__(self, checks: Iterable[Check] = ()) -> None:
        self._checks: tuple[Check, ...] = tuple(checks)

    @classmethod
    def empty(cls) -> "CheckList":
        return cls()

    def __getitem__(self, index):
        return self._checks[index]

    def __len__(self) -> int:
        return len(self._checks)

    def __repr__(self) -> str:
        return f"CheckList({list(self._checks)!r})"


class StatefulTimestampCheck(Check):
    """Accepts receipts whose timestamp is strictly greater than a movable minimum."""

    def __init__(self, min_timestamp_ns: int) -> None:
        self._lock = threading.Lock()
        self._min_timestamp_ns = min_timestamp_ns

    @property
    def min_timestamp_ns(self) -> int:
        with self._lock:
            return self._min_timestamp_ns

    def update_min_timestamp_ns(self, min_timestamp_ns: int) -> None:
        """Set the minimum accepted timestamp (exclusive)."""
        with self._lock:
            self._min_timestamp_ns = min_timestamp_ns

    async def check(self, ctx: Context, receipt: ReceiptWithState) -> None:
        min_timestamp_ns = self.min_timestamp_ns
        timestamp_ns = receipt.signed_receipt.message.timestamp_ns
        if timestamp_ns <= min_timestamp_ns:
            raise FailedCheck(InvalidTimestampError(timestamp_ns, min_timestamp_ns))


@dataclass(frozen=True)
class TimestampCheck:
    """Batch check keeping receipts with a timestamp at or above the minimum."""

    min_timestamp_ns: int

    def check_batch(
        self, receipts: Iterable[ReceiptWithState]
    ) -> tuple[list[ReceiptWithState], list[ReceiptWithState]]:
        checking: list[ReceiptWithState] = []
        failed: list[ReceiptWithState] = []
        for receipt in receipts:
            timestamp_ns = receipt.signed_receipt.message.timestamp_ns
            if timestamp_ns >= self.min_timestamp_ns:
                checking.append(receipt)
            else:
                failed.append(
                    receipt.with_error(
                        InvalidTimestampError(timestamp_ns, self.min_timestamp_ns)
                    )
                )
        return checking, failed


@dataclass(frozen=True)
class UniqueCheck:
    """Batch check failing every receipt whose signature was already seen."""

    def check_batch(
        self, receipts: Iterable[ReceiptWithState]
    ) -> tuple[list[ReceiptWithState], list[ReceiptWithState]]:
        seen: set[bytes] = set()
        checking: list[ReceiptWithState] = []
        failed: list[ReceiptWithState] = []
        for receipt in receipts:
            signature = receipt.signed_receipt.signature.as_bytes()
            if signature in seen:
                failed.append(receipt.with_error(NonUniqueReceiptError()))
            else:
                seen.add(signature)
                checking.append(receipt)
        return checking, failed