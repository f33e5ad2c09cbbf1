"""Receipt aggregate vouchers and requests to aggregate receipts.

A receipt aggregate voucher (RAV) sums the values of a batch of receipts,
together with any previous RAV, into one signed promise of payment that can
be redeemed in a single transaction.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from .crypto import parse_address
from .eip712 import Eip712Struct
from .errors import AggregateOverflowError, TapError
from .receipt import Receipt
from .received_receipt import ReceiptWithState
from .signed_message import EIP712SignedMessage

_U128 = 2**128


@dataclass(frozen=True)
class ReceiptAggregateVoucher(Eip712Struct):
    """Aggregated value and latest timestamp of receipts for one allocation."""

    allocation_id: str
    timestamp_ns: int
    value_aggregate: int

    eip712_name = "ReceiptAggregateVoucher"
    eip712_fields = (
        ("allocationId", "address", "allocation_id"),
        ("timestampNs", "uint64", "timestamp_ns"),
        ("valueAggregate", "uint128", "value_aggregate"),
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "allocation_id", parse_address(self.allocation_id))


SignedRAV = EIP712SignedMessage


def aggregate_receipts(
    allocation_id: str,
    receipts: Iterable[EIP712SignedMessage[Receipt]],
    previous_rav: Optional[EIP712SignedMessage[ReceiptAggregateVoucher]] = None,
) -> ReceiptAggregateVoucher:
    """Aggregate signed receipts, starting from ``previous_rav`` if given.

    Raises AggregateOverflowError if the aggregate value leaves 128 bits.
    """
    timestamp_max = 0
    value_aggregate = 0
    if previous_rav is not None:
        timestamp_max = previous_rav.message.timestamp_ns
        value_aggregate = previous_rav.message.value_aggregate

    for receipt in receipts:
        value_aggregate += receipt.message.value
        if value_aggregate >= _U128:
            raise AggregateOverflowError()
        timestamp_max = max(timestamp_max, receipt.message.timestamp_ns)

    return ReceiptAggregateVoucher(allocation_id, timestamp_max, value_aggregate)


@dataclass(frozen=True)
class RAVRequest:
    """Receipts to send for aggregation, with the RAV expected in return.

    ``expected_rav_result`` holds either the expected RAV or the error met
    while computing it; ``expected_rav`` returns the former or raises the
    latter.
    """

    valid_receipts: list[ReceiptWithState] = field(default_factory=list)
    previous_rav: Optional[EIP712SignedMessage[ReceiptAggregateVoucher]] = None
    invalid_receipts: list[ReceiptWithState] = field(default_factory=list)
    expected_rav_result: ReceiptAggregateVoucher | TapError | None = None

    @property
    def expected_rav(self) -> ReceiptAggregateVoucher:
        result = self.expected_rav_result
        if isinstance(result, TapError):
            raise result
        if result is None:
            raise ValueError("RAV request has no expected RAV")
        return result