"""In-memory context implementing every adapter, for testing and development."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Container, Iterable, MutableMapping, MutableSet
from typing import Any, Optional

from .adapters import (
    EscrowHandler,
    RAVRead,
    RAVStore,
    ReceiptDelete,
    ReceiptRead,
    ReceiptStore,
    safe_truncate_receipts,
)
from .checks import Check, StatefulTimestampCheck
from .crypto import parse_address
from .eip712 import Eip712Domain
from .errors import (
    FailedCheck,
    InvalidAllocationIDError,
    InvalidSignatureError,
    SignatureError,
    TapError,
)
from .receipt import Context
from .received_receipt import ReceiptWithState


class InMemoryError(TapError):
    """An operation on the in-memory storage failed."""

    def __init__(self, error: str) -> None:
        self.error = error
        super().__init__(f"something went wrong: {error}")


class RAVStorage:
    """A shareable slot holding the latest signed RAV, if any."""

    def __init__(self, rav: Any = None) -> None:
        self._lock = threading.Lock()
        self._rav = rav

    @property
    def rav(self) -> Any:
        with self._lock:
            return self._rav

    @rav.setter
    def rav(self, value: Any) -> None:
        with self._lock:
            self._rav = value


def _timestamp(receipt: ReceiptWithState) -> int:
    return receipt.signed_receipt.message.timestamp_ns


class InMemoryContext(
    RAVStore, RAVRead, ReceiptStore, ReceiptDelete, ReceiptRead, EscrowHandler
):
    """Keeps receipts, the last RAV and sender escrow in shared in-memory storage."""

    def __init__(
        self,
        rav_storage: Optional[RAVStorage] = None,
        receipt_storage: Optional[MutableMapping[int, ReceiptWithState]] = None,
        sender_escrow_storage: Optional[MutableMapping[str, int]] = None,
        timestamp_check: Optional[StatefulTimestampCheck] = None,
    ) -> None:
        self.rav_storage = rav_storage if rav_storage is not None else RAVStorage()
        self.receipt_storage = receipt_storage if receipt_storage is not None else {}
        self.sender_escrow_storage = (
            sender_escrow_storage if sender_escrow_storage is not None else {}
        )
        self.timestamp_check = (
            timestamp_check if timestamp_check is not None else StatefulTimestampCheck(0)
        )
        self.sender_address: Optional[str] = None
        self._ids = itertools.count()
        self._receipt_lock = threading.RLock()
        self._escrow_lock = threading.RLock()

    def with_sender_address(self, sender_address: str) -> "InMemoryContext":
        """Set the only signer whose RAVs are accepted; return the context."""
        self.sender_address = parse_address(sender_address)
        return self

    # Receipt lookup and removal helpers

    async def retrieve_receipt_by_id(self, receipt_id: int) -> ReceiptWithState:
        with self._receipt_lock:
            try:
                return self.receipt_storage[receipt_id]
            except KeyError:
                raise InMemoryError("No receipt found with ID") from None

    async def retrieve_receipts_by_timestamp(
        self, timestamp_ns: int
    ) -> list[tuple[int, ReceiptWithState]]:
        with self._receipt_lock:
            return [
                (receipt_id, receipt)
                for receipt_id, receipt in self.receipt_storage.items()
                if _timestamp(receipt) == timestamp_ns
            ]

    async def retrieve_receipts_upto_timestamp(self, timestamp_ns: int) -> list[ReceiptWithState]:
        return await self.retrieve_receipts_in_timestamp_range(range(0, timestamp_ns + 1), None)

    async def remove_receipt_by_id(self, receipt_id: int) -> None:
        with self._receipt_lock:
            try:
                del self.receipt_storage[receipt_id]
            except KeyError:
                raise InMemoryError("No receipt found with ID") from None

    async def remove_receipts_by_ids(self, receipt_ids: Iterable[int]) -> None:
        for receipt_id in receipt_ids:
            await self.remove_receipt_by_id(receipt_id)

    # RAV adapters

    async def update_last_rav(self, rav: Any) -> None:
        self.rav_storage.rav = rav
        self.timestamp_check.update_min_timestamp_ns(rav.message.timestamp_ns)

    async def last_rav(self) -> Any:
        return self.rav_storage.rav

    # Receipt adapters

    async def store_receipt(self, receipt: ReceiptWithState) -> int:
        with self._receipt_lock:
            receipt_id = next(self._ids)
            self.receipt_storage[receipt_id] = receipt
            return receipt_id

    async def remove_receipts_in_timestamp_range(self, timestamp_ns: Container[int]) -> None:
        with self._receipt_lock:
            doomed = [
                receipt_id
                for receipt_id, receipt in self.receipt_storage.items()
                if _timestamp(receipt) in timestamp_ns
            ]
            for receipt_id in doomed:
                del self.receipt_storage[receipt_id]

    async def retrieve_receipts_in_timestamp_range(
        self, timestamp_range_ns: Container[int], limit: Optional[int] = None
    ) -> list[ReceiptWithState]:
        with self._receipt_lock:
            in_range = [
                receipt
                for receipt in self.receipt_storage.values()
                if _timestamp(receipt) in timestamp_range_ns
            ]
        if limit is not None and len(in_range) > limit:
            in_range = safe_truncate_receipts(in_range, limit)
        return in_range

    # Escrow accounting

    def escrow(self, sender_id: str) -> int:
        sender_id = parse_address(sender_id)
        with self._escrow_lock:
            try:
                return self.sender_escrow_storage[sender_id]
            except KeyError:
                raise InMemoryError("No escrow exists for provided sender ID.") from None

    def increase_escrow(self, sender_id: str, value: int) -> None:
        sender_id = parse_address(sender_id)
        with self._escrow_lock:
            self.sender_escrow_storage[sender_id] = (
                self.sender_escrow_storage.get(sender_id, 0) + value
            )

    def reduce_escrow(self, sender_id: str, value: int) -> None:
        sender_id = parse_address(sender_id)
        with self._escrow_lock:
            current = self.sender_escrow_storage.get(sender_id)
            if current is None or value > current:
                raise InMemoryError("Provided value is greater than existing escrow.")
            self.sender_escrow_storage[sender_id] = current - value

    async def get_available_escrow(self, sender_id: str) -> int:
        return self.escrow(sender_id)

    async def subtract_escrow(self, sender_id: str, value: int) -> None:
        self.reduce_escrow(sender_id, value)

    async def verify_signer(self, signer_address: str) -> bool:
        if self.sender_address is None:
            return False
        return parse_address(signer_address) == self.sender_address


class AllocationIdCheck(Check):
    """Accepts receipts whose allocation id is in a shared set."""

    def __init__(self, allocation_ids: MutableSet[str]) -> None:
        self.allocation_ids = allocation_ids

    async def check(self, ctx: Context, receipt: ReceiptWithState) -> None:
        allocation_id = receipt.signed_receipt.message.allocation_id
        accepted = {parse_address(a) for a in self.allocation_ids}
        if allocation_id not in accepted:
            raise FailedCheck(InvalidAllocationIDError(allocation_id))


class SignatureCheck(Check):
    """Accepts receipts signed by one of the valid signers."""

    def __init__(self, domain_separator: Eip712Domain, valid_signers: Iterable[str]) -> None:
        self.domain_separator = domain_separator
        self.valid_signers = {parse_address(s) for s in valid_signers}

    async def check(self, ctx: Context, receipt: ReceiptWithState) -> None:
        try:
            recovered = receipt.signed_receipt.recover_signer(self.domain_separator)
        except (SignatureError, ValueError) as exc:
            raise FailedCheck(InvalidSignatureError(str(exc))) from exc
        if recovered not in self.valid_signers:
            raise FailedCheck(InvalidSignatureError("Invalid signer"))


def get_full_list_of_checks(
    domain_separator: Eip712Domain,
    valid_signers: Iterable[str],
    allocation_ids: MutableSet[str],
    query_appraisals: Any = None,
) -> list[Check]:
    """The allocation-id and signature checks used with the in-memory context."""
    return [
        AllocationIdCheck(allocation_ids),
        SignatureCheck(domain_separator, valid_signers),
    ]