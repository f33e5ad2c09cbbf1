"""Storage and escrow adapters that a manager context implements."""

from __future__ import annotations

import abc
from collections.abc import Container, Iterable
from typing import Any

from .eip712 import Eip712Domain
from .errors import (
    FailedToVerifySignerError,
    InvalidRecoveredSignerError,
    InvalidSignatureError,
    SignatureError,
    SubtractEscrowFailedError,
)
from .received_receipt import ReceiptWithState


class ReceiptStore(abc.ABC):
    """Stores receipts."""

    @abc.abstractmethod
    async def store_receipt(self, receipt: ReceiptWithState) -> int:
        """Store a receipt in the checking state and return its unique id."""


class ReceiptDelete(abc.ABC):
    """Deletes receipts."""

    @abc.abstractmethod
    async def remove_receipts_in_timestamp_range(self, timestamp_ns: Container[int]) -> None:
        """Remove every receipt whose timestamp lies in ``timestamp_ns``."""


class ReceiptRead(abc.ABC):
    """Retrieves receipts."""

    @abc.abstractmethod
    async def retrieve_receipts_in_timestamp_range(
        self, timestamp_range_ns: Container[int], limit: int | None
    ) -> list[ReceiptWithState]:
        """Return the receipts whose timestamp lies in ``timestamp_range_ns``.

        With a limit, return at most that many receipts and never only part
        of the receipts sharing one timestamp; see ``safe_truncate_receipts``.
        """


class RAVStore(abc.ABC):
    """Stores the latest RAV."""

    @abc.abstractmethod
    async def update_last_rav(self, rav: Any) -> None:
        """Replace the stored RAV with the latest validated signed RAV."""


class RAVRead(abc.ABC):
    """Reads the latest RAV."""

    @abc.abstractmethod
    async def last_rav(self) -> Any | None:
        """Return the latest signed RAV, or None if there is none."""


class EscrowHandler(abc.ABC):
    """Manages escrow accounting and signer verification."""

    @abc.abstractmethod
    async def get_available_escrow(self, sender_id: str) -> int:
        """Return the locally accounted escrow available for ``sender_id``."""

    @abc.abstractmethod
    async def subtract_escrow(self, sender_id: str, value: int) -> None:
        """Deduct ``value`` from the escrow of ``sender_id``."""

    @abc.abstractmethod
    async def verify_signer(self, signer_address: str) -> bool:
        """Return whether ``signer_address`` is an accepted signer."""

    async def check_and_reserve_escrow(
        self, received_receipt: ReceiptWithState, domain_separator: Eip712Domain
    ) -> None:
        """Reserve the receipt's value from its signer's escrow.

        Raises InvalidSignatureError if the signer cannot be recovered and
        SubtractEscrowFailedError if the escrow cannot cover the value.
        """
        signed_receipt = received_receipt.signed_receipt
        try:
            signer = signed_receipt.recover_signer(domain_separator)
        except (SignatureError, ValueError) as exc:
            raise InvalidSignatureError(str(exc)) from exc
        try:
            await self.subtract_escrow(signer, signed_receipt.message.value)
        except Exception as exc:
            raise SubtractEscrowFailedError() from exc

    async def check_rav_signature(self, signed_rav: Any, domain_separator: Eip712Domain) -> None:
        """Raise unless the RAV was signed by an accepted signer."""
        recovered = signed_rav.recover_signer(domain_separator)
        try:
            accepted = await self.verify_signer(recovered)
        except Exception as exc:
            raise FailedToVerifySignerError(str(exc)) from exc
        if not accepted:
            raise InvalidRecoveredSignerError(recovered)


def safe_truncate_receipts(
    receipts: Iterable[ReceiptWithState], limit: int
) -> list[ReceiptWithState]:
    """Return at most ``limit`` receipts without splitting a timestamp.

    When truncation is needed the result is sorted by timestamp, and the
    receipts sharing the last kept timestamp are all dropped if any of
    them would be cut off.
    """
    receipts = list(receipts)
    if len(receipts) <= limit:
        return receipts
    if limit == 0:
        return []

    def timestamp(receipt: ReceiptWithState) -> int:
        return receipt.signed_receipt.message.timestamp_ns

    receipts.sort(key=timestamp)
    last_timestamp = timestamp(receipts[limit - 1])
    after_last_timestamp = timestamp(receipts[limit])
    kept = receipts[:limit]
    if last_timestamp == after_last_timestamp:
        kept = [r for r in kept if timestamp(r) != last_timestamp]
    return kept