"""Point of entry for verifying, storing and aggregating receipts and RAVs.

The manager runs the configured checks on receipts when they arrive and
again when they are collected for a RAV request, and relies on a context
implementing the adapters of ``tapcore.adapters`` for storage and escrow.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Optional

from .checks import CheckList, TimestampCheck, UniqueCheck
from .eip712 import Eip712Domain
from .errors import (
    AdapterError,
    InvalidReceivedRAVError,
    NoValidReceiptsError,
    TapError,
    TimestampRangeError,
)
from .rav import RAVRequest, ReceiptAggregateVoucher, aggregate_receipts
from .receipt import Context, current_timestamp_ns
from .received_receipt import ReceiptState, ReceiptWithState
from .signed_message import EIP712SignedMessage


class Manager:
    """Verifies and stores receipts and RAVs through a user-supplied context."""

    def __init__(self, domain_separator: Eip712Domain, context: Any, checks: Iterable = ()) -> None:
        self._domain_separator = domain_separator
        self._context = context
        self._checks = checks if isinstance(checks, CheckList) else CheckList(checks)

    @property
    def domain_separator(self) -> Eip712Domain:
        return self._domain_separator

    @property
    def checks(self) -> CheckList:
        return self._checks

    async def verify_and_store_rav(
        self,
        expected_rav: ReceiptAggregateVoucher,
        signed_rav: EIP712SignedMessage[ReceiptAggregateVoucher],
    ) -> None:
        """Check the RAV's signer and contents, then store it as the last RAV."""
        await self._context.check_rav_signature(signed_rav, self._domain_separator)

        if signed_rav.message != expected_rav:
            raise InvalidReceivedRAVError(signed_rav.message, expected_rav)

        try:
            await self._context.update_last_rav(signed_rav)
        except Exception as exc:
            raise AdapterError(exc) from exc

    async def _get_previous_rav(self) -> Optional[EIP712SignedMessage[ReceiptAggregateVoucher]]:
        try:
            return await self._context.last_rav()
        except Exception as exc:
            raise AdapterError(exc) from exc

    async def _collect_receipts(
        self,
        ctx: Context,
        timestamp_buffer_ns: int,
        min_timestamp_ns: int,
        limit: Optional[int],
    ) -> tuple[list[ReceiptWithState], list[ReceiptWithState]]:
        max_timestamp_ns = current_timestamp_ns() - timestamp_buffer_ns
        if min_timestamp_ns > max_timestamp_ns:
            raise TimestampRangeError(min_timestamp_ns, max_timestamp_ns)

        try:
            checking = await self._context.retrieve_receipts_in_timestamp_range(
                range(min_timestamp_ns, max_timestamp_ns), limit
            )
        except Exception as exc:
            raise AdapterError(exc) from exc

        failed: list[ReceiptWithState] = []
        checking, already_failed = TimestampCheck(min_timestamp_ns).check_batch(checking)
        failed.extend(already_failed)
        checking, already_failed = UniqueCheck().check_batch(checking)
        failed.extend(already_failed)

        awaiting_reserve: list[ReceiptWithState] = []
        for receipt in checking:
            result = await receipt.finalize_receipt_checks(ctx, self._checks)
            if result.state is ReceiptState.FAILED:
                failed.append(result)
            else:
                awaiting_reserve.append(result)

        reserved: list[ReceiptWithState] = []
        for receipt in awaiting_reserve:
            result = await receipt.check_and_reserve_escrow(self._context, self._domain_separator)
            if result.state is ReceiptState.FAILED:
                failed.append(result)
            else:
                reserved.append(result)

        return reserved, failed

    async def create_rav_request(
        self,
        ctx: Context,
        timestamp_buffer_ns: int,
        receipts_limit: Optional[int] = None,
    ) -> RAVRequest:
        """Collect receipts up to now minus the buffer and build a RAV request.

        Raises AdapterError if the previous RAV or the receipts cannot be read
        and TimestampRangeError if the previous RAV is newer than the range
        end. Errors in computing the expected RAV are kept in the request.
        """
        previous_rav = await self._get_previous_rav()
        min_timestamp_ns = previous_rav.message.timestamp_ns + 1 if previous_rav else 0

        valid, invalid = await self._collect_receipts(
            ctx, timestamp_buffer_ns, min_timestamp_ns, receipts_limit
        )
        return RAVRequest(
            valid_receipts=valid,
            previous_rav=previous_rav,
            invalid_receipts=invalid,
            expected_rav_result=self._generate_expected_rav(valid, previous_rav),
        )

    @staticmethod
    def _generate_expected_rav(
        receipts: list[ReceiptWithState],
        previous_rav: Optional[EIP712SignedMessage[ReceiptAggregateVoucher]],
    ) -> ReceiptAggregateVoucher | TapError:
        if not receipts:
            return NoValidReceiptsError()
        allocation_id = receipts[0].signed_receipt.message.allocation_id
        try:
            return aggregate_receipts(
                allocation_id, [r.signed_receipt for r in receipts], previous_rav
            )
        except TapError as exc:
            return exc

    async def remove_obsolete_receipts(self) -> None:
        """Remove receipts already covered by the last RAV; no-op without one."""
        last_rav = await self._get_previous_rav()
        if last_rav is None:
            return
        try:
            await self._context.remove_receipts_in_timestamp_range(
                range(0, last_rav.message.timestamp_ns + 1)
            )
        except Exception as exc:
            raise AdapterError(exc) from exc

    async def verify_and_store_receipt(
        self, ctx: Context, signed_receipt: EIP712SignedMessage
    ) -> None:
        """Run the checks on a new receipt and store it."""
        received = ReceiptWithState(signed_receipt)
        await received.perform_checks(ctx, self._checks)
        try:
            await self._context.store_receipt(received)
        except Exception as exc:
            raise AdapterError(exc) from exc