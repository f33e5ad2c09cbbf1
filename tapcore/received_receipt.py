"""Receipts tracked through their checking and escrow lifecycle."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass
from typing import Iterable

from .eip712 import Eip712Domain
from .errors import (
    CheckFailureError,
    FailedCheck,
    ReceiptError,
    RetryableCheck,
    RetryableCheckError,
)
from .receipt import Context, Receipt
from .signed_message import EIP712SignedMessage


class ReceiptState(enum.Enum):
    CHECKING = "checking"
    AWAITING_RESERVE = "awaiting_reserve"
    RESERVED = "reserved"
    FAILED = "failed"


@dataclass(frozen=True)
class ReceiptWithState:
    """A signed receipt with its lifecycle state; failed receipts carry an error."""

    signed_receipt: EIP712SignedMessage[Receipt]
    state: ReceiptState = ReceiptState.CHECKING
    error: ReceiptError | None = None

    def with_error(self, error: ReceiptError) -> "ReceiptWithState":
        return dataclasses.replace(self, state=ReceiptState.FAILED, error=error)

    def with_state(self, state: ReceiptState) -> "ReceiptWithState":
        return dataclasses.replace(self, state=state, error=None)

    async def perform_checks(self, ctx: Context, checks: Iterable) -> None:
        """Run every check in order, raising a ReceiptError on the first failure."""
        for check in checks:
            try:
                await check.check(ctx, self)
            except RetryableCheck as exc:
                raise RetryableCheckError(str(exc)) from exc
            except FailedCheck as exc:
                raise CheckFailureError(str(exc)) from exc

    async def finalize_receipt_checks(self, ctx: Context, checks: Iterable) -> "ReceiptWithState":
        """Return the receipt awaiting reserve, or failed; retryable errors propagate."""
        try:
            await self.perform_checks(ctx, checks)
        except RetryableCheckError:
            raise
        except ReceiptError as exc:
            return self.with_error(exc)
        return self.with_state(ReceiptState.AWAITING_RESERVE)

    async def check_and_reserve_escrow(
        self, context, domain_separator: Eip712Domain
    ) -> "ReceiptWithState":
        """Reserve escrow through ``context``; return the reserved or failed receipt."""
        try:
            await context.check_and_reserve_escrow(self, domain_separator)
        except ReceiptError as exc:
            return self.with_error(exc)
        return self.with_state(ReceiptState.RESERVED)