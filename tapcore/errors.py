"""Exception hierarchy for receipt, RAV and check failures."""

from __future__ import annotations

from typing import Any


class TapError(Exception):
    """Base class of every error raised by the package."""


class AggregateOverflowError(TapError):
    """Aggregating receipt values overflowed the 128-bit aggregate."""

    def __init__(self) -> None:
        super().__init__("Aggregating receipt results in overflow")


class VerificationFailedError(TapError):
    """The recovered signer is not the expected one."""

    def __init__(self, expected: str, received: str) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Expected address {expected} but received {received}")


class InvalidReceivedRAVError(TapError):
    """The RAV returned by the aggregator differs from the expected RAV."""

    def __init__(self, received_rav: Any, expected_rav: Any) -> None:
        self.received_rav = received_rav
        self.expected_rav = expected_rav
        super().__init__(
            f"Received RAV does not match expected RAV "
            f"(received: {received_rav!r}, expected: {expected_rav!r})"
        )


class AdapterError(TapError):
    """A storage or escrow adapter failed."""

    def __init__(self, source_error: BaseException) -> None:
        self.source_error = source_error
        super().__init__(f"Error from adapter: {source_error}")


class TimestampRangeError(TapError):
    """The minimum timestamp lies after the maximum timestamp."""

    def __init__(self, min_timestamp_ns: int, max_timestamp_ns: int) -> None:
        self.min_timestamp_ns = min_timestamp_ns
        self.max_timestamp_ns = max_timestamp_ns
        super().__init__(
            f"Invalid timestamp range: min {min_timestamp_ns} > max {max_timestamp_ns}"
        )


class NoValidReceiptsError(TapError):
    """A RAV request was built with no valid receipts."""

    def __init__(self) -> None:
        super().__init__("No valid receipts for RAV request")


class FailedToVerifySignerError(TapError):
    """The adapter could not decide whether a signer is valid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Failed to verify signer: {message}")


class InvalidRecoveredSignerError(TapError):
    """The signer recovered from a RAV is not accepted."""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Recovered signer is not valid: {address}")


class SignatureError(TapError):
    """A signature is malformed or cannot be recovered."""


class ReceiptError(TapError):
    """Base class of errors concerning a single receipt."""


class InvalidAllocationIDError(ReceiptError):
    def __init__(self, received_allocation_id: str) -> None:
        self.received_allocation_id = received_allocation_id
        super().__init__(f"invalid allocation ID: {received_allocation_id}")


class InvalidSignatureError(ReceiptError):
    def __init__(self, source_error_message: str) -> None:
        self.source_error_message = source_error_message
        super().__init__(f"Signature check failed:\n{source_error_message}")


class InvalidTimestampError(ReceiptError):
    def __init__(self, received_timestamp: int, timestamp_min: int) -> None:
        self.received_timestamp = received_timestamp
        self.timestamp_min = timestamp_min
        super().__init__(
            f"invalid timestamp: {received_timestamp} (expected min {timestamp_min})"
        )


class InvalidValueError(ReceiptError):
    def __init__(self, received_value: int) -> None:
        self.received_value = received_value
        super().__init__(f"Invalid Value: {received_value} ")


class NonUniqueReceiptError(ReceiptError):
    def __init__(self) -> None:
        super().__init__("Receipt is not unique")


class SubtractEscrowFailedError(ReceiptError):
    def __init__(self) -> None:
        super().__init__("Attempt to collect escrow failed")


class CheckFailureError(ReceiptError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Issue encountered while performing check: {message}")


class RetryableCheckError(ReceiptError):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Retryable check error encountered: {message}")


class CheckError(Exception):
    """Raised by a receipt check; its text is that of the underlying cause."""

    def __init__(self, cause: BaseException | str) -> None:
        self.cause = cause
        super().__init__(str(cause))


class RetryableCheck(CheckError):
    """The check could not complete now and may succeed later."""


class FailedCheck(CheckError):
    """The receipt did not pass the check."""