import pytest

from tapcore.errors import (
    AdapterError,
    CheckError,
    CheckFailureError,
    FailedCheck,
    InvalidAllocationIDError,
    InvalidSignatureError,
    InvalidTimestampError,
    InvalidValueError,
    NonUniqueReceiptError,
    ReceiptError,
    RetryableCheck,
    RetryableCheckError,
    SubtractEscrowFailedError,
    TapError,
    TimestampRangeError,
    VerificationFailedError,
)


def test_invalid_timestamp_message():
    err = InvalidTimestampError(5, 7)
    assert str(err) == "invalid timestamp: 5 (expected min 7)"
    assert err.received_timestamp == 5
    assert err.timestamp_min == 7


def test_receipt_error_messages():
    assert str(NonUniqueReceiptError()) == "Receipt is not unique"
    assert str(SubtractEscrowFailedError()) == "Attempt to collect escrow failed"
    assert str(InvalidValueError(3)) == "Invalid Value: 3 "
    assert str(InvalidSignatureError("bad")) == "Signature check failed:\nbad"
    assert str(CheckFailureError("x")) == "Issue encountered while performing check: x"
    assert str(RetryableCheckError("y")) == "Retryable check error encountered: y"


def test_allocation_error_keeps_address():
    addr = "0xabababababababababababababababababababab"
    err = InvalidAllocationIDError(addr)
    assert str(err) == f"invalid allocation ID: {addr}"
    assert isinstance(err, ReceiptError)
    assert isinstance(err, TapError)


def test_check_error_text_is_cause_text():
    cause = NonUniqueReceiptError()
    err = FailedCheck(cause)
    assert str(err) == "Receipt is not unique"
    assert err.cause is cause
    assert isinstance(RetryableCheck("later"), CheckError)


def test_adapter_error_wraps_source():
    source = ValueError("boom")
    err = AdapterError(source)
    assert err.source_error is source
    assert "boom" in str(err)


def test_timestamp_range_and_verification_fields():
    err = TimestampRangeError(10, 5)
    assert (err.min_timestamp_ns, err.max_timestamp_ns) == (10, 5)
    v = VerificationFailedError("0xaa", "0xbb")
    assert v.expected == "0xaa" and v.received == "0xbb"
    with pytest.raises(TapError):
        raise v