import pytest

from tapcore.checks import StatefulTimestampCheck
from tapcore.crypto import PrivateKeySigner
from tapcore.eip712 import Eip712Domain
from tapcore.errors import (
    FailedCheck,
    InvalidAllocationIDError,
    InvalidSignatureError,
    SubtractEscrowFailedError,
)
from tapcore.manager import Manager
from tapcore.memory import (
    AllocationIdCheck,
    InMemoryContext,
    InMemoryError,
    RAVStorage,
    SignatureCheck,
    get_full_list_of_checks,
)
from tapcore.rav import ReceiptAggregateVoucher
from tapcore.receipt import Context, Receipt, new_receipt
from tapcore.received_receipt import ReceiptWithState
from tapcore.signed_message import sign_message

ALLOCATION = "0xabababababababababababababababababababab"
OTHER_ALLOCATION = "0xdeaddeaddeaddeaddeaddeaddeaddeaddeaddead"
DOMAIN = Eip712Domain(
    name="TAP", version="1", chain_id=1, verifying_contract="0x" + "11" * 20
)


@pytest.fixture(scope="module")
def wallet():
    return PrivateKeySigner.random()


def make(wallet, timestamp_ns, value=10, nonce=1, allocation=ALLOCATION):
    receipt = Receipt(allocation, timestamp_ns, nonce, value)
    return ReceiptWithState(sign_message(DOMAIN, receipt, wallet))


@pytest.mark.asyncio
async def test_store_and_retrieve_by_id(wallet):
    ctx = InMemoryContext()
    r1 = make(wallet, 100)
    r2 = make(wallet, 200)
    assert await ctx.store_receipt(r1) == 0
    assert await ctx.store_receipt(r2) == 1
    assert await ctx.retrieve_receipt_by_id(1) == r2


@pytest.mark.asyncio
async def test_retrieve_missing_id_raises():
    ctx = InMemoryContext()
    with pytest.raises(InMemoryError, match="No receipt found with ID"):
        await ctx.retrieve_receipt_by_id(7)


@pytest.mark.asyncio
async def test_remove_receipt_by_id(wallet):
    ctx = InMemoryContext()
    receipt_id = await ctx.store_receipt(make(wallet, 100))
    await ctx.remove_receipt_by_id(receipt_id)
    with pytest.raises(InMemoryError):
        await ctx.retrieve_receipt_by_id(receipt_id)
    with pytest.raises(InMemoryError):
        await ctx.remove_receipt_by_id(receipt_id)


@pytest.mark.asyncio
async def test_remove_receipts_by_ids(wallet):
    ctx = InMemoryContext()
    ids = [await ctx.store_receipt(make(wallet, ts, nonce=ts)) for ts in (1, 2, 3)]
    await ctx.remove_receipts_by_ids(ids[:2])
    assert list(ctx.receipt_storage) == [ids[2]]


@pytest.mark.asyncio
async def test_retrieve_by_timestamp(wallet):
    ctx = InMemoryContext()
    a = make(wallet, 100, nonce=1)
    b = make(wallet, 200, nonce=2)
    c = make(wallet, 100, nonce=3)
    for receipt in (a, b, c):
        await ctx.store_receipt(receipt)
    result = await ctx.retrieve_receipts_by_timestamp(100)
    assert result == [(0, a), (2, c)]


@pytest.mark.asyncio
async def test_retrieve_upto_timestamp_is_inclusive(wallet):
    ctx = InMemoryContext()
    for ts in (100, 200, 300):
        await ctx.store_receipt(make(wallet, ts, nonce=ts))
    result = await ctx.retrieve_receipts_upto_timestamp(200)
    assert sorted(r.signed_receipt.message.timestamp_ns for r in result) == [100, 200]


@pytest.mark.asyncio
async def test_range_retrieval_with_limit_keeps_timestamps_whole(wallet):
    ctx = InMemoryContext()
    for nonce, ts in enumerate((100, 200, 100, 200, 100)):
        await ctx.store_receipt(make(wallet, ts, nonce=nonce))
    full = range(0, 1000)
    assert len(await ctx.retrieve_receipts_in_timestamp_range(full, None)) == 5
    four = await ctx.retrieve_receipts_in_timestamp_range(full, 4)
    assert [r.signed_receipt.message.timestamp_ns for r in four] == [100, 100, 100]
    three = await ctx.retrieve_receipts_in_timestamp_range(full, 3)
    assert len(three) == 3
    assert await ctx.retrieve_receipts_in_timestamp_range(full, 2) == []


@pytest.mark.asyncio
async def test_remove_receipts_in_range(wallet):
    ctx = InMemoryContext()
    for ts in (100, 200, 300):
        await ctx.store_receipt(make(wallet, ts, nonce=ts))
    await ctx.remove_receipts_in_timestamp_range(range(0, 201))
    remaining = await ctx.retrieve_receipts_in_timestamp_range(range(0, 1000), None)
    assert [r.signed_receipt.message.timestamp_ns for r in remaining] == [300]


def test_escrow_accounting(wallet):
    ctx = InMemoryContext()
    with pytest.raises(InMemoryError, match="No escrow exists for provided sender ID."):
        ctx.escrow(wallet.address)
    ctx.increase_escrow(wallet.address, 50)
    ctx.increase_escrow(wallet.address, 25)
    assert ctx.escrow(wallet.address) == 75
    ctx.reduce_escrow(wallet.address, 75)
    assert ctx.escrow(wallet.address) == 0
    with pytest.raises(InMemoryError, match="greater than existing escrow"):
        ctx.reduce_escrow(wallet.address, 1)


def test_reduce_escrow_of_unknown_sender_raises():
    ctx = InMemoryContext()
    with pytest.raises(InMemoryError):
        ctx.reduce_escrow(OTHER_ALLOCATION, 1)


@pytest.mark.asyncio
async def test_async_escrow_adapters(wallet):
    ctx = InMemoryContext()
    ctx.increase_escrow(wallet.address, 30)
    await ctx.subtract_escrow(wallet.address, 10)
    assert await ctx.get_available_escrow(wallet.address) == 20


@pytest.mark.asyncio
async def test_check_and_reserve_escrow(wallet):
    ctx = InMemoryContext()
    ctx.increase_escrow(wallet.address, 15)
    receipt = make(wallet, 100, value=10)
    await ctx.check_and_reserve_escrow(receipt, DOMAIN)
    assert ctx.escrow(wallet.address) == 5
    with pytest.raises(SubtractEscrowFailedError):
        await ctx.check_and_reserve_escrow(receipt, DOMAIN)


@pytest.mark.asyncio
async def test_verify_signer(wallet):
    ctx = InMemoryContext()
    assert await ctx.verify_signer(wallet.address) is False
    ctx = ctx.with_sender_address(wallet.address)
    assert await ctx.verify_signer(wallet.address) is True
    assert await ctx.verify_signer(OTHER_ALLOCATION) is False


@pytest.mark.asyncio
async def test_update_last_rav_moves_timestamp_check(wallet):
    timestamp_check = StatefulTimestampCheck(0)
    storage = RAVStorage()
    ctx = InMemoryContext(rav_storage=storage, timestamp_check=timestamp_check)
    assert await ctx.last_rav() is None
    rav = sign_message(DOMAIN, ReceiptAggregateVoucher(ALLOCATION, 500, 42), wallet)
    await ctx.update_last_rav(rav)
    assert await ctx.last_rav() == rav
    assert storage.rav == rav
    with pytest.raises(FailedCheck):
        await timestamp_check.check(Context(), make(wallet, 500))
    await timestamp_check.check(Context(), make(wallet, 501))
    assert timestamp_check.min_timestamp_ns == 500


@pytest.mark.asyncio
async def test_allocation_id_check(wallet):
    allowed = {ALLOCATION}
    check = AllocationIdCheck(allowed)
    await check.check(Context(), make(wallet, 1))
    other = make(wallet, 1, allocation=OTHER_ALLOCATION)
    with pytest.raises(FailedCheck) as info:
        await check.check(Context(), other)
    assert isinstance(info.value.cause, InvalidAllocationIDError)
    allowed.add(OTHER_ALLOCATION)
    await check.check(Context(), other)
    assert info.value.cause.received_allocation_id == OTHER_ALLOCATION


@pytest.mark.asyncio
async def test_signature_check(wallet):
    check = SignatureCheck(DOMAIN, {wallet.address})
    await check.check(Context(), make(wallet, 1))
    stranger = PrivateKeySigner.random()
    with pytest.raises(FailedCheck) as info:
        await check.check(Context(), make(stranger, 1))
    assert isinstance(info.value.cause, InvalidSignatureError)
    assert info.value.cause.source_error_message == "Invalid signer"


def test_full_list_of_checks(wallet):
    checks = get_full_list_of_checks(DOMAIN, {wallet.address}, {ALLOCATION}, {})
    assert [type(c) for c in checks] == [AllocationIdCheck, SignatureCheck]


@pytest.mark.asyncio
async def test_manager_round_trip(wallet):
    ctx = InMemoryContext().with_sender_address(wallet.address)
    ctx.increase_escrow(wallet.address, 1000)
    checks = get_full_list_of_checks(DOMAIN, {wallet.address}, {ALLOCATION}, {})
    manager = Manager(DOMAIN, ctx, checks)

    signed = [sign_message(DOMAIN, new_receipt(ALLOCATION, v), wallet) for v in (10, 20, 30)]
    for receipt in signed:
        await manager.verify_and_store_receipt(Context(), receipt)
    assert len(ctx.receipt_storage) == 3

    request = await manager.create_rav_request(Context(), 0, None)
    assert len(request.valid_receipts) == 3
    assert request.invalid_receipts == []
    expected = request.expected_rav
    assert expected.value_aggregate == 60
    assert ctx.escrow(wallet.address) == 940

    signed_rav = sign_message(DOMAIN, expected, wallet)
    await manager.verify_and_store_rav(expected, signed_rav)
    assert await ctx.last_rav() == signed_rav

    await manager.remove_obsolete_receipts()
    assert ctx.receipt_storage == {}
    assert ctx.timestamp_check.min_timestamp_ns == expected.timestamp_ns


@pytest.mark.asyncio
async def test_manager_rejects_receipt_for_unknown_allocation(wallet):
    ctx = InMemoryContext()
    checks = get_full_list_of_checks(DOMAIN, {wallet.address}, {ALLOCATION}, {})
    manager = Manager(DOMAIN, ctx, checks)
    receipt = sign_message(DOMAIN, new_receipt(OTHER_ALLOCATION, 5), wallet)
    with pytest.raises(Exception, match="invalid allocation ID"):
        await manager.verify_and_store_receipt(Context(), receipt)
    assert ctx.receipt_storage == {}