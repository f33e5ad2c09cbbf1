# tapcore

Core logic for a receipt-based payment protocol. A payer signs small
**receipts**. Each receipt is an EIP-712 message signed with secp256k1 ECDSA.
The receiver checks the receipts, stores them and reserves their value from
the payer's escrow. From time to time the receiver bundles them into a
**receipt aggregate voucher** (RAV). The RAV records the total value and the
latest timestamp. An aggregator signs the RAV, and the receiver verifies the
signed RAV and keeps it.

## Installation

```
pip install tapcore
```

The package depends only on `pycryptodome`, which provides Keccak-256. To run
the test suite:

```
pip install "tapcore[test]"
pytest
```

## Modules

- `tapcore.crypto`
  - `keccak256(data)` hashes bytes with Keccak-256.
  - `parse_address(value)` turns hex text or 20 raw bytes into a lower-case
    `0x` address.
  - `PrivateKeySigner` is a secp256k1 key that has an `address`.
    `PrivateKeySigner.random()` creates a new one. `sign_hash(digest)` makes
    deterministic, low-s signatures.
  - `Signature` has the fields `r`, `s` and `v`. It provides `as_bytes()` and
    `Signature.from_bytes(data)`, which work on 65 bytes, and
    `recover_address_from_prehash(digest)`.
- `tapcore.eip712`
  - `Eip712Domain` is a signing domain. Any field left as `None` is left out
    of the domain type. `separator()` returns the domain hash.
  - `Eip712Struct` is a mixin for dataclasses. It provides `encode_type()`,
    `eip712_hash_struct()` and `eip712_signing_hash(domain)`.
- `tapcore.signed_message`
  - `sign_message(domain, message, signer)` returns an `EIP712SignedMessage`.
  - `recover_signer(domain)` returns the signing address.
  - `verify(domain, expected_address)` raises `VerificationFailedError` on a
    mismatch.
  - `unique_hash()` hashes the message alone.
- `tapcore.receipt`
  - `Receipt` holds `allocation_id`, `timestamp_ns`, `nonce` and `value`.
  - `new_receipt(allocation_id, value)` stamps a receipt with
    `current_timestamp_ns()` and gives it a random 64-bit nonce.
  - `Context` is a map that holds at most one value of each type. It is
    passed to checks.
- `tapcore.received_receipt`
  - `ReceiptWithState` wraps a signed receipt together with a `ReceiptState`:
    `CHECKING`, `AWAITING_RESERVE`, `RESERVED` or `FAILED`. A failed receipt
    carries its `error`.
- `tapcore.checks`
  - `Check` is the abstract base for user checks. A check raises
    `FailedCheck` or `RetryableCheck` from `tapcore.errors`.
  - `CheckList` is an immutable sequence of checks.
  - `StatefulTimestampCheck` accepts timestamps strictly above a minimum that
    can be moved.
  - The batch checks `TimestampCheck` and `UniqueCheck` each return a pair:
    the receipts that are still being checked and the receipts that failed.
- `tapcore.adapters`
  - The abstract interfaces are `ReceiptStore`, `ReceiptRead`,
    `ReceiptDelete`, `RAVStore`, `RAVRead` and `EscrowHandler`.
    `EscrowHandler` already provides `check_and_reserve_escrow` and
    `check_rav_signature`.
  - `safe_truncate_receipts(receipts, limit)` returns at most `limit`
    receipts and never keeps only part of the receipts that share a
    timestamp.
- `tapcore.rav`
  - `ReceiptAggregateVoucher` is the voucher itself.
  - `aggregate_receipts(allocation_id, receipts, previous_rav)` sums the
    receipt values and raises `AggregateOverflowError` when the sum exceeds
    128 bits.
  - `RAVRequest` holds the valid receipts, the invalid receipts and the
    previous RAV. Its `expected_rav` property returns the expected voucher,
    or raises the error that came up while computing it.
- `tapcore.manager`
  - `Manager` takes a domain, a context and a set of checks. It provides
    `verify_and_store_receipt`, `create_rav_request`, `verify_and_store_rav`
    and `remove_obsolete_receipts`.
- `tapcore.memory`
  - `InMemoryContext` implements every adapter in process memory. It also
    keeps escrow through `increase_escrow`, `reduce_escrow` and `escrow`.
  - `AllocationIdCheck`, `SignatureCheck` and `get_full_list_of_checks` are
    ready-made checks that go with it.
- `tapcore.errors`
  - All errors derive from `TapError`.
  - Errors about a single receipt derive from `ReceiptError`.

The adapter methods and the manager methods are coroutines.

## Example

```python
import asyncio

from tapcore.checks import CheckList
from tapcore.crypto import PrivateKeySigner, parse_address
from tapcore.eip712 import Eip712Domain
from tapcore.manager import Manager
from tapcore.memory import InMemoryContext
from tapcore.receipt import Context, new_receipt
from tapcore.signed_message import sign_message


async def main():
    domain = Eip712Domain(
        name="TAP",
        version="1",
        chain_id=1,
        verifying_contract=parse_address("0x" + "11" * 20),
    )
    payer = PrivateKeySigner.random()
    aggregator = PrivateKeySigner.random()
    allocation_id = parse_address("0x" + "ab" * 20)

    context = InMemoryContext().with_sender_address(aggregator.address)
    context.increase_escrow(payer.address, 1_000)
    manager = Manager(domain, context, CheckList([]))

    for value in (100, 200):
        receipt = sign_message(domain, new_receipt(allocation_id, value), payer)
        await manager.verify_and_store_receipt(Context(), receipt)

    request = await manager.create_rav_request(Context(), 0)
    expected = request.expected_rav  # value_aggregate == 300

    signed_rav = sign_message(domain, expected, aggregator)
    await manager.verify_and_store_rav(expected, signed_rav)
    await manager.remove_obsolete_receipts()


asyncio.run(main())
```

## What this package does not do

The package covers the receiving side's logic and an in-memory context, and
nothing more:

- It has no aggregator and no network client or server. In the example
  above, the RAV is signed locally in place of an aggregator.
- It has no persistent storage. For that, implement the adapters in
  `tapcore.adapters` against your own store.
- It does not redeem RAVs on a blockchain.
- It provides no command-line program.