"""EIP-712 domains and typed structured-data hashing."""

from __future__ import annotations

from dataclasses import dataclass

from .crypto import keccak256, parse_address


def _encode_value(sol_type: str, value) -> bytes:
    if sol_type == "address":
        return bytes(12) + bytes.fromhex(parse_address(value)[2:])
    if sol_type.startswith("uint"):
        bits = int(sol_type[4:] or 256)
        if not isinstance(value, int) or not 0 <= value < 2**bits:
            raise ValueError(f"value {value!r} does not fit in {sol_type}")
        return value.to_bytes(32, "big")
    if sol_type == "string":
        return keccak256(value.encode("utf-8"))
    if sol_type == "bytes32":
        if len(value) != 32:
            raise ValueError("bytes32 value must be 32 bytes")
        return bytes(value)
    raise ValueError(f"unsupported type: {sol_type}")


def _hash_struct(name: str, fields) -> bytes:
    type_string = f"{name}({','.join(f'{t} {n}' for n, t, _ in fields)})"
    encoded = b"".join(_encode_value(t, v) for _, t, v in fields)
    return keccak256(keccak256(type_string.encode()) + encoded)


@dataclass(frozen=True)
class Eip712Domain:
    """The signing domain; absent fields are left out of the domain type."""

    name: str | None = None
    version: str | None = None
    chain_id: int | None = None
    verifying_contract: str | None = None
    salt: bytes | None = None

    def separator(self) -> bytes:
        candidates = (
            ("name", "string", self.name),
            ("version", "string", self.version),
            ("chainId", "uint256", self.chain_id),
            ("verifyingContract", "address", self.verifying_contract),
            ("salt", "bytes32", self.salt),
        )
        return _hash_struct("EIP712Domain", [c for c in candidates if c[2] is not None])


class Eip712Struct:
    """Mixin for dataclasses hashed as EIP-712 structs.

    Subclasses set ``eip712_name`` and ``eip712_fields``, a sequence of
    ``(solidity_name, solidity_type, attribute)`` triples.
    """

    eip712_name = ""
    eip712_fields: tuple = ()

    def _fields(self):
        return [(n, t, getattr(self, attr)) for n, t, attr in self.eip712_fields]

    def encode_type(self) -> str:
        return f"{self.eip712_name}({','.join(f'{t} {n}' for n, t, _ in self.eip712_fields)})"

    def eip712_hash_struct(self) -> bytes:
        return _hash_struct(self.eip712_name, self._fields())

    def eip712_signing_hash(self, domain: Eip712Domain) -> bytes:
        return keccak256(b"\x19\x01" + domain.separator() + self.eip712_hash_struct())