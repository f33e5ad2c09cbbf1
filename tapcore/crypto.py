"""Keccak hashing, addresses and recoverable secp256k1 signatures."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from Crypto.Hash import keccak

from .errors import SignatureError

_P = 2**256 - 2**32 - 977
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)

_BYTE_ORDER = "big"


def keccak256(data: bytes) -> bytes:
    """Return the Keccak-256 digest of ``data``."""
    h = keccak.new(digest_bits=256)
    h.update(bytes(data))
    return h.digest()


def parse_address(value: str | bytes) -> str:
    """Normalise a 20-byte address to lower-case ``0x`` hex."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"invalid address: {value!r}") from exc
    if len(raw) != 20:
        raise ValueError(f"address must be 20 bytes, got {len(raw)}")
    return "0x" + raw.hex()


def _add(a, b):
    if a is None:
        return b
    if b is None:
        return a
    if a[0] == b[0]:
        if (a[1] + b[1]) % _P == 0:
            return None
        lam = 3 * a[0] * a[0] * pow(2 * a[1], -1, _P) % _P
    else:
        lam = (b[1] - a[1]) * pow(b[0] - a[0], -1, _P) % _P
    x = (lam * lam - a[0] - b[0]) % _P
    return x, (lam * (a[0] - x) - a[1]) % _P


def _mul(k: int, point):
    result = None
    addend = point
    while k:
        if k & 1:
            result = _add(result, addend)
        addend = _add(addend, addend)
        k >>= 1
    return result


def _address_of(point) -> str:
    pub = point[0].to_bytes(32, _BYTE_ORDER) + point[1].to_bytes(32, _BYTE_ORDER)
    return "0x" + keccak256(pub)[-20:].hex()


@dataclass(frozen=True)
class Signature:
    """ECDSA signature with the parity of the nonce point's y coordinate."""

    r: int
    s: int
    v: int

    def as_bytes(self) -> bytes:
        """65 bytes: r, s and a recovery byte of 27 or 28."""
        return (
            self.r.to_bytes(32, _BYTE_ORDER)
            + self.s.to_bytes(32, _BYTE_ORDER)
            + bytes([27 + self.v])
        )

    @staticmethod
    def from_bytes(data: bytes) -> "Signature":
        if len(data) != 65:
            raise SignatureError(f"signature must be 65 bytes, got {len(data)}")
        v = data[64]
        if v in (27, 28):
            v -= 27
        elif v not in (0, 1):
            raise SignatureError(f"invalid recovery byte: {v}")
        return Signature(
            int.from_bytes(data[:32], _BYTE_ORDER),
            int.from_bytes(data[32:64], _BYTE_ORDER),
            v,
        )

    def recover_address_from_prehash(self, digest: bytes) -> str:
        """Recover the address whose key produced this signature over ``digest``."""
        if not (0 < self.r < _N and 0 < self.s < _N) or self.v not in (0, 1):
            raise SignatureError("signature values out of range")
        x = self.r
        alpha = (pow(x, 3, _P) + 7) % _P
        beta = pow(alpha, (_P + 1) // 4, _P)
        if beta * beta % _P != alpha:
            raise SignatureError("signature does not correspond to a curve point")
        y = beta if beta % 2 == self.v else _P - beta
        e = int.from_bytes(digest, _BYTE_ORDER) % _N
        r_inv = pow(self.r, -1, _N)
        q = _add(_mul(-e * r_inv % _N, _G), _mul(self.s * r_inv % _N, (x, y)))
        if q is None:
            raise SignatureError("recovered the point at infinity")
        return _address_of(q)


def _rfc6979_nonces(scalar: int, digest: bytes):
    x = scalar.to_bytes(32, _BYTE_ORDER)
    h = (int.from_bytes(digest, _BYTE_ORDER) % _N).to_bytes(32, _BYTE_ORDER)
    v = b"\x01" * 32
    k = b"\x00" * 32
    k = hmac.new(k, v + b"\x00" + x + h, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    k = hmac.new(k, v + b"\x01" + x + h, hashlib.sha256).digest()
    v = hmac.new(k, v, hashlib.sha256).digest()
    while True:
        v = hmac.new(k, v, hashlib.sha256).digest()
        candidate = int.from_bytes(v, _BYTE_ORDER)
        if 1 <= candidate < _N:
            yield candidate
        k = hmac.new(k, v + b"\x00", hashlib.sha256).digest()
        v = hmac.new(k, v, hashlib.sha256).digest()


class PrivateKeySigner:
    """A secp256k1 private key that signs 32-byte digests."""

    def __init__(self, scalar: int | bytes) -> None:
        if isinstance(scalar, (bytes, bytearray)):
            scalar = int.from_bytes(scalar, _BYTE_ORDER)
        if not 0 < scalar < _N:
            raise ValueError("private key out of range")
        self._scalar = scalar
        self.address = _address_of(_mul(scalar, _G))

    @staticmethod
    def random() -> "PrivateKeySigner":
        return PrivateKeySigner(secrets.randbelow(_N - 1) + 1)

    def sign_hash(self, digest: bytes) -> Signature:
        """Deterministically sign ``digest`` with a low-s signature."""
        if len(digest) != 32:
            raise SignatureError("digest must be 32 bytes")
        e = int.from_bytes(digest, _BYTE_ORDER) % _N
        for k in _rfc6979_nonces(self._scalar, digest):
            point = _mul(k, _G)
            r = point[0] % _N
            if r == 0:
                continue
            s = pow(k, -1, _N) * (e + r * self._scalar) % _N
            if s == 0:
                continue
            v = point[1] & 1
            if s > _N // 2:
                s = _N - s
                v ^= 1
            return Signature(r, s, v)
        raise SignatureError("unable to sign")  # pragma: no cover

    def __repr__(self) -> str:
        return f"PrivateKeySigner(address={self.address})"