"""Messages signed over their EIP-712 hash."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from .crypto import PrivateKeySigner, Signature
from .eip712 import Eip712Domain, Eip712Struct
from .errors import VerificationFailedError

M = TypeVar("M", bound=Eip712Struct)


@dataclass(frozen=True)
class EIP712SignedMessage(Generic[M]):
    """A message together with the ECDSA signature of its EIP-712 hash."""

    message: M
    signature: Signature

    def recover_signer(self, domain_separator: Eip712Domain) -> str:
        digest = self.message.eip712_signing_hash(domain_separator)
        return self.signature.recover_address_from_prehash(digest)

    def verify(self, domain_separator: Eip712Domain, expected_address: str) -> None:
        """Raise VerificationFailedError unless ``expected_address`` signed."""
        recovered = self.recover_signer(domain_separator)
        if recovered != expected_address.lower():
            raise VerificationFailedError(expected_address, recovered)

    def unique_hash(self) -> bytes:
        """Hash of the message alone; equal for the same message by any signer."""
        return self.message.eip712_hash_struct()


def sign_message(
    domain_separator: Eip712Domain, message: M, signing_wallet: PrivateKeySigner
) -> EIP712SignedMessage[M]:
    digest = message.eip712_signing_hash(domain_separator)
    return EIP712SignedMessage(message, signing_wallet.sign_hash(digest))