"""
Relayer signing.

The relayer ("system wallet") pays network fees for every transaction the
gateway builds. It signs exactly one slot, its own; the end user signs the
rest client-side before submitting.

Usage:
    from snsgate.signer import RelayerSigner

    signer = RelayerSigner.from_secret(settings.relayer_secret_key)
    ops = signer.operation_set_for(instructions, recent_blockhash)
    payload = signer.sign(ops)
    payload.base58, payload.base64
"""
from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Iterable

import base58
from nacl.signing import SigningKey
from solders.signature import Signature

from snsgate.errors import ConfigError, InvalidInputError
from snsgate.pubkey import Pubkey
from snsgate.transaction import (
    Instruction,
    OperationSet,
    Transaction,
    assemble,
    unsigned_transaction,
    with_signature,
)

SECRET_KEY_LENGTH = 64
SEED_LENGTH = 32


def _decode_secret(secret: str) -> bytes:
    text = secret.strip()
    if text.startswith("["):
        try:
            return bytes(json.loads(text))
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Relayer key is not a valid byte array: {e}")
    try:
        return base58.b58decode(text)
    except ValueError as e:
        raise ConfigError(f"Relayer key is not valid base58: {e}")


@dataclass(frozen=True)
class PartiallySignedPayload:
    """Serialized transaction with only the relayer's slot filled."""
    raw: bytes
    transaction: Transaction

    @property
    def base58(self) -> str:
        return base58.b58encode(self.raw).decode("ascii")

    @property
    def base64(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")


class RelayerSigner:
    """Holds the relayer keypair for the process lifetime."""

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key
        self.pubkey = Pubkey(bytes(signing_key.verify_key))

    @classmethod
    def from_secret(cls, secret: str) -> "RelayerSigner":
        """Load from a base58 64-byte secret key (seed || pubkey) or a JSON byte array."""
        if not secret:
            raise ConfigError("SYSTEM_WALLET_PRIVATE_KEY is required in environment variables")
        raw = _decode_secret(secret)
        if len(raw) == SEED_LENGTH:
            return cls(SigningKey(raw))
        if len(raw) != SECRET_KEY_LENGTH:
            raise ConfigError(
                f"Relayer key must be {SECRET_KEY_LENGTH} bytes, got {len(raw)}"
            )
        signing_key = SigningKey(raw[:SEED_LENGTH])
        if bytes(signing_key.verify_key) != raw[SEED_LENGTH:]:
            raise ConfigError("Relayer key public half does not match its seed")
        return cls(signing_key)

    @classmethod
    def generate(cls) -> "RelayerSigner":
        return cls(SigningKey.generate())

    def secret_key_base58(self) -> str:
        raw = bytes(self._signing_key) + bytes(self._signing_key.verify_key)
        return base58.b58encode(raw).decode("ascii")

    def operation_set_for(self, instructions: Iterable[Instruction],
                          recent_blockhash: str) -> OperationSet:
        return assemble(instructions, self.pubkey, recent_blockhash)

    def sign(self, operation_set: OperationSet) -> PartiallySignedPayload:
        if operation_set.fee_payer != self.pubkey:
            raise InvalidInputError("Relayer must be the fee payer")
        message = operation_set.compile_message()
        signed = self._signing_key.sign(bytes(message)).signature
        tx = with_signature(unsigned_transaction(message), self.pubkey, Signature(signed))
        return PartiallySignedPayload(raw=bytes(tx), transaction=tx)
