"""
Solana public keys and program-derived addresses.

`Pubkey` is solders' 32-byte address type. This module adds the gateway's
input handling on top of it (client strings become `InvalidInputError`, never
a library exception) and the derived addresses the relayer needs: program
addresses for name accounts and associated token accounts.
"""
from __future__ import annotations

from typing import Sequence, Tuple, Union

import base58
from solders.pubkey import Pubkey

from snsgate.errors import InvalidInputError

PUBKEY_LENGTH = 32
MAX_SEED_LENGTH = 32
# find_program_address appends the bump seed
MAX_SEEDS = 15

INVALID_PUBKEY = "Invalid public key format"
INVALID_PUBKEY_DETAIL = "Public key must be a valid base58 string"


def parse_pubkey(value: str) -> Pubkey:
    """Parse a client-supplied base58 address."""
    if not isinstance(value, str) or not value:
        raise InvalidInputError(INVALID_PUBKEY, details=INVALID_PUBKEY_DETAIL)
    try:
        raw = base58.b58decode(value)
    except ValueError:
        raise InvalidInputError(INVALID_PUBKEY, details=INVALID_PUBKEY_DETAIL)
    if len(raw) != PUBKEY_LENGTH:
        raise InvalidInputError(INVALID_PUBKEY, details=INVALID_PUBKEY_DETAIL)
    return Pubkey(raw)


def pubkey_from_bytes(raw: bytes) -> Pubkey:
    if len(raw) != PUBKEY_LENGTH:
        raise InvalidInputError(
            INVALID_PUBKEY, details=f"expected {PUBKEY_LENGTH} bytes, got {len(raw)}"
        )
    return Pubkey(bytes(raw))


PubkeyLike = Union[Pubkey, str, bytes]


def as_pubkey(value: PubkeyLike) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, bytes):
        return pubkey_from_bytes(value)
    return parse_pubkey(value)


def is_valid_pubkey(value: str) -> bool:
    try:
        parse_pubkey(value)
    except InvalidInputError:
        return False
    return True


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Off-curve address for `seeds` under `program_id`, with its bump seed."""
    seeds = [bytes(s) for s in seeds]
    if len(seeds) > MAX_SEEDS:
        raise InvalidInputError(f"Too many seeds: {len(seeds)}")
    if any(len(s) > MAX_SEED_LENGTH for s in seeds):
        raise InvalidInputError("Max seed length exceeded")
    return Pubkey.find_program_address(seeds, program_id)


# --- Well-known programs ---
SYSTEM_PROGRAM_ID = Pubkey.default()
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")


def get_associated_token_address(mint: Pubkey, owner: Pubkey) -> Pubkey:
    address, _ = find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address
