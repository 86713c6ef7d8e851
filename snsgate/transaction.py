"""
Transaction assembly for the SNS relayer.

    instructions -> OperationSet (fee payer + blockhash, ordering checked)
                 -> Message (solders legacy message: deduplicated, sorted keys)
                 -> Transaction (one signature slot per required signer)

Instruction layouts for the SPL token and name service programs are built
here; account-table compilation and the wire format are solders'. Unfilled
signature slots serialize as 64 zero bytes, which keeps a partially signed
transaction parseable by any downstream wallet.
"""
from __future__ import annotations

import base64
import binascii
import math
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import base58
from solders.errors import BincodeError
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.signature import Signature
from solders.transaction import Transaction

from snsgate.errors import InvalidInputError
from snsgate.naming import NAME_PROGRAM_ID, RegistryKey
from snsgate.pubkey import (
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    Pubkey,
    get_associated_token_address,
)

EMPTY_SIGNATURE = Signature.default()
BLOCKHASH_LENGTH = 32
USDC_DECIMALS = 6
DEFAULT_NAME_SPACE = 2000

# instruction tags
TOKEN_TRANSFER_TAG = 3
NAME_CREATE_TAG = 0
NAME_TRANSFER_TAG = 2


# =============================================================================
# INSTRUCTIONS
# =============================================================================

def is_token_transfer(ix: Instruction) -> bool:
    return ix.program_id == TOKEN_PROGRAM_ID and ix.data[:1] == bytes([TOKEN_TRANSFER_TAG])


def is_registry(ix: Instruction) -> bool:
    return ix.program_id == NAME_PROGRAM_ID


def to_base_units(amount: float, decimals: int = USDC_DECIMALS) -> int:
    """Scale a token amount to integer base units. Truncates, never rounds."""
    if not math.isfinite(amount):
        raise InvalidInputError(f"Amount must be a finite number, got {amount!r}")
    return math.floor(amount * 10 ** decimals)


def _u64(value: int) -> bytes:
    if value < 0 or value >= 1 << 64:
        raise InvalidInputError(f"Amount out of u64 range: {value}")
    return struct.pack("<Q", value)


def token_transfer(source: Pubkey, destination: Pubkey, owner: Pubkey, amount: int) -> Instruction:
    """SPL token Transfer."""
    return Instruction(
        TOKEN_PROGRAM_ID,
        bytes([TOKEN_TRANSFER_TAG]) + _u64(amount),
        [
            AccountMeta(source, is_signer=False, is_writable=True),
            AccountMeta(destination, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=False),
        ],
    )


def create_name_registry(
    name_key: Pubkey,
    name_owner: Pubkey,
    payer: Pubkey,
    hashed: bytes,
    lamports: int,
    space: int,
    name_class: Optional[Pubkey] = None,
    name_parent: Optional[Pubkey] = None,
    name_parent_owner: Optional[Pubkey] = None,
) -> Instruction:
    """Name service Create."""
    data = b"".join([
        bytes([NAME_CREATE_TAG]),
        struct.pack("<I", len(hashed)),
        hashed,
        _u64(lamports),
        struct.pack("<I", space),
    ])
    accounts = [
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(name_key, is_signer=False, is_writable=True),
        AccountMeta(name_owner, is_signer=False, is_writable=False),
    ]
    if name_class is not None:
        accounts.append(AccountMeta(name_class, is_signer=True, is_writable=False))
    else:
        accounts.append(AccountMeta(Pubkey.default(), is_signer=False, is_writable=False))
    if name_parent is not None:
        accounts.append(AccountMeta(name_parent, is_signer=False, is_writable=False))
    else:
        accounts.append(AccountMeta(Pubkey.default(), is_signer=False, is_writable=False))
    if name_parent_owner is not None:
        accounts.append(AccountMeta(name_parent_owner, is_signer=True, is_writable=False))
    return Instruction(NAME_PROGRAM_ID, data, accounts)


def transfer_name_ownership(
    name_key: Pubkey,
    new_owner: Pubkey,
    current_owner: Pubkey,
    name_class: Optional[Pubkey] = None,
) -> Instruction:
    """Name service Transfer: reassign the owner of `name_key`."""
    accounts = [
        AccountMeta(name_key, is_signer=False, is_writable=True),
        AccountMeta(current_owner, is_signer=True, is_writable=False),
    ]
    if name_class is not None:
        accounts.append(AccountMeta(name_class, is_signer=True, is_writable=False))
    return Instruction(NAME_PROGRAM_ID, bytes([NAME_TRANSFER_TAG]) + bytes(new_owner), accounts)


def purchase_instructions(
    *,
    registry_key: RegistryKey,
    buyer: Pubkey,
    payer: Pubkey,
    usdc_mint: Pubkey,
    payment_account: Pubkey,
    service_fee_owner: Pubkey,
    price_units: int,
    service_fee_units: int,
    space: int = DEFAULT_NAME_SPACE,
) -> List[Instruction]:
    """Payment transfers first, registration last."""
    buyer_ata = get_associated_token_address(usdc_mint, buyer)
    service_fee_ata = get_associated_token_address(usdc_mint, service_fee_owner)
    return [
        token_transfer(buyer_ata, payment_account, buyer, price_units),
        token_transfer(buyer_ata, service_fee_ata, buyer, service_fee_units),
        create_name_registry(
            name_key=registry_key.pubkey,
            name_owner=buyer,
            payer=payer,
            hashed=registry_key.hashed,
            lamports=price_units,
            space=space,
        ),
    ]


# =============================================================================
# OPERATION SET
# =============================================================================

def decode_blockhash(value: str) -> Hash:
    try:
        raw = base58.b58decode(value)
    except ValueError:
        raise InvalidInputError(f"Invalid blockhash: {value!r}")
    if len(raw) != BLOCKHASH_LENGTH:
        raise InvalidInputError(f"Invalid blockhash: {value!r}")
    return Hash(raw)


@dataclass(frozen=True)
class OperationSet:
    """Ordered instructions bound to a fee payer and a freshness token."""
    instructions: Tuple[Instruction, ...]
    fee_payer: Pubkey
    recent_blockhash: str

    def __post_init__(self):
        if not self.instructions:
            raise InvalidInputError("Operation set is empty")
        registry_idx = [i for i, ix in enumerate(self.instructions) if is_registry(ix)]
        transfer_idx = [i for i, ix in enumerate(self.instructions) if is_token_transfer(ix)]
        if registry_idx and transfer_idx and min(registry_idx) < max(transfer_idx):
            raise InvalidInputError("Registry instruction must follow all token transfers")

    def compile_message(self) -> Message:
        return Message.new_with_blockhash(
            list(self.instructions), self.fee_payer, decode_blockhash(self.recent_blockhash)
        )


def assemble(instructions: Iterable[Instruction], fee_payer: Pubkey,
             recent_blockhash: str) -> OperationSet:
    return OperationSet(tuple(instructions), fee_payer, recent_blockhash)


# =============================================================================
# TRANSACTION
# =============================================================================

def signer_keys(message: Message) -> List[Pubkey]:
    return list(message.account_keys[: message.header.num_required_signatures])


def unsigned_transaction(message: Message) -> Transaction:
    return Transaction.populate(message, [EMPTY_SIGNATURE] * message.header.num_required_signatures)


def with_signature(tx: Transaction, pubkey: Pubkey, signature: Signature) -> Transaction:
    """Copy of `tx` with `pubkey`'s slot filled."""
    keys = signer_keys(tx.message)
    if pubkey not in keys:
        raise InvalidInputError(f"Unknown signer {pubkey}")
    signatures = list(tx.signatures)
    signatures[keys.index(pubkey)] = signature
    return Transaction.populate(tx.message, signatures)


def missing_signers(tx: Transaction) -> List[Pubkey]:
    return [k for k, s in zip(signer_keys(tx.message), tx.signatures) if s == EMPTY_SIGNATURE]


def verify_signatures(tx: Transaction, require_all: bool = True) -> bool:
    """Check every filled slot; empty slots fail only when `require_all`."""
    for sig, ok in zip(tx.signatures, tx.verify_with_results()):
        if sig == EMPTY_SIGNATURE:
            if require_all:
                return False
            continue
        if not ok:
            return False
    return True


def transaction_from_bytes(raw: bytes) -> Transaction:
    try:
        tx = Transaction.from_bytes(raw)
    except (BincodeError, ValueError) as e:
        raise InvalidInputError("Malformed transaction", details=str(e))
    if bytes(tx) != bytes(raw):
        raise InvalidInputError("Trailing bytes after transaction")
    if len(tx.signatures) != tx.message.header.num_required_signatures:
        raise InvalidInputError("Signature count does not match message header")
    return tx


def transaction_from_base64(text: str) -> Transaction:
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError("Transaction is not valid base64")
    return transaction_from_bytes(raw)


def fee_payer(message: Message) -> Pubkey:
    return message.account_keys[0]

