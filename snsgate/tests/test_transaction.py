"""Tests for instruction encoding, message compilation and the transaction wire format."""
import struct

import base58
import pytest
from solders.message import Message, MessageHeader
from solders.signature import Signature

from snsgate.errors import InvalidInputError
from snsgate.naming import NAME_PROGRAM_ID, derive
from snsgate.pubkey import (
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    Pubkey,
    get_associated_token_address,
    parse_pubkey,
)
from snsgate.signer import RelayerSigner
from snsgate.transaction import (
    EMPTY_SIGNATURE,
    OperationSet,
    assemble,
    create_name_registry,
    fee_payer,
    is_registry,
    is_token_transfer,
    missing_signers,
    purchase_instructions,
    signer_keys,
    to_base_units,
    token_transfer,
    transaction_from_base64,
    transaction_from_bytes,
    transfer_name_ownership,
    unsigned_transaction,
    verify_signatures,
    with_signature,
)

BLOCKHASH = base58.b58encode(bytes(range(32))).decode("ascii")
USDC_MINT = parse_pubkey("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v")
PAYMENT = parse_pubkey("FEEh8bMZ9g6ckxijZeBvXrGmxcFZ5B2MtEvs2X9f6mZh")


def _key() -> Pubkey:
    return RelayerSigner.generate().pubkey


def _purchase(buyer, payer, fee_owner, price=10_000_000, fee=500_000):
    return purchase_instructions(
        registry_key=derive("abc.sol"),
        buyer=buyer,
        payer=payer,
        usdc_mint=USDC_MINT,
        payment_account=PAYMENT,
        service_fee_owner=fee_owner,
        price_units=price,
        service_fee_units=fee,
    )


def _purchase_message(payer=None):
    payer = payer or _key()
    return assemble(_purchase(_key(), payer, _key()), payer, BLOCKHASH).compile_message()


class TestBaseUnits:
    def test_whole_amounts(self):
        assert to_base_units(10.0) == 10_000_000
        assert to_base_units(1) == 1_000_000

    def test_truncates_not_rounds(self):
        assert to_base_units(2.0000009) == 2_000_000
        assert to_base_units(0.9999999) == 999_999

    @pytest.mark.parametrize("amount", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_rejected(self, amount):
        with pytest.raises(InvalidInputError):
            to_base_units(amount)

class TestInstructions:
    def test_token_transfer_layout(self):
        src, dst, owner = _key(), _key(), _key()
        ix = token_transfer(src, dst, owner, 1234)
        assert ix.program_id == TOKEN_PROGRAM_ID
        assert ix.data == b"\x03" + struct.pack("<Q", 1234)
        assert [(m.pubkey, m.is_signer, m.is_writable) for m in ix.accounts] == [
            (src, False, True), (dst, False, True), (owner, True, False),
        ]
        assert is_token_transfer(ix) and not is_registry(ix)

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidInputError):
            token_transfer(_key(), _key(), _key(), -1)

    def test_create_layout(self):
        key = derive("abc.sol")
        owner, payer = _key(), _key()
        ix = create_name_registry(key.pubkey, owner, payer, key.hashed, 10_000_000, 2000)
        assert ix.program_id == NAME_PROGRAM_ID
        assert ix.data == (b"\x00" + struct.pack("<I", 32) + key.hashed
                           + struct.pack("<Q", 10_000_000) + struct.pack("<I", 2000))
        metas = [(m.pubkey, m.is_signer, m.is_writable) for m in ix.accounts]
        assert metas == [
            (SYSTEM_PROGRAM_ID, False, False),
            (payer, True, True),
            (key.pubkey, False, True),
            (owner, False, False),
            (Pubkey.default(), False, False),
            (Pubkey.default(), False, False),
        ]

    def test_transfer_ownership_layout(self):
        name, new_owner, authority = _key(), _key(), _key()
        ix = transfer_name_ownership(name, new_owner, authority)
        assert ix.data == b"\x02" + bytes(new_owner)
        assert [(m.pubkey, m.is_signer, m.is_writable) for m in ix.accounts] == [
            (name, False, True), (authority, True, False),
        ]

    def test_purchase_order_transfers_then_registration(self):
        ixs = _purchase(_key(), _key(), _key())
        registry_idx = [i for i, ix in enumerate(ixs) if is_registry(ix)]
        transfer_idx = [i for i, ix in enumerate(ixs) if is_token_transfer(ix)]
        assert len(transfer_idx) == 2 and len(registry_idx) == 1
        assert min(registry_idx) > max(transfer_idx)

    def test_purchase_destinations(self):
        buyer, fee_owner = _key(), _key()
        price_ix, fee_ix, _ = _purchase(buyer, _key(), fee_owner)
        buyer_ata = get_associated_token_address(USDC_MINT, buyer)
        assert price_ix.accounts[0].pubkey == buyer_ata
        assert price_ix.accounts[1].pubkey == PAYMENT
        assert fee_ix.accounts[1].pubkey == get_associated_token_address(USDC_MINT, fee_owner)
        assert fee_ix.data == b"\x03" + struct.pack("<Q", 500_000)


class TestOperationSet:
    def test_rejects_registration_before_transfer(self):
        ixs = _purchase(_key(), _key(), _key())
        with pytest.raises(InvalidInputError):
            assemble([ixs[2], ixs[0], ixs[1]], _key(), BLOCKHASH)

    def test_rejects_empty(self):
        with pytest.raises(InvalidInputError):
            OperationSet((), _key(), BLOCKHASH)

    def test_rejects_bad_blockhash(self):
        ops = assemble([transfer_name_ownership(_key(), _key(), _key())], _key(), "not base58!")
        with pytest.raises(InvalidInputError):
            ops.compile_message()


class TestMessage:
    def test_purchase_account_table(self):
        buyer, payer, fee_owner = _key(), _key(), _key()
        message = assemble(_purchase(buyer, payer, fee_owner), payer, BLOCKHASH).compile_message()
        assert fee_payer(message) == payer
        assert message.account_keys[1] == buyer
        assert message.header == MessageHeader(2, 1, 3)
        assert len(message.account_keys) == 9
        assert len(set(message.account_keys)) == 9
        assert bytes(message.recent_blockhash) == bytes(range(32))
        programs = [message.account_keys[ix.program_id_index] for ix in message.instructions]
        assert programs == [TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID, NAME_PROGRAM_ID]

    def test_readonly_unsigned_keys_come_last(self):
        message = _purchase_message()
        tail = message.account_keys[-message.header.num_readonly_unsigned_accounts:]
        assert set(tail) == {SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID, NAME_PROGRAM_ID}

    def test_update_with_relayer_authority_needs_one_signer(self):
        relayer = _key()
        message = assemble([transfer_name_ownership(_key(), _key(), relayer)],
                           relayer, BLOCKHASH).compile_message()
        assert message.header == MessageHeader(1, 0, 1)
        assert signer_keys(message) == [relayer]

    def test_parse_back(self):
        message = _purchase_message()
        assert Message.from_bytes(bytes(message)) == message


class TestTransaction:
    def test_unsigned_serialization_has_empty_slots(self):
        tx = unsigned_transaction(_purchase_message())
        raw = bytes(tx)
        assert raw[0] == 2
        assert raw[1:129] == bytes(EMPTY_SIGNATURE) * 2
        assert len(missing_signers(tx)) == 2

    def test_empty_slots_fail_full_verification(self):
        tx = unsigned_transaction(_purchase_message())
        assert not verify_signatures(tx, require_all=True)
        assert verify_signatures(tx, require_all=False)

    def test_unknown_signer(self):
        tx = unsigned_transaction(_purchase_message())
        with pytest.raises(InvalidInputError):
            with_signature(tx, _key(), Signature(bytes(64)))

    def test_with_signature_fills_only_its_slot(self):
        payer = _key()
        tx = unsigned_transaction(_purchase_message(payer))
        signed = with_signature(tx, payer, Signature(b"\x05" * 64))
        assert signed.signatures[0] == Signature(b"\x05" * 64)
        assert signed.signatures[1] == EMPTY_SIGNATURE
        assert tx.signatures[0] == EMPTY_SIGNATURE

    def test_wire_round_trip(self):
        raw = bytes(unsigned_transaction(_purchase_message()))
        assert bytes(transaction_from_bytes(raw)) == raw

    def test_trailing_bytes_rejected(self):
        raw = bytes(unsigned_transaction(_purchase_message()))
        with pytest.raises(InvalidInputError):
            transaction_from_bytes(raw + b"\x00")

    def test_truncated_rejected(self):
        raw = bytes(unsigned_transaction(_purchase_message()))
        with pytest.raises(InvalidInputError):
            transaction_from_bytes(raw[:-5])

    def test_bad_base64_rejected(self):
        with pytest.raises(InvalidInputError):
            transaction_from_base64("not base64!")
