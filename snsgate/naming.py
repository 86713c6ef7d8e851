"""
SNS name derivation.

Maps human-readable `.sol` names to their registry account addresses:

    derive("bonfida.sol")          -> top-level domain, parent = .sol root
    derive("dex.bonfida.sol")      -> subdomain, label prefixed with \\x00
    derive_record("SOL", "bonfida.sol") -> record sub-account "SOL.bonfida.sol"

Hashing and seed layout match the on-chain name service program, so the
derived addresses are the accounts the program actually creates.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

from snsgate.errors import InvalidInputError
from snsgate.pubkey import Pubkey, find_program_address

NAME_PROGRAM_ID = Pubkey.from_string("namesLPneVptA9Z5rqUDD9tMTWEJwofgaYwp8cawRkX")
ROOT_DOMAIN_ACCOUNT = Pubkey.from_string("58PwtjSDuFHuUkYjH9BYnnQKHfwo9reZhC2zMJv9JPkx")

HASH_PREFIX = "SPL Name Service"
DOMAIN_SUFFIX = ".sol"
SUBDOMAIN_PREFIX = "\x00"

# parent_name, owner, class
REGISTRY_HEADER_LEN = 96


@dataclass(frozen=True)
class RegistryKey:
    pubkey: Pubkey
    hashed: bytes
    parent: Optional[Pubkey] = None
    is_sub: bool = False


def hashed_name(name: str) -> bytes:
    return hashlib.sha256((HASH_PREFIX + name).encode("utf-8")).digest()


def name_account_key(hashed: bytes, name_class: Optional[Pubkey] = None,
                     name_parent: Optional[Pubkey] = None) -> Pubkey:
    seeds = [
        hashed,
        bytes(name_class) if name_class is not None else bytes(32),
        bytes(name_parent) if name_parent is not None else bytes(32),
    ]
    key, _ = find_program_address(seeds, NAME_PROGRAM_ID)
    return key


def _derive(label: str, parent: Pubkey = ROOT_DOMAIN_ACCOUNT,
            name_class: Optional[Pubkey] = None) -> RegistryKey:
    hashed = hashed_name(label)
    return RegistryKey(pubkey=name_account_key(hashed, name_class, parent), hashed=hashed)


def normalize_domain(name: str) -> str:
    """Lowercase and check the `.sol` suffix. Returns the full name."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError("Domain name is required")
    domain = name.strip().lower()
    if not domain.endswith(DOMAIN_SUFFIX):
        raise InvalidInputError("Domain must end with .sol")
    if domain == DOMAIN_SUFFIX or domain.startswith("."):
        raise InvalidInputError("Invalid domain name")
    return domain


def strip_suffix(domain: str) -> str:
    if domain.endswith(DOMAIN_SUFFIX):
        return domain[: -len(DOMAIN_SUFFIX)]
    return domain


def derive(name: str) -> RegistryKey:
    """Derive the registry key of a domain or one-level subdomain."""
    labels = strip_suffix(normalize_domain(name)).split(".")
    if any(not label for label in labels):
        raise InvalidInputError("Invalid domain name")
    if len(labels) == 1:
        return _derive(labels[0])
    if len(labels) == 2:
        parent = _derive(labels[1]).pubkey
        sub = _derive(SUBDOMAIN_PREFIX + labels[0], parent)
        return RegistryKey(pubkey=sub.pubkey, hashed=sub.hashed, parent=parent, is_sub=True)
    raise InvalidInputError("Invalid derivation input")


def derive_record(record: str, domain: str) -> RegistryKey:
    """Derive the record account `record` of `domain` (e.g. SOL, ETH, URL).

    A record lives at the sub-name `<record>.<domain>`: same `\\x00` label
    prefix and parent as a subdomain. The record label keeps its case; only
    the domain part is normalized.
    """
    if not record or "." in record:
        raise InvalidInputError(f"Invalid record type: {record!r}")
    labels = strip_suffix(normalize_domain(domain)).split(".")
    if len(labels) != 1 or not labels[0]:
        raise InvalidInputError("Invalid derivation input")
    parent = _derive(labels[0]).pubkey
    rec = _derive(SUBDOMAIN_PREFIX + record, parent)
    return RegistryKey(pubkey=rec.pubkey, hashed=rec.hashed, parent=parent, is_sub=True)


@dataclass(frozen=True)
class RegistryRecord:
    """Name registry account: 96-byte header followed by opaque data."""
    parent_name: Pubkey
    owner: Pubkey
    name_class: Pubkey
    data: bytes = b""

    @classmethod
    def from_account_data(cls, raw: bytes) -> "RegistryRecord":
        if len(raw) < REGISTRY_HEADER_LEN:
            raise InvalidInputError(
                f"Registry account data too short: {len(raw)} bytes"
            )
        return cls(
            parent_name=Pubkey(bytes(raw[0:32])),
            owner=Pubkey(bytes(raw[32:64])),
            name_class=Pubkey(bytes(raw[64:96])),
            data=bytes(raw[REGISTRY_HEADER_LEN:]),
        )

    @property
    def has_parent(self) -> bool:
        return self.parent_name != Pubkey.default()

    def record_text(self) -> str:
        return self.data.decode("utf-8", errors="replace").replace("\x00", "").strip()
