"""
SNS domain operations.

Each method takes a validated request model and returns the response mapping
sent to the client (before envelope encryption). Errors are raised as
SnsGatewayError subclasses and mapped to HTTP statuses by the API layer.

Known limitation: availability is checked and the purchase assembled in two
separate steps, with no lock in between. Two concurrent purchases of the same
name can both pass the check; the chain rejects whichever lands second.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from snsgate.errors import InvalidInputError, NotFoundError, UpstreamError
from snsgate.models import (
    CheckDomainRequest,
    DomainRequest,
    LookupRequest,
    PurchaseDomainRequest,
    UpdateDomainRequest,
)
from snsgate.naming import (
    DOMAIN_SUFFIX,
    RegistryKey,
    RegistryRecord,
    derive,
    derive_record,
    normalize_domain,
)
from snsgate.pricing import domain_price, price_matches
from snsgate.pubkey import Pubkey, is_valid_pubkey, parse_pubkey
from snsgate.registry import RegistryClient
from snsgate.signer import RelayerSigner
from snsgate.transaction import (
    purchase_instructions,
    to_base_units,
    transfer_name_ownership,
)

logger = logging.getLogger(__name__)

RECORD_TYPES = ("SOL", "ETH", "BTC", "LTC", "DOGE", "URL", "IPFS", "ARWV", "TXT", "CNAME", "A", "AAAA")


class _OrderedSet:
    """Insertion-ordered set of strings; the first insert wins the position."""

    def __init__(self):
        self._items: Dict[str, None] = {}

    def add(self, item: str) -> None:
        self._items.setdefault(item, None)

    def to_list(self) -> List[str]:
        return list(self._items)


class DomainService:
    def __init__(
        self,
        registry: RegistryClient,
        signer: RelayerSigner,
        usdc_mint: Pubkey,
        payment_account: Pubkey,
    ):
        self.registry = registry
        self.signer = signer
        self.usdc_mint = usdc_mint
        self.payment_account = payment_account

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _require_record(self, key: RegistryKey) -> RegistryRecord:
        record = await self.registry.get_record(key)
        if record is None:
            raise NotFoundError("Domain not found")
        return record

    async def _record_account(self, record_type: str, domain: str):
        """The `<record_type>.<domain>` record account, or None. Lookup failures count as absent."""
        try:
            return await self.registry.get_record(derive_record(record_type, domain))
        except (InvalidInputError, UpstreamError) as e:
            logger.debug("Record %s.%s lookup failed: %s", record_type, domain, e)
            return None

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    async def check_domain(self, req: CheckDomainRequest) -> Dict[str, Any]:
        domain = normalize_domain(req.name)
        available = not await self.registry.account_exists(derive(domain))
        return {
            "domain": domain,
            "available": available,
            "priceUSDC": domain_price(domain),
            "message": "Domain is available" if available else "Domain is already taken",
        }

    async def purchase_domain(self, req: PurchaseDomainRequest) -> Dict[str, Any]:
        if not req.is_complete():
            raise InvalidInputError("All fields are required")
        domain = normalize_domain(req.name)
        key = derive(domain)

        if await self.registry.account_exists(key):
            raise InvalidInputError("Domain is not available")
        if not price_matches(req.domainPriceUSDC, domain):
            raise InvalidInputError("Invalid domain price")

        buyer = parse_pubkey(req.buyerPubkey)
        service_fee_owner = parse_pubkey(req.serviceFeeAddress)
        price_units = to_base_units(req.domainPriceUSDC)
        instructions = purchase_instructions(
            registry_key=key,
            buyer=buyer,
            payer=self.signer.pubkey,
            usdc_mint=self.usdc_mint,
            payment_account=self.payment_account,
            service_fee_owner=service_fee_owner,
            price_units=price_units,
            service_fee_units=to_base_units(req.serviceFeeUSDC),
        )

        # freshness token last, right before signing
        blockhash = await self.registry.get_latest_blockhash()
        payload = self.signer.sign(self.signer.operation_set_for(instructions, blockhash))
        logger.info("Purchase transaction built for %s (buyer %s, %d units)",
                    domain, buyer, price_units)
        return {
            "success": True,
            "transaction": payload.base58,
            "transactionBase64": payload.base64,
            "message": "Transaction created successfully. User must sign and submit.",
        }

    async def update_domain(self, req: UpdateDomainRequest) -> Dict[str, Any]:
        if not req.domain or not req.newOwner:
            raise InvalidInputError("Domain and new owner are required")
        domain = normalize_domain(req.domain)
        new_owner = parse_pubkey(req.newOwner)

        key = derive(domain)
        await self._require_record(key)

        # the relayer is the current-owner authority
        instruction = transfer_name_ownership(key.pubkey, new_owner, self.signer.pubkey)
        blockhash = await self.registry.get_latest_blockhash()
        payload = self.signer.sign(self.signer.operation_set_for([instruction], blockhash))
        logger.info("Update transaction built for %s (new owner %s)", domain, new_owner)
        return {
            "success": True,
            "transaction": payload.base64,
            "message": "Update transaction created successfully",
        }

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def lookup(self, req: LookupRequest) -> Dict[str, Any]:
        if not req.pubkey:
            raise InvalidInputError("Public key is required")
        owner = parse_pubkey(req.pubkey)
        logger.info("Looking up domains for: %s", owner)

        names = await self.registry.user_domains(owner)
        domains = [f"{n}{DOMAIN_SUFFIX}" for n in names]
        logger.info("Found %d domains: %s", len(domains), domains)
        return {
            "success": True,
            "pubkey": str(owner),
            "domains": domains,
            "totalDomains": len(domains),
            "message": (f"Found {len(domains)} domain(s)" if domains
                        else "No domains found for this public key"),
        }

    async def domain_records(self, req: DomainRequest) -> Dict[str, Any]:
        if not req.domain:
            raise InvalidInputError("Domain is required")
        domain = normalize_domain(req.domain)
        record = await self._require_record(derive(domain))

        # first writer wins: later sources only fill gaps
        records: Dict[str, Any] = {}
        try:
            records.update(await self.registry.domain_records(domain))
        except UpstreamError as e:
            logger.warning("Bonfida API records fetch failed: %s", e.details or e.message)

        for record_type in RECORD_TYPES:
            account = await self._record_account(record_type, domain)
            if account is None or not account.data:
                continue
            value = account.record_text()
            if value and not records.get(record_type):
                records[record_type] = value

        return {
            "domain": domain,
            "owner": str(record.owner),
            "records": records,
            "recordCount": len(records),
            "message": "Domain records retrieved successfully",
        }

    async def reverse_lookup(self, req: DomainRequest) -> Dict[str, Any]:
        if not req.domain:
            raise InvalidInputError("Domain is required")
        domain = normalize_domain(req.domain)
        record = await self._require_record(derive(domain))
        owner = str(record.owner)

        wallets = _OrderedSet()
        wallets.add(owner)

        # 1. record values from the records API that parse as wallets
        try:
            api_records = await self.registry.domain_records(domain)
        except UpstreamError as e:
            logger.warning("Bonfida API records fetch failed: %s", e.details or e.message)
            api_records = {}
        for value in api_records.values():
            if isinstance(value, str) and is_valid_pubkey(value):
                wallets.add(str(parse_pubkey(value)))

        # 2. the on-chain SOL record
        sol = await self._record_account("SOL", domain)
        if sol is not None and sol.data:
            wallet = _sol_record_wallet(sol)
            if wallet:
                wallets.add(wallet)

        # 3. owners of subdomains
        try:
            subdomains = await self.registry.subdomains(domain)
        except UpstreamError as e:
            logger.warning("Subdomain lookup failed: %s", e.details or e.message)
            subdomains = []
        for sub in subdomains:
            try:
                sub_record = await self.registry.get_record(derive(_qualify_subdomain(sub, domain)))
            except (InvalidInputError, UpstreamError) as e:
                logger.debug("Skipping subdomain %r: %s", sub, e)
                continue
            if sub_record is not None:
                wallets.add(str(sub_record.owner))

        connected = wallets.to_list()
        return {
            "domain": domain,
            "owner": owner,
            "connectedWallets": connected,
            "totalConnectedWallets": len(connected),
            "message": "Reverse lookup completed with all connected wallets",
        }

    def health(self) -> Dict[str, Any]:
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}


def _sol_record_wallet(record: RegistryRecord) -> str:
    """Wallet stored in a SOL record: base58 text, else the raw leading 32 bytes."""
    text = record.record_text()
    if text and is_valid_pubkey(text):
        return str(parse_pubkey(text))
    raw = record.data[:32]
    if len(raw) == 32 and any(raw) and not _looks_like_text(raw):
        return str(Pubkey(bytes(raw)))
    return ""


def _looks_like_text(raw: bytes) -> bool:
    try:
        return raw.rstrip(b"\x00").decode("utf-8").isprintable()
    except UnicodeDecodeError:
        return False


def _qualify_subdomain(sub: str, domain: str) -> str:
    name = sub.strip().lower()
    if name.endswith(DOMAIN_SUFFIX):
        return name
    if "." not in name:
        return f"{name}.{domain}"
    return name + DOMAIN_SUFFIX
