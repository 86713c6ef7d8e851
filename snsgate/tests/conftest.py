"""
SNS Gateway test configuration and shared fixtures.

The registry is replaced by an in-memory fake so the API and service layers
run without network access. Every HTTP helper goes through the real
encryption envelope.
"""
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import base58
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from snsgate.api_server import create_app
from snsgate.config import Settings
from snsgate.envelope import EncryptionGateway
from snsgate.errors import UpstreamError
from snsgate.naming import REGISTRY_HEADER_LEN, derive, derive_record
from snsgate.pubkey import Pubkey
from snsgate.registry import RegistryClient
from snsgate.signer import RelayerSigner

TEST_AES_KEY = "test-passphrase-for-envelope"
TEST_AES_IV = "0123456789abcdef"


def new_pubkey() -> Pubkey:
    return RelayerSigner.generate().pubkey


def registry_account(owner: Pubkey, data: bytes = b"",
                     parent: Optional[Pubkey] = None) -> bytes:
    header = bytes(parent or Pubkey.default()) + bytes(owner) + bytes(32)
    assert len(header) == REGISTRY_HEADER_LEN
    return header + data


class FakeRegistry(RegistryClient):
    """In-memory registry; records every upstream call in `calls`."""

    def __init__(self):
        self.accounts: Dict[Pubkey, bytes] = {}
        self.user_domain_map: Dict[str, List[str]] = {}
        self.api_records: Dict[str, Dict[str, Any]] = {}
        self.api_subdomains: Dict[str, List[str]] = {}
        self.user_domains_status: Optional[int] = None
        self.records_api_down = False
        self.account_error: Optional[Exception] = None
        self.blockhashes: List[str] = []
        self.calls: List[str] = []

    async def aclose(self) -> None:
        pass

    # --- fixtures helpers ---

    def register_domain(self, name: str, owner: Pubkey, data: bytes = b"") -> Pubkey:
        key = derive(name).pubkey
        self.accounts[key] = registry_account(owner, data)
        return key

    def register_record(self, record: str, domain: str, data: bytes, owner: Pubkey) -> Pubkey:
        key = derive_record(record, domain).pubkey
        self.accounts[key] = registry_account(owner, data)
        return key

    # --- RegistryClient surface ---

    async def get_account_info(self, pubkey: Pubkey) -> Optional[bytes]:
        self.calls.append("getAccountInfo")
        if self.account_error is not None:
            raise self.account_error
        return self.accounts.get(pubkey)

    async def get_latest_blockhash(self) -> str:
        self.calls.append("getLatestBlockhash")
        blockhash = base58.b58encode(os.urandom(32)).decode("ascii")
        self.blockhashes.append(blockhash)
        return blockhash

    async def user_domains(self, owner: Pubkey) -> List[str]:
        self.calls.append("userDomains")
        if self.user_domains_status is not None:
            raise UpstreamError("Failed to fetch domains from Bonfida API",
                                status_code=self.user_domains_status,
                                extra={"status": self.user_domains_status})
        return list(self.user_domain_map.get(str(owner), []))

    async def domain_records(self, domain: str) -> Dict[str, Any]:
        self.calls.append("domainRecords")
        if self.records_api_down:
            raise UpstreamError("Failed to connect to Bonfida API", details="connection refused")
        return dict(self.api_records.get(domain, {}))

    async def subdomains(self, domain: str) -> List[str]:
        self.calls.append("subdomains")
        if self.records_api_down:
            raise UpstreamError("Failed to connect to Bonfida API", details="connection refused")
        return list(self.api_subdomains.get(domain, []))


@pytest.fixture
def relayer():
    return RelayerSigner.generate()


@pytest.fixture
def settings(relayer):
    return Settings(
        relayer_secret_key=relayer.secret_key_base58(),
        aes_key=TEST_AES_KEY,
        aes_iv=TEST_AES_IV,
    )


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def gateway():
    return EncryptionGateway(TEST_AES_KEY, TEST_AES_IV)


@pytest.fixture
def client(settings, registry, relayer):
    app = create_app(settings, registry=registry, signer=relayer)
    return TestClient(app)


class EnvelopeClient:
    """Wraps TestClient: encrypts inputs, decrypts outputs."""

    def __init__(self, client: TestClient, gateway: EncryptionGateway):
        self.client = client
        self.gateway = gateway

    def get(self, path: str, params: Optional[Dict[str, Any]] = None):
        query = self.gateway.encrypt_response(params or {})
        r = self.client.get(path, params=query)
        return r.status_code, self.gateway.decrypt_request(r.json())

    def post(self, path: str, body: Dict[str, Any]):
        r = self.client.post(path, json=self.gateway.encrypt_response(body))
        return r.status_code, self.gateway.decrypt_request(r.json())


@pytest.fixture
def api(client, gateway):
    return EnvelopeClient(client, gateway)
