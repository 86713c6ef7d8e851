"""
SNS Gateway - fee-relaying Solana Name Service API

Components:
- pubkey.py: addresses, program-derived addresses, token accounts
- naming.py: domain/subdomain/record key derivation, registry account parsing
- transaction.py: instruction builders, message compilation, partial signing wire format
- signer.py: relayer keypair and fee-payer signing
- envelope.py: AES-256-CBC request/response envelope
- registry.py: Solana RPC + Bonfida API client
- service.py: domain operations
- api_server.py: FastAPI endpoints
"""

__version__ = "0.1.0"

# Lazy imports - only import what's needed when used
def __getattr__(name):
    if name == "create_app":
        from .api_server import create_app
        return create_app
    elif name == "Settings":
        from .config import Settings
        return Settings
    elif name == "EncryptionGateway":
        from .envelope import EncryptionGateway
        return EncryptionGateway
    elif name == "RelayerSigner":
        from .signer import RelayerSigner
        return RelayerSigner
    elif name == "derive":
        from .naming import derive
        return derive
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "__version__",
    "create_app",
    "Settings",
    "EncryptionGateway",
    "RelayerSigner",
    "derive",
]
