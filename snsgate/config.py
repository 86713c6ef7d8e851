"""
SNS Gateway configuration: all environment-driven settings in one place.

Settings are read once into a frozen dataclass and handed to `create_app`;
nothing below the entrypoint reads the environment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from snsgate.errors import ConfigError

# --- Network ---
DEFAULT_PORT = 3000
DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0

# --- Accounts ---
DEFAULT_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
DEFAULT_ROOT_DOMAIN_ACCOUNT = "58PwtjSDuFHuUkYjH9BYnnQKHfwo9reZhC2zMJv9JPkx"
DEFAULT_SNS_PAYMENT_ADDRESS = "FEEh8bMZ9g6ckxijZeBvXrGmxcFZ5B2MtEvs2X9f6mZh"

# --- Record lookup API ---
DEFAULT_BONFIDA_SNS_API = "https://sns-api.bonfida.com"
DEFAULT_BONFIDA_API = "https://api.bonfida.com"

# --- Envelope ---
DEFAULT_AES_KEY = "default-key-for-sns-service"
DEFAULT_AES_IV = "default-iv-16b!!"

SNS_VERSION = "0.1.0"


def _cors_origins(raw: Optional[str]) -> Tuple[str, ...]:
    entries = [e.strip() for e in (raw or "").split(",") if e.strip()]
    return tuple(entries) or ("*",)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Process-wide, read-only configuration."""
    relayer_secret_key: str
    port: int = DEFAULT_PORT
    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    usdc_mint: str = DEFAULT_USDC_MINT
    root_domain_account: str = DEFAULT_ROOT_DOMAIN_ACCOUNT
    sns_payment_address: str = DEFAULT_SNS_PAYMENT_ADDRESS
    aes_key: str = DEFAULT_AES_KEY
    aes_iv: str = DEFAULT_AES_IV
    bonfida_sns_api: str = DEFAULT_BONFIDA_SNS_API
    bonfida_api: str = DEFAULT_BONFIDA_API
    http_timeout_s: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    cors_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        secret = os.environ.get("SYSTEM_WALLET_PRIVATE_KEY", "").strip()
        if not secret:
            raise ConfigError("SYSTEM_WALLET_PRIVATE_KEY is required in environment variables")
        return cls(
            relayer_secret_key=secret,
            port=_int_env("PORT", DEFAULT_PORT),
            rpc_endpoint=os.environ.get("RPC_ENDPOINT") or DEFAULT_RPC_ENDPOINT,
            usdc_mint=os.environ.get("USDC_MINT_ADDRESS") or DEFAULT_USDC_MINT,
            root_domain_account=os.environ.get("SNS_PROGRAM_ID") or DEFAULT_ROOT_DOMAIN_ACCOUNT,
            sns_payment_address=os.environ.get("SNS_PAYMENT_ADDRESS") or DEFAULT_SNS_PAYMENT_ADDRESS,
            aes_key=os.environ.get("AES_ENCRYPTION_KEY") or DEFAULT_AES_KEY,
            aes_iv=os.environ.get("AES_ENCRYPTION_IV") or DEFAULT_AES_IV,
            bonfida_sns_api=os.environ.get("BONFIDA_SNS_API") or DEFAULT_BONFIDA_SNS_API,
            bonfida_api=os.environ.get("BONFIDA_API") or DEFAULT_BONFIDA_API,
            http_timeout_s=_float_env("SNS_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS),
            cors_origins=_cors_origins(os.environ.get("SNS_CORS_ORIGINS")),
            log_level=(os.environ.get("SNS_LOG_LEVEL") or "INFO").upper(),
        )
