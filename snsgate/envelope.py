"""
Encryption envelope shared with the mobile client.

Wire contract (must stay bit-exact with the client library):
- AES-256-CBC
- key = sha256(passphrase as UTF-8), the passphrase itself is never key material
- IV = the configured 16-character IV string as UTF-8 bytes, fixed for the process
- PKCS#7 padding
- ciphertext as standard base64 text
- plaintext = compact JSON text of the payload

Request bodies arrive as {"data": "<base64>"}, GET queries as ?data=<base64>,
and every response leaves as {"data": "<base64>"}.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import json
from typing import Any, Mapping, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from snsgate.errors import ConfigError, DecryptionError

IV_LENGTH = 16
BLOCK_SIZE_BITS = 128
ENVELOPE_FIELD = "data"


def derive_key(passphrase: str) -> bytes:
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


class EncryptionGateway:
    """Unconditional envelope: everything in is decrypted, everything out is wrapped."""

    def __init__(self, passphrase: str, iv: str):
        if not passphrase:
            raise ConfigError("AES_ENCRYPTION_KEY must not be empty")
        iv_bytes = iv.encode("utf-8")
        if len(iv_bytes) != IV_LENGTH:
            raise ConfigError(
                f"AES_ENCRYPTION_IV must be exactly {IV_LENGTH} bytes, got {len(iv_bytes)}"
            )
        self._key = derive_key(passphrase)
        self._iv = iv_bytes

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    # --- raw text layer ---

    def encrypt_text(self, plaintext: str) -> str:
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher().encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode("ascii")

    def decrypt_text(self, ciphertext_b64: str) -> str:
        if not isinstance(ciphertext_b64, str) or not ciphertext_b64:
            raise DecryptionError("Encrypted payload is missing")
        try:
            ciphertext = base64.b64decode(ciphertext_b64, validate=True)
        except (binascii.Error, ValueError):
            raise DecryptionError("Encrypted payload is not valid base64")
        if not ciphertext or len(ciphertext) % (BLOCK_SIZE_BITS // 8):
            raise DecryptionError("Encrypted payload has an invalid length")
        decryptor = self._cipher().decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        try:
            plain = unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise DecryptionError("Failed to decrypt payload")
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Failed to decrypt payload")

    # --- structured payload layer ---

    def encrypt_payload(self, payload: Any) -> str:
        return self.encrypt_text(json.dumps(payload, separators=(",", ":"), ensure_ascii=False))

    def decrypt_payload(self, ciphertext_b64: str) -> Any:
        text = self.decrypt_text(ciphertext_b64)
        try:
            payload = json.loads(text)
        except ValueError:
            raise DecryptionError("Decrypted payload is not valid JSON")
        if not isinstance(payload, (dict, list)):
            raise DecryptionError("Decrypted payload must be an object or a list")
        return payload

    # --- envelope layer ---

    def decrypt_request(self, raw: Optional[Mapping[str, Any]]) -> Any:
        if not isinstance(raw, Mapping) or ENVELOPE_FIELD not in raw:
            raise DecryptionError("Request is not an encrypted envelope")
        return self.decrypt_payload(raw[ENVELOPE_FIELD])

    def encrypt_response(self, payload: Any) -> dict:
        return {ENVELOPE_FIELD: self.encrypt_payload(payload)}
