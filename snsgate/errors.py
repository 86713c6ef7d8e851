"""
SNS Gateway error taxonomy.

Every error that can reach a client carries its HTTP status and renders the
`{"error": ...}` body the mobile client expects. The API layer wraps that
body in the encryption envelope like any other response.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SnsGatewayError(Exception):
    """Base exception for all gateway errors."""

    status_code = 500

    def __init__(self, message: str, *, details: Optional[str] = None,
                 extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.extra = dict(extra or {})

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


class InvalidInputError(SnsGatewayError):
    """Missing or malformed request fields, wrong suffix, bad price."""
    status_code = 400


class NotFoundError(SnsGatewayError):
    """Target name has no registry account."""
    status_code = 404


class DecryptionError(SnsGatewayError):
    """Inbound envelope could not be decrypted under the configured key/IV."""
    status_code = 400


class UpstreamError(SnsGatewayError):
    """Solana RPC or record-lookup API failure."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        if status_code is not None:
            self.status_code = status_code


class InternalError(SnsGatewayError):
    """Unexpected failure. The client only ever sees the generic message."""

    def __init__(self, message: str = "Internal server error", **kwargs):
        super().__init__(message, **kwargs)


class ConfigError(SnsGatewayError):
    """Configuration or key material could not be loaded at startup."""
