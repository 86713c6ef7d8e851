"""
Read-only access to the name registry.

Two upstreams behind one client:
- Solana JSON-RPC: account existence/contents and the latest blockhash
- Bonfida HTTP API: domains owned by a wallet, domain records, subdomains

No retries anywhere: a failed call is reported to the caller immediately.
"""
from __future__ import annotations

import base64
import binascii
import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from snsgate.errors import UpstreamError
from snsgate.naming import RegistryKey, RegistryRecord
from snsgate.pubkey import Pubkey

logger = logging.getLogger(__name__)

COMMITMENT = "confirmed"


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text if text else response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail")
        if detail is None:
            return str(body)
        return str(detail)
    return str(body)


def _raise_for_status(response: httpx.Response, what: str) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        detail = _extract_error_detail(response)
        raise UpstreamError(
            f"{what} failed",
            details=f"{response.status_code}: {detail}",
        ) from exc


class RegistryClient:
    """Async client for the Solana RPC and the Bonfida record-lookup API."""

    def __init__(
        self,
        rpc_endpoint: str,
        sns_api_url: str,
        records_api_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        self.rpc_endpoint = rpc_endpoint
        self.sns_api_url = sns_api_url.rstrip("/")
        self.records_api_url = records_api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None
        self._ids = itertools.count(1)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Solana RPC ---

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            r = await self._client.post(self.rpc_endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"RPC {method} failed", details=str(exc)) from exc
        _raise_for_status(r, f"RPC {method}")
        try:
            body = r.json()
        except ValueError as exc:
            raise UpstreamError(f"RPC {method} returned invalid JSON") from exc
        if body.get("error"):
            err = body["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise UpstreamError(f"RPC {method} failed", details=message)
        return body.get("result")

    async def get_account_info(self, pubkey: Pubkey) -> Optional[bytes]:
        """Raw account data, or None when the account does not exist."""
        result = await self._rpc(
            "getAccountInfo",
            [str(pubkey), {"encoding": "base64", "commitment": COMMITMENT}],
        )
        value = (result or {}).get("value")
        if value is None:
            return None
        data = value.get("data")
        if not isinstance(data, list) or not data:
            raise UpstreamError("RPC getAccountInfo returned unexpected data encoding")
        try:
            return base64.b64decode(data[0])
        except (binascii.Error, ValueError) as exc:
            raise UpstreamError("RPC getAccountInfo returned invalid base64") from exc

    async def account_exists(self, key: RegistryKey) -> bool:
        return await self.get_account_info(key.pubkey) is not None

    async def get_record(self, key: RegistryKey) -> Optional[RegistryRecord]:
        data = await self.get_account_info(key.pubkey)
        if data is None:
            return None
        return RegistryRecord.from_account_data(data)

    async def get_latest_blockhash(self) -> str:
        """Freshness token. Never cached: one call per transaction."""
        result = await self._rpc("getLatestBlockhash", [{"commitment": COMMITMENT}])
        try:
            return result["value"]["blockhash"]
        except (KeyError, TypeError) as exc:
            raise UpstreamError("RPC getLatestBlockhash returned no blockhash") from exc

    # --- Bonfida API ---

    async def user_domains(self, owner: Pubkey) -> List[str]:
        """Domain names (without `.sol`) owned by `owner`.

        A non-2xx answer raises UpstreamError carrying the upstream status.
        """
        url = f"{self.sns_api_url}/v2/user/domains/{owner}"
        try:
            r = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamError("Failed to connect to Bonfida API", details=str(exc)) from exc
        if r.status_code >= 400:
            logger.warning("Bonfida API failed with status: %s", r.status_code)
            raise UpstreamError(
                "Failed to fetch domains from Bonfida API",
                status_code=r.status_code,
                extra={"status": r.status_code},
            )
        try:
            data = r.json()
        except ValueError as exc:
            raise UpstreamError("Bonfida API returned invalid JSON") from exc
        names = data.get(str(owner)) if isinstance(data, dict) else None
        return [n for n in (names or []) if isinstance(n, str)]

    async def _result(self, url: str) -> Any:
        """`result` field of a records-API answer, None on any non-2xx."""
        try:
            r = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamError("Failed to connect to Bonfida API", details=str(exc)) from exc
        if r.status_code >= 400:
            return None
        try:
            body = r.json()
        except ValueError:
            return None
        return body.get("result") if isinstance(body, dict) else None

    async def domain_records(self, domain: str) -> Dict[str, Any]:
        result = await self._result(f"{self.records_api_url}/v1/solana/domain/{domain}/records")
        return dict(result) if isinstance(result, dict) else {}

    async def subdomains(self, domain: str) -> List[str]:
        result = await self._result(f"{self.records_api_url}/v1/solana/domain/{domain}/subdomains")
        if not isinstance(result, list):
            return []
        return [s for s in result if isinstance(s, str)]
