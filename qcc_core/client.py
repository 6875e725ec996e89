"""
Async client for the QCC backend.

Built on ``aiohttp``.  Covers the three endpoints the wallet core depends on:

    GET  /api/ts          server time in microseconds (time oracle)
    POST /broadcast/      submit a signed wire envelope
    GET  /txs/{hash}      look up a transaction

plus the send flows that tie them to the signer.  No retries happen here;
every transport failure surfaces as ``NetworkError`` with the original
exception chained.

Usage:
    async with QCCClient("https://qcc-backend.com") as client:
        result = await send_transaction(client, private_key, to, "1.5")
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from qcc_core.errors import NetworkError, RemoteTransactionError
from qcc_core.key_manager import KeySecurityManager
from qcc_core.precision import to_base_units, validate_send_amount
from qcc_core.transaction import KeyLike, build_send_request_data

logger = logging.getLogger("qcc_client")

DEFAULT_BASE_URL = "https://qcc-backend.com"
DEFAULT_TIMEOUT = 30.0

_TX_HASH_FIELDS = ("txid", "txHash", "hash", "transactionHash")


def extract_tx_hash(response: dict[str, Any]) -> Optional[str]:
    """First transaction-hash field present in a broadcast response."""
    for name in _TX_HASH_FIELDS:
        value = response.get(name)
        if value:
            return str(value)
    return None


def check_broadcast_response(response: Any) -> dict[str, Any]:
    """Raise RemoteTransactionError if the backend reported a failure."""
    if not isinstance(response, dict):
        response = {"output": str(response)}
    output = response.get("output")
    if isinstance(output, str) and "error" in output:
        raise RemoteTransactionError(output, response)
    return response


def _parse_timestamp(body: str) -> int:
    text = body.strip()
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        value = text
    if isinstance(value, dict):
        value = value.get("timestamp", value.get("ts"))
    if isinstance(value, bool):
        raise ValueError("boolean timestamp")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"unexpected timestamp body {body[:64]!r}")
    return value


class QCCClient:
    """Thin wrapper around an ``aiohttp.ClientSession`` bound to one backend."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT,
                 session: aiohttp.ClientSession | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> QCCClient:
        await self._ensure_session()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs) -> str:
        session = await self._ensure_session()
        try:
            async with session.request(method, self._url(path), **kwargs) as resp:
                body = await resp.text()
                if resp.status >= 400:
                    raise NetworkError(f"{method} {path} returned HTTP {resp.status}")
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

    async def _request_json(self, method: str, path: str, **kwargs) -> Any:
        body = await self._request(method, path, **kwargs)
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise NetworkError(f"{method} {path} returned non-JSON body") from exc

    # ---- endpoints ----

    async def fetch_server_timestamp(self) -> int:
        body = await self._request("GET", "/api/ts")
        try:
            return _parse_timestamp(body)
        except ValueError as exc:
            raise NetworkError("Time oracle returned an invalid timestamp") from exc

    async def broadcast(self, wire: str) -> dict[str, Any]:
        """Submit a signed envelope; raises RemoteTransactionError on rejection."""
        response = await self._request_json(
            "POST", "/broadcast/",
            data=wire.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        response = check_broadcast_response(response)
        logger.info("Broadcast accepted (tx %s)", extract_tx_hash(response) or "unknown")
        return response

    async def get_transaction_details(self, tx_hash: str) -> Any:
        return await self._request_json("GET", f"/txs/{tx_hash}")

    async def verify_transaction(self, tx_hash: str) -> dict[str, Any]:
        try:
            details = await self.get_transaction_details(tx_hash)
        except NetworkError as exc:
            return {"exists": False, "error": str(exc)}
        return {"exists": True, "details": details}


# ===================================================================
#  Send flows
# ===================================================================

async def send_transaction(client: QCCClient, private_key: KeyLike, to: str,
                           amount: str) -> dict[str, Any]:
    """Scale *amount*, stamp with server time, sign and broadcast."""
    validate_send_amount(amount)
    units = to_base_units(amount)
    logger.info("Sending %s QCC to %s", amount, to)
    ts = await client.fetch_server_timestamp()
    wire = build_send_request_data(private_key, to, units, ts)
    return await client.broadcast(wire)


async def send_secure_transaction(client: QCCClient, manager: KeySecurityManager,
                                  slot_id: str, credential: str, to: str,
                                  amount: str) -> dict[str, Any]:
    """
    Send from a stored key slot.

    The slot is unlocked only for the signing step, after the timestamp
    fetch and before the broadcast.  Unlock (a PBKDF2 run), signing and
    erasure happen together on a worker thread so the event loop keeps
    serving other tasks; the slot lease is released on that thread before
    the broadcast starts.
    """
    validate_send_amount(amount)
    units = to_base_units(amount)
    ts = await client.fetch_server_timestamp()
    wire = await asyncio.to_thread(
        manager.with_unlocked_key, slot_id, credential,
        lambda key: build_send_request_data(key, to, units, ts),
    )
    logger.info("Signed transfer of %s QCC to %s from slot %s", amount, to, slot_id)
    return await client.broadcast(wire)
