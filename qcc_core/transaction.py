"""
Signed transfer requests for the QCC backend.

A request is a JSON envelope

    {"public_key": "<hex>", "signature": "<hex>", "transaction": {...payload...}}

where the signature is a detached Ed25519 signature over the transaction
hash of the payload (see ``crypto_utils.tx_hash``).  Only the signed bytes
go through the canonical encoder; the envelope itself is ordinary JSON.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Union

from qcc_core.crypto_utils import (
    address,
    key_validity,
    public_key,
    require_valid_key,
    sign,
    tx_hash,
    utime,
    verify,
)
from qcc_core.key_manager import SecretKey

logger = logging.getLogger("qcc_tx")

PAYLOAD_KEY = "transaction"

# Transactions are stamped slightly in the future when the caller supplies
# no server timestamp.
TX_TIME_SKEW_US = 2_000_000

KeyLike = Union[str, SecretKey]


def _reveal(private_key: KeyLike) -> str:
    if isinstance(private_key, SecretKey):
        return private_key.reveal()
    return private_key


def _has_timestamp(item: dict) -> bool:
    ts = item.get("timestamp")
    return isinstance(ts, int) and not isinstance(ts, bool)


def signed_data(item: dict[str, Any], private_key: KeyLike,
                payload_key: str = PAYLOAD_KEY) -> dict[str, Any]:
    """
    Sign *item* in place and wrap it in an envelope.

    ``from`` is appended to *item*, and a ``timestamp`` is filled in when the
    caller did not provide an integer one.  Raises InvalidKeyFormatError
    before any cryptography runs if the key is not 64 hex characters.
    """
    key = _reveal(private_key)
    require_valid_key(key)

    pub = public_key(key)
    item["from"] = address(pub)

    if not _has_timestamp(item):
        item["timestamp"] = utime() + (TX_TIME_SKEW_US if payload_key == PAYLOAD_KEY else 0)

    # key order on the wire: public_key, signature, payload
    data: dict[str, Any] = {"public_key": pub, "signature": sign(tx_hash(item), key)}
    data[payload_key] = item
    return data


def serialize_envelope(envelope: dict[str, Any]) -> str:
    """Plain compact JSON, matching what browsers emit for the same object."""
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False)


def build_send_request_data(private_key: KeyLike, to: str, amount: str,
                            timestamp: int | None = None) -> str:
    """
    Build the wire string for a ``Send`` transaction.

    *amount* must already be in base units (see ``precision.to_base_units``).
    *timestamp* is the server time in microseconds.
    """
    payload: dict[str, Any] = {"type": "Send", "to": to, "amount": amount, "timestamp": timestamp}
    envelope = signed_data(payload, private_key)
    logger.debug("Signed Send to %s, amount %s, ts %s", to, amount, payload["timestamp"])
    return serialize_envelope(envelope)


def verify_signed_data(envelope: dict[str, Any] | str,
                       payload_key: str = PAYLOAD_KEY) -> bool:
    """
    Check an envelope the way the backend does.

    The signature must verify against ``public_key`` and ``from`` must be
    the address of that key.
    """
    if isinstance(envelope, str):
        try:
            envelope = json.loads(envelope)
        except json.JSONDecodeError:
            return False
    if not isinstance(envelope, dict):
        return False
    item = envelope.get(payload_key)
    pub = envelope.get("public_key")
    sig = envelope.get("signature")
    if not isinstance(item, dict) or not key_validity(pub) or not isinstance(sig, str):
        return False
    if not _has_timestamp(item) or item.get("from") != address(pub):
        return False
    return verify(tx_hash(item), sig, pub)
