"""
QR payment descriptors.

A receiver shows a QR code holding

    {"version": "1.0", "type": "QCC_PAYMENT", "address": ..., "amount": ...,
     "timestamp": <ms>, "expiry": <ms>}

and the payer scans it.  Scanners pick up arbitrary QR codes, so foreign
content decodes to ``None`` instead of raising; a recognised descriptor
whose expiry has passed raises ExpiredPaymentDescriptorError so callers can
tell "not ours" from "ours but stale".
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from qcc_core.errors import ExpiredPaymentDescriptorError

logger = logging.getLogger("qcc_qr")

QR_VERSION = "1.0"
QR_TYPE = "QCC_PAYMENT"

# Descriptors are valid for 30 minutes.
QR_TTL_MS = 30 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class QRPaymentData:
    address: str
    amount: str
    timestamp: int
    expiry: Optional[int] = None
    version: str = QR_VERSION
    type: str = QR_TYPE

    def is_expired(self, now_ms: int | None = None) -> bool:
        if not self.expiry:
            return False
        if now_ms is None:
            now_ms = _now_ms()
        return now_ms > self.expiry

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "version": self.version,
            "type": self.type,
            "address": self.address,
            "amount": self.amount,
            "timestamp": self.timestamp,
        }
        if self.expiry is not None:
            d["expiry"] = self.expiry
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


def encode_qr_payment(address: str, amount: str, now_ms: int | None = None) -> str:
    """Build a fresh descriptor for *address* / *amount* and return its JSON."""
    if now_ms is None:
        now_ms = _now_ms()
    data = QRPaymentData(
        address=address,
        amount=amount,
        timestamp=now_ms,
        expiry=now_ms + QR_TTL_MS,
    )
    return data.to_json()


def _as_ms(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def decode_qr_payment(raw: str, now_ms: int | None = None) -> QRPaymentData | None:
    """
    Parse scanned QR content.

    Returns None for anything that is not a QCC payment descriptor.
    Raises ExpiredPaymentDescriptorError if the descriptor has expired.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError, ValueError):
        logger.debug("QR content is not JSON")
        return None

    if not isinstance(data, dict):
        return None
    if data.get("version") != QR_VERSION or data.get("type") != QR_TYPE:
        return None
    if not isinstance(data.get("address"), str) or not isinstance(data.get("amount"), str):
        return None

    timestamp = _as_ms(data.get("timestamp"))
    expiry = _as_ms(data.get("expiry")) if data.get("expiry") is not None else None
    if timestamp is None or (data.get("expiry") is not None and expiry is None):
        return None

    payment = QRPaymentData(
        address=data["address"],
        amount=data["amount"],
        timestamp=timestamp,
        expiry=expiry,
    )

    if now_ms is None:
        now_ms = _now_ms()
    if payment.is_expired(now_ms):
        raise ExpiredPaymentDescriptorError(payment.expiry, now_ms)
    return payment
