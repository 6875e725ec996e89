"""
Encrypted ``.qcc`` key files.

Key files are produced by the browser wallet with CryptoJS passphrase
encryption, i.e. the OpenSSL ``enc`` format:

    base64( b"Salted__" || salt[8] || AES-256-CBC(PKCS#7, plaintext) )

with key and IV derived from the passphrase by EVP_BytesToKey (MD5, one
round).  The plaintext is JSON in one of three historical shapes, all
normalised to ``EncryptInfo(wallet, recipients, timestamp)``:

  - ``.qcc`` record:   {"wallet": {...}, "recipients": [...], "timestamp": n}
  - wallet-only:       {"wallet": {...}, "timestamp"?: n}
  - legacy flat:       {"address": ..., "private_key": ..., ...}
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from Crypto.Cipher import AES
from Crypto.Hash import MD5
from Crypto.Util.Padding import pad, unpad

from qcc_core.crypto_utils import key_validity
from qcc_core.errors import DecryptionFailedError, InvalidKeyFileError
from qcc_core.wallet import Wallet

logger = logging.getLogger("qcc_keyfile")

# Passphrase the browser wallet uses for every key file it writes.
DEFAULT_KEY_FILE_PASSPHRASE = "secret_key"

_MAGIC = b"Salted__"
_SALT_SIZE = 8
_KEY_SIZE = 32
_IV_SIZE = 16


def _now_ms() -> int:
    return int(time.time() * 1000)


# ===================================================================
#  OpenSSL-compatible passphrase encryption
# ===================================================================

def _evp_bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    derived = b""
    block = b""
    while len(derived) < _KEY_SIZE + _IV_SIZE:
        block = MD5.new(block + passphrase + salt).digest()
        derived += block
    return derived[:_KEY_SIZE], derived[_KEY_SIZE:_KEY_SIZE + _IV_SIZE]


def passphrase_encrypt(plaintext: str, passphrase: str, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(_SALT_SIZE)
    key, iv = _evp_bytes_to_key(passphrase.encode("utf-8"), salt)
    cipher = AES.new(key, AES.MODE_CBC, iv)
    ct = cipher.encrypt(pad(plaintext.encode("utf-8"), AES.block_size))
    return base64.b64encode(_MAGIC + salt + ct).decode("ascii")


def passphrase_decrypt(blob: str | bytes, passphrase: str) -> str:
    """Decrypt an OpenSSL-format blob. Raises DecryptionFailedError."""
    try:
        if isinstance(blob, bytes):
            blob = blob.decode("ascii")
        raw = base64.b64decode("".join(blob.split()), validate=True)
        if not raw.startswith(_MAGIC) or len(raw) <= len(_MAGIC) + _SALT_SIZE:
            raise DecryptionFailedError("Not an OpenSSL salted blob")
        salt = raw[len(_MAGIC):len(_MAGIC) + _SALT_SIZE]
        key, iv = _evp_bytes_to_key(passphrase.encode("utf-8"), salt)
        cipher = AES.new(key, AES.MODE_CBC, iv)
        pt = unpad(cipher.decrypt(raw[len(_MAGIC) + _SALT_SIZE:]), AES.block_size)
        text = pt.decode("utf-8")
    except DecryptionFailedError:
        raise
    except (ValueError, UnicodeDecodeError, binascii.Error) as exc:
        raise DecryptionFailedError() from exc
    if not text:
        raise DecryptionFailedError()
    return text


# ===================================================================
#  Record shapes
# ===================================================================

@dataclass
class QccFileRecord:
    wallet: dict[str, Any]
    recipients: list[Any]
    timestamp: int


@dataclass
class WalletOnlyRecord:
    wallet: dict[str, Any]
    timestamp: Optional[int] = None


@dataclass
class LegacyRecord:
    wallet: dict[str, Any]


KeyFileRecord = Union[QccFileRecord, WalletOnlyRecord, LegacyRecord]


@dataclass
class EncryptInfo:
    """Normalised key-file content."""
    wallet: Wallet
    recipients: list[Any] = field(default_factory=list)
    timestamp: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet.to_key_file_wallet(),
            "recipients": list(self.recipients),
            "timestamp": self.timestamp,
        }


def _has_wallet_fields(d: Any) -> bool:
    return isinstance(d, dict) and bool(d.get("address")) and bool(d.get("private_key"))


def parse_record(parsed: Any) -> KeyFileRecord:
    """Classify decrypted JSON into one of the three record shapes."""
    if not isinstance(parsed, dict):
        raise InvalidKeyFileError()
    wallet = parsed.get("wallet")
    if wallet is not None:
        if not _has_wallet_fields(wallet):
            raise InvalidKeyFileError()
        if "recipients" in parsed and parsed.get("timestamp"):
            return QccFileRecord(
                wallet=wallet,
                recipients=parsed.get("recipients") or [],
                timestamp=parsed["timestamp"],
            )
        return WalletOnlyRecord(wallet=wallet, timestamp=parsed.get("timestamp") or None)
    if _has_wallet_fields(parsed):
        return LegacyRecord(wallet=parsed)
    raise InvalidKeyFileError()


def _wallet_from_record(d: dict[str, Any]) -> Wallet:
    # identity comes from the private key, never from the stored fields
    if not key_validity(d["private_key"]):
        raise InvalidKeyFileError("Key file private key is malformed")
    return Wallet.from_dict(d)


def normalize_record(record: KeyFileRecord, now_ms: int | None = None) -> EncryptInfo:
    """Map any record shape onto ``EncryptInfo``."""
    if now_ms is None:
        now_ms = _now_ms()
    wallet = _wallet_from_record(record.wallet)
    if isinstance(record, QccFileRecord):
        return EncryptInfo(wallet, list(record.recipients), record.timestamp)
    if isinstance(record, WalletOnlyRecord):
        return EncryptInfo(wallet, [], record.timestamp or now_ms)
    return EncryptInfo(wallet, [], now_ms)


# ===================================================================
#  Public API
# ===================================================================

def decrypt_key_file(blob: str | bytes,
                     passphrase: str = DEFAULT_KEY_FILE_PASSPHRASE) -> EncryptInfo:
    """
    Decrypt and normalise a key file.

    Raises DecryptionFailedError if the blob cannot be decrypted or parsed,
    InvalidKeyFileError if it decrypts but holds no wallet.
    """
    text = passphrase_decrypt(blob, passphrase)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecryptionFailedError() from exc

    record = parse_record(parsed)
    info = normalize_record(record)
    logger.info(
        "Imported key file (%s) for %s with %d recipient(s)",
        type(record).__name__, info.wallet.address, len(info.recipients),
    )
    return info


def encrypt_key_file(info: EncryptInfo,
                     passphrase: str = DEFAULT_KEY_FILE_PASSPHRASE) -> str:
    """Serialise *info* as a ``.qcc`` record and encrypt it."""
    return passphrase_encrypt(json.dumps(info.to_dict(), separators=(",", ":")), passphrase)
