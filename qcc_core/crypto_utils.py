"""
Cryptographic primitives for the QCC wallet.

The backend recomputes every hash and signature from the exact strings built
here, so the functions in this module are protocol, not helpers:

  - Canonical string encoding of signing payloads (JSON + escaping)
  - SHA-256 / RIPEMD-160 hashing over those strings
  - ``idHash`` address derivation with a 4-hex checksum
  - 14-hex time prefixes and transaction hashes
  - Ed25519 key-pair derivation from a 32-byte hex seed
  - Detached Ed25519 signing and verification
"""

from __future__ import annotations

import hashlib
import json
import re
import time
from typing import Any

from Crypto.Hash import RIPEMD160
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from qcc_core.errors import InvalidKeyFormatError

HEX_TIME_SIZE = 14
KEY_SIZE = 64
CHECKSUM_SIZE = 4

_KEY_RE = re.compile(r"^[a-fA-F0-9]{64}$")


# ===================================================================
#  Canonical encoding
# ===================================================================

def _string_to_unicode(s: str) -> str:
    """Escape every UTF-16 code unit above 0xFF as an unpadded ``\\u`` sequence."""
    if not s:
        return ""
    units = s.encode("utf-16-le", "surrogatepass")
    out = []
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        c = format(code, "x")
        if len(c) > 2:
            out.append("\\u" + c)
        else:
            out.append(chr(code))
    return "".join(out)


def _reject_floats(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError(
            f"cannot canonicalise float {value!r}; pass integers or decimal strings"
        )
    if isinstance(value, dict):
        for v in value.values():
            _reject_floats(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            _reject_floats(v)


def _json_stringify(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def to_canonical_string(value: Any) -> str:
    """
    Encode *value* into the exact string that gets hashed and signed.

    Containers are JSON-encoded in insertion order; scalars are stringified
    directly.  Forward slashes are then escaped as ``\\/`` and every
    character outside Latin-1 is replaced by ``\\u`` + its lower-case hex
    code unit(s), with no zero padding.

    Floats are refused with TypeError anywhere in *value*: their text form
    differs between runtimes, so amounts travel as strings.
    """
    _reject_floats(value)
    if isinstance(value, (dict, list, tuple)):
        s = _json_stringify(value)
    elif value is None:
        s = "null"
    elif isinstance(value, bool):
        s = "true" if value else "false"
    else:
        s = str(value)
    return _string_to_unicode(s.replace("/", "\\/"))


def _to_bytes(value: Any) -> bytes:
    """Canonical string as one byte per character (message bytes for signing)."""
    return to_canonical_string(value).encode("latin-1")


# ===================================================================
#  Hashing
# ===================================================================

def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def ripemd160_hex(data: str) -> str:
    return RIPEMD160.new(data.encode("utf-8")).hexdigest()


def hash_hex(obj: Any) -> str:
    """SHA-256 of the canonical encoding of *obj*, lower-case hex."""
    return sha256_hex(to_canonical_string(obj))


def checksum(h: str) -> str:
    """First four hex characters of the double hash of *h*."""
    return hash_hex(hash_hex(h))[:CHECKSUM_SIZE]


def short_hash(obj: Any) -> str:
    return ripemd160_hex(hash_hex(obj))


def id_hash(obj: Any) -> str:
    short = short_hash(obj)
    return short + checksum(short)


# ===================================================================
#  Time
# ===================================================================

def utime() -> int:
    """Current time in microseconds (millisecond resolution)."""
    return int(time.time() * 1000) * 1000


def hextime(t: int | None = None) -> str:
    """
    *t* as lower-case hex, zero-padded to 14 digits.

    Values wider than 14 digits are cut to their leading 14 characters.
    """
    if t is None:
        t = utime()
    return format(t, "x").rjust(HEX_TIME_SIZE, "0")[:HEX_TIME_SIZE]


def time_hash(obj: Any, t: int | None = None) -> str:
    return hextime(t) + hash_hex(obj)


def tx_hash(tx: dict) -> str:
    """Transaction hash: 14-hex timestamp prefix + hash of the payload hash."""
    return time_hash(hash_hex(tx), tx["timestamp"])


# ===================================================================
#  Keys and addresses
# ===================================================================

def key_validity(key: Any) -> bool:
    """True if *key* is exactly 64 hexadecimal characters."""
    return isinstance(key, str) and _KEY_RE.match(key) is not None


def require_valid_key(key: Any) -> None:
    if not key_validity(key):
        raise InvalidKeyFormatError()


def _signing_key(private_key: str) -> SigningKey:
    require_valid_key(private_key)
    return SigningKey(bytes.fromhex(private_key))


def public_key(private_key: str) -> str:
    """Ed25519 public key for a 64-hex seed, lower-case hex."""
    return bytes(_signing_key(private_key).verify_key).hex()


def address(pub_key: str) -> str:
    return id_hash(pub_key)


def address_from_private_key(private_key: str) -> str:
    return address(public_key(private_key))


def is_address(value: Any) -> bool:
    """Structural check: 40 hex of hash + matching 4 hex checksum."""
    if not isinstance(value, str) or len(value) != 40 + CHECKSUM_SIZE:
        return False
    if re.fullmatch(r"[0-9a-f]+", value) is None:
        return False
    return checksum(value[:40]) == value[40:]


# ===================================================================
#  Signatures
# ===================================================================

def sign(obj: Any, private_key: str) -> str:
    """
    Detached Ed25519 signature over the canonical encoding of *obj*.

    NaCl signing keys are the 64-byte ``seed || public_key`` pair; the
    signature depends only on the seed and the message, so it is
    deterministic.
    """
    sk = _signing_key(private_key)
    return sk.sign(_to_bytes(obj)).signature.hex()


def verify(obj: Any, signature_hex: str, pub_key: str) -> bool:
    try:
        vk = VerifyKey(bytes.fromhex(pub_key))
        vk.verify(_to_bytes(obj), bytes.fromhex(signature_hex))
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False
