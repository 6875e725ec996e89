"""
Private key lifecycle for QCC wallets.

Keys rest encrypted in a ``SecureStorage`` under a slot id.  Signing takes
one short lease on a slot:

    LOCKED -> UNLOCKING -> UNLOCKED -> ERASED

``get_key_for_transaction`` authenticates the caller, decrypts the slot and
hands out a ``SecretKey``; ``clear_key_after_use`` overwrites the key buffer
and releases the slot.  ``unlocked()`` / ``with_unlocked_key()`` wrap both
steps so the erase runs on every exit path.

Each slot has its own lock, so two unlock-sign-erase sequences for the same
slot never overlap.  The host calls ``on_suspend`` / ``on_teardown`` when the
app is backgrounded or shut down; both erase every unlocked key.

Python cannot guarantee that no copy of a secret survives: ``reveal()``
returns an immutable ``str`` and the signing library makes its own
``bytes``.  The manager zeroes the buffer it owns and drops every reference
it holds; transient copies are left to the garbage collector.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Protocol, TypeVar

from Crypto.Cipher import AES

from qcc_core.crypto_utils import KEY_SIZE, key_validity, require_valid_key
from qcc_core.errors import (
    AuthenticationFailedError,
    DecryptionFailedError,
    KeyErasedError,
    KeyNotFoundError,
    KeySlotBusyError,
)
from qcc_core.keyfile import DEFAULT_KEY_FILE_PASSPHRASE, decrypt_key_file

logger = logging.getLogger("qcc_keys")

T = TypeVar("T")

DEFAULT_KDF_ITERATIONS = 600_000
DEFAULT_LOCK_TIMEOUT = 30.0

_ERASE_BYTE = ord("0")


# ===================================================================
#  In-memory secret
# ===================================================================

class SecretKey:
    """A hex private key held in a mutable buffer that can be zeroed."""

    __slots__ = ("_buf",)

    def __init__(self, hex_key: str):
        self._buf: Optional[bytearray] = bytearray(hex_key.lower().encode("ascii"))

    @property
    def erased(self) -> bool:
        return self._buf is None

    def reveal(self) -> str:
        if self._buf is None:
            raise KeyErasedError()
        return self._buf.decode("ascii")

    def wipe(self) -> None:
        """Overwrite the buffer with ``"0"`` characters and drop it."""
        buf = self._buf
        if buf is None:
            return
        for i in range(len(buf)):
            buf[i] = _ERASE_BYTE
        self._buf = None

    def __repr__(self) -> str:
        return "SecretKey(<erased>)" if self._buf is None else "SecretKey(<hidden>)"


# ===================================================================
#  Storage
# ===================================================================

class SecureStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class MemorySecureStorage:
    """Process-local storage; the default for tests and embedding."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileSecureStorage:
    """JSON file of sealed key blobs, written atomically with 0600 permissions."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} is not a key store")
        return data

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)


# ===================================================================
#  Sealing (PBKDF2 + AES-256-GCM)
# ===================================================================

def _derive(password: str, salt: bytes, iterations: int) -> tuple[bytes, str]:
    """Return (encryption key, password verifier hex)."""
    material = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations, dklen=64)
    return material[:32], hashlib.sha256(material[32:]).hexdigest()


def seal_private_key(private_key: str, password: str,
                     iterations: int = DEFAULT_KDF_ITERATIONS) -> str:
    """Encrypt a hex private key under *password*; returns a JSON blob."""
    require_valid_key(private_key)
    salt = os.urandom(16)
    key, verifier = _derive(password, salt, iterations)
    nonce = os.urandom(12)
    cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
    ciphertext, tag = cipher.encrypt_and_digest(private_key.lower().encode("ascii"))
    return json.dumps({
        "version": 1,
        "kdf": "pbkdf2-hmac-sha256",
        "kdf_iterations": iterations,
        "salt": salt.hex(),
        "verifier": verifier,
        "nonce": nonce.hex(),
        "tag": tag.hex(),
        "ciphertext": ciphertext.hex(),
    })


def open_private_key(blob: str, password: str) -> str:
    """
    Decrypt a sealed blob.

    A wrong password raises AuthenticationFailedError; a damaged or foreign
    blob raises DecryptionFailedError.
    """
    try:
        data = json.loads(blob)
        salt = bytes.fromhex(data["salt"])
        iterations = int(data["kdf_iterations"])
        verifier = data["verifier"]
        nonce = bytes.fromhex(data["nonce"])
        tag = bytes.fromhex(data["tag"])
        ciphertext = bytes.fromhex(data["ciphertext"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        raise DecryptionFailedError("Stored key blob is malformed") from exc

    key, expected = _derive(password, salt, iterations)
    if not isinstance(verifier, str) or not hmac.compare_digest(expected, verifier):
        raise AuthenticationFailedError()

    try:
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        plain = cipher.decrypt_and_verify(ciphertext, tag).decode("ascii")
    except (ValueError, UnicodeDecodeError) as exc:
        raise DecryptionFailedError("Stored key blob failed authentication") from exc

    if not key_validity(plain) or len(plain) != KEY_SIZE:
        raise DecryptionFailedError("Stored key blob does not hold a key")
    return plain


# ===================================================================
#  Slots
# ===================================================================

class KeySlotState(Enum):
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"
    ERASED = "erased"


@dataclass
class _KeySlot:
    slot_id: str
    lock: threading.Lock = field(default_factory=threading.Lock)
    state: KeySlotState = KeySlotState.LOCKED
    key: Optional[SecretKey] = None
    leased: bool = False
    cancel_pending: bool = False


Authenticator = Callable[[str], bool]


class KeySecurityManager:
    """Owns every unlocked key in the process; one instance per session."""

    def __init__(
        self,
        storage: SecureStorage | None = None,
        authenticator: Authenticator | None = None,
        kdf_iterations: int = DEFAULT_KDF_ITERATIONS,
        lock_timeout: float | None = DEFAULT_LOCK_TIMEOUT,
    ):
        self.storage: SecureStorage = storage if storage is not None else MemorySecureStorage()
        self.authenticator = authenticator
        self.kdf_iterations = kdf_iterations
        self.lock_timeout = lock_timeout
        self._slots: dict[str, _KeySlot] = {}
        self._guard = threading.Lock()

    # ---- helpers ----

    def _slot(self, slot_id: str) -> _KeySlot:
        with self._guard:
            slot = self._slots.get(slot_id)
            if slot is None:
                slot = self._slots[slot_id] = _KeySlot(slot_id)
            return slot

    def _authenticate(self, credential: str) -> None:
        if self.authenticator is None:
            return
        try:
            ok = self.authenticator(credential)
        except AuthenticationFailedError:
            raise
        except Exception as exc:
            raise AuthenticationFailedError() from exc
        if not ok:
            raise AuthenticationFailedError()

    def _erase(self, slot: _KeySlot, key: SecretKey | None = None,
               cancel_pending: bool = False) -> None:
        """Wipe and release *slot*. Caller holds ``self._guard``."""
        if key is not None and slot.key is not key:
            # our lease already ended (suspend); someone else may own the slot now
            key.wipe()
            return
        if slot.state is KeySlotState.UNLOCKING:
            if cancel_pending:
                slot.cancel_pending = True
            return
        if slot.key is not None:
            slot.key.wipe()
            slot.key = None
        if slot.state is KeySlotState.UNLOCKED:
            slot.state = KeySlotState.ERASED
            logger.debug("Key slot %s erased", slot.slot_id)
        if slot.leased:
            slot.leased = False
            slot.lock.release()

    # ---- storage management ----

    def save_private_key(self, slot_id: str, private_key: str, password: str) -> None:
        """Seal *private_key* under *password* and store it in *slot_id*."""
        require_valid_key(private_key)
        self._authenticate(password)
        self.storage.set(slot_id, seal_private_key(private_key, password, self.kdf_iterations))
        logger.info("Stored key in slot %s", slot_id)

    def import_key_file(self, slot_id: str, blob: str | bytes, password: str,
                        file_passphrase: str | None = None) -> str:
        """Decrypt a ``.qcc`` key file and store its key; returns the address."""
        info = decrypt_key_file(blob, file_passphrase or DEFAULT_KEY_FILE_PASSPHRASE)
        self.save_private_key(slot_id, info.wallet.private_key, password)
        return info.wallet.address

    def has_key(self, slot_id: str) -> bool:
        return self.storage.get(slot_id) is not None

    def delete_key(self, slot_id: str) -> None:
        self.clear_key_after_use(slot_id)
        self.storage.delete(slot_id)
        logger.info("Deleted key slot %s", slot_id)

    def state(self, slot_id: str) -> KeySlotState:
        with self._guard:
            slot = self._slots.get(slot_id)
            return slot.state if slot is not None else KeySlotState.LOCKED

    # ---- lifecycle ----

    def get_key_for_transaction(self, slot_id: str, credential: str) -> SecretKey:
        """
        Unlock *slot_id* for one operation.

        The caller must pass the slot to ``clear_key_after_use`` when done;
        prefer ``unlocked()`` which does so automatically.
        """
        slot = self._slot(slot_id)
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not slot.lock.acquire(timeout=timeout):
            raise KeySlotBusyError()

        with self._guard:
            slot.leased = True
            slot.cancel_pending = False
            slot.state = KeySlotState.UNLOCKING

        try:
            self._authenticate(credential)
            blob = self.storage.get(slot_id)
            if blob is None:
                raise KeyNotFoundError(f"No key stored in slot {slot_id}")
            key = SecretKey(open_private_key(blob, credential))
        except BaseException:
            with self._guard:
                slot.state = KeySlotState.LOCKED
                slot.leased = False
                slot.lock.release()
            logger.warning("Unlock of key slot %s failed", slot_id)
            raise

        with self._guard:
            slot.key = key
            slot.state = KeySlotState.UNLOCKED
            cancelled = slot.cancel_pending
            slot.cancel_pending = False
            if cancelled:
                self._erase(slot)
        if cancelled:
            raise KeyErasedError("Session suspended while unlocking")

        logger.debug("Key slot %s unlocked", slot_id)
        return key

    def clear_key_after_use(self, slot_id: str) -> None:
        """Erase the unlocked key in *slot_id* (no-op if nothing is unlocked)."""
        with self._guard:
            slot = self._slots.get(slot_id)
            if slot is not None:
                self._erase(slot)

    def _release(self, slot_id: str, key: SecretKey) -> None:
        with self._guard:
            slot = self._slots.get(slot_id)
            if slot is None:
                key.wipe()
            else:
                self._erase(slot, key)

    def clear_all_keys(self) -> None:
        """Erase every unlocked key and cancel unlocks still in progress."""
        with self._guard:
            for slot in self._slots.values():
                self._erase(slot, cancel_pending=True)
        logger.info("All unlocked keys cleared")

    def on_suspend(self) -> None:
        self.clear_all_keys()

    def on_teardown(self) -> None:
        self.clear_all_keys()

    @contextmanager
    def unlocked(self, slot_id: str, credential: str) -> Iterator[SecretKey]:
        key = self.get_key_for_transaction(slot_id, credential)
        try:
            yield key
        finally:
            self._release(slot_id, key)

    def with_unlocked_key(self, slot_id: str, credential: str,
                          fn: Callable[[SecretKey], T]) -> T:
        """Run ``fn(key)`` with *slot_id* unlocked; the key is erased afterwards."""
        with self.unlocked(slot_id, credential) as key:
            return fn(key)

    def status(self) -> dict[str, Any]:
        with self._guard:
            return {sid: s.state.value for sid, s in self._slots.items()}
