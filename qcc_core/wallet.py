"""
Wallet management for QCC.

A wallet wraps a single Ed25519 identity and provides:
  - BIP-39 mnemonic phrase generation and validation
  - Deterministic private key derivation from a mnemonic
  - Public key and address derivation
  - Raw private key import
  - Serialisation to the key-file wallet shape
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any

from mnemonic import Mnemonic

from qcc_core.crypto_utils import address, public_key, require_valid_key
from qcc_core.errors import InvalidMnemonicError

logger = logging.getLogger("qcc_wallet")

SYMBOL = "QCC"


# ===================================================================
#  BIP-39 Mnemonic Support
# ===================================================================

_MNEMO: Mnemonic | None = None


def _get_mnemo() -> Mnemonic:
    global _MNEMO
    if _MNEMO is None:
        _MNEMO = Mnemonic("english")
    return _MNEMO


def normalize_mnemonic(phrase: str) -> str:
    """Collapse whitespace and lower-case the words."""
    return " ".join(phrase.strip().lower().split())


def generate_mnemonic(strength: int = 128) -> str:
    """Generate a new BIP-39 mnemonic phrase (12 words at 128 bits)."""
    if strength not in (128, 160, 192, 224, 256):
        raise ValueError("Strength must be 128/160/192/224/256")
    return _get_mnemo().generate(strength=strength)


def validate_mnemonic(phrase: str) -> bool:
    """Full BIP-39 validation: word list membership and checksum."""
    if not isinstance(phrase, str):
        return False
    try:
        return _get_mnemo().check(normalize_mnemonic(phrase))
    except (ValueError, LookupError):
        return False


def mnemonic_to_seed(phrase: str, passphrase: str = "") -> bytes:
    """Convert a mnemonic phrase to a 64-byte seed (PBKDF2-HMAC-SHA512)."""
    return Mnemonic.to_seed(normalize_mnemonic(phrase), passphrase)


def derive_private_key(phrase: str) -> str:
    """
    Private key for *phrase*: SHA-256 of the BIP-39 seed, hex.

    Raises InvalidMnemonicError when the phrase fails validation.
    """
    if not validate_mnemonic(phrase):
        raise InvalidMnemonicError()
    seed = mnemonic_to_seed(phrase)
    return hashlib.sha256(seed).hexdigest()


# ===================================================================
#  Wallet
# ===================================================================

@dataclass
class Wallet:
    """One QCC identity: private key, public key, address and phrase."""

    private_key: str
    public_key: str
    address: str
    mnemonic: str | None = None
    symbol: str = SYMBOL

    # ---- factory methods ----

    @classmethod
    def from_private_key(cls, private_key: str, mnemonic: str | None = None) -> Wallet:
        require_valid_key(private_key)
        private_key = private_key.lower()
        pub = public_key(private_key)
        return cls(
            private_key=private_key,
            public_key=pub,
            address=address(pub),
            mnemonic=mnemonic,
        )

    @classmethod
    def from_mnemonic(cls, phrase: str) -> Wallet:
        """Restore the wallet belonging to a recovery phrase."""
        private_key = derive_private_key(phrase)
        wallet = cls.from_private_key(private_key, mnemonic=normalize_mnemonic(phrase))
        logger.info("Restored wallet %s from recovery phrase", wallet.address)
        return wallet

    @classmethod
    def create(cls, strength: int = 128) -> Wallet:
        """Generate a brand-new wallet with a fresh recovery phrase."""
        wallet = cls.from_mnemonic(generate_mnemonic(strength))
        logger.info("Created wallet %s", wallet.address)
        return wallet

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Wallet:
        """
        Rebuild from the key-file wallet shape.

        Public key and address are always re-derived from ``private_key``;
        stored values that disagree are logged and discarded.
        """
        wallet = cls.from_private_key(data["private_key"], mnemonic=data.get("mnemonic") or None)
        wallet.symbol = data.get("symbol") or SYMBOL
        for name in ("public_key", "address"):
            stored = data.get(name)
            if stored and stored != getattr(wallet, name):
                logger.warning(
                    "Stored %s %s does not match derived %s, using derived value",
                    name, stored, getattr(wallet, name),
                )
        return wallet

    # ---- serialisation ----

    def to_key_file_wallet(self) -> dict[str, Any]:
        """The ``wallet`` object written into ``.qcc`` key files."""
        return {
            "private_key": self.private_key,
            "public_key": self.public_key,
            "address": self.address,
            "mnemonic": self.mnemonic or "",
            "symbol": self.symbol,
        }

    def to_dict(self) -> dict[str, Any]:
        return self.to_key_file_wallet()

    def verify_consistency(self) -> bool:
        """True if the public key and address follow from the private key."""
        pub = public_key(self.private_key)
        return pub == self.public_key and address(pub) == self.address

    def __repr__(self) -> str:
        return f"Wallet({self.address})"


def derive_wallet(phrase: str) -> Wallet:
    return Wallet.from_mnemonic(phrase)
