"""
QCC wallet core - identity and transaction signing for the QCC network.

Key features:
- BIP-39 recovery phrases and deterministic Ed25519 keys
- idHash addresses (RIPEMD-160 over SHA-256 with a 4-hex checksum)
- Canonical payload encoding byte-compatible with the QCC backend
- Detached-signature transfer requests
- Short-lived QR payment descriptors
- Single-use key unlocking with guaranteed erase
"""

__version__ = "1.0.0"
__all__ = [
    "crypto_utils",
    "wallet",
    "transaction",
    "precision",
    "qr_payment",
    "key_manager",
    "keyfile",
    "wallet_state",
    "client",
    "errors",
]
