"""
Shared pytest fixtures for the QCC wallet test suite.
"""

import pytest

from qcc_core.key_manager import KeySecurityManager, MemorySecureStorage
from qcc_core.wallet import Wallet

# BIP-39 reference phrase; its seed (empty passphrase) is published in the
# Trezor test vectors.
ABANDON_PHRASE = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
ABANDON_SEED_HEX = (
    "5eb00bbddcf069084889a8ab9155568165f5c453ccb85e70811aaed6f6da5fc1"
    "9a5ac40b389cd370d086206dec8aa6c43daea6690f20ad3d8d48b2d2ce9e38e4"
)

# sha256 of the seed, its Ed25519 public key and the resulting address,
# computed outside this package.
ABANDON_PRIVATE_KEY = "62a772f85e4be6226108b56c0b1cf935c2490e434adec864fe47b189f1ed517d"
ABANDON_PUBLIC = "58032e75cd5ee0bbcacbed1e38c3da4bf0f162aba2d7513d2d2fba2184327bd3"
ABANDON_ADDRESS = "d872925d1be79413139a6ede7db28481c7ab434c6269"

# RFC 8032 section 7.1, test 1
RFC8032_SECRET = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
RFC8032_PUBLIC = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
RFC8032_EMPTY_SIG = (
    "e5564300c360ac729086e2cc806e828a84877f1eb8e5d974d873e06522490155"
    "5fb8821590a33bacc61e39701cf9b46bd25bf5f0595bbe24655141438e7a100b"
)
RFC8032_ADDRESS = "11fbbe3a48963e0a1692186f1a27b95cdc8fbce642ea"

PASSWORD = "correct horse battery staple"


@pytest.fixture
def abandon_wallet():
    """Deterministic wallet for the reference phrase."""
    return Wallet.from_mnemonic(ABANDON_PHRASE)


@pytest.fixture
def private_key():
    """Fixed, valid 64-hex private key."""
    return RFC8032_SECRET


@pytest.fixture
def wallet(private_key):
    return Wallet.from_private_key(private_key)


@pytest.fixture
def storage():
    return MemorySecureStorage()


@pytest.fixture
def manager(storage):
    """Key manager with a cheap KDF so tests stay fast."""
    return KeySecurityManager(storage=storage, kdf_iterations=1_000, lock_timeout=0.2)


@pytest.fixture
def stored_manager(manager, private_key):
    """Key manager with ``private_key`` sealed in slot ``"main"``."""
    manager.save_private_key("main", private_key, PASSWORD)
    return manager
