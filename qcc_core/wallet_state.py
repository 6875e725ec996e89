"""
Persisted wallet state.

Front ends keep one record under the key ``"wallet"`` in whatever key-value
store they have.  The core only fixes the record's shape:

    {"isConnected": bool, "address": str|null, "balance": number,
     "privateKey": str|null, "mnemonic": str|null,
     "isLoading": bool, "isHydrated": bool}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from qcc_core.wallet import Wallet

STORAGE_KEY = "wallet"


@dataclass
class WalletState:
    is_connected: bool = False
    address: Optional[str] = None
    balance: float = 0
    private_key: Optional[str] = None
    mnemonic: Optional[str] = None
    is_loading: bool = False
    is_hydrated: bool = False

    @classmethod
    def from_wallet(cls, wallet: Wallet, balance: float = 0) -> WalletState:
        """
        Connected state for *wallet*.

        The private key and phrase are left out: this record is stored in
        plain JSON, and keys belong in the sealed key store.
        """
        return cls(
            is_connected=True,
            address=wallet.address,
            balance=balance,
            is_hydrated=True,
        )

    @classmethod
    def disconnected(cls) -> WalletState:
        return cls(is_hydrated=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isConnected": self.is_connected,
            "address": self.address,
            "balance": self.balance,
            "privateKey": self.private_key,
            "mnemonic": self.mnemonic,
            "isLoading": self.is_loading,
            "isHydrated": self.is_hydrated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletState:
        if not isinstance(data, dict):
            raise ValueError("Wallet state must be a JSON object")
        return cls(
            is_connected=bool(data.get("isConnected", False)),
            address=data.get("address"),
            balance=data.get("balance", 0) or 0,
            private_key=data.get("privateKey"),
            mnemonic=data.get("mnemonic"),
            is_loading=bool(data.get("isLoading", False)),
            is_hydrated=bool(data.get("isHydrated", False)),
        )

    def __repr__(self) -> str:
        return (
            f"WalletState(connected={self.is_connected}, address={self.address}, "
            f"balance={self.balance})"
        )


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self):
        self._data: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JSONFileStore:
    """Key-value store backed by one JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)


def save_wallet_state(store: KeyValueStore, state: WalletState) -> None:
    store.set_item(STORAGE_KEY, json.dumps(state.to_dict()))


def load_wallet_state(store: KeyValueStore) -> Optional[WalletState]:
    raw = store.get_item(STORAGE_KEY)
    if not raw:
        return None
    return WalletState.from_dict(json.loads(raw))


def clear_wallet_state(store: KeyValueStore) -> None:
    store.remove_item(STORAGE_KEY)
