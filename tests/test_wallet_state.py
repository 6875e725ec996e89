"""
Tests for qcc_core.wallet_state — the persisted wallet record.

Covers:
  - Record shape (camelCase keys)
  - Save / load / clear against memory and file stores
  - Records built from a wallet carry no key material
  - Safe repr
"""

import json
import unittest

import pytest

from conftest import ABANDON_PHRASE

from qcc_core.wallet import Wallet
from qcc_core.wallet_state import (
    STORAGE_KEY,
    JSONFileStore,
    MemoryKeyValueStore,
    WalletState,
    clear_wallet_state,
    load_wallet_state,
    save_wallet_state,
)


class TestWalletState(unittest.TestCase):

    def setUp(self):
        self.wallet = Wallet.from_mnemonic(ABANDON_PHRASE)

    def test_record_keys(self):
        d = WalletState().to_dict()
        self.assertEqual(
            list(d),
            ["isConnected", "address", "balance", "privateKey", "mnemonic",
             "isLoading", "isHydrated"],
        )

    def test_from_wallet(self):
        s = WalletState.from_wallet(self.wallet, balance=12.5)
        self.assertTrue(s.is_connected)
        self.assertTrue(s.is_hydrated)
        self.assertEqual(s.address, self.wallet.address)
        self.assertEqual(s.balance, 12.5)
        self.assertIsNone(s.private_key)
        self.assertIsNone(s.mnemonic)

    def test_disconnected(self):
        s = WalletState.disconnected()
        self.assertFalse(s.is_connected)
        self.assertTrue(s.is_hydrated)
        self.assertIsNone(s.address)

    def test_dict_round_trip(self):
        s = WalletState.from_wallet(self.wallet)
        self.assertEqual(WalletState.from_dict(s.to_dict()), s)

    def test_from_dict_defaults(self):
        s = WalletState.from_dict({})
        self.assertEqual(s, WalletState())

    def test_from_dict_rejects_non_object(self):
        with self.assertRaises(ValueError):
            WalletState.from_dict([])

    def test_repr_hides_secrets(self):
        text = repr(WalletState.from_wallet(self.wallet))
        self.assertNotIn(self.wallet.private_key, text)
        self.assertNotIn("abandon", text)


class TestMemoryStore(unittest.TestCase):

    def test_saved_record_holds_no_key(self):
        store = MemoryKeyValueStore()
        wallet = Wallet.from_mnemonic(ABANDON_PHRASE)
        save_wallet_state(store, WalletState.from_wallet(wallet))
        raw = store.get_item(STORAGE_KEY)
        record = json.loads(raw)
        self.assertIsNone(record["privateKey"])
        self.assertIsNone(record["mnemonic"])
        self.assertNotIn(wallet.private_key, raw)
        self.assertNotIn("abandon", raw)

    def test_save_load_clear(self):
        store = MemoryKeyValueStore()
        self.assertIsNone(load_wallet_state(store))

        state = WalletState.from_wallet(Wallet.from_mnemonic(ABANDON_PHRASE))
        save_wallet_state(store, state)
        self.assertEqual(json.loads(store.get_item(STORAGE_KEY))["isConnected"], True)
        self.assertEqual(load_wallet_state(store), state)

        clear_wallet_state(store)
        self.assertIsNone(load_wallet_state(store))


def test_json_file_store(tmp_path):
    path = tmp_path / "state" / "wallet.json"
    state = WalletState.from_wallet(Wallet.from_mnemonic(ABANDON_PHRASE), balance=3)
    save_wallet_state(JSONFileStore(path), state)

    assert path.exists()
    assert load_wallet_state(JSONFileStore(path)) == state

    clear_wallet_state(JSONFileStore(path))
    assert load_wallet_state(JSONFileStore(path)) is None


def test_json_file_store_missing_file(tmp_path):
    store = JSONFileStore(tmp_path / "absent.json")
    assert load_wallet_state(store) is None
    clear_wallet_state(store)
    assert not (tmp_path / "absent.json").exists()


@pytest.mark.parametrize("raw", ["", None])
def test_empty_record_loads_as_none(raw):
    store = MemoryKeyValueStore()
    if raw is not None:
        store.set_item(STORAGE_KEY, raw)
    assert load_wallet_state(store) is None


def test_malformed_record_raises_value_error():
    store = MemoryKeyValueStore()
    store.set_item(STORAGE_KEY, "{broken")
    with pytest.raises(ValueError):
        load_wallet_state(store)
