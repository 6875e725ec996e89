#!/usr/bin/env python3
"""
QCC Wallet command line:
  - Create or restore a wallet from a recovery phrase
  - Sign transfer requests offline
  - Encode / decode QR payment descriptors
  - Store keys in sealed slots and send from them

Usage:
    python run_wallet.py create
    python run_wallet.py restore "abandon abandon ... about"
    python run_wallet.py sign-send --key-env QCC_PRIVATE_KEY <to> <amount> --timestamp 1700000000000000
    python run_wallet.py store-key my_wallet --key-env QCC_PRIVATE_KEY
    python run_wallet.py send my_wallet <to> <amount>

Environment variables (alternative to flags):
    QCC_API_URL, QCC_KEY_STORE, QCC_STATE_FILE, QCC_LOG_LEVEL, QCC_LOG_FMT
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import getpass
import json
import logging
import os
import sys

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from qcc_core.client import QCCClient, extract_tx_hash, send_secure_transaction  # noqa: E402
from qcc_core.config import QCCConfig, load_config  # noqa: E402
from qcc_core.errors import QCCError  # noqa: E402
from qcc_core.key_manager import FileSecureStorage, KeySecurityManager  # noqa: E402
from qcc_core.keyfile import encrypt_key_file, EncryptInfo  # noqa: E402
from qcc_core.logging_config import setup_logging  # noqa: E402
from qcc_core.precision import to_base_units  # noqa: E402
from qcc_core.qr_payment import decode_qr_payment, encode_qr_payment  # noqa: E402
from qcc_core.transaction import build_send_request_data, verify_signed_data  # noqa: E402
from qcc_core.wallet import Wallet  # noqa: E402
from qcc_core.wallet_state import JSONFileStore, WalletState, save_wallet_state  # noqa: E402

logger = logging.getLogger("wallet")


# ===================================================================
#  Helpers
# ===================================================================

def _read_secret(args: argparse.Namespace, prompt: str = "Private key: ") -> str:
    """Secrets come from an env var or a prompt, never from argv."""
    if getattr(args, "key_env", None):
        value = os.environ.get(args.key_env)
        if not value:
            raise SystemExit(f"Environment variable {args.key_env} is not set")
        return value.strip()
    return getpass.getpass(prompt).strip()


def _read_password(prompt: str = "Password: ") -> str:
    if v := os.environ.get("QCC_PASSWORD"):
        return v
    return getpass.getpass(prompt)


def _manager(cfg: QCCConfig) -> KeySecurityManager:
    return KeySecurityManager(
        storage=FileSecureStorage(cfg.wallet.key_store_file),
        kdf_iterations=cfg.keys.kdf_iterations,
        lock_timeout=cfg.keys.lock_timeout_seconds,
    )


def _print_wallet(wallet: Wallet, show_secret: bool) -> None:
    out = {"address": wallet.address, "public_key": wallet.public_key}
    if show_secret:
        out["private_key"] = wallet.private_key
        out["mnemonic"] = wallet.mnemonic
    print(json.dumps(out, indent=2))


# ===================================================================
#  Commands
# ===================================================================

def cmd_create(args, cfg: QCCConfig) -> int:
    wallet = Wallet.create()
    print("Write down your recovery phrase and keep it offline:\n")
    print(f"  {wallet.mnemonic}\n")
    _print_wallet(wallet, show_secret=False)
    if args.save_state:
        save_wallet_state(JSONFileStore(cfg.wallet.state_file), WalletState.from_wallet(wallet))
    if args.export:
        with open(args.export, "w", encoding="utf-8") as f:
            f.write(encrypt_key_file(EncryptInfo(wallet), cfg.wallet.key_file_passphrase))
        print(f"Key file written to {args.export}")
    return 0


def cmd_restore(args, cfg: QCCConfig) -> int:
    phrase = args.mnemonic or getpass.getpass("Recovery phrase: ")
    wallet = Wallet.from_mnemonic(phrase)
    _print_wallet(wallet, show_secret=args.show_secret)
    return 0


def cmd_address(args, cfg: QCCConfig) -> int:
    wallet = Wallet.from_private_key(_read_secret(args))
    _print_wallet(wallet, show_secret=False)
    return 0


def cmd_sign_send(args, cfg: QCCConfig) -> int:
    units = args.amount if args.raw_units else to_base_units(args.amount)
    print(build_send_request_data(_read_secret(args), args.to, units, args.timestamp))
    return 0


def cmd_verify(args, cfg: QCCConfig) -> int:
    wire = args.wire if args.wire != "-" else sys.stdin.read()
    ok = verify_signed_data(wire)
    print("valid" if ok else "INVALID")
    return 0 if ok else 1


def cmd_qr_encode(args, cfg: QCCConfig) -> int:
    print(encode_qr_payment(args.address, args.amount))
    return 0


def cmd_qr_decode(args, cfg: QCCConfig) -> int:
    payment = decode_qr_payment(args.content)
    if payment is None:
        print("Not a QCC payment QR code")
        return 1
    print(json.dumps(payment.to_dict(), indent=2))
    return 0


def cmd_store_key(args, cfg: QCCConfig) -> int:
    key = _read_secret(args)
    _manager(cfg).save_private_key(args.slot, key, _read_password())
    print(f"Key stored in slot {args.slot}")
    return 0


def cmd_import_keyfile(args, cfg: QCCConfig) -> int:
    with open(args.path, encoding="utf-8") as f:
        blob = f.read()
    addr = _manager(cfg).import_key_file(
        args.slot, blob, _read_password(), cfg.wallet.key_file_passphrase,
    )
    print(f"Imported {addr} into slot {args.slot}")
    return 0


async def cmd_send(args, cfg: QCCConfig) -> int:
    manager = _manager(cfg)
    try:
        async with QCCClient(cfg.api.base_url, cfg.api.timeout_seconds) as client:
            result = await send_secure_transaction(
                client, manager, args.slot, _read_password(), args.to, args.amount,
            )
    finally:
        manager.on_teardown()
    print(f"Sent. Tx: {extract_tx_hash(result) or 'unknown'}")
    return 0


async def cmd_timestamp(args, cfg: QCCConfig) -> int:
    async with QCCClient(cfg.api.base_url, cfg.api.timeout_seconds) as client:
        print(await client.fetch_server_timestamp())
    return 0


# ===================================================================
#  Main entry point
# ===================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="QCC Wallet")
    p.add_argument("--config", default=None, help="Path to qcc.toml config file")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("create", help="Create a new wallet")
    s.add_argument("--save-state", action="store_true", help="Persist wallet state record")
    s.add_argument("--export", metavar="PATH", help="Also write an encrypted .qcc key file")

    s = sub.add_parser("restore", help="Restore a wallet from a recovery phrase")
    s.add_argument("mnemonic", nargs="?", help="Recovery phrase (prompted if omitted)")
    s.add_argument("--show-secret", action="store_true", help="Print private key and phrase")

    s = sub.add_parser("address", help="Derive the address for a private key")
    s.add_argument("--key-env", help="Read the private key from this env var")

    s = sub.add_parser("sign-send", help="Build a signed Send request offline")
    s.add_argument("to")
    s.add_argument("amount")
    s.add_argument("--timestamp", type=int, default=None, help="Server time in microseconds")
    s.add_argument("--raw-units", action="store_true", help="Amount is already in base units")
    s.add_argument("--key-env", help="Read the private key from this env var")

    s = sub.add_parser("verify", help="Verify a signed request")
    s.add_argument("wire", help="Wire JSON, or - for stdin")

    s = sub.add_parser("qr-encode", help="Build a payment QR payload")
    s.add_argument("address")
    s.add_argument("amount")

    s = sub.add_parser("qr-decode", help="Decode a scanned payment QR payload")
    s.add_argument("content")

    s = sub.add_parser("store-key", help="Seal a private key into a slot")
    s.add_argument("slot")
    s.add_argument("--key-env", help="Read the private key from this env var")

    s = sub.add_parser("import-keyfile", help="Import a .qcc key file into a slot")
    s.add_argument("slot")
    s.add_argument("path")

    s = sub.add_parser("send", help="Send QCC from a stored slot")
    s.add_argument("slot")
    s.add_argument("to")
    s.add_argument("amount")

    sub.add_parser("timestamp", help="Fetch the server timestamp")
    return p.parse_args(argv)


_SYNC_COMMANDS = {
    "create": cmd_create,
    "restore": cmd_restore,
    "address": cmd_address,
    "sign-send": cmd_sign_send,
    "verify": cmd_verify,
    "qr-encode": cmd_qr_encode,
    "qr-decode": cmd_qr_decode,
    "store-key": cmd_store_key,
    "import-keyfile": cmd_import_keyfile,
}

_ASYNC_COMMANDS = {
    "send": cmd_send,
    "timestamp": cmd_timestamp,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)
    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    try:
        if args.command in _ASYNC_COMMANDS:
            return asyncio.run(_ASYNC_COMMANDS[args.command](args, cfg))
        return _SYNC_COMMANDS[args.command](args, cfg)
    except QCCError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc.user_message}", file=sys.stderr)
        return 2


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        raise SystemExit(main())


if __name__ == "__main__":
    main_sync()
