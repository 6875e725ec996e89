"""
TOML-based configuration for the QCC wallet.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from qcc_core.config import load_config
    cfg = load_config("qcc.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib  # type: ignore[import]
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass
class APIConfig:
    """Backend endpoint settings."""
    base_url: str = "https://qcc-backend.com"
    timeout_seconds: float = 30.0


@dataclass
class WalletConfig:
    """Where wallet state and sealed keys live on disk."""
    state_file: str = "data/wallet.json"
    key_store_file: str = "data/keys.json"
    # passphrase the browser wallet encrypts .qcc key files with
    key_file_passphrase: str = "secret_key"


@dataclass
class KeysConfig:
    """Key sealing and slot locking."""
    kdf_iterations: int = 600_000
    lock_timeout_seconds: float = 30.0


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class QCCConfig:
    """Top-level configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    keys: KeysConfig = field(default_factory=KeysConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


# env var -> (section, field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "QCC_API_URL": ("api", "base_url", str),
    "QCC_API_TIMEOUT": ("api", "timeout_seconds", float),
    "QCC_STATE_FILE": ("wallet", "state_file", str),
    "QCC_KEY_STORE": ("wallet", "key_store_file", str),
    "QCC_KEYFILE_PASSPHRASE": ("wallet", "key_file_passphrase", str),
    "QCC_KDF_ITERATIONS": ("keys", "kdf_iterations", int),
    "QCC_LOCK_TIMEOUT": ("keys", "lock_timeout_seconds", float),
    "QCC_LOG_LEVEL": ("logging", "level", str.upper),
    "QCC_LOG_FMT": ("logging", "format", str),
    "QCC_LOG_FILE": ("logging", "file", str),
}


def load_config(path: str | None = None) -> QCCConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        QCC_API_URL             -> api.base_url
        QCC_API_TIMEOUT         -> api.timeout_seconds
        QCC_STATE_FILE          -> wallet.state_file
        QCC_KEY_STORE           -> wallet.key_store_file
        QCC_KEYFILE_PASSPHRASE  -> wallet.key_file_passphrase
        QCC_KDF_ITERATIONS      -> keys.kdf_iterations
        QCC_LOCK_TIMEOUT        -> keys.lock_timeout_seconds
        QCC_LOG_LEVEL           -> logging.level
        QCC_LOG_FMT             -> logging.format
        QCC_LOG_FILE            -> logging.file
    """
    cfg = QCCConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("api", cfg.api),
                ("wallet", cfg.wallet),
                ("keys", cfg.keys),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    for env_name, (section, attr, cast) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw:
            setattr(getattr(cfg, section), attr, cast(raw))

    return cfg
