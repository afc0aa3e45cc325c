"""
TOML-based configuration for VoteFlow wallets.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from voteflow_core.config import load_config
    cfg = load_config("voteflow.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


@dataclass
class BackendConfig:
    """Ledger node connection."""
    address: str = "http://127.0.0.1:8080"
    use_https_for_post: bool = False   # send fragments over https even if address is http
    enable_debug: bool = False         # log request/response bodies
    timeout_seconds: float = 30.0


@dataclass
class WalletConfig:
    """Key derivation and submission defaults."""
    account: int = 0                   # HD path m/44'/1815'/account'/0/index
    index: int = 0
    # validity window in slots for submitted fragments; None = one epoch
    default_valid_until_slots: Optional[int] = None
    # address prefix: "test" or "production"; None follows the node settings
    discrimination: Optional[str] = None


@dataclass
class ReconcileConfig:
    """Polling of the node's fragment log."""
    poll_interval_seconds: float = 1.0
    retry_budget: int = 60


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: Optional[str] = None


@dataclass
class VoteFlowConfig:
    """Top-level configuration container."""
    backend: BackendConfig = field(default_factory=BackendConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(path: Optional[str] = None) -> VoteFlowConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        VOTEFLOW_BACKEND        -> backend.address
        VOTEFLOW_HTTPS_POST     -> backend.use_https_for_post
        VOTEFLOW_DEBUG          -> backend.enable_debug
        VOTEFLOW_TIMEOUT        -> backend.timeout_seconds
        VOTEFLOW_POLL_INTERVAL  -> reconcile.poll_interval_seconds
        VOTEFLOW_RETRY_BUDGET   -> reconcile.retry_budget
        VOTEFLOW_DISCRIMINATION -> wallet.discrimination
        VOTEFLOW_LOG_LEVEL      -> logging.level
        VOTEFLOW_LOG_FMT        -> logging.format
    """
    cfg = VoteFlowConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("backend", cfg.backend),
                ("wallet", cfg.wallet),
                ("reconcile", cfg.reconcile),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("VOTEFLOW_BACKEND"):
        cfg.backend.address = v
    if v := os.environ.get("VOTEFLOW_HTTPS_POST"):
        cfg.backend.use_https_for_post = _flag(v)
    if v := os.environ.get("VOTEFLOW_DEBUG"):
        cfg.backend.enable_debug = _flag(v)
    if v := os.environ.get("VOTEFLOW_TIMEOUT"):
        cfg.backend.timeout_seconds = float(v)
    if v := os.environ.get("VOTEFLOW_POLL_INTERVAL"):
        cfg.reconcile.poll_interval_seconds = float(v)
    if v := os.environ.get("VOTEFLOW_RETRY_BUDGET"):
        cfg.reconcile.retry_budget = int(v)
    if v := os.environ.get("VOTEFLOW_DISCRIMINATION"):
        cfg.wallet.discrimination = v.lower()
    if v := os.environ.get("VOTEFLOW_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("VOTEFLOW_LOG_FMT"):
        cfg.logging.format = v

    return cfg
