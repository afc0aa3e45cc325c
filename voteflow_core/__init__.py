"""
VoteFlow - wallet account and fragment lifecycle client for a voting ledger.

Key features:
- Wallet recovery from a BIP-39 mnemonic, a PIN-protected QR code or a
  bech32 extended secret key
- Local bookkeeping of balance, spending counter and in-flight fragments
- Signed transfers, single votes and expiring vote batches
- Polling reconciliation of pending fragments against the node's log
"""

__version__ = "0.3.0"
__all__ = [
    "backend",
    "config",
    "controller",
    "crypto_utils",
    "errors",
    "logging_config",
    "proposal",
    "qr_code",
    "reconcile",
    "recovery",
    "settings",
    "state",
    "submission",
    "transaction",
    "wallet",
]
