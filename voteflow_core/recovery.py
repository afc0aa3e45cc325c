"""
Identity sources: the ways a wallet can be brought back into a session.

Each source is a small frozen dataclass; ``derive()`` dispatches on the
variant and always returns a ``WalletIdentity``.  No source touches the
network; the only side effect is reading the supplied file, if any.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import bech32
from mnemonic import Mnemonic

from voteflow_core.errors import MalformedKey, RecoveryFailed
from voteflow_core.qr_code import decode_payload, pin_to_bytes, read_qr_image
from voteflow_core.wallet import (
    EXTENDED_KEY_SIZE,
    HDNode,
    KeyMaterial,
    WalletIdentity,
    check_word_count,
    generate_mnemonic,
    mnemonic_to_seed,
    wallet_path,
)

logger = logging.getLogger("voteflow.recovery")

_MNEMO = Mnemonic("english")

# bech32 strings for 64-byte keys are longer than BIP-173's 90 char limit
_MAX_BECH32_LENGTH = 1023


@dataclass(frozen=True)
class MnemonicSource:
    words: str = field(repr=False)
    password: str = field(default="", repr=False)
    account: int = 0
    index: int = 0


@dataclass(frozen=True)
class QrSource:
    pin: str = field(repr=False)
    image: Optional[Path] = None
    payload: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class SecretKeySource:
    path: Path


IdentitySource = Union[MnemonicSource, QrSource, SecretKeySource]


def derive(source: IdentitySource) -> WalletIdentity:
    """Produce the wallet identity described by *source*."""
    if isinstance(source, MnemonicSource):
        keys = _from_mnemonic(source)
    elif isinstance(source, QrSource):
        keys = _from_qr(source)
    elif isinstance(source, SecretKeySource):
        keys = _from_secret_key(source)
    else:
        raise TypeError(f"unsupported identity source: {type(source).__name__}")
    identity = WalletIdentity.from_key_material(keys)
    logger.info("Recovered wallet %s via %s", identity.account_id[:16],
                type(source).__name__)
    return identity


def generate(word_count: int = 24) -> tuple[str, WalletIdentity]:
    """Create a brand-new wallet. Returns (mnemonic_phrase, identity)."""
    phrase = generate_mnemonic(word_count)
    return phrase, derive(MnemonicSource(phrase))


# ── variants ────────────────────────────────────────────────────────

def _from_mnemonic(source: MnemonicSource) -> KeyMaterial:
    words = source.words.split()
    check_word_count(words)
    phrase = " ".join(words)
    if not _MNEMO.check(phrase):
        raise RecoveryFailed("invalid mnemonic: unknown word or bad checksum")
    seed = mnemonic_to_seed(phrase, source.password)
    node = HDNode.from_seed(seed).derive_path(wallet_path(source.account, source.index))
    return node.key_material()


def _from_qr(source: QrSource) -> KeyMaterial:
    pin_to_bytes(source.pin)  # reject non-numeric PINs before reading anything
    if source.payload is not None:
        payload = source.payload
    elif source.image is not None:
        payload = read_qr_image(source.image)
    else:
        raise RecoveryFailed("QR recovery needs an image or a payload")
    return KeyMaterial.from_extended(decode_payload(payload, source.pin))


def _from_secret_key(source: SecretKeySource) -> KeyMaterial:
    _, data = read_bech32(source.path)
    if len(data) != EXTENDED_KEY_SIZE:
        raise MalformedKey(
            f"secret key payload must be {EXTENDED_KEY_SIZE} bytes, got {len(data)}"
        )
    try:
        return KeyMaterial.from_extended(data)
    except RecoveryFailed as exc:
        raise MalformedKey(str(exc)) from exc


def read_bech32(path: Union[str, os.PathLike]) -> tuple[str, bytes]:
    """Read a single bech32 string from *path*. Returns (hrp, payload bytes)."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise RecoveryFailed(f"cannot read secret key file '{path}'") from exc
    line = text.replace("\n", "").replace("\r", "").strip()
    return decode_bech32(line)


def decode_bech32(text: str) -> tuple[str, bytes]:
    hrp, words = _bech32_decode(text)
    if hrp is None or words is None:
        raise MalformedKey("invalid bech32 string")
    data = bech32.convertbits(words, 5, 8, False)
    if data is None:
        raise MalformedKey("invalid bech32 padding")
    return hrp, bytes(data)


def encode_bech32(hrp: str, data: bytes) -> str:
    words = bech32.convertbits(data, 8, 5)
    if words is None:
        raise MalformedKey("Error converting to bech32 words")
    return bech32.bech32_encode(hrp, words)


def _bech32_decode(text: str):
    # bech32.bech32_decode enforces the 90 character address limit, which
    # extended secret keys exceed; validate the same way without that cap.
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        return None, None
    if text.lower() != text and text.upper() != text:
        return None, None
    if len(text) > _MAX_BECH32_LENGTH:
        return None, None
    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + 7 > len(text):
        return None, None
    if not all(c in bech32.CHARSET for c in text[pos + 1:]):
        return None, None
    hrp = text[:pos]
    data = [bech32.CHARSET.find(c) for c in text[pos + 1:]]
    if not bech32.bech32_verify_checksum(hrp, data):
        return None, None
    return hrp, data[:-6]
