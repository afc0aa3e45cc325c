"""
Wallet key material for VoteFlow.

Provides:
  - BIP-39 mnemonic generation, word-count validation and seed derivation
  - HD key derivation (BIP-32 / BIP-44 style) over secp256k1
  - ``KeyMaterial``: the raw signing key (plus chain code) every recovery
    variant produces
  - ``WalletIdentity``: immutable signing capability + account identifier
"""

from __future__ import annotations

import hashlib
import hmac
import struct
from dataclasses import dataclass, field

from ecdsa import SECP256k1
from mnemonic import Mnemonic

from voteflow_core.crypto_utils import (
    PRIVATE_KEY_SIZE,
    PRODUCTION_ADDRESS_PREFIX,
    TEST_ADDRESS_PREFIX,
    account_id,
    derive_address,
    public_key_from_private,
    sign,
    verify,
)
from voteflow_core.errors import InvalidWordCount, RecoveryFailed


# ===================================================================
#  BIP-39 Mnemonic Support
# ===================================================================

SUPPORTED_WORD_COUNTS = (12, 15, 18, 21, 24)

# word count -> entropy strength in bits
_STRENGTH_BY_WORDS = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}

_MNEMO = Mnemonic("english")


def check_word_count(words: list[str]) -> None:
    if len(words) not in SUPPORTED_WORD_COUNTS:
        raise InvalidWordCount(len(words), SUPPORTED_WORD_COUNTS)


def generate_mnemonic(word_count: int = 24) -> str:
    """Generate a new BIP-39 mnemonic phrase with *word_count* words."""
    if word_count not in _STRENGTH_BY_WORDS:
        raise InvalidWordCount(word_count, SUPPORTED_WORD_COUNTS)
    return _MNEMO.generate(strength=_STRENGTH_BY_WORDS[word_count])


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a mnemonic phrase to a 64-byte seed (BIP-39)."""
    words = mnemonic.split()
    check_word_count(words)
    return Mnemonic.to_seed(" ".join(words), passphrase)


# ===================================================================
#  HD Key Derivation (BIP-32 / BIP-44 style)
# ===================================================================

class HDNode:
    """
    Hierarchical Deterministic key derivation node.

    BIP-32-style derivation with HMAC-SHA512.
    Path notation: m/44'/1815'/account'/0/index
    """

    HARDENED = 0x80000000

    def __init__(self, private_key: bytes, chain_code: bytes, depth: int = 0,
                 index: int = 0):
        self.private_key = private_key
        self.chain_code = chain_code
        self.depth = depth
        self.index = index

    @classmethod
    def from_seed(cls, seed: bytes) -> HDNode:
        """Create master node from a 64-byte seed."""
        I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        return cls(private_key=I[:32], chain_code=I[32:])

    def public_key(self) -> bytes:
        return public_key_from_private(self.private_key)

    def derive_child(self, index: int) -> HDNode:
        """Derive a child node at the given index."""
        if index >= self.HARDENED:
            data = b"\x00" + self.private_key + struct.pack(">I", index)
        else:
            data = self.public_key() + struct.pack(">I", index)

        I = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        child_key_int = (int.from_bytes(I[:32], "big") +
                         int.from_bytes(self.private_key, "big"))
        child_key_int %= SECP256k1.order

        return HDNode(
            private_key=child_key_int.to_bytes(32, "big"),
            chain_code=I[32:],
            depth=self.depth + 1,
            index=index,
        )

    def derive_path(self, path: str) -> HDNode:
        """
        Derive from a BIP-44 path string like "m/44'/1815'/0'/0/0".
        """
        if path == "m":
            return self
        if path.startswith("m/"):
            path = path[2:]

        node = self
        for component in path.split("/"):
            if component.endswith("'"):
                index = int(component[:-1]) + self.HARDENED
            else:
                index = int(component)
            node = node.derive_child(index)
        return node

    def key_material(self) -> KeyMaterial:
        return KeyMaterial(self.private_key, self.chain_code)


def wallet_path(account: int = 0, index: int = 0) -> str:
    return f"m/44'/1815'/{account}'/0/{index}"


# ===================================================================
#  Key material and identity
# ===================================================================

EXTENDED_KEY_SIZE = 64


@dataclass(frozen=True)
class KeyMaterial:
    """Signing key plus (optional) chain code."""
    private_key: bytes
    chain_code: bytes = b""

    def __post_init__(self):
        if len(self.private_key) != PRIVATE_KEY_SIZE:
            raise RecoveryFailed(
                f"private key must be {PRIVATE_KEY_SIZE} bytes, "
                f"got {len(self.private_key)}"
            )
        scalar = int.from_bytes(self.private_key, "big")
        if not 0 < scalar < SECP256k1.order:
            raise RecoveryFailed("private key is outside the curve order")

    @classmethod
    def from_extended(cls, data: bytes) -> KeyMaterial:
        """Split a 64-byte extended key (private key || chain code)."""
        if len(data) != EXTENDED_KEY_SIZE:
            raise RecoveryFailed(
                f"extended key must be {EXTENDED_KEY_SIZE} bytes, got {len(data)}"
            )
        return cls(bytes(data[:32]), bytes(data[32:]))

    def to_extended(self) -> bytes:
        return self.private_key + self.chain_code.ljust(32, b"\x00")


@dataclass(frozen=True)
class WalletIdentity:
    """Immutable signing capability and the account it controls."""
    keys: KeyMaterial = field(repr=False)
    public_key: bytes = b""

    @classmethod
    def from_key_material(cls, keys: KeyMaterial) -> WalletIdentity:
        return cls(keys=keys, public_key=public_key_from_private(keys.private_key))

    @property
    def account_id(self) -> str:
        return account_id(self.public_key)

    def address(self, testing: bool = True) -> str:
        prefix = TEST_ADDRESS_PREFIX if testing else PRODUCTION_ADDRESS_PREFIX
        return derive_address(self.public_key, prefix)

    def sign(self, message: bytes) -> bytes:
        return sign(self.keys.private_key, message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify(self.public_key, message, signature)

    def __repr__(self) -> str:
        return f"WalletIdentity({self.account_id})"
