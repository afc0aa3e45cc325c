"""
Thin cryptographic helpers used by the wallet and transaction builders.

All curve work is delegated to ``ecdsa`` (secp256k1, RFC 6979 deterministic
signatures) and address encoding to ``bech32``.  Nothing here keeps state.
"""

from __future__ import annotations

import hashlib

import bech32
from ecdsa import SECP256k1, BadSignatureError, SigningKey, VerifyingKey
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigdecode_string, sigencode_string

PRIVATE_KEY_SIZE = 32
COMPRESSED_PUBLIC_KEY_SIZE = 33

# human readable prefixes for account addresses
TEST_ADDRESS_PREFIX = "ca"
PRODUCTION_ADDRESS_PREFIX = "ta"


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def blake2b_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def fragment_id(fragment: bytes) -> str:
    """Content-derived identifier of a serialized fragment (hex)."""
    return blake2b_256(fragment).hex()


def public_key_from_private(private_key: bytes) -> bytes:
    """Return the 33-byte compressed secp256k1 public key."""
    if len(private_key) != PRIVATE_KEY_SIZE:
        raise ValueError(f"private key must be {PRIVATE_KEY_SIZE} bytes")
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")


def sign(private_key: bytes, message: bytes) -> bytes:
    """Deterministic 64-byte (r || s) signature over sha256(message)."""
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return sk.sign_deterministic(
        message, hashfunc=hashlib.sha256, sigencode=sigencode_string,
    )


def verify(public_key: bytes, message: bytes, signature: bytes) -> bool:
    try:
        vk = VerifyingKey.from_string(public_key, curve=SECP256k1)
        return vk.verify(
            signature, message, hashfunc=hashlib.sha256,
            sigdecode=sigdecode_string,
        )
    except (BadSignatureError, MalformedPointError, ValueError):
        return False


def account_id(public_key: bytes) -> str:
    """Account identifier used by the node's account endpoints."""
    return public_key.hex()


def derive_address(public_key: bytes, prefix: str = TEST_ADDRESS_PREFIX) -> str:
    """Bech32 address over blake2b-256 of the public key."""
    words = bech32.convertbits(blake2b_256(public_key), 8, 5)
    if words is None:
        raise ValueError("Error converting to bech32 words")
    return bech32.bech32_encode(prefix, words)
