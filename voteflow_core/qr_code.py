"""
PIN-protected key QR codes.

A key QR code carries the hex text of an encrypted 64-byte extended key::

    version (1) | salt (16) | nonce (12) | ciphertext (64) | tag (16)

The symmetric key is PBKDF2-HMAC-SHA512 over the PIN digits (one byte per
digit, not ASCII) and the random salt; the cipher is ChaCha20-Poly1305, so a
wrong PIN surfaces as an authentication failure rather than garbage keys.

Usage:
    payload = encode_payload(key.to_extended(), "1234")
    write_qr_image(payload, "alice_qr.png")
    secret = decode_payload(read_qr_image("alice_qr.png"), "1234")
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from voteflow_core.errors import RecoveryFailed

PROTOCOL_VERSION = 1
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KDF_ITERATIONS = 12_983
_HEADER_SIZE = 1 + SALT_SIZE + NONCE_SIZE


def pin_to_bytes(pin: str) -> bytes:
    """Convert a numeric PIN to one byte per digit."""
    if not pin or not pin.isdigit():
        raise RecoveryFailed("PIN must consist only of digits")
    return bytes(int(c) for c in pin)


def _derive_key(pin: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac(
        "sha512", pin_to_bytes(pin), salt, KDF_ITERATIONS, dklen=32,
    )


def encode_payload(secret: bytes, pin: str) -> str:
    """Encrypt *secret* under *pin* and return the QR text payload."""
    from Crypto.Cipher import ChaCha20_Poly1305

    salt = os.urandom(SALT_SIZE)
    nonce = os.urandom(NONCE_SIZE)
    cipher = ChaCha20_Poly1305.new(key=_derive_key(pin, salt), nonce=nonce)
    ciphertext, tag = cipher.encrypt_and_digest(secret)
    blob = bytes([PROTOCOL_VERSION]) + salt + nonce + ciphertext + tag
    return blob.hex()


def decode_payload(payload: str, pin: str) -> bytes:
    """Decrypt a QR text payload. Raises RecoveryFailed on any problem."""
    from Crypto.Cipher import ChaCha20_Poly1305

    try:
        blob = bytes.fromhex(payload.strip())
    except ValueError as exc:
        raise RecoveryFailed("QR payload is not valid hex") from exc

    if len(blob) <= _HEADER_SIZE + TAG_SIZE:
        raise RecoveryFailed("QR payload is truncated")
    if blob[0] != PROTOCOL_VERSION:
        raise RecoveryFailed(f"unsupported QR payload version {blob[0]}")

    salt = blob[1:1 + SALT_SIZE]
    nonce = blob[1 + SALT_SIZE:_HEADER_SIZE]
    ciphertext = blob[_HEADER_SIZE:-TAG_SIZE]
    tag = blob[-TAG_SIZE:]

    cipher = ChaCha20_Poly1305.new(key=_derive_key(pin, salt), nonce=nonce)
    try:
        return cipher.decrypt_and_verify(ciphertext, tag)
    except ValueError as exc:
        raise RecoveryFailed("cannot decrypt QR code: wrong PIN or corrupt data") from exc


def read_qr_image(path: str | os.PathLike) -> str:
    """Return the text payload of the first QR code found in an image file."""
    import cv2

    if not Path(path).is_file():
        raise RecoveryFailed(f"cannot read QR code from '{path}' path")
    img = cv2.imread(str(path))
    if img is None:
        raise RecoveryFailed(f"cannot read QR code from '{path}' path: not an image")
    text, points, _ = cv2.QRCodeDetector().detectAndDecode(img)
    if points is None or not text:
        raise RecoveryFailed(f"no QR code found in '{path}'")
    return text


def write_qr_image(payload: str, path: str | os.PathLike) -> Path:
    """Render *payload* as a QR code PNG at *path*."""
    import qrcode

    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    img = qrcode.make(payload)
    img.save(str(out))
    return out
