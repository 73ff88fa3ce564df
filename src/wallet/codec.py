"""
Codec - Byte encodings, comparators and secret buffers.

Contains:
- hex / base64 / base58 (Bitcoin alphabet) helpers with strict decoding
- bytes_less_than / compare_bytes: lexicographic byte ordering
- constant_time_equal: branch-free equality for key-derived material
- SecretBytes: owned buffer for key material, wiped on release
"""

import base64
import binascii
import secrets
from typing import Callable, Optional

import base58

from .errors import BadInputFormat, BadKeyLength


BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_CHARS = frozenset(BASE58_ALPHABET)


# ============================================
# Hex
# ============================================

def to_hex(data: bytes) -> str:
    """Lowercase hex of raw bytes."""
    return bytes(data).hex()


def from_hex(text: str) -> bytes:
    """Decode a hex string (no 0x prefix)."""
    if not isinstance(text, str):
        raise BadInputFormat("Hex input must be a string")
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise BadInputFormat(f"Invalid hex string: {e}") from e


# ============================================
# Base64
# ============================================

def to_base64(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def from_base64(text: str) -> bytes:
    """Decode standard (padded) base64, rejecting stray characters."""
    if not isinstance(text, str) or not text:
        raise BadInputFormat("Base64 input must be a non-empty string")
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadInputFormat(f"Invalid base64 string: {e}") from e


def decode_key_b64(text: str, length: int = 32, label: str = "key") -> bytes:
    """Decode a base64 key and enforce its raw length."""
    raw = from_base64(text)
    if len(raw) != length:
        raise BadKeyLength(f"Invalid {label} length: {len(raw)} bytes, expected {length} bytes")
    return raw


# ============================================
# Base58
# ============================================

def to_base58(data: bytes) -> str:
    """Bitcoin-alphabet base58; leading zero bytes become '1'."""
    if not data:
        return ""
    return base58.b58encode(bytes(data)).decode("ascii")


def from_base58(text: str) -> bytes:
    if not isinstance(text, str):
        raise BadInputFormat("Base58 input must be a string")
    if not is_base58(text):
        raise BadInputFormat("Invalid base58 string")
    return base58.b58decode(text)


def is_base58(text: str) -> bool:
    return bool(text) and all(ch in _BASE58_CHARS for ch in text)


# ============================================
# Comparators
# ============================================

def compare_bytes(a: bytes, b: bytes) -> int:
    """
    Lexicographic comparison: first differing byte decides, and a
    strict prefix orders first. Returns -1, 0 or 1.
    """
    for x, y in zip(a, b):
        if x != y:
            return -1 if x < y else 1
    if len(a) == len(b):
        return 0
    return -1 if len(a) < len(b) else 1


def bytes_less_than(a: bytes, b: bytes) -> bool:
    return compare_bytes(a, b) < 0


def constant_time_equal(a: bytes, b: bytes) -> bool:
    """
    XOR-accumulate over every byte; no early exit for equal-length inputs.
    Inputs of different lengths are unequal.
    """
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


# ============================================
# Secret buffers
# ============================================

def wipe(buffer: bytearray, rng: Optional[Callable[[int], bytes]] = None) -> None:
    """Overwrite a mutable buffer with random bytes, then zeros."""
    if not buffer:
        return
    rng = rng or secrets.token_bytes
    buffer[:] = rng(len(buffer))
    buffer[:] = bytes(len(buffer))


class SecretBytes:
    """
    Owned, mutable holder for key material.

    The raw bytes live in a bytearray that is overwritten with randomness
    and then zeros by wipe(), on context exit, and on collection. Copies
    handed to libraries via bytes(...) are outside our control.
    """

    __slots__ = ("_buf", "_wiped")

    def __init__(self, data: bytes):
        self._buf = bytearray(data)
        self._wiped = False

    @classmethod
    def from_base64(cls, text: str, length: int = 32) -> "SecretBytes":
        return cls(decode_key_b64(text, length, "private key"))

    @property
    def wiped(self) -> bool:
        return self._wiped

    def __len__(self) -> int:
        return len(self._buf)

    def __bytes__(self) -> bytes:
        return bytes(self._buf)

    def __eq__(self, other) -> bool:
        if isinstance(other, SecretBytes):
            return constant_time_equal(self._buf, other._buf)
        if isinstance(other, (bytes, bytearray)):
            return constant_time_equal(self._buf, other)
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return f"SecretBytes(<{len(self._buf)} bytes>)"

    def b64(self) -> str:
        return to_base64(self._buf)

    def copy(self) -> "SecretBytes":
        return SecretBytes(self._buf)

    def wipe(self, rng: Optional[Callable[[int], bytes]] = None) -> None:
        wipe(self._buf, rng)
        self._wiped = True

    def __enter__(self) -> "SecretBytes":
        return self

    def __exit__(self, *exc) -> None:
        self.wipe()

    def __del__(self):
        """Attempt to clear key material on destruction."""
        try:
            wipe(self._buf)
        except (AttributeError, TypeError):
            pass
