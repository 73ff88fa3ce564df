"""
Balance - Confidential balance cipher.

Two wire formats:
- v2 (current): "v2|" + base64(nonce(12) || AES-256-GCM ciphertext || tag(16))
  keyed by SHA-256("octra_encrypted_balance_v2" || private_key)
- v1 (legacy, read only): untagged base64(nonce(16) || tag(16) || encrypted)
  with a SHA-256 keystream and truncated SHA-256 tag

The plaintext is the decimal string of a micro-unit balance.
"""

import re
import secrets
from typing import Callable, Union

from .codec import SecretBytes, constant_time_equal, decode_key_b64, from_base64, to_base64
from .errors import (
    AuthenticationFailed,
    BadInputFormat,
    BadKeyLength,
    MalformedCiphertext,
    UnsupportedVersion,
)
from .primitives import AES_IV_SIZE, AES_TAG_SIZE, ED25519_SEED_SIZE, open_sealed, seal, sha256


V2_PREFIX = "v2|"
V2_DOMAIN = b"octra_encrypted_balance_v2"
V1_DOMAIN = b"octra_encrypted_balance_v1"

V1_NONCE_SIZE = 16
V1_TAG_SIZE = 16

MAX_BALANCE = 2 ** 64 - 1

_VERSION_TAG = re.compile(r"^v(\d+)\|")
_DIGITS = re.compile(r"^[0-9]+$")

PrivateKey = Union[str, bytes, SecretBytes]


def _key_bytes(private_key: PrivateKey) -> bytes:
    if isinstance(private_key, str):
        return decode_key_b64(private_key, ED25519_SEED_SIZE, "private key")
    raw = bytes(private_key)
    if len(raw) != ED25519_SEED_SIZE:
        raise BadKeyLength(f"Invalid private key length: {len(raw)} bytes, expected {ED25519_SEED_SIZE} bytes")
    return raw


def check_amount(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadInputFormat("Balance must be an integer number of micro units")
    if not 0 <= value <= MAX_BALANCE:
        raise BadInputFormat(f"Balance out of range: {value}")
    return value


def parse_amount(plaintext: bytes) -> int:
    """Decimal ASCII digits -> int; anything else is malformed."""
    try:
        text = plaintext.decode("ascii")
    except UnicodeDecodeError as e:
        raise MalformedCiphertext("Decrypted amount is not ASCII") from e
    if not _DIGITS.match(text):
        raise MalformedCiphertext("Decrypted amount is not a decimal integer")
    value = int(text)
    if value > MAX_BALANCE:
        raise MalformedCiphertext("Decrypted amount out of range")
    return value


def split_v2(ciphertext: str) -> bytes:
    """Strip the "v2|" tag and decode the base64 body."""
    if not ciphertext.startswith(V2_PREFIX):
        raise UnsupportedVersion("Expected a v2 ciphertext")
    try:
        data = from_base64(ciphertext[len(V2_PREFIX):])
    except BadInputFormat as e:
        raise MalformedCiphertext("Invalid base64 body") from e
    if len(data) < AES_IV_SIZE + AES_TAG_SIZE:
        raise MalformedCiphertext(f"v2 ciphertext too short: {len(data)} bytes")
    return data


# ============================================
# v2
# ============================================

def derive_balance_key(private_key: PrivateKey) -> bytes:
    return sha256(V2_DOMAIN + _key_bytes(private_key))[:32]


def encrypt_balance(amount: int, private_key: PrivateKey,
                    rng: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """Encrypt a micro-unit balance as "v2|..."; a fresh nonce every call."""
    check_amount(amount)
    key = derive_balance_key(private_key)
    return V2_PREFIX + to_base64(seal(key, str(amount).encode("ascii"), rng))


def decrypt_balance_v2(ciphertext: str, private_key: PrivateKey) -> int:
    data = split_v2(ciphertext)
    return parse_amount(open_sealed(derive_balance_key(private_key), data))


# ============================================
# v1 (legacy)
# ============================================

def derive_balance_key_v1(private_key: PrivateKey) -> bytes:
    raw = _key_bytes(private_key)
    key1 = sha256(V1_DOMAIN + raw)
    key2 = sha256(raw + V1_DOMAIN)
    return (key1 + key2)[:32]


def decrypt_balance_v1(ciphertext: str, private_key: PrivateKey) -> int:
    """
    Legacy read path.

    Accepts only when SHA-256(nonce || encrypted || key)[:16] matches the
    stored tag, then XORs with SHA-256(key || nonce) repeated.
    """
    try:
        data = from_base64(ciphertext)
    except BadInputFormat as e:
        raise MalformedCiphertext("Invalid v1 ciphertext encoding") from e
    if len(data) < V1_NONCE_SIZE + V1_TAG_SIZE:
        raise MalformedCiphertext(f"v1 ciphertext too short: {len(data)} bytes")

    key = derive_balance_key_v1(private_key)
    nonce = data[:V1_NONCE_SIZE]
    tag = data[V1_NONCE_SIZE:V1_NONCE_SIZE + V1_TAG_SIZE]
    encrypted = data[V1_NONCE_SIZE + V1_TAG_SIZE:]

    expected = sha256(nonce + encrypted + key)[:V1_TAG_SIZE]
    if not constant_time_equal(tag, expected):
        raise AuthenticationFailed("v1 balance tag mismatch")

    keystream = sha256(key + nonce)
    plaintext = bytes(b ^ keystream[i % 32] for i, b in enumerate(encrypted))
    return parse_amount(plaintext)


# ============================================
# Dispatch
# ============================================

def decrypt_balance(ciphertext: str, private_key: PrivateKey) -> int:
    """
    Decrypt either format.

    "0" and "" mean an empty confidential balance. Any "vN|" tag other
    than v2 is rejected with UnsupportedVersion.

    Raises:
        UnsupportedVersion, MalformedCiphertext, AuthenticationFailed
    """
    if not isinstance(ciphertext, str):
        raise MalformedCiphertext("Ciphertext must be a string")
    if ciphertext in ("", "0"):
        return 0
    match = _VERSION_TAG.match(ciphertext)
    if match:
        if match.group(1) != "2":
            raise UnsupportedVersion(f"Unsupported balance cipher version: v{match.group(1)}")
        return decrypt_balance_v2(ciphertext, private_key)
    return decrypt_balance_v1(ciphertext, private_key)
