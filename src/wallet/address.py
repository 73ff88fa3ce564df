"""
Address - Octra address derivation and format checks.

address = "oct" + base58(SHA-256(public_key))
"""

from typing import Union

from .codec import decode_key_b64, is_base58, to_base58
from .errors import BadKeyLength
from .primitives import ED25519_PUBLIC_SIZE, sha256


ADDRESS_PREFIX = "oct"
ADDRESS_MIN_LENGTH = 47
ADDRESS_MAX_LENGTH = 49


def address_from_public_key(public_key: bytes) -> str:
    """Derive the address from raw 32-byte public key bytes."""
    if len(public_key) != ED25519_PUBLIC_SIZE:
        raise BadKeyLength(f"Invalid public key length: {len(public_key)} bytes, expected {ED25519_PUBLIC_SIZE} bytes")
    return ADDRESS_PREFIX + to_base58(sha256(public_key))


def derive_address(public_key: Union[str, bytes]) -> str:
    """Derive the address from a base64 public key (or raw bytes)."""
    if isinstance(public_key, str):
        public_key = decode_key_b64(public_key, ED25519_PUBLIC_SIZE, "public key")
    return address_from_public_key(public_key)


def verify_address_format(address) -> bool:
    """Accept only 47-49 chars, 'oct' prefix, pure base58 tail."""
    if not isinstance(address, str):
        return False
    if not address.startswith(ADDRESS_PREFIX):
        return False
    if len(address) < ADDRESS_MIN_LENGTH or len(address) > ADDRESS_MAX_LENGTH:
        return False
    return is_base58(address[len(ADDRESS_PREFIX):])
