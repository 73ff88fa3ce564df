"""
Private transfers - shared secret between two Ed25519 identities.

Both sides sort the two public keys bytewise, so either party derives
the same 32 bytes:

    round1 = SHA-256(smaller || larger)
    secret = SHA-256(round1 || "OCTRA_SYMMETRIC_V1")[:32]

Transfer amounts are framed like v2 balances, keyed by the secret.
"""

import secrets
from typing import Callable, Union

from .balance import V2_PREFIX, check_amount, parse_amount, split_v2
from .codec import SecretBytes, bytes_less_than, decode_key_b64, to_base64
from .errors import BadKeyLength
from .primitives import (
    AES_KEY_SIZE,
    ED25519_PUBLIC_SIZE,
    ED25519_SEED_SIZE,
    keypair_from_seed,
    open_sealed,
    seal,
    sha256,
)


SYMMETRIC_DOMAIN = b"OCTRA_SYMMETRIC_V1"


def shared_secret_from_public_keys(public_a: bytes, public_b: bytes) -> bytes:
    """Order-independent secret of two raw public keys."""
    if bytes_less_than(public_a, public_b):
        smaller, larger = public_a, public_b
    else:
        smaller, larger = public_b, public_a
    round1 = sha256(smaller + larger)
    return sha256(round1 + SYMMETRIC_DOMAIN)[:32]


def derive_shared_secret(my_private_key: Union[str, bytes, SecretBytes],
                         ephemeral_public_key: Union[str, bytes]) -> bytes:
    """
    Secret for claiming a private transfer.

    Args:
        my_private_key: Receiver's 32-byte private key (base64 or raw)
        ephemeral_public_key: Sender's 32-byte ephemeral public key (base64 or raw)

    Raises:
        BadKeyLength / BadInputFormat on malformed keys
    """
    if isinstance(my_private_key, str):
        seed = decode_key_b64(my_private_key, ED25519_SEED_SIZE, "private key")
    else:
        seed = bytes(my_private_key)
    if isinstance(ephemeral_public_key, str):
        ephemeral = decode_key_b64(ephemeral_public_key, ED25519_PUBLIC_SIZE, "ephemeral public key")
    else:
        ephemeral = bytes(ephemeral_public_key)
        if len(ephemeral) != ED25519_PUBLIC_SIZE:
            raise BadKeyLength(f"Invalid ephemeral public key length: {len(ephemeral)} bytes")

    my_public = keypair_from_seed(seed).public_key
    return shared_secret_from_public_keys(my_public, ephemeral)


def _check_secret(secret: bytes) -> bytes:
    secret = bytes(secret)
    if len(secret) != AES_KEY_SIZE:
        raise BadKeyLength(f"Shared secret must be {AES_KEY_SIZE} bytes, got {len(secret)}")
    return secret


def decrypt_private_amount(ciphertext: str, secret: bytes) -> int:
    """
    Decrypt a "v2|..." transfer amount with the shared secret.

    Raises:
        UnsupportedVersion: missing "v2|" tag
        MalformedCiphertext: short or non-numeric payload
        AuthenticationFailed: wrong secret or tampered data
    """
    data = split_v2(ciphertext)
    return parse_amount(open_sealed(_check_secret(secret), data))


def encrypt_private_amount(amount: int, secret: bytes,
                           rng: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """Sender side of decrypt_private_amount()."""
    check_amount(amount)
    return V2_PREFIX + to_base64(seal(_check_secret(secret), str(amount).encode("ascii"), rng))
