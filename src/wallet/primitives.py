"""
Primitives - Hash, MAC, KDF, AEAD and Ed25519 provider.

All cryptography goes through the `cryptography` package:
- SHA-256 / SHA-512 digests
- HMAC-SHA-512
- PBKDF2-HMAC-SHA-256 / SHA-512 (optionally cancellable)
- AES-256-GCM with 96-bit nonce and 128-bit tag
- Ed25519 keypair-from-seed, detached sign and verify

Library exceptions are translated to wallet errors here so nothing from
the backend leaks past this module.
"""

import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from cryptography.exceptions import InvalidSignature, InvalidTag
from cryptography.hazmat.primitives import hashes, hmac, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .codec import wipe
from .errors import (
    AuthenticationFailed,
    BadKeyLength,
    Cancelled,
    MalformedCiphertext,
    TimedOut,
)


# ============================================
# Constants
# ============================================

AES_KEY_SIZE = 32
AES_IV_SIZE = 12  # 96 bits (recommended for GCM)
AES_TAG_SIZE = 16

ED25519_SEED_SIZE = 32
ED25519_PUBLIC_SIZE = 32
ED25519_SIGNATURE_SIZE = 64

# Iterations between cancellation checks in the PBKDF2 loop
PBKDF2_CHECK_INTERVAL = 1024


# ============================================
# Cancellation
# ============================================

class CancelToken:
    """Cooperative cancellation flag checked at iteration boundaries."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def check(self) -> None:
        if self._cancelled:
            raise Cancelled("Operation cancelled")


class Deadline(CancelToken):
    """
    Cancellation token that also expires after `seconds`.

    check() raises TimedOut once the monotonic clock passes the deadline.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    @property
    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at

    def check(self) -> None:
        super().check()
        if self.expired:
            raise TimedOut(f"Deadline of {self.seconds:g}s exceeded")


# ============================================
# Digests / MAC
# ============================================

def _digest(algorithm: hashes.HashAlgorithm, data: bytes) -> bytes:
    h = hashes.Hash(algorithm)
    h.update(bytes(data))
    return h.finalize()


def sha256(data: bytes) -> bytes:
    return _digest(hashes.SHA256(), data)


def sha512(data: bytes) -> bytes:
    return _digest(hashes.SHA512(), data)


def hmac_sha512(key: bytes, msg: bytes) -> bytes:
    mac = hmac.HMAC(bytes(key), hashes.SHA512())
    mac.update(bytes(msg))
    return mac.finalize()


# ============================================
# PBKDF2
# ============================================

def _pbkdf2_loop(algorithm: hashes.HashAlgorithm, password: bytes, salt: bytes,
                 iterations: int, length: int, token: CancelToken) -> bytes:
    """RFC 8018 PBKDF2 over library HMAC, checking `token` between iterations."""
    base = hmac.HMAC(password, algorithm)
    digest_size = algorithm.digest_size
    blocks = -(-length // digest_size)
    out = bytearray()
    acc = 0
    try:
        for block in range(1, blocks + 1):
            mac = base.copy()
            mac.update(salt + block.to_bytes(4, "big"))
            u = mac.finalize()
            acc = int.from_bytes(u, "big")
            for i in range(1, iterations):
                if i % PBKDF2_CHECK_INTERVAL == 0:
                    token.check()
                mac = base.copy()
                mac.update(u)
                u = mac.finalize()
                acc ^= int.from_bytes(u, "big")
            out += acc.to_bytes(digest_size, "big")
        token.check()
        return bytes(out[:length])
    finally:
        wipe(out)


def _pbkdf2(algorithm: hashes.HashAlgorithm, password: bytes, salt: bytes,
            iterations: int, length: int, token: Optional[CancelToken]) -> bytes:
    if iterations < 1:
        raise ValueError("iterations must be >= 1")
    if token is None:
        kdf = PBKDF2HMAC(algorithm=algorithm, length=length, salt=bytes(salt), iterations=iterations)
        return kdf.derive(bytes(password))
    token.check()
    return _pbkdf2_loop(algorithm, bytes(password), bytes(salt), iterations, length, token)


def pbkdf2_hmac_sha512(password: bytes, salt: bytes, iterations: int, length: int,
                       token: Optional[CancelToken] = None) -> bytes:
    return _pbkdf2(hashes.SHA512(), password, salt, iterations, length, token)


def pbkdf2_hmac_sha256(password: bytes, salt: bytes, iterations: int, length: int,
                       token: Optional[CancelToken] = None) -> bytes:
    return _pbkdf2(hashes.SHA256(), password, salt, iterations, length, token)


# ============================================
# AES-256-GCM
# ============================================

def _aesgcm(key: bytes) -> AESGCM:
    if len(key) != AES_KEY_SIZE:
        raise BadKeyLength(f"AES-256-GCM key must be {AES_KEY_SIZE} bytes, got {len(key)}")
    return AESGCM(bytes(key))


def random_nonce(rng: Callable[[int], bytes] = secrets.token_bytes) -> bytes:
    return rng(AES_IV_SIZE)


def aes_gcm_encrypt(key: bytes, nonce: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    """Encrypt; returns ciphertext with the 16-byte tag appended."""
    if len(nonce) != AES_IV_SIZE:
        raise MalformedCiphertext(f"AES-GCM nonce must be {AES_IV_SIZE} bytes")
    return _aesgcm(key).encrypt(bytes(nonce), bytes(plaintext), bytes(aad) or None)


def aes_gcm_decrypt(key: bytes, nonce: bytes, ciphertext: bytes, aad: bytes = b"") -> bytes:
    """
    Decrypt ciphertext-with-tag.

    Raises: AuthenticationFailed if the key is wrong or data is tampered.
    """
    if len(nonce) != AES_IV_SIZE:
        raise MalformedCiphertext(f"AES-GCM nonce must be {AES_IV_SIZE} bytes")
    if len(ciphertext) < AES_TAG_SIZE:
        raise MalformedCiphertext("Ciphertext shorter than the GCM tag")
    try:
        return _aesgcm(key).decrypt(bytes(nonce), bytes(ciphertext), bytes(aad) or None)
    except InvalidTag as e:
        raise AuthenticationFailed("AES-GCM authentication failed") from e


def seal(key: bytes, plaintext: bytes, rng: Callable[[int], bytes] = secrets.token_bytes) -> bytes:
    """nonce(12) || ciphertext || tag(16) under a fresh random nonce."""
    nonce = random_nonce(rng)
    return nonce + aes_gcm_encrypt(key, nonce, plaintext)


def open_sealed(key: bytes, data: bytes) -> bytes:
    """Inverse of seal()."""
    if len(data) < AES_IV_SIZE + AES_TAG_SIZE:
        raise MalformedCiphertext(f"Sealed data too short: {len(data)} bytes")
    return aes_gcm_decrypt(key, data[:AES_IV_SIZE], data[AES_IV_SIZE:])


# ============================================
# Ed25519
# ============================================

@dataclass(frozen=True)
class KeyPair:
    """Ed25519 keypair; `seed` is the 32-byte private key."""
    seed: bytes
    public_key: bytes

    def __repr__(self) -> str:
        return f"KeyPair(public_key={self.public_key.hex()})"


def keypair_from_seed(seed: bytes) -> KeyPair:
    if len(seed) != ED25519_SEED_SIZE:
        raise BadKeyLength(f"Invalid private key length: {len(seed)} bytes, expected {ED25519_SEED_SIZE} bytes")
    private = Ed25519PrivateKey.from_private_bytes(bytes(seed))
    public = private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return KeyPair(seed=bytes(seed), public_key=public)


def sign_detached(msg: bytes, seed: bytes) -> bytes:
    """64-byte Ed25519 signature of `msg` under the 32-byte seed."""
    if len(seed) != ED25519_SEED_SIZE:
        raise BadKeyLength(f"Invalid private key length: {len(seed)} bytes, expected {ED25519_SEED_SIZE} bytes")
    return Ed25519PrivateKey.from_private_bytes(bytes(seed)).sign(bytes(msg))


def verify_detached(msg: bytes, signature: bytes, public_key: bytes) -> bool:
    """True iff `signature` is valid for `msg` under `public_key`. Never raises."""
    if len(signature) != ED25519_SIGNATURE_SIZE or len(public_key) != ED25519_PUBLIC_SIZE:
        return False
    try:
        Ed25519PublicKey.from_public_bytes(bytes(public_key)).verify(bytes(signature), bytes(msg))
        return True
    except (InvalidSignature, ValueError):
        return False
