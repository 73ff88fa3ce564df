"""
Wallet Crypto - At-rest protection for wallet records.

- PBKDF2-HMAC-SHA-256 (100,000 iterations) over a 32-byte vault salt
- AES-256-GCM per record: base64(nonce(12) || ciphertext || tag(16))
- Password check value: hex SHA-256(password || base64(salt))
- Session key wrapping: AES-256-GCM keyed by SHA-256(user_agent || base64(salt))

Keys never exist unencrypted on disk.
"""

import json
import logging
import os
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .codec import constant_time_equal, from_base64, to_base64, to_hex
from .errors import BadInputFormat, MalformedCiphertext
from .primitives import AES_KEY_SIZE, CancelToken, open_sealed, pbkdf2_hmac_sha256, seal, sha256

logger = logging.getLogger(__name__)


# ============================================
# Security Constants
# ============================================

PBKDF2_ITERATIONS = 100_000
SALT_SIZE = 32
DEVICE_KEY_SIZE = 32

MIN_PASSWORD_LENGTH = 8

# Secure file permissions (Unix only)
SECURE_FILE_MODE = 0o600  # Owner read/write only


def set_secure_permissions(filepath: Path) -> None:
    """
    Set restrictive file permissions on Unix systems.

    Sets file to mode 0600 (owner read/write only) to protect wallet data.
    No-op on Windows (NTFS uses ACLs, not Unix permissions).
    """
    if os.name == 'posix':
        try:
            os.chmod(filepath, SECURE_FILE_MODE)
        except OSError as e:
            logger.warning(f"Could not restrict permissions on {filepath}: {e}")


# ============================================
# Salts / Device key
# ============================================

def generate_salt(rng: Callable[[int], bytes] = secrets.token_bytes) -> bytes:
    return rng(SALT_SIZE)


def generate_device_key(rng: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """Per-install key used instead of a password; base64 of 32 random bytes."""
    return to_base64(rng(DEVICE_KEY_SIZE))


# ============================================
# Key Derivation
# ============================================

def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS,
               token: Optional[CancelToken] = None) -> bytes:
    """
    Derive the 256-bit record key from a password (or device key).

    Pass a CancelToken / Deadline to make the derivation interruptible.
    """
    return pbkdf2_hmac_sha256(password.encode('utf-8'), salt, iterations, AES_KEY_SIZE, token)


# ============================================
# Record Encryption
# ============================================

def encrypt_record(data: dict, key: bytes,
                   rng: Callable[[int], bytes] = secrets.token_bytes) -> str:
    """Encrypt one wallet record's JSON under a fresh nonce."""
    plaintext = json.dumps(data, separators=(',', ':')).encode('utf-8')
    return to_base64(seal(key, plaintext, rng))


def decrypt_record(blob: str, key: bytes) -> dict:
    """
    Decrypt one wallet record.

    Raises:
        MalformedCiphertext: bad encoding, short blob or non-JSON payload
        AuthenticationFailed: wrong key or tampered data
    """
    try:
        data = from_base64(blob)
    except BadInputFormat as e:
        raise MalformedCiphertext("Encrypted record is not valid base64") from e
    plaintext = open_sealed(key, data)
    try:
        record = json.loads(plaintext.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedCiphertext("Decrypted record is not valid JSON") from e
    if not isinstance(record, dict):
        raise MalformedCiphertext("Decrypted record is not a JSON object")
    return record


# ============================================
# Password Hash
# ============================================

def hash_password(password: str, salt_b64: str) -> str:
    """Hex SHA-256 of the password with the base64 salt appended."""
    return to_hex(sha256((password + salt_b64).encode('utf-8')))


def verify_password_hash(password: str, salt_b64: str, stored_hash: str) -> bool:
    """Compare hex digests in constant time."""
    if not isinstance(password, str) or not isinstance(stored_hash, str):
        return False
    candidate = hash_password(password, salt_b64)
    return constant_time_equal(candidate.encode('ascii'), stored_hash.lower().encode('ascii', 'replace'))


@dataclass
class PasswordStrength:
    score: int
    strength: str           # weak | medium | strong
    feedback: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"score": self.score, "strength": self.strength, "feedback": list(self.feedback)}


def calculate_password_strength(password: str) -> PasswordStrength:
    """Score length and character classes; >= 4 strong, >= 2 medium."""
    score = 0
    feedback = []
    if len(password) < MIN_PASSWORD_LENGTH:
        score -= 2
        feedback.append("Password is too short")
    elif len(password) >= 12:
        score += 2
        feedback.append("Good length")
    if re.search(r"[A-Z]", password):
        score += 1
        feedback.append("Contains uppercase")
    if re.search(r"[a-z]", password):
        score += 1
        feedback.append("Contains lowercase")
    if re.search(r"[0-9]", password):
        score += 1
        feedback.append("Contains numbers")
    if re.search(r"[^A-Za-z0-9]", password):
        score += 2
        feedback.append("Contains special characters")

    if score >= 4:
        strength = "strong"
    elif score >= 2:
        strength = "medium"
    else:
        strength = "weak"
    return PasswordStrength(score=score, strength=strength, feedback=feedback)


# ============================================
# Session Key Wrapping
# ============================================

def session_wrapping_key(user_agent: str, salt_b64: str) -> bytes:
    """Coarse device binding; not a security boundary."""
    return sha256((user_agent + (salt_b64 or '')).encode('utf-8'))


def encrypt_session_key(session_key: str, user_agent: str, salt_b64: str,
                        rng: Callable[[int], bytes] = secrets.token_bytes) -> str:
    key = session_wrapping_key(user_agent, salt_b64)
    return to_base64(seal(key, session_key.encode('utf-8'), rng))


def decrypt_session_key(blob: str, user_agent: str, salt_b64: str) -> str:
    """
    Unwrap a persisted session key.

    Raises:
        MalformedCiphertext / AuthenticationFailed when the blob does not
        open under this user agent and salt
    """
    try:
        data = from_base64(blob)
    except BadInputFormat as e:
        raise MalformedCiphertext("Encrypted session key is not valid base64") from e
    plaintext = open_sealed(session_wrapping_key(user_agent, salt_b64), data)
    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedCiphertext("Session key is not valid UTF-8") from e
