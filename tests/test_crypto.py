"""
Record encryption, password hash and session key wrapping tests
"""

import hashlib
import os
import stat

import pytest

from wallet.codec import to_base64
from wallet.crypto import (
    calculate_password_strength,
    decrypt_record,
    decrypt_session_key,
    derive_key,
    encrypt_record,
    encrypt_session_key,
    generate_device_key,
    hash_password,
    set_secure_permissions,
    verify_password_hash,
)
from wallet.errors import AuthenticationFailed, MalformedCiphertext
from wallet.primitives import seal


SALT = bytes(range(32))
SALT_B64 = to_base64(SALT)


class TestDeriveKey:
    """Tests for password key derivation."""

    def test_matches_pbkdf2_sha256(self):
        expected = hashlib.pbkdf2_hmac("sha256", b"hunter22", SALT, 1000, 32)
        assert derive_key("hunter22", SALT, 1000) == expected

    def test_salt_changes_key(self):
        assert derive_key("hunter22", SALT, 1000) != derive_key("hunter22", bytes(32), 1000)


class TestRecords:
    """Tests for per-record AES-GCM."""

    key = bytes(range(32))

    def test_round_trip(self, rng):
        record = {"id": "wallet_1", "name": "Main", "nested": {"n": [1, 2]}}
        assert decrypt_record(encrypt_record(record, self.key, rng), self.key) == record

    def test_wrong_key(self, rng):
        blob = encrypt_record({"a": 1}, self.key, rng)
        with pytest.raises(AuthenticationFailed):
            decrypt_record(blob, bytes(32))

    def test_not_base64(self):
        with pytest.raises(MalformedCiphertext):
            decrypt_record("%%%", self.key)

    def test_not_json(self):
        blob = to_base64(seal(self.key, b"not json"))
        with pytest.raises(MalformedCiphertext):
            decrypt_record(blob, self.key)

    def test_not_object(self):
        blob = to_base64(seal(self.key, b"[1, 2]"))
        with pytest.raises(MalformedCiphertext):
            decrypt_record(blob, self.key)


class TestPasswordHash:
    """Tests for the password check value."""

    def test_hash_layout(self):
        expected = hashlib.sha256(("hunter22" + SALT_B64).encode()).hexdigest()
        assert hash_password("hunter22", SALT_B64) == expected

    def test_verify(self):
        stored = hash_password("hunter22", SALT_B64)
        assert verify_password_hash("hunter22", SALT_B64, stored)
        assert verify_password_hash("hunter22", SALT_B64, stored.upper())
        assert not verify_password_hash("hunter23", SALT_B64, stored)
        assert not verify_password_hash(None, SALT_B64, stored)


class TestPasswordStrength:
    """Tests for strength scoring."""

    @pytest.mark.parametrize("password, strength", [
        ("abc", "weak"),
        ("password", "weak"),
        ("Password1", "medium"),
        ("Password1!", "strong"),
        ("Correct Horse Battery Staple", "strong"),
    ])
    def test_strength(self, password, strength):
        assert calculate_password_strength(password).strength == strength

    def test_feedback(self):
        result = calculate_password_strength("abc")
        assert "Password is too short" in result.feedback
        assert result.to_dict()["score"] == result.score


class TestSessionKeyWrap:
    """Tests for persisted session key wrapping."""

    def test_round_trip(self, rng):
        blob = encrypt_session_key("hunter22", "agent/1.0", SALT_B64, rng)
        assert decrypt_session_key(blob, "agent/1.0", SALT_B64) == "hunter22"

    def test_other_user_agent(self, rng):
        blob = encrypt_session_key("hunter22", "agent/1.0", SALT_B64, rng)
        with pytest.raises(AuthenticationFailed):
            decrypt_session_key(blob, "agent/2.0", SALT_B64)

    def test_device_key_is_32_bytes(self, rng):
        assert len(generate_device_key(rng)) == 44


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
def test_secure_permissions(tmp_path):
    path = tmp_path / "wallet.json"
    path.write_text("{}")
    os.chmod(path, 0o644)
    set_secure_permissions(path)
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
