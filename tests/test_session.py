"""
Session, auto-lock and restore tests
"""

import pytest

from conftest import PASSWORD, USER_AGENT, make_record
from wallet.errors import BadInputFormat, Locked, PasswordRejected
from wallet.session import (
    KEY_ENCRYPTED_SESSION_KEY,
    KEY_LAST_UNLOCK_TIME,
    KEY_WALLET_UNLOCKED,
    SESSION_KEYS,
    Session,
)
from wallet.vault import KEY_DEVICE_KEY, KEY_HASHED_PASSWORD, KEY_PASSWORD_SKIPPED


NEW_PASSWORD = "Purple Monkey Dishwasher 42"


def _reopen(store, rng, clock, user_agent=USER_AGENT) -> Session:
    return Session(store, user_agent=user_agent, rng=rng, clock=clock)


class TestPasswordSetup:
    """Tests for first-run setup."""

    @pytest.mark.parametrize("password", ["", "short", "password", "abcdefghijk"])
    def test_rejects_weak(self, session, password):
        with pytest.raises(PasswordRejected):
            session.setup_password(password)
        assert not session.is_password_set()

    def test_setup_unlocks(self, unlocked_session, store):
        assert unlocked_session.is_unlocked()
        assert unlocked_session.session_key == PASSWORD
        assert unlocked_session.has_real_password()
        data = store.get(KEY_WALLET_UNLOCKED, KEY_ENCRYPTED_SESSION_KEY)
        assert data[KEY_WALLET_UNLOCKED] is True
        assert PASSWORD not in data[KEY_ENCRYPTED_SESSION_KEY]

    def test_skip_uses_device_key(self, session, store):
        session.skip_password_setup()
        device_key = store.get(KEY_DEVICE_KEY)[KEY_DEVICE_KEY]
        assert session.session_key == device_key
        assert session.is_password_set()
        assert not session.has_real_password()

    def test_device_key_is_stable(self, session):
        assert session.get_device_encryption_key() == session.get_device_encryption_key()


class TestUnlockLock:
    """Tests for verify_password and lock."""

    def test_verify(self, unlocked_session):
        unlocked_session.lock()
        assert not unlocked_session.verify_password("Wrong Horse Battery Staple")
        assert not unlocked_session.is_unlocked()
        assert unlocked_session.verify_password(PASSWORD)
        assert unlocked_session.is_unlocked()

    def test_verify_bad_input(self, unlocked_session):
        unlocked_session.lock()
        assert not unlocked_session.verify_password(None)
        assert not unlocked_session.verify_password("")

    def test_verify_without_password(self, session):
        assert not session.verify_password(PASSWORD)

    def test_lock_clears_state(self, unlocked_session, store):
        unlocked_session.lock()
        assert not unlocked_session.is_unlocked()
        assert store.get(*SESSION_KEYS) == {}
        with pytest.raises(Locked):
            unlocked_session.session_key

    def test_lock_notifies_listeners(self, unlocked_session):
        calls = []
        unlocked_session.add_lock_listener(lambda: calls.append("locked"))
        unlocked_session.lock()
        assert calls == ["locked"]


class TestAutoLock:
    """Tests for idle expiry."""

    def test_locks_at_duration(self, unlocked_session, clock):
        unlocked_session.set_auto_lock_duration(60)
        clock.advance(59)
        assert unlocked_session.is_unlocked()
        clock.advance(1)
        assert not unlocked_session.is_unlocked()

    def test_default_duration(self, session):
        assert session.get_auto_lock_duration() == 300

    def test_activity_extends_window(self, unlocked_session, clock):
        unlocked_session.set_auto_lock_duration(60)
        clock.advance(50)
        unlocked_session.update_last_activity()
        clock.advance(50)
        assert unlocked_session.is_unlocked()
        clock.advance(10)
        assert not unlocked_session.is_unlocked()

    def test_zero_disables(self, unlocked_session, clock):
        unlocked_session.set_auto_lock_duration(0)
        clock.advance(10 * 24 * 3600)
        assert unlocked_session.is_unlocked()

    def test_device_mode_never_locks(self, session, clock):
        session.skip_password_setup()
        session.set_auto_lock_duration(60)
        clock.advance(3600)
        assert session.is_unlocked()

    def test_activity_persist_is_debounced(self, unlocked_session, store, clock):
        start = clock.now
        clock.advance(1)
        unlocked_session.update_last_activity()
        assert store.get(KEY_LAST_UNLOCK_TIME)[KEY_LAST_UNLOCK_TIME] == start
        assert unlocked_session.last_activity_ms == start + 1000
        clock.advance(2)
        unlocked_session.update_last_activity()
        assert store.get(KEY_LAST_UNLOCK_TIME)[KEY_LAST_UNLOCK_TIME] == start + 3000

    def test_activity_after_expiry_locks(self, unlocked_session, clock):
        unlocked_session.set_auto_lock_duration(60)
        clock.advance(61)
        unlocked_session.update_last_activity()
        assert not unlocked_session.is_unlocked()

    @pytest.mark.parametrize("value", [-1, 1.5, "60", True])
    def test_invalid_duration(self, session, value):
        with pytest.raises(BadInputFormat):
            session.set_auto_lock_duration(value)

    def test_duration_persists(self, session, store, rng, clock):
        session.set_auto_lock_duration(120)
        assert _reopen(store, rng, clock).get_auto_lock_duration() == 120


class TestRestore:
    """Tests for rebuilding unlock state on startup."""

    def test_within_window(self, unlocked_session, store, rng, clock):
        clock.advance(30)
        restored = _reopen(store, rng, clock)
        assert restored.restore()
        assert restored.session_key == PASSWORD

    def test_expired(self, unlocked_session, store, rng, clock):
        clock.advance(300)
        restored = _reopen(store, rng, clock)
        assert not restored.restore()
        assert store.get(*SESSION_KEYS) == {}

    def test_other_user_agent(self, unlocked_session, store, rng, clock):
        restored = _reopen(store, rng, clock, user_agent="other-agent/2.0")
        assert not restored.restore()
        assert not restored.is_unlocked()
        assert store.get(*SESSION_KEYS) == {}

    def test_disabled_auto_lock(self, unlocked_session, store, rng, clock):
        unlocked_session.set_auto_lock_duration(0)
        clock.advance(7 * 24 * 3600)
        assert _reopen(store, rng, clock).restore()

    def test_device_mode(self, session, store, rng, clock):
        session.skip_password_setup()
        session.lock()
        restored = _reopen(store, rng, clock)
        assert restored.restore()
        assert restored.session_key == store.get(KEY_DEVICE_KEY)[KEY_DEVICE_KEY]

    def test_nothing_persisted(self, session):
        assert not session.restore()


class TestChangePassword:
    """Tests for password rotation."""

    def test_rotates_vault(self, unlocked_session, vault, store):
        wallets = [make_record(1, "Main")]
        vault.store_wallets(wallets, PASSWORD, wallets[0].id)
        old_salt = store.get("salt")["salt"]

        new_key = unlocked_session.change_password(
            PASSWORD, NEW_PASSWORD, vault, [w.copy() for w in wallets], wallets[0].id)

        assert new_key == NEW_PASSWORD
        assert unlocked_session.session_key == NEW_PASSWORD
        assert store.get("salt")["salt"] != old_salt
        assert vault.load_wallets(NEW_PASSWORD).wallets[0].address == wallets[0].address
        with pytest.raises(PasswordRejected):
            vault.load_wallets(PASSWORD)

    def test_wrong_current(self, unlocked_session, vault):
        with pytest.raises(PasswordRejected):
            unlocked_session.change_password("Wrong Horse Battery Staple", NEW_PASSWORD, vault, [], None)

    def test_weak_new(self, unlocked_session, vault):
        with pytest.raises(PasswordRejected):
            unlocked_session.change_password(PASSWORD, "weak", vault, [], None)
        assert unlocked_session.verify_password(PASSWORD)

    def test_remove_password(self, unlocked_session, vault, store):
        wallets = [make_record(1, "Main")]
        vault.store_wallets(wallets, PASSWORD, None)
        device_key = unlocked_session.change_password(PASSWORD, "", vault, wallets, None)

        assert not unlocked_session.has_real_password()
        assert store.get(KEY_PASSWORD_SKIPPED)[KEY_PASSWORD_SKIPPED] is True
        assert store.get(KEY_HASHED_PASSWORD) == {}
        assert len(vault.load_wallets(device_key).wallets) == 1

    def test_set_password_from_device_mode(self, session, vault):
        session.skip_password_setup()
        wallets = [make_record(1, "Main")]
        vault.store_wallets(wallets, session.session_key, None)

        session.change_password("", NEW_PASSWORD, vault, wallets, None)

        assert session.has_real_password()
        assert len(vault.load_wallets(NEW_PASSWORD).wallets) == 1

    def test_device_key_one_char_off(self, session, vault, store):
        session.skip_password_setup()
        device_key = store.get(KEY_DEVICE_KEY)[KEY_DEVICE_KEY]
        near_miss = ("B" if device_key[0] == "A" else "A") + device_key[1:]
        with pytest.raises(PasswordRejected):
            session.change_password(near_miss, NEW_PASSWORD, vault, [], None)
        assert not session.has_real_password()

        session.change_password(device_key, NEW_PASSWORD, vault, [], None)
        assert session.has_real_password()
