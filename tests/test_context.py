"""
End-to-end wallet context tests
"""

import pytest

from conftest import FAST_ITERATIONS, PASSWORD, USER_AGENT
from models.store import JsonFileStore
from models.transaction import Transaction
from services.settings import Settings
from services.signing import verify_signature
from wallet.codec import to_base64
from wallet.context import WalletContext
from wallet.errors import Locked, PasswordRejected, TimedOut, WalletNotFound


NEW_PASSWORD = "Purple Monkey Dishwasher 42"


def _restart(store, rng, clock, user_agent=USER_AGENT) -> WalletContext:
    settings = Settings(auto_lock_duration=60, user_agent=user_agent)
    return WalletContext(store, settings=settings, rng=rng, clock=clock, iterations=FAST_ITERATIONS)


@pytest.fixture
def ready(context, seed_a):
    """Context with a password and one imported wallet."""
    context.session.setup_password(PASSWORD)
    context.manager.initialize(PASSWORD)
    context.manager.import_wallet("Main", to_base64(seed_a), None, PASSWORD)
    return context


class TestUnlock:
    """Tests for unlock and lock."""

    def test_lock_then_unlock(self, ready, address_a):
        ready.lock()
        assert not ready.session.is_unlocked()
        assert not ready.manager.is_ready()

        ready.unlock(PASSWORD)
        assert ready.session.is_unlocked()
        assert ready.manager.get_active_wallet().address == address_a

    def test_wrong_password(self, ready):
        ready.lock()
        with pytest.raises(PasswordRejected):
            ready.unlock("Wrong Horse Battery Staple")
        assert not ready.session.is_unlocked()
        assert not ready.manager.is_ready()

    def test_timeout_leaves_locked(self, ready):
        ready.lock()
        with pytest.raises(TimedOut):
            ready.unlock(PASSWORD, timeout=0)
        assert not ready.session.is_unlocked()
        assert not ready.manager.is_ready()


class TestSigning:
    """Tests for signing with the active wallet."""

    def test_sign_and_verify(self, ready, address_a, address_b):
        signer = ready.signer_for_active()
        tx = Transaction.create(address_a, address_b, "1.5", 1, clock=lambda: 1700000000.0)
        wire = signer.sign_and_attach(tx)
        assert verify_signature(wire, wire.signature, wire.public_key)

    def test_auto_lock_blocks_signing(self, ready, clock):
        clock.advance(59)
        ready.signer_for_active()
        clock.advance(2)
        with pytest.raises(Locked):
            ready.signer_for_active()
        assert not ready.manager.is_ready()

    def test_auto_lock_wipes_manager_keys(self, ready, clock, seed_a):
        wallet_id = ready.manager.active_wallet_id
        live = ready.manager._find(wallet_id)
        assert ready.manager.export_wallet(wallet_id)["privateKey"] == to_base64(seed_a)

        clock.advance(61)
        with pytest.raises(Locked):
            ready.manager.export_wallet(wallet_id)
        assert live.private_key.wiped
        with pytest.raises(Locked):
            ready.manager.get_active_wallet()
        with pytest.raises(Locked):
            ready.manager.export_cli_format(wallet_id)
        assert not ready.session.is_unlocked()

    def test_touch_extends_window(self, ready, clock):
        clock.advance(50)
        ready.touch()
        clock.advance(50)
        ready.signer_for_active()

    def test_no_active_wallet(self, context):
        context.session.setup_password(PASSWORD)
        context.manager.initialize(PASSWORD)
        with pytest.raises(WalletNotFound):
            context.signer_for_active()

    def test_locked(self, ready):
        ready.lock()
        with pytest.raises(Locked):
            ready.signer_for_active()


class TestStartup:
    """Tests for restoring state on a fresh context."""

    def test_restores_session(self, ready, store, rng, clock, address_a):
        clock.advance(30)
        restarted = _restart(store, rng, clock)
        assert restarted.startup()
        assert restarted.manager.get_active_wallet().address == address_a

    def test_expired_session(self, ready, store, rng, clock):
        clock.advance(61)
        restarted = _restart(store, rng, clock)
        assert not restarted.startup()
        assert not restarted.manager.is_ready()

    def test_other_user_agent(self, ready, store, rng, clock):
        restarted = _restart(store, rng, clock, user_agent="other-agent/2.0")
        assert not restarted.startup()

    def test_fresh_install(self, context):
        assert not context.startup()

    def test_on_disk_store(self, tmp_path, rng, clock, seed_a, address_a):
        path = tmp_path / "wallet.json"
        settings = Settings(auto_lock_duration=60, user_agent=USER_AGENT)
        first = WalletContext(JsonFileStore(path), settings=settings, rng=rng, clock=clock,
                              iterations=FAST_ITERATIONS)
        first.session.setup_password(PASSWORD)
        first.manager.initialize(PASSWORD)
        first.manager.import_wallet("Main", to_base64(seed_a), None, PASSWORD)

        second = WalletContext(JsonFileStore(path), settings=settings, rng=rng, clock=clock,
                               iterations=FAST_ITERATIONS)
        assert second.startup()
        assert second.manager.get_active_wallet().address == address_a


class TestChangePassword:
    """Tests for password rotation through the context."""

    def test_change(self, ready, address_a):
        ready.change_password(PASSWORD, NEW_PASSWORD)
        assert ready.manager.get_active_wallet().address == address_a

        ready.lock()
        with pytest.raises(PasswordRejected):
            ready.unlock(PASSWORD)
        ready.unlock(NEW_PASSWORD)
        assert ready.manager.get_wallet_count() == 1

    def test_remove_password(self, ready, store, rng, clock, address_a):
        ready.change_password(PASSWORD, "")
        assert not ready.session.has_real_password()

        ready.lock()
        clock.advance(3600)
        restarted = _restart(store, rng, clock)
        assert restarted.startup()
        assert restarted.manager.get_active_wallet().address == address_a

    def test_requires_unlock(self, ready):
        ready.lock()
        with pytest.raises(Locked):
            ready.change_password(PASSWORD, NEW_PASSWORD)

    def test_wrong_current(self, ready):
        with pytest.raises(PasswordRejected):
            ready.change_password("Wrong Horse Battery Staple", NEW_PASSWORD)
        ready.lock()
        ready.unlock(PASSWORD)
