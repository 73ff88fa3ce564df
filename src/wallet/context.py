"""
WalletContext - Builds and wires the wallet services.

One store, one RNG, one clock and one re-entrant lock are shared by the
vault, session and manager. Nothing here is a process-wide singleton;
tests build a context over a MemoryStore.
"""

import logging
import secrets
import threading
from pathlib import Path
from typing import Callable, Optional

from models.store import JsonFileStore, KeyValueStore
from services.settings import Settings
from services.signing import TransactionSigner
from utils import get_store_path, now_ms

from .crypto import PBKDF2_ITERATIONS
from .errors import Cancelled, Locked, PasswordRejected, TimedOut, WalletNotFound
from .manager import WalletManager
from .primitives import Deadline
from .session import Session
from .vault import WalletVault

logger = logging.getLogger(__name__)


UNLOCK_TIMEOUT_SECONDS = 10.0


class WalletContext:
    """
    Composition root for the wallet.

    Usage:
        ctx = WalletContext.open()
        ctx.startup()
        if not ctx.session.is_unlocked():
            ctx.unlock(password)
        signer = ctx.signer_for_active()
    """

    def __init__(self, store: KeyValueStore,
                 settings: Optional[Settings] = None,
                 rng: Callable[[int], bytes] = secrets.token_bytes,
                 clock: Callable[[], int] = now_ms,
                 iterations: int = PBKDF2_ITERATIONS):
        self.store = store
        self.settings = settings or Settings()
        self.rng = rng
        self.clock = clock
        self.mutex = threading.RLock()

        self.vault = WalletVault(store, rng=rng, mutex=self.mutex, iterations=iterations)
        self.session = Session(
            store,
            user_agent=self.settings.user_agent,
            rng=rng,
            clock=clock,
            mutex=self.mutex,
            default_auto_lock=self.settings.auto_lock_duration,
        )
        self.manager = WalletManager(
            self.vault, rng=rng, clock=clock, mutex=self.mutex,
            ensure_unlocked=self.session.require_unlocked,
        )
        self.session.add_lock_listener(self.manager.clear_sensitive_data)

    @classmethod
    def open(cls, path: Optional[Path] = None, settings: Optional[Settings] = None) -> "WalletContext":
        """Context over the on-disk store in the application directory."""
        settings = settings or Settings.load()
        return cls(JsonFileStore(path or get_store_path()), settings=settings)

    def startup(self) -> bool:
        """
        Repair storage, restore a persisted session and load wallets.

        Returns True when the wallet came up unlocked.
        """
        with self.mutex:
            if self.vault.emergency_storage_repair():
                logger.warning("Storage repaired on startup")
            if not self.session.restore():
                return False
            try:
                self.manager.initialize(self.session.session_key)
            except PasswordRejected:
                logger.warning("Restored session key no longer opens the vault")
                self.session.lock()
                return False
            return True

    def unlock(self, password: str, timeout: float = UNLOCK_TIMEOUT_SECONDS) -> None:
        """
        Verify the password and decrypt every wallet.

        Raises PasswordRejected on a wrong password and TimedOut when key
        derivation overruns `timeout` seconds; the session is left locked
        in both cases.
        """
        deadline = Deadline(timeout)
        with self.mutex:
            if not self.session.verify_password(password):
                raise PasswordRejected("Incorrect password")
            try:
                self.manager.initialize(password, token=deadline)
            except (TimedOut, Cancelled):
                logger.warning("Unlock aborted during key derivation")
                self.session.lock()
                raise

    def lock(self) -> None:
        self.session.lock()

    def change_password(self, current: str, new: str) -> None:
        """Re-encrypt every wallet under `new`; empty `new` removes the password."""
        with self.mutex:
            if not self.manager.is_ready():
                raise Locked("Unlock the wallet before changing the password")
            wallets = self.manager.get_all_wallets()
            try:
                new_key = self.session.change_password(
                    current, new, self.vault, wallets, self.manager.active_wallet_id)
            finally:
                for wallet in wallets:
                    wallet.wipe()
            self.manager.initialize(new_key)

    def touch(self) -> None:
        """Record user activity for auto-lock."""
        self.session.update_last_activity()

    def signer_for_active(self) -> TransactionSigner:
        """Signer over a copy of the active wallet's key."""
        with self.mutex:
            if not self.session.is_unlocked():
                raise Locked("Wallet is locked")
            wallet = self.manager.get_active_wallet()
            if wallet is None:
                raise WalletNotFound("No active wallet")
            return TransactionSigner(wallet.private_key)
