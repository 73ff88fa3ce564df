"""
Session - Unlock state, password verification and auto-lock.

States: locked / unlocked.

- verify_password(p) unlocks when SHA-256(p || base64(salt)) matches the
  stored hash (constant-time hex compare)
- no-password mode unlocks with the per-install device key
- lock() wipes the session key, clears persisted unlock state and
  notifies listeners (the wallet manager wipes its keys)
- idle longer than auto_lock_duration seconds locks; 0 disables

The session key is persisted wrapped under SHA-256(user_agent || salt)
so an unlocked session survives a restart inside the auto-lock window.
"""

import logging
import secrets
import threading
from typing import Callable, Optional

from models.store import KeyValueStore
from utils import now_ms

from .codec import SecretBytes, constant_time_equal, to_base64
from .crypto import (
    MIN_PASSWORD_LENGTH,
    calculate_password_strength,
    decrypt_session_key,
    encrypt_session_key,
    generate_device_key,
    generate_salt,
    hash_password,
    verify_password_hash,
)
from .errors import BadInputFormat, CipherError, Locked, PasswordRejected
from .vault import (
    KEY_DEVICE_KEY,
    KEY_HASHED_PASSWORD,
    KEY_PASSWORD_SKIPPED,
    KEY_SALT,
    WalletVault,
)

logger = logging.getLogger(__name__)


KEY_WALLET_UNLOCKED = "walletUnlocked"
KEY_LAST_UNLOCK_TIME = "lastUnlockTime"
KEY_ENCRYPTED_SESSION_KEY = "encryptedSessionKey"
KEY_AUTO_LOCK_DURATION = "autoLockDuration"

SESSION_KEYS = (KEY_WALLET_UNLOCKED, KEY_LAST_UNLOCK_TIME, KEY_ENCRYPTED_SESSION_KEY)

DEFAULT_AUTO_LOCK_SECONDS = 300
ACTIVITY_DEBOUNCE_MS = 3000


class Session:
    """
    Owns the unlocked flag and the in-memory session key.

    Usage:
        session = Session(store, user_agent="octra-wallet/0.1.0")
        session.setup_password("Correct Horse Battery Staple")
        ...
        if session.verify_password(password):
            manager.initialize(session.session_key)
    """

    def __init__(self, store: KeyValueStore, user_agent: str,
                 rng: Callable[[int], bytes] = secrets.token_bytes,
                 clock: Callable[[], int] = now_ms,
                 mutex: Optional[threading.RLock] = None,
                 default_auto_lock: int = DEFAULT_AUTO_LOCK_SECONDS):
        self.store = store
        self.user_agent = user_agent
        self.rng = rng
        self.clock = clock
        self.mutex = mutex or threading.RLock()

        self._unlocked = False
        self._session_key: Optional[SecretBytes] = None
        self._last_activity_ms: Optional[int] = None
        self._last_persisted_ms: Optional[int] = None
        self._lock_listeners: list[Callable[[], None]] = []

        stored = self.store.get(KEY_AUTO_LOCK_DURATION).get(KEY_AUTO_LOCK_DURATION)
        self._auto_lock_duration = stored if isinstance(stored, int) and stored >= 0 else default_auto_lock

    # ============================================
    # State
    # ============================================

    def add_lock_listener(self, callback: Callable[[], None]) -> None:
        """Called after every transition to locked."""
        self._lock_listeners.append(callback)

    @property
    def session_key(self) -> str:
        """The password or device key held since unlock."""
        with self.mutex:
            self.check_auto_lock()
            if not self._unlocked or self._session_key is None:
                raise Locked("Wallet is locked")
            return bytes(self._session_key).decode('utf-8')

    @property
    def last_activity_ms(self) -> Optional[int]:
        return self._last_activity_ms

    def is_unlocked(self) -> bool:
        with self.mutex:
            self.check_auto_lock()
            return self._unlocked

    def require_unlocked(self) -> None:
        """Raise Locked unless unlocked, auto-locking first when idle too long."""
        if not self.is_unlocked():
            raise Locked("Wallet is locked")

    def is_password_set(self) -> bool:
        data = self.store.get(KEY_HASHED_PASSWORD, KEY_PASSWORD_SKIPPED)
        return bool(data.get(KEY_HASHED_PASSWORD)) or bool(data.get(KEY_PASSWORD_SKIPPED))

    def has_real_password(self) -> bool:
        return bool(self.store.get(KEY_HASHED_PASSWORD).get(KEY_HASHED_PASSWORD))

    def _set_unlocked(self, session_key: str) -> None:
        if self._session_key is not None:
            self._session_key.wipe(self.rng)
        self._session_key = SecretBytes(session_key.encode('utf-8'))
        self._unlocked = True
        now = self.clock()
        self._last_activity_ms = now
        self._persist_unlock_status(now)

    def _persist_unlock_status(self, now: int) -> None:
        salt_b64 = self.store.get(KEY_SALT).get(KEY_SALT) or ""
        self.store.set({
            KEY_WALLET_UNLOCKED: True,
            KEY_LAST_UNLOCK_TIME: now,
            KEY_ENCRYPTED_SESSION_KEY: encrypt_session_key(
                bytes(self._session_key).decode('utf-8'), self.user_agent, salt_b64, self.rng),
        })
        self._last_persisted_ms = now

    # ============================================
    # Password setup
    # ============================================

    def initialize_storage(self, password: str) -> None:
        """Fresh salt and password hash; unlocks with `password`."""
        with self.mutex:
            salt_b64 = to_base64(generate_salt(self.rng))
            self.store.set({
                KEY_SALT: salt_b64,
                KEY_HASHED_PASSWORD: hash_password(password, salt_b64),
            })
            self.store.remove(KEY_PASSWORD_SKIPPED)
            self._set_unlocked(password)
            logger.info("Password protection initialized")

    @staticmethod
    def check_new_password(password: str) -> None:
        """Raise PasswordRejected unless the password is long and not weak."""
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise PasswordRejected(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if calculate_password_strength(password).strength == "weak":
            raise PasswordRejected("Password is too weak. Please use a stronger password.")

    def setup_password(self, password: str) -> None:
        """First-run password setup."""
        self.check_new_password(password)
        self.initialize_storage(password)

    def get_device_encryption_key(self) -> str:
        """Get or create the per-install device key."""
        with self.mutex:
            existing = self.store.get(KEY_DEVICE_KEY).get(KEY_DEVICE_KEY)
            if existing:
                return existing
            device_key = generate_device_key(self.rng)
            self.store.set({KEY_DEVICE_KEY: device_key})
            logger.info("Generated device encryption key")
            return device_key

    def skip_password_setup(self) -> None:
        """No-password mode: the device key becomes the session key."""
        with self.mutex:
            device_key = self.get_device_encryption_key()
            if not self.store.get(KEY_SALT).get(KEY_SALT):
                self.store.set({KEY_SALT: to_base64(generate_salt(self.rng))})
            self.store.set({KEY_PASSWORD_SKIPPED: True})
            self._set_unlocked(device_key)
            logger.info("Password setup skipped; using device key")

    def change_password(self, current: str, new: str, vault: WalletVault,
                        wallets: list, active_id: Optional[str]) -> str:
        """
        Verify `current`, then re-encrypt the vault under `new`.

        In device-key mode `current` may be empty or the device key.

        An empty `new` switches to device-key mode. The new salt, password
        state and records are written in one store call. Returns the new
        session key.
        """
        with self.mutex:
            if self.has_real_password():
                if not self.verify_password(current):
                    raise PasswordRejected("Current password is incorrect")
            elif current and not constant_time_equal(
                    current.encode('utf-8'), self.get_device_encryption_key().encode('utf-8')):
                raise PasswordRejected("Current password is incorrect")

            salt = generate_salt(self.rng)
            salt_b64 = to_base64(salt)
            if not new or not new.strip():
                new_key = self.get_device_encryption_key()
                extra = {KEY_PASSWORD_SKIPPED: True, KEY_HASHED_PASSWORD: None}
            else:
                self.check_new_password(new)
                new_key = new
                extra = {KEY_PASSWORD_SKIPPED: False, KEY_HASHED_PASSWORD: hash_password(new, salt_b64)}

            vault.rekey(wallets, new_key, active_id, extra, salt=salt)
            if extra[KEY_HASHED_PASSWORD] is None:
                self.store.remove(KEY_HASHED_PASSWORD)
                logger.info("Password removed; switched to device key mode")
            else:
                self.store.remove(KEY_PASSWORD_SKIPPED)
                logger.info("Password changed")
            self._set_unlocked(new_key)
            return new_key

    # ============================================
    # Unlock / Lock
    # ============================================

    def verify_password(self, password: str) -> bool:
        """Unlock on a matching password; False otherwise. Never raises on bad input."""
        with self.mutex:
            data = self.store.get(KEY_HASHED_PASSWORD, KEY_SALT)
            stored = data.get(KEY_HASHED_PASSWORD)
            if not stored or not isinstance(password, str):
                return False
            if not verify_password_hash(password, data.get(KEY_SALT) or "", stored):
                logger.info("Password verification failed")
                return False
            self._set_unlocked(password)
            return True

    def lock(self) -> None:
        with self.mutex:
            was_unlocked = self._unlocked
            if self._session_key is not None:
                self._session_key.wipe(self.rng)
                self._session_key = None
            self._unlocked = False
            self._last_activity_ms = None
            self._last_persisted_ms = None
            self.store.remove(*SESSION_KEYS)
            for listener in self._lock_listeners:
                listener()
            if was_unlocked:
                logger.info("Wallet locked")

    # ============================================
    # Auto-lock
    # ============================================

    def get_auto_lock_duration(self) -> int:
        return self._auto_lock_duration

    def set_auto_lock_duration(self, seconds: int) -> None:
        if isinstance(seconds, bool) or not isinstance(seconds, int) or seconds < 0:
            raise BadInputFormat("Auto-lock duration must be a non-negative integer")
        with self.mutex:
            self._auto_lock_duration = seconds
            self.store.set({KEY_AUTO_LOCK_DURATION: seconds})

    def _auto_lock_applies(self) -> bool:
        return self._auto_lock_duration > 0 and self.has_real_password()

    def is_expired(self, now: Optional[int] = None) -> bool:
        if not self._unlocked or self._last_activity_ms is None or not self._auto_lock_applies():
            return False
        now = self.clock() if now is None else now
        return now - self._last_activity_ms >= self._auto_lock_duration * 1000

    def check_auto_lock(self) -> bool:
        """Lock if the idle window elapsed. Returns True when it locked."""
        with self.mutex:
            if self.is_expired():
                logger.info(f"Auto-lock after {self._auto_lock_duration}s of inactivity")
                self.lock()
                return True
            return False

    def update_last_activity(self) -> None:
        """Record user activity; persisted at most every 3 seconds."""
        with self.mutex:
            if self.check_auto_lock() or not self._unlocked:
                return
            now = self.clock()
            self._last_activity_ms = now
            if self._last_persisted_ms is None or now - self._last_persisted_ms >= ACTIVITY_DEBOUNCE_MS:
                self.store.set({KEY_LAST_UNLOCK_TIME: now})
                self._last_persisted_ms = now

    # ============================================
    # Restore
    # ============================================

    def restore(self) -> bool:
        """
        Rebuild unlock state after a restart.

        No-password mode always unlocks. Otherwise a persisted session is
        reused when its key unwraps and the auto-lock window has not
        elapsed (or auto-lock is disabled). Stale state is removed.
        """
        with self.mutex:
            data = self.store.get(
                KEY_WALLET_UNLOCKED, KEY_LAST_UNLOCK_TIME, KEY_PASSWORD_SKIPPED,
                KEY_ENCRYPTED_SESSION_KEY, KEY_SALT,
            )
            if data.get(KEY_PASSWORD_SKIPPED):
                self._set_unlocked(self.get_device_encryption_key())
                return True

            last_unlock = data.get(KEY_LAST_UNLOCK_TIME)
            if data.get(KEY_WALLET_UNLOCKED) and isinstance(last_unlock, int):
                session_key = None
                if data.get(KEY_ENCRYPTED_SESSION_KEY):
                    try:
                        session_key = decrypt_session_key(
                            data[KEY_ENCRYPTED_SESSION_KEY], self.user_agent, data.get(KEY_SALT) or "")
                    except CipherError as e:
                        logger.warning(f"Persisted session key rejected: {e.kind}")

                now = self.clock()
                within_window = (
                    self._auto_lock_duration == 0
                    or now - last_unlock < self._auto_lock_duration * 1000
                )
                if session_key is not None and within_window:
                    self._session_key = SecretBytes(session_key.encode('utf-8'))
                    self._unlocked = True
                    self._last_activity_ms = last_unlock
                    self._last_persisted_ms = last_unlock
                    logger.info("Restored unlocked session")
                    return True

            self._unlocked = False
            if data.get(KEY_WALLET_UNLOCKED):
                self.store.remove(*SESSION_KEYS)
            return False
