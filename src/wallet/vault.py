"""
Wallet Vault - Encrypted multi-wallet storage (max 5 wallets).

Persisted keys:
    salt              base64 of 32 random bytes
    encryptedWallets  [{id, name, address, createdAt, isActive, encryptedData}]
    activeWalletId    id of the active wallet or null
    walletCount       number of entries

Each record is encrypted on its own, so updating one wallet never
rewrites the others. Loading tolerates corrupted entries: the healthy
ones are returned and re-persisted, and a vault where nothing decrypts
is cleared.
"""

import logging
import secrets
import threading
from typing import Callable, Iterable, Optional

from models.store import KeyValueStore
from models.wallet import CorruptedEntry, IndexEntry, LoadResult, WalletRecord

from .codec import constant_time_equal, from_base64, to_base64
from .crypto import (
    PBKDF2_ITERATIONS,
    SALT_SIZE,
    decrypt_record,
    derive_key,
    encrypt_record,
    generate_salt,
    verify_password_hash,
)
from .errors import (
    AddressConflict,
    BadInputFormat,
    BadKeyLength,
    CipherError,
    NameConflict,
    PasswordRejected,
    VaultCorrupted,
    VaultFull,
    WalletNotFound,
)
from .primitives import CancelToken

logger = logging.getLogger(__name__)


MAX_WALLETS = 5

KEY_SALT = "salt"
KEY_HASHED_PASSWORD = "hashedPassword"
KEY_PASSWORD_SKIPPED = "passwordSkipped"
KEY_DEVICE_KEY = "deviceEncryptionKey"
KEY_ENCRYPTED_WALLETS = "encryptedWallets"
KEY_ACTIVE_WALLET_ID = "activeWalletId"
KEY_WALLET_COUNT = "walletCount"

VAULT_KEYS = (KEY_ENCRYPTED_WALLETS, KEY_ACTIVE_WALLET_ID, KEY_WALLET_COUNT)


def check_unique(wallets: Iterable[WalletRecord]) -> None:
    """Names unique case-insensitively, addresses unique exactly."""
    names = set()
    addresses = set()
    for wallet in wallets:
        folded = wallet.name.casefold()
        if folded in names:
            raise NameConflict(f"Wallet name already exists: {wallet.name}")
        if wallet.address in addresses:
            raise AddressConflict(f"Wallet address already exists: {wallet.address}")
        names.add(folded)
        addresses.add(wallet.address)


class WalletVault:
    """
    Password-derived AES-GCM storage for wallet records.

    Usage:
        vault = WalletVault(store)
        vault.store_wallets(wallets, password, active_id)
        result = vault.load_wallets(password)
    """

    def __init__(self, store: KeyValueStore,
                 rng: Callable[[int], bytes] = secrets.token_bytes,
                 mutex: Optional[threading.RLock] = None,
                 iterations: int = PBKDF2_ITERATIONS):
        self.store = store
        self.rng = rng
        self.mutex = mutex or threading.RLock()
        self.iterations = iterations

    # ============================================
    # Salt / keys
    # ============================================

    def get_salt_b64(self) -> Optional[str]:
        return self.store.get(KEY_SALT).get(KEY_SALT)

    def _salt(self, allocate: bool) -> bytes:
        salt_b64 = self.get_salt_b64()
        if salt_b64:
            try:
                salt = from_base64(salt_b64)
            except BadInputFormat as e:
                raise VaultCorrupted(f"Vault salt is not valid base64: {e.message}") from e
            if len(salt) != SALT_SIZE:
                raise VaultCorrupted(f"Vault salt has {len(salt)} bytes, expected {SALT_SIZE}")
            return salt
        if not allocate:
            raise VaultCorrupted("Vault has no salt")
        salt = generate_salt(self.rng)
        self.store.set({KEY_SALT: to_base64(salt)})
        logger.info("Allocated new vault salt")
        return salt

    def _check_password(self, password: str) -> None:
        """Refuse a key that cannot be the vault's before touching any record."""
        if not isinstance(password, str) or not password:
            raise PasswordRejected("A password or device key is required")
        state = self.store.get(KEY_SALT, KEY_HASHED_PASSWORD, KEY_PASSWORD_SKIPPED, KEY_DEVICE_KEY)
        if state.get(KEY_HASHED_PASSWORD) and state.get(KEY_SALT):
            if not verify_password_hash(password, state[KEY_SALT], state[KEY_HASHED_PASSWORD]):
                raise PasswordRejected("Incorrect password")
        elif state.get(KEY_PASSWORD_SKIPPED) and state.get(KEY_DEVICE_KEY):
            if not constant_time_equal(password.encode('utf-8'), state[KEY_DEVICE_KEY].encode('utf-8')):
                raise PasswordRejected("Incorrect device key")

    def derive_key(self, password: str, token: Optional[CancelToken] = None,
                   allocate_salt: bool = True) -> bytes:
        return derive_key(password, self._salt(allocate_salt), self.iterations, token)

    # ============================================
    # Write path
    # ============================================

    def _entries(self, wallets: list[WalletRecord], key: bytes,
                 active_id: Optional[str]) -> list[dict]:
        entries = []
        for wallet in wallets:
            wallet.is_active = wallet.id == active_id
            entries.append(IndexEntry(
                id=wallet.id,
                name=wallet.name,
                address=wallet.address,
                created_at=wallet.created_at,
                is_active=wallet.is_active,
                encrypted_data=encrypt_record(wallet.to_dict(), key, self.rng),
            ).to_dict())
        return entries

    def _write(self, wallets: list[WalletRecord], key: bytes, active_id: Optional[str],
               extra: Optional[dict] = None) -> None:
        if len(wallets) > MAX_WALLETS:
            raise VaultFull(f"Cannot store more than {MAX_WALLETS} wallets")
        check_unique(wallets)
        if active_id is not None and not any(w.id == active_id for w in wallets):
            raise WalletNotFound(f"Active wallet {active_id} is not in the vault")
        items = {
            KEY_ENCRYPTED_WALLETS: self._entries(wallets, key, active_id),
            KEY_ACTIVE_WALLET_ID: active_id,
            KEY_WALLET_COUNT: len(wallets),
        }
        if extra:
            items.update(extra)
        self.store.set(items)

    def store_wallets(self, wallets: list[WalletRecord], password: str,
                      active_id: Optional[str] = None,
                      token: Optional[CancelToken] = None) -> None:
        """
        Encrypt every record and persist them with the plaintext index.

        Raises:
            VaultFull, NameConflict, AddressConflict, WalletNotFound,
            PasswordRejected, StorageFailure
        """
        with self.mutex:
            self._check_password(password)
            key = self.derive_key(password, token)
            self._write(list(wallets), key, active_id)
            logger.debug(f"Stored {len(wallets)} wallet(s)")

    def rekey(self, wallets: list[WalletRecord], new_password: str,
              active_id: Optional[str], extra: dict,
              salt: Optional[bytes] = None,
              token: Optional[CancelToken] = None) -> None:
        """
        Re-encrypt everything under a fresh salt and a new password.

        `extra` (password hash, mode flags) is written in the same call as
        the new salt and records, so storage never mixes old and new keys.
        """
        with self.mutex:
            salt = salt or generate_salt(self.rng)
            key = derive_key(new_password, salt, self.iterations, token)
            extra = dict(extra)
            extra[KEY_SALT] = to_base64(salt)
            self._write(list(wallets), key, active_id, extra)
            logger.info(f"Re-encrypted {len(wallets)} wallet(s) under a new key")

    def update_wallet(self, wallet: WalletRecord, password: str,
                      token: Optional[CancelToken] = None) -> None:
        """Re-encrypt a single record and refresh its index row."""
        with self.mutex:
            self._check_password(password)
            entries = self._index()
            position = next((i for i, e in enumerate(entries) if e.id == wallet.id), None)
            if position is None:
                raise WalletNotFound(f"Wallet not found: {wallet.id}")
            others = [e for e in entries if e.id != wallet.id]
            if any(e.name.casefold() == wallet.name.casefold() for e in others):
                raise NameConflict(f"Wallet name already exists: {wallet.name}")
            if any(e.address == wallet.address for e in others):
                raise AddressConflict(f"Wallet address already exists: {wallet.address}")

            key = self.derive_key(password, token, allocate_salt=False)
            entries[position] = IndexEntry(
                id=wallet.id,
                name=wallet.name,
                address=wallet.address,
                created_at=wallet.created_at,
                is_active=entries[position].is_active,
                encrypted_data=encrypt_record(wallet.to_dict(), key, self.rng),
            )
            self.store.set({KEY_ENCRYPTED_WALLETS: [e.to_dict() for e in entries]})

    def update_active_index(self, active_id: str) -> None:
        """Index-only delta: flip isActive flags and activeWalletId, no re-encryption."""
        with self.mutex:
            entries = self._index()
            if not any(e.id == active_id for e in entries):
                raise WalletNotFound(f"Wallet not found: {active_id}")
            for entry in entries:
                entry.is_active = entry.id == active_id
            self.store.set({
                KEY_ACTIVE_WALLET_ID: active_id,
                KEY_ENCRYPTED_WALLETS: [e.to_dict() for e in entries],
            })

    # ============================================
    # Read path
    # ============================================

    def _index(self) -> list[IndexEntry]:
        raw = self.store.get(KEY_ENCRYPTED_WALLETS).get(KEY_ENCRYPTED_WALLETS) or []
        if not isinstance(raw, list):
            raise VaultCorrupted("Wallet index is not a list")
        return [IndexEntry.from_dict(item) for item in raw]

    def load_wallets(self, password: str, token: Optional[CancelToken] = None,
                     strict: bool = False) -> LoadResult:
        """
        Decrypt every record, collecting failures instead of stopping.

        - some records fail: healthy ones are re-persisted, recovered=True
        - every record fails: the vault is cleared, cleaned_up=True
          (raises VaultCorrupted instead when strict=True, after clearing)

        Raises:
            PasswordRejected: the password does not match the stored hash
        """
        with self.mutex:
            entries = self._index()
            stored_active = self.store.get(KEY_ACTIVE_WALLET_ID).get(KEY_ACTIVE_WALLET_ID)
            if not entries:
                return LoadResult(active_id=None)

            self._check_password(password)
            key = self.derive_key(password, token, allocate_salt=False)

            wallets: list[WalletRecord] = []
            corrupted: list[CorruptedEntry] = []
            for entry in entries:
                try:
                    wallet = WalletRecord.from_dict(decrypt_record(entry.encrypted_data, key))
                except (CipherError, BadInputFormat, BadKeyLength) as e:
                    logger.warning(f"Wallet {entry.id} ({entry.address}) failed to decrypt: {e.kind}")
                    corrupted.append(CorruptedEntry(entry.id, entry.name, entry.address, e.message))
                    continue
                wallet.is_active = wallet.id == stored_active
                wallets.append(wallet)

            if not corrupted:
                return LoadResult(wallets=wallets, active_id=stored_active)

            if not wallets:
                self.clear_all_wallets()
                logger.error(f"All {len(corrupted)} wallet(s) failed to decrypt; vault cleared")
                if strict:
                    raise VaultCorrupted(
                        f"All {len(corrupted)} wallet(s) are corrupted; the vault was cleared")
                return LoadResult(active_id=None, recovered=True,
                                  corrupted=corrupted, cleaned_up=True)

            active_id = stored_active if any(w.id == stored_active for w in wallets) else None
            self._write(wallets, key, active_id)
            logger.warning(f"Recovered {len(wallets)} wallet(s); dropped {len(corrupted)} corrupted")
            return LoadResult(wallets=wallets, active_id=active_id,
                              recovered=True, corrupted=corrupted)

    # ============================================
    # Index queries (no decryption)
    # ============================================

    def get_wallet_metadata(self) -> list[dict]:
        return [e.metadata() for e in self._index()]

    def has_wallets(self) -> bool:
        return len(self._index()) > 0

    def get_wallet_count(self) -> int:
        count = self.store.get(KEY_WALLET_COUNT).get(KEY_WALLET_COUNT)
        return count if isinstance(count, int) else len(self._index())

    def can_add_more_wallets(self) -> bool:
        return self.get_wallet_count() < MAX_WALLETS

    def is_wallet_name_unique(self, name: str, exclude_id: Optional[str] = None) -> bool:
        if not name:
            return False
        folded = name.strip().casefold()
        return not any(
            e.name.casefold() == folded and e.id != exclude_id for e in self._index()
        )

    def is_wallet_address_unique(self, address: str, exclude_id: Optional[str] = None) -> bool:
        return not any(e.address == address and e.id != exclude_id for e in self._index())

    # ============================================
    # Maintenance
    # ============================================

    def emergency_storage_repair(self) -> bool:
        """Allocate a salt when wallets or a password hash exist without one."""
        with self.mutex:
            state = self.store.get(KEY_SALT, KEY_ENCRYPTED_WALLETS, KEY_HASHED_PASSWORD)
            if state.get(KEY_SALT):
                return False
            if state.get(KEY_ENCRYPTED_WALLETS) or state.get(KEY_HASHED_PASSWORD):
                self.store.set({KEY_SALT: to_base64(generate_salt(self.rng))})
                logger.warning("Vault salt was missing; allocated a new one")
                return True
            return False

    def clear_all_wallets(self) -> None:
        with self.mutex:
            self.store.remove(*VAULT_KEYS)
            logger.info("Cleared all wallets from storage")
