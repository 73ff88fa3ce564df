"""
Wallet Manager - Multi-wallet support (max 5).

Owns the in-memory wallet list and the active id; every mutation goes
through the vault. Callers get copies of records, never the records
holding the live key buffers.
"""

import logging
import secrets
import threading
from typing import Callable, Optional

from models.wallet import (
    SOURCE_GENERATED,
    SOURCE_IMPORTED_KEY,
    METADATA_FIELDS,
    LoadResult,
    WalletMetadata,
    WalletRecord,
    generate_wallet_id,
    iso_timestamp,
    parse_cli_format,
    to_cli_format,
    validate_wallet_name,
)
from utils import now_ms

from .codec import SecretBytes
from .errors import (
    AddressConflict,
    BadInputFormat,
    LastWalletDeletion,
    Locked,
    NameConflict,
    VaultFull,
    WalletNotFound,
)
from .keys import generate_wallet, import_private_key
from .primitives import CancelToken
from .vault import MAX_WALLETS, WalletVault

logger = logging.getLogger(__name__)


DEFAULT_RPC_URL = "https://octra.network"


class WalletManager:
    """
    Create, import, activate, rename, delete and export wallets.

    Usage:
        manager = WalletManager(vault)
        manager.initialize(password)
        record = manager.create_wallet("Main", password)
        manager.set_active_wallet(record.id)

    `ensure_unlocked` runs before every read, export and mutation and
    raises Locked when the session is locked; an auto-lock it triggers
    wipes the records through the session's lock listener.
    """

    def __init__(self, vault: WalletVault,
                 rng: Callable[[int], bytes] = secrets.token_bytes,
                 clock: Callable[[], int] = now_ms,
                 mutex: Optional[threading.RLock] = None,
                 ensure_unlocked: Optional[Callable[[], None]] = None):
        self.vault = vault
        self.rng = rng
        self.clock = clock
        self.mutex = mutex or vault.mutex
        self.ensure_unlocked = ensure_unlocked

        self._wallets: list[WalletRecord] = []
        self._active_id: Optional[str] = None
        self._initialized = False
        self._recovery_info = LoadResult()

    # ============================================
    # Lifecycle
    # ============================================

    def is_ready(self) -> bool:
        return self._initialized

    def initialize(self, password: str, token: Optional[CancelToken] = None) -> LoadResult:
        """
        Load every wallet and settle the active one.

        Storage whose index lists wallets that failed to load is cleared;
        without a stored active id the first wallet becomes active.
        """
        with self.mutex:
            self._check_unlocked()
            result = self.vault.load_wallets(password, token)
            self._drop_wallets()
            self._wallets = result.wallets
            self._active_id = result.active_id
            self._recovery_info = LoadResult(
                recovered=result.recovered,
                corrupted=list(result.corrupted),
                cleaned_up=result.cleaned_up,
            )

            self.fix_inconsistent_state()
            if self._active_id and self._find(self._active_id) is None:
                self._active_id = None
            if self._active_id is None and self._wallets:
                self._activate(self._wallets[0].id)

            self._initialized = True
            logger.info(f"Wallet manager ready with {len(self._wallets)} wallet(s)")
            return LoadResult(
                wallets=[w.copy() for w in self._wallets],
                active_id=self._active_id,
                recovered=result.recovered,
                corrupted=list(result.corrupted),
                cleaned_up=result.cleaned_up,
            )

    def fix_inconsistent_state(self) -> bool:
        """Clear storage when the index lists wallets but none loaded."""
        if not self._wallets and self.vault.get_wallet_metadata():
            self.vault.clear_all_wallets()
            logger.warning("Index listed wallets that failed to load; storage cleared")
            return True
        return False

    def get_recovery_info(self) -> LoadResult:
        return self._recovery_info

    def clear_recovery_info(self) -> None:
        self._recovery_info = LoadResult()

    def _check_unlocked(self) -> None:
        """Run the session guard; it may auto-lock, which wipes every record."""
        if self.ensure_unlocked is not None:
            self.ensure_unlocked()

    def _require_ready(self) -> None:
        self._check_unlocked()
        if not self._initialized:
            raise Locked("Wallet manager is not initialized")

    def _find(self, wallet_id: str) -> Optional[WalletRecord]:
        for wallet in self._wallets:
            if wallet.id == wallet_id:
                return wallet
        return None

    def _get(self, wallet_id: str) -> WalletRecord:
        wallet = self._find(wallet_id)
        if wallet is None:
            raise WalletNotFound(f"Wallet not found: {wallet_id}")
        return wallet

    def _check_new(self, name: str, address: str, exclude_id: Optional[str] = None) -> None:
        folded = name.casefold()
        for wallet in self._wallets:
            if wallet.id == exclude_id:
                continue
            if wallet.name.casefold() == folded:
                raise NameConflict(f"Wallet name already exists: {name}")
            if wallet.address == address:
                raise AddressConflict(f"Wallet address already exists: {address}")

    def _new_record(self, name: str, private_key: SecretBytes, public_key: bytes,
                    address: str, mnemonic: Optional[list[str]], source: str) -> WalletRecord:
        now = self.clock()
        stamp = iso_timestamp(now)
        return WalletRecord(
            id=generate_wallet_id(now, self.rng),
            name=name,
            address=address,
            private_key=private_key,
            public_key=public_key,
            created_at=stamp,
            updated_at=stamp,
            mnemonic=mnemonic,
            metadata=WalletMetadata(source=source),
        )

    def _add(self, record: WalletRecord, password: str, set_active: bool,
             token: Optional[CancelToken]) -> WalletRecord:
        """Append and persist; in-memory state is untouched if the write fails."""
        new_wallets = self._wallets + [record]
        new_active = record.id if set_active or self._active_id is None else self._active_id
        try:
            self.vault.store_wallets(new_wallets, password, new_active, token)
        except Exception:
            for wallet in self._wallets:
                wallet.is_active = wallet.id == self._active_id
            record.wipe()
            raise
        self._wallets = new_wallets
        self._active_id = new_active
        logger.info(f"Added wallet {record.address}")
        return record.copy()

    # ============================================
    # Create / Import
    # ============================================

    def create_wallet(self, name: str, password: str, set_active: bool = True,
                      token: Optional[CancelToken] = None) -> WalletRecord:
        """
        Generate a fresh mnemonic wallet and persist it.

        Raises:
            VaultFull, NameConflict, AddressConflict, BadInputFormat
        """
        with self.mutex:
            self._require_ready()
            name = validate_wallet_name(name)
            if len(self._wallets) >= MAX_WALLETS:
                raise VaultFull(f"Maximum {MAX_WALLETS} wallets allowed")
            self._check_new(name, address="")

            generated = generate_wallet(self.rng, token)
            self._check_new(name, generated.address)
            record = self._new_record(
                name, generated.private_key, generated.public_key,
                generated.address, list(generated.mnemonic), SOURCE_GENERATED,
            )
            return self._add(record, password, set_active, token)

    def import_wallet(self, name: str, private_key_b64: str, address: Optional[str],
                      password: str, set_active: bool = True,
                      token: Optional[CancelToken] = None) -> WalletRecord:
        """
        Import from a base64 private key.

        When `address` is given it must equal the address derived from the
        key.
        """
        with self.mutex:
            self._require_ready()
            name = validate_wallet_name(name)
            if len(self._wallets) >= MAX_WALLETS:
                raise VaultFull(f"Maximum {MAX_WALLETS} wallets allowed")

            imported = import_private_key(private_key_b64)
            if address is not None and address != imported.address:
                imported.private_key.wipe()
                raise BadInputFormat("Address does not match the private key")
            self._check_new(name, imported.address)
            record = self._new_record(
                name, imported.private_key, imported.public_key,
                imported.address, None, SOURCE_IMPORTED_KEY,
            )
            return self._add(record, password, set_active, token)

    def import_cli_wallet(self, data: dict, name: str, password: str,
                          set_active: bool = True) -> WalletRecord:
        """Import a `{priv, addr, rpc}` wallet file."""
        private_key_b64, address = parse_cli_format(data)
        return self.import_wallet(name, private_key_b64, address, password, set_active)

    # ============================================
    # Activate / Rename / Metadata / Delete
    # ============================================

    def set_active_wallet(self, wallet_id: str) -> None:
        """Flip the active flag; persists the index only."""
        with self.mutex:
            self._require_ready()
            self._activate(wallet_id)

    def _activate(self, wallet_id: str) -> None:
        self._get(wallet_id)
        if self._active_id == wallet_id:
            return
        self.vault.update_active_index(wallet_id)
        for wallet in self._wallets:
            wallet.is_active = wallet.id == wallet_id
        self._active_id = wallet_id

    def rename_wallet(self, wallet_id: str, new_name: str, password: str,
                      token: Optional[CancelToken] = None) -> None:
        with self.mutex:
            self._require_ready()
            wallet = self._get(wallet_id)
            new_name = validate_wallet_name(new_name)
            self._check_new(new_name, address="", exclude_id=wallet_id)

            updated = wallet.copy()
            updated.name = new_name
            updated.updated_at = iso_timestamp(self.clock())
            self.vault.update_wallet(updated, password, token)
            wallet.name = updated.name
            wallet.updated_at = updated.updated_at
            updated.wipe()

    def update_metadata(self, wallet_id: str, metadata: dict, password: str,
                        token: Optional[CancelToken] = None) -> None:
        """Merge icon / color / category into a wallet's metadata."""
        with self.mutex:
            self._require_ready()
            wallet = self._get(wallet_id)
            unknown = set(metadata) - set(METADATA_FIELDS)
            if unknown:
                raise BadInputFormat(f"Unknown metadata fields: {', '.join(sorted(unknown))}")

            updated = wallet.copy()
            for key, value in metadata.items():
                setattr(updated.metadata, key, value)
            updated.updated_at = iso_timestamp(self.clock())
            self.vault.update_wallet(updated, password, token)
            wallet.metadata = updated.metadata
            wallet.updated_at = updated.updated_at
            updated.wipe()

    def delete_wallet(self, wallet_id: str, password: str,
                      token: Optional[CancelToken] = None) -> None:
        """
        Remove a wallet and wipe its keys.

        The last wallet cannot be deleted. Deleting the active wallet makes
        the first remaining one active.
        """
        with self.mutex:
            self._require_ready()
            if len(self._wallets) <= 1:
                raise LastWalletDeletion("Cannot delete the last wallet")
            wallet = self._get(wallet_id)

            remaining = [w for w in self._wallets if w.id != wallet_id]
            new_active = remaining[0].id if self._active_id == wallet_id else self._active_id
            try:
                self.vault.store_wallets(remaining, password, new_active, token)
            except Exception:
                for w in self._wallets:
                    w.is_active = w.id == self._active_id
                raise
            self._wallets = remaining
            self._active_id = new_active
            wallet.wipe()
            logger.info(f"Deleted wallet {wallet.address}")

    # ============================================
    # Queries
    # ============================================

    @property
    def active_wallet_id(self) -> Optional[str]:
        return self._active_id

    def get_active_wallet(self) -> Optional[WalletRecord]:
        with self.mutex:
            self._require_ready()
            if self._active_id is None:
                return None
            wallet = self._find(self._active_id)
            if wallet is None or wallet.private_key.wiped:
                return None
            return wallet.copy()

    def get_all_wallets(self) -> list[WalletRecord]:
        with self.mutex:
            self._require_ready()
            return [w.copy() for w in self._wallets]

    def get_wallet_by_id(self, wallet_id: str) -> Optional[WalletRecord]:
        with self.mutex:
            self._require_ready()
            wallet = self._find(wallet_id)
            return wallet.copy() if wallet else None

    def get_wallet_metadata(self) -> list[dict]:
        with self.mutex:
            self._check_unlocked()
            return [w.public_info() for w in self._wallets]

    def get_wallet_count(self) -> int:
        with self.mutex:
            self._check_unlocked()
            return len(self._wallets)

    def can_add_more_wallets(self) -> bool:
        return self.get_wallet_count() < MAX_WALLETS

    # ============================================
    # Export
    # ============================================

    def export_wallet(self, wallet_id: str) -> dict:
        """Full backup of one wallet, including its key and mnemonic."""
        with self.mutex:
            self._require_ready()
            wallet = self._get(wallet_id)
            return {
                "name": wallet.name,
                "address": wallet.address,
                "privateKey": wallet.private_key_b64,
                "publicKey": wallet.public_key_b64,
                "mnemonic": list(wallet.mnemonic) if wallet.mnemonic else None,
                "createdAt": wallet.created_at,
                "exportedAt": iso_timestamp(self.clock()),
                "version": wallet.metadata.version,
            }

    def export_cli_format(self, wallet_id: str, rpc_url: str = DEFAULT_RPC_URL) -> dict:
        with self.mutex:
            self._require_ready()
            return to_cli_format(self._get(wallet_id), rpc_url)

    # ============================================
    # Wipe
    # ============================================

    def _drop_wallets(self) -> None:
        for wallet in self._wallets:
            wallet.wipe()
        self._wallets = []

    def clear_sensitive_data(self) -> None:
        """Wipe every key buffer and drop the records."""
        with self.mutex:
            self._drop_wallets()
            self._initialized = False
            logger.debug("Cleared wallet key material from memory")

    def clear_all_wallets(self) -> None:
        """Forget every wallet, in memory and in storage."""
        with self.mutex:
            self._drop_wallets()
            self._active_id = None
            self._initialized = False
            self.vault.clear_all_wallets()
