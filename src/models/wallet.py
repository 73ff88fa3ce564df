"""
Wallet models - records held in the vault and the plaintext index beside them.

A WalletRecord is the decrypted form; its JSON (camelCase, keys in
base64) is what gets encrypted. IndexEntry is the plaintext
`{id, name, address, createdAt, isActive, encryptedData}` list persisted
under `encryptedWallets`.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from wallet.address import address_from_public_key, verify_address_format
from wallet.codec import SecretBytes, decode_key_b64, to_base64, to_hex
from wallet.errors import BadInputFormat, BadKeyLength
from wallet.primitives import ED25519_PUBLIC_SIZE, ED25519_SEED_SIZE, keypair_from_seed


RECORD_VERSION = "1.0"
MAX_NAME_LENGTH = 30

SOURCE_GENERATED = "generated"
SOURCE_IMPORTED_KEY = "imported_key"
SOURCES = (SOURCE_GENERATED, SOURCE_IMPORTED_KEY)

METADATA_FIELDS = ("icon", "color", "category")


def iso_timestamp(ms: int) -> str:
    """Milliseconds since epoch -> ISO 8601 UTC with a Z suffix."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_wallet_id(now_ms: int, rng: Callable[[int], bytes] = secrets.token_bytes) -> str:
    return f"wallet_{now_ms}_{to_hex(rng(16))[:9]}"


def validate_wallet_name(name) -> str:
    """Trimmed name of 1-30 printable characters."""
    if not isinstance(name, str):
        raise BadInputFormat("Wallet name must be a string")
    name = name.strip()
    if not name:
        raise BadInputFormat("Wallet name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise BadInputFormat(f"Wallet name must be at most {MAX_NAME_LENGTH} characters")
    if not name.isprintable():
        raise BadInputFormat("Wallet name contains non-printable characters")
    return name


@dataclass
class WalletMetadata:
    version: str = RECORD_VERSION
    source: str = SOURCE_GENERATED
    icon: Optional[str] = None
    color: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "source": self.source,
            "icon": self.icon,
            "color": self.color,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "WalletMetadata":
        data = data or {}
        if not isinstance(data, dict):
            raise BadInputFormat(f"Wallet metadata must be an object, got {type(data).__name__}")
        source = data.get("source", SOURCE_GENERATED)
        if source not in SOURCES:
            raise BadInputFormat(f"Unknown wallet source: {source!r}")
        return cls(
            version=str(data.get("version", RECORD_VERSION)),
            source=source,
            icon=data.get("icon"),
            color=data.get("color"),
            category=data.get("category"),
        )


@dataclass
class WalletRecord:
    """A decrypted wallet. `private_key` is wiped on lock and delete."""
    id: str
    name: str
    address: str
    private_key: SecretBytes
    public_key: bytes
    created_at: str
    updated_at: str
    mnemonic: Optional[list[str]] = None
    is_active: bool = False
    metadata: WalletMetadata = field(default_factory=WalletMetadata)

    def __post_init__(self):
        if len(self.private_key) != ED25519_SEED_SIZE:
            raise BadKeyLength(f"Invalid private key length: {len(self.private_key)} bytes")
        if len(self.public_key) != ED25519_PUBLIC_SIZE:
            raise BadKeyLength(f"Invalid public key length: {len(self.public_key)} bytes")

    def __repr__(self) -> str:
        return f"WalletRecord(id={self.id!r}, name={self.name!r}, address={self.address!r})"

    @property
    def private_key_b64(self) -> str:
        return self.private_key.b64()

    @property
    def public_key_b64(self) -> str:
        return to_base64(self.public_key)

    def to_dict(self) -> dict:
        """Full JSON form, including secrets. This is what gets encrypted."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "privateKey": self.private_key_b64,
            "publicKey": self.public_key_b64,
            "mnemonic": list(self.mnemonic) if self.mnemonic else None,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "isActive": self.is_active,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WalletRecord":
        """
        Rebuild a record from its JSON form.

        The public key is re-derived when absent; a stored public key
        or address that disagrees with the private key is rejected.
        """
        if not isinstance(data, dict):
            raise BadInputFormat(f"Wallet record must be an object, got {type(data).__name__}")
        try:
            private_key = decode_key_b64(data["privateKey"], ED25519_SEED_SIZE, "private key")
            derived = keypair_from_seed(private_key).public_key
            if data.get("publicKey"):
                public_key = decode_key_b64(data["publicKey"], ED25519_PUBLIC_SIZE, "public key")
                if public_key != derived:
                    raise BadInputFormat("Stored public key does not match private key")
            else:
                public_key = derived
            address = data["address"]
            if address != address_from_public_key(public_key):
                raise BadInputFormat("Stored address does not match public key")
            mnemonic = data.get("mnemonic")
            if isinstance(mnemonic, str):
                mnemonic = mnemonic.split()
            elif mnemonic is not None and (
                    not isinstance(mnemonic, list) or not all(isinstance(w, str) for w in mnemonic)):
                raise BadInputFormat("Wallet mnemonic must be a list of words")
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                address=address,
                private_key=SecretBytes(private_key),
                public_key=public_key,
                created_at=data.get("createdAt", ""),
                updated_at=data.get("updatedAt", data.get("createdAt", "")),
                mnemonic=list(mnemonic) if mnemonic else None,
                is_active=bool(data.get("isActive", False)),
                metadata=WalletMetadata.from_dict(data.get("metadata")),
            )
        except KeyError as e:
            raise BadInputFormat(f"Wallet record missing field: {e.args[0]}") from e

    def copy(self) -> "WalletRecord":
        """Independent snapshot with its own key buffer."""
        return WalletRecord(
            id=self.id,
            name=self.name,
            address=self.address,
            private_key=self.private_key.copy(),
            public_key=bytes(self.public_key),
            created_at=self.created_at,
            updated_at=self.updated_at,
            mnemonic=list(self.mnemonic) if self.mnemonic else None,
            is_active=self.is_active,
            metadata=WalletMetadata(**self.metadata.to_dict()),
        )

    def public_info(self) -> dict:
        """Metadata without key material."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "createdAt": self.created_at,
            "isActive": self.is_active,
            "metadata": {k: getattr(self.metadata, k) for k in ("source",) + METADATA_FIELDS},
        }

    def wipe(self) -> None:
        """Overwrite key bytes and drop the mnemonic."""
        self.private_key.wipe()
        if self.mnemonic:
            for i in range(len(self.mnemonic)):
                self.mnemonic[i] = ""
        self.mnemonic = None


@dataclass
class IndexEntry:
    """Plaintext index row stored beside each encrypted record."""
    id: str
    name: str
    address: str
    created_at: str
    is_active: bool
    encrypted_data: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "createdAt": self.created_at,
            "isActive": self.is_active,
            "encryptedData": self.encrypted_data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        if not isinstance(data, dict):
            raise BadInputFormat("Index entry must be a JSON object")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            address=str(data.get("address", "")),
            created_at=str(data.get("createdAt", "")),
            is_active=bool(data.get("isActive", False)),
            encrypted_data=data.get("encryptedData", ""),
        )

    def metadata(self) -> dict:
        """The index row without the encrypted blob."""
        data = self.to_dict()
        del data["encryptedData"]
        return data


@dataclass
class CorruptedEntry:
    """An index row whose blob failed to decrypt."""
    id: str
    name: str
    address: str
    error: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "address": self.address, "error": self.error}


@dataclass
class LoadResult:
    wallets: list[WalletRecord] = field(default_factory=list)
    active_id: Optional[str] = None
    recovered: bool = False
    corrupted: list[CorruptedEntry] = field(default_factory=list)
    cleaned_up: bool = False

    def to_dict(self) -> dict:
        return {
            "wallets": [w.public_info() for w in self.wallets],
            "activeWalletId": self.active_id,
            "recovered": self.recovered,
            "corrupted": [c.to_dict() for c in self.corrupted],
            "cleanedUp": self.cleaned_up,
        }


# ============================================
# CLI-compatible format
# ============================================

def to_cli_format(record: WalletRecord, rpc_url: str) -> dict:
    """The `{priv, addr, rpc}` shape used by the command-line client."""
    return {"priv": record.private_key_b64, "addr": record.address, "rpc": rpc_url}


def parse_cli_format(data: dict) -> tuple[str, str]:
    """Validate a `{priv, addr, rpc}` mapping; returns (priv_b64, address)."""
    if not isinstance(data, dict):
        raise BadInputFormat("Wallet file must be a JSON object")
    if not data.get("priv"):
        raise BadInputFormat('Missing "priv" field')
    if not data.get("addr"):
        raise BadInputFormat('Missing "addr" field')
    if not verify_address_format(data["addr"]):
        raise BadInputFormat('Invalid address format: must be 47-49 characters starting with "oct"')
    return data["priv"], data["addr"]
