"""
Models package - Data models for the Octra wallet.

Contains:
- Transaction: Transfer payload and fee rules
- WalletRecord, IndexEntry, LoadResult: Vault records and load outcome
- KeyValueStore, MemoryStore, JsonFileStore: Persistence
"""

from .transaction import (
    Transaction,
    MICRO_UNITS,
    calculate_fee,
    to_micro_units,
)
from .wallet import (
    WalletRecord,
    WalletMetadata,
    IndexEntry,
    CorruptedEntry,
    LoadResult,
    to_cli_format,
    parse_cli_format,
)
from .store import KeyValueStore, MemoryStore, JsonFileStore

__all__ = [
    "Transaction",
    "MICRO_UNITS",
    "calculate_fee",
    "to_micro_units",
    "WalletRecord",
    "WalletMetadata",
    "IndexEntry",
    "CorruptedEntry",
    "LoadResult",
    "to_cli_format",
    "parse_cli_format",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
]
