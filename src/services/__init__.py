"""
Services package - Signing, settings and logging for the Octra wallet.

Contains:
- TransactionSigner: Canonical-JSON Ed25519 transaction signing
- Settings: User configuration
"""

from .signing import (
    TransactionSigner,
    SignatureResult,
    sign_transaction,
    verify_signature,
    canonical_payload,
    transaction_hash,
)
from .settings import Settings

__all__ = [
    "TransactionSigner",
    "SignatureResult",
    "sign_transaction",
    "verify_signature",
    "canonical_payload",
    "transaction_hash",
    "Settings",
]
