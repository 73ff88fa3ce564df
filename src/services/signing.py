"""
Signing Service - Canonical transaction payloads, signatures and hashes.

Signing policy (used by both signer and verifier):
- drop `message`, `signature` and `public_key`
- emit the schema fields in declared order (from, to_, amount, nonce,
  ou, timestamp), then any extra fields sorted by key
- compact JSON, UTF-8, numbers written as their original token

The signature is detached Ed25519 over those bytes; the transaction
hash is lowercase hex SHA-256 of the same bytes.
"""

import json
import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union

from models.transaction import Transaction
from wallet.codec import SecretBytes, from_base64, to_base64, to_hex
from wallet.errors import BadInputFormat, BadKeyLength, WalletError
from wallet.primitives import keypair_from_seed, sha256, sign_detached, verify_detached

logger = logging.getLogger(__name__)

TransactionLike = Union[Transaction, dict]
PrivateKeyLike = Union[SecretBytes, bytes, str]


# ============================================
# Canonical JSON
# ============================================

def _number_token(value) -> str:
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise BadInputFormat("Non-finite number in transaction")
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise BadInputFormat("Non-finite number in transaction")
        # integral floats are written without a fraction, as JavaScript does
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(int(value))


def canonical_json(value: Any) -> str:
    """Compact deterministic JSON; nested objects are key-sorted."""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float, Decimal)):
        return _number_token(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonical_json(v) for v in value) + "]"
    if isinstance(value, dict):
        parts = []
        for key in sorted(value):
            if not isinstance(key, str):
                raise BadInputFormat("JSON object keys must be strings")
            parts.append(json.dumps(key, ensure_ascii=False) + ":" + canonical_json(value[key]))
        return "{" + ",".join(parts) + "}"
    raise BadInputFormat(f"Unsupported JSON value: {type(value).__name__}")


def _as_transaction(tx: TransactionLike) -> Transaction:
    if isinstance(tx, Transaction):
        return tx
    return Transaction.from_dict(tx)


def canonical_payload(tx: TransactionLike) -> bytes:
    """The exact bytes that get signed and hashed."""
    fields = _as_transaction(tx).signing_fields()
    body = ",".join(
        json.dumps(key, ensure_ascii=False) + ":" + canonical_json(value)
        for key, value in fields
    )
    return ("{" + body + "}").encode("utf-8")


def transaction_to_json(tx: TransactionLike) -> str:
    """Full wire JSON including unsigned fields, for submission."""
    data = _as_transaction(tx).to_dict()
    body = ",".join(
        json.dumps(key, ensure_ascii=False) + ":" + canonical_json(value)
        for key, value in data.items()
    )
    return "{" + body + "}"


def transaction_hash(tx: TransactionLike) -> str:
    return to_hex(sha256(canonical_payload(tx)))


# ============================================
# Sign / Verify
# ============================================

@dataclass
class SignatureResult:
    signature_b64: str
    hash_hex: str

    def to_dict(self) -> dict:
        return {"signature": self.signature_b64, "hash": self.hash_hex}


def _private_key_bytes(private_key: PrivateKeyLike) -> bytes:
    if isinstance(private_key, SecretBytes):
        raw = bytes(private_key)
    elif isinstance(private_key, str):
        raw = from_base64(private_key)
    else:
        raw = bytes(private_key)
    if len(raw) != 32:
        raise BadKeyLength(f"Invalid private key length: {len(raw)} bytes, expected 32 bytes")
    return raw


def sign_transaction(tx: TransactionLike, private_key: PrivateKeyLike) -> SignatureResult:
    """
    Sign the canonical payload.

    Raises:
        BadInputFormat: the transaction cannot be serialized
        BadKeyLength: the key is not 32 bytes
    """
    payload = canonical_payload(tx)
    signature = sign_detached(payload, _private_key_bytes(private_key))
    return SignatureResult(
        signature_b64=to_base64(signature),
        hash_hex=to_hex(sha256(payload)),
    )


def verify_signature(tx: TransactionLike, signature_b64: str, public_key_b64: str) -> bool:
    """True iff the signature covers this transaction's canonical payload. Never raises."""
    try:
        payload = canonical_payload(tx)
        signature = from_base64(signature_b64)
        public_key = from_base64(public_key_b64)
    except WalletError as e:
        logger.debug(f"Signature verification input rejected: {e.kind}")
        return False
    return verify_detached(payload, signature, public_key)


class TransactionSigner:
    """
    Signs transfers for one unlocked wallet.

    Usage:
        signer = TransactionSigner(record.private_key)
        tx = Transaction.create(record.address, to, 1.5, nonce + 1)
        wire = signer.sign_and_attach(tx)
    """

    def __init__(self, private_key: SecretBytes):
        self._private_key = private_key
        self.public_key = keypair_from_seed(bytes(private_key)).public_key

    @property
    def public_key_b64(self) -> str:
        return to_base64(self.public_key)

    def sign(self, tx: TransactionLike) -> SignatureResult:
        return sign_transaction(tx, self._private_key)

    def sign_and_attach(self, tx: TransactionLike) -> Transaction:
        """Sign and fill `signature` and `public_key` on the transaction."""
        tx = _as_transaction(tx)
        result = self.sign(tx)
        tx.signature = result.signature_b64
        tx.public_key = self.public_key_b64
        logger.debug(f"Signed transaction {result.hash_hex}")
        return tx

    def verify(self, tx: TransactionLike, signature_b64: str) -> bool:
        return verify_signature(tx, signature_b64, self.public_key_b64)
