"""
Keys - Octra key derivation.

Contains:
- derive_master_key: HMAC-SHA-512("Octra seed", seed) -> (private key, chain code)
- derive_child_key / derive_path: Ed25519 HD derivation used by recovery
- generate_wallet / wallet_from_entropy: full mnemonic -> address pipeline
- recover_from_mnemonic: rebuild keys from an existing phrase
- import_private_key: public key and address from a raw private key
"""

import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Optional

from .address import address_from_public_key
from .codec import SecretBytes, decode_key_b64, to_base64, to_hex
from .errors import BadInputFormat, BadKeyLength
from .mnemonic import (
    WORD_COUNT,
    Phrase,
    entropy_to_mnemonic,
    generate_entropy,
    mnemonic_to_seed,
    normalize_phrase,
)
from .primitives import (
    CancelToken,
    ED25519_SEED_SIZE,
    hmac_sha512,
    keypair_from_seed,
    sign_detached,
    verify_detached,
)

logger = logging.getLogger(__name__)


MASTER_KEY_DOMAIN = b"Octra seed"
HARDENED_OFFSET = 0x80000000

# Signed during generation to prove the fresh keypair round-trips
TEST_MESSAGE = '{"from":"test","to":"test","amount":"1000000","nonce":1}'


# ============================================
# Master / child derivation
# ============================================

@dataclass
class ExtendedKey:
    """A private key with its chain code."""
    private_key: bytes
    chain_code: bytes

    def __repr__(self) -> str:
        return "ExtendedKey(<redacted>)"


def derive_master_key(seed: bytes) -> ExtendedKey:
    """
    Split HMAC-SHA-512(key="Octra seed", msg=seed).

    The first half is the Ed25519 seed; the second is the chain code,
    reported for compatibility only.
    """
    mac = hmac_sha512(MASTER_KEY_DOMAIN, seed)
    return ExtendedKey(private_key=mac[:32], chain_code=mac[32:64])


def derive_child_key(parent: ExtendedKey, index: int) -> ExtendedKey:
    """
    One HD step.

    Hardened (index >= 2^31): data = 0x00 || parent_priv || index_be32
    Normal:                   data = parent_pub || index_be32
    """
    if not 0 <= index <= 0xFFFFFFFF:
        raise BadInputFormat(f"Child index out of range: {index}")
    index_bytes = index.to_bytes(4, "big")
    if index >= HARDENED_OFFSET:
        data = b"\x00" + parent.private_key + index_bytes
    else:
        data = keypair_from_seed(parent.private_key).public_key + index_bytes
    mac = hmac_sha512(parent.chain_code, data)
    return ExtendedKey(private_key=mac[:32], chain_code=mac[32:64])


def parse_path(path: str) -> list[int]:
    """Parse "m/345'/0'/0" style paths; ' and h both mark hardening."""
    if not isinstance(path, str):
        raise BadInputFormat("Derivation path must be a string")
    indexes = []
    for segment in path.strip().lower().split("/"):
        if segment in ("m", ""):
            continue
        hardened = segment.endswith("'") or segment.endswith("h")
        number = segment.rstrip("'h")
        if not number.isdigit():
            raise BadInputFormat(f"Invalid path segment: {segment}")
        index = int(number)
        if index >= HARDENED_OFFSET:
            raise BadInputFormat(f"Path index too large: {segment}")
        indexes.append(index + HARDENED_OFFSET if hardened else index)
    return indexes


def derive_path(master: ExtendedKey, path: Optional[str]) -> ExtendedKey:
    if not path or path in ("m", "/"):
        return master
    key = master
    for index in parse_path(path):
        key = derive_child_key(key, index)
    return key


# ============================================
# Wallet material
# ============================================

@dataclass
class GeneratedWallet:
    """Everything produced by the generation pipeline."""
    entropy_hex: str
    mnemonic: list[str]
    seed_hex: str
    master_chain_hex: str
    private_key: SecretBytes
    public_key: bytes
    address: str
    test_signature: str = ""
    test_signature_valid: bool = False
    test_message: str = field(default=TEST_MESSAGE)

    @property
    def private_key_b64(self) -> str:
        return self.private_key.b64()

    @property
    def public_key_b64(self) -> str:
        return to_base64(self.public_key)

    def to_dict(self) -> dict:
        return {
            "entropy_hex": self.entropy_hex,
            "mnemonic": list(self.mnemonic),
            "seed_hex": self.seed_hex,
            "master_chain_hex": self.master_chain_hex,
            "private_key_hex": to_hex(bytes(self.private_key)),
            "public_key_hex": to_hex(self.public_key),
            "private_key_b64": self.private_key_b64,
            "public_key_b64": self.public_key_b64,
            "address": self.address,
            "test_message": self.test_message,
            "test_signature": self.test_signature,
            "test_signature_valid": self.test_signature_valid,
        }

    def __repr__(self) -> str:
        return f"GeneratedWallet(address={self.address})"


def wallet_from_entropy(entropy: bytes, token: Optional[CancelToken] = None) -> GeneratedWallet:
    """Deterministic pipeline: entropy -> mnemonic -> seed -> master -> keypair -> address."""
    words = entropy_to_mnemonic(entropy)
    seed = mnemonic_to_seed(" ".join(words), token=token)
    master = derive_master_key(seed)
    pair = keypair_from_seed(master.private_key)

    message = TEST_MESSAGE.encode("utf-8")
    signature = sign_detached(message, master.private_key)

    return GeneratedWallet(
        entropy_hex=to_hex(entropy),
        mnemonic=words,
        seed_hex=to_hex(seed),
        master_chain_hex=to_hex(master.chain_code),
        private_key=SecretBytes(master.private_key),
        public_key=pair.public_key,
        address=address_from_public_key(pair.public_key),
        test_signature=to_base64(signature),
        test_signature_valid=verify_detached(message, signature, pair.public_key),
    )


def generate_wallet(rng: Callable[[int], bytes] = secrets.token_bytes,
                    token: Optional[CancelToken] = None) -> GeneratedWallet:
    """Generate a fresh 12-word wallet from OS randomness."""
    wallet = wallet_from_entropy(generate_entropy(rng), token=token)
    if not wallet.test_signature_valid:
        raise BadKeyLength("Generated keypair failed its signature self-test")
    logger.debug(f"Generated wallet {wallet.address}")
    return wallet


@dataclass
class RecoveredWallet:
    address: str
    private_key: SecretBytes
    public_key: bytes
    derivation_path: str
    seed_hex: str

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "privateKey": self.private_key.b64(),
            "publicKey": to_base64(self.public_key),
            "derivationPath": self.derivation_path,
            "seedHex": self.seed_hex,
        }


def recover_from_mnemonic(phrase: Phrase, derivation_path: Optional[str] = None,
                          passphrase: str = "",
                          token: Optional[CancelToken] = None) -> RecoveredWallet:
    """
    Rebuild a wallet from its 12-word phrase.

    Without a path the master key is used directly, matching what
    generate_wallet produces.
    """
    words = normalize_phrase(phrase)
    if len(words) != WORD_COUNT:
        raise BadInputFormat(f"Invalid mnemonic: expected {WORD_COUNT} words, got {len(words)}")
    seed = mnemonic_to_seed(" ".join(words), passphrase, token=token)
    key = derive_path(derive_master_key(seed), derivation_path)
    pair = keypair_from_seed(key.private_key)
    return RecoveredWallet(
        address=address_from_public_key(pair.public_key),
        private_key=SecretBytes(key.private_key),
        public_key=pair.public_key,
        derivation_path=derivation_path or "m (Master)",
        seed_hex=to_hex(seed),
    )


@dataclass
class ImportedKey:
    private_key: SecretBytes
    public_key: bytes
    address: str


def import_private_key(private_key_b64: str) -> ImportedKey:
    """Derive public key and address from a base64 32-byte private key."""
    raw = decode_key_b64(private_key_b64, ED25519_SEED_SIZE, "private key")
    pair = keypair_from_seed(raw)
    return ImportedKey(
        private_key=SecretBytes(raw),
        public_key=pair.public_key,
        address=address_from_public_key(pair.public_key),
    )
