"""
Wallet package - Key management and cryptography for the Octra wallet.

Contains:
- codec / primitives: encodings, hashes, AES-GCM, Ed25519, secure buffers
- mnemonic / keys / address: BIP39 phrases, HD keys, oct addresses
- balance / transfer: encrypted balance and private transfer amounts
- crypto: password-derived record encryption
- vault / session / manager / context: persistent multi-wallet state
  (import these from their modules)
"""

__version__ = "0.1.0"

from .errors import (
    WalletError,
    BadInputFormat,
    BadKeyLength,
    BadEntropyLength,
    BadChecksum,
    UnknownWord,
    CipherError,
    AuthenticationFailed,
    UnsupportedVersion,
    MalformedCiphertext,
    PasswordRejected,
    VaultFull,
    NameConflict,
    AddressConflict,
    VaultCorrupted,
    WalletNotFound,
    LastWalletDeletion,
    Locked,
    TimedOut,
    Cancelled,
    StorageFailure,
)
from .codec import SecretBytes
from .primitives import CancelToken, Deadline, KeyPair, keypair_from_seed
from .mnemonic import (
    generate_mnemonic,
    validate_mnemonic,
    is_valid_mnemonic,
    mnemonic_to_seed,
)
from .keys import (
    generate_wallet,
    recover_from_mnemonic,
    import_private_key,
    derive_master_key,
    derive_path,
)
from .address import derive_address, verify_address_format
from .balance import encrypt_balance, decrypt_balance
from .transfer import derive_shared_secret, encrypt_private_amount, decrypt_private_amount
from .crypto import calculate_password_strength

__all__ = [
    "__version__",
    # Errors
    "WalletError",
    "BadInputFormat",
    "BadKeyLength",
    "BadEntropyLength",
    "BadChecksum",
    "UnknownWord",
    "CipherError",
    "AuthenticationFailed",
    "UnsupportedVersion",
    "MalformedCiphertext",
    "PasswordRejected",
    "VaultFull",
    "NameConflict",
    "AddressConflict",
    "VaultCorrupted",
    "WalletNotFound",
    "LastWalletDeletion",
    "Locked",
    "TimedOut",
    "Cancelled",
    "StorageFailure",
    # Primitives
    "SecretBytes",
    "CancelToken",
    "Deadline",
    "KeyPair",
    "keypair_from_seed",
    # Keys
    "generate_mnemonic",
    "validate_mnemonic",
    "is_valid_mnemonic",
    "mnemonic_to_seed",
    "generate_wallet",
    "recover_from_mnemonic",
    "import_private_key",
    "derive_master_key",
    "derive_path",
    "derive_address",
    "verify_address_format",
    # Encrypted amounts
    "encrypt_balance",
    "decrypt_balance",
    "derive_shared_secret",
    "encrypt_private_amount",
    "decrypt_private_amount",
    # Passwords
    "calculate_password_strength",
]
