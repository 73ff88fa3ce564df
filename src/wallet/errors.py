"""
Wallet Errors - Typed failures raised by the wallet core.

Every error carries a stable ``kind`` string so callers (and the CLI)
can branch on the failure without matching message text.
"""


class WalletError(Exception):
    """Base class for all wallet core failures."""
    kind = "WalletError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"kind": self.kind, "error": self.message}


# ============================================
# Input / Codec
# ============================================

class BadInputFormat(WalletError, ValueError):
    kind = "BadInputFormat"


class BadKeyLength(WalletError, ValueError):
    kind = "BadKeyLength"


# ============================================
# Mnemonic
# ============================================

class MnemonicError(WalletError, ValueError):
    kind = "MnemonicError"


class BadEntropyLength(MnemonicError):
    kind = "BadEntropyLength"


class BadChecksum(MnemonicError):
    kind = "BadChecksum"


class UnknownWord(MnemonicError):
    kind = "UnknownWord"

    def __init__(self, word: str):
        super().__init__(f"Unknown mnemonic word: {word!r}")
        self.word = word


# ============================================
# Ciphers
# ============================================

class CipherError(WalletError):
    kind = "CipherError"


class AuthenticationFailed(CipherError):
    kind = "AuthenticationFailed"


class UnsupportedVersion(CipherError):
    kind = "UnsupportedVersion"


class MalformedCiphertext(CipherError):
    kind = "MalformedCiphertext"


# ============================================
# Vault / Session
# ============================================

class PasswordRejected(WalletError):
    kind = "PasswordRejected"


class VaultFull(WalletError):
    kind = "VaultFull"


class NameConflict(WalletError):
    kind = "NameConflict"


class AddressConflict(WalletError):
    kind = "AddressConflict"


class VaultCorrupted(WalletError):
    kind = "VaultCorrupted"


class WalletNotFound(WalletError, LookupError):
    kind = "WalletNotFound"


class LastWalletDeletion(WalletError):
    kind = "LastWalletDeletion"


class Locked(WalletError):
    kind = "Locked"


class TimedOut(WalletError):
    kind = "TimedOut"


class Cancelled(WalletError):
    kind = "Cancelled"


class StorageFailure(WalletError):
    kind = "StorageFailure"
