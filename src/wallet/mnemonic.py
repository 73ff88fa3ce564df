"""
Mnemonic - BIP-39 entropy, phrase and seed handling (12 words).

The English wordlist and the entropy/checksum bit packing come from the
`mnemonic` package; seed stretching runs through our PBKDF2 so it can be
cancelled.
"""

import secrets
from typing import Callable, Optional, Sequence, Union

from mnemonic import Mnemonic

from .errors import BadChecksum, BadEntropyLength, UnknownWord
from .primitives import CancelToken, pbkdf2_hmac_sha512


ENTROPY_BYTES = 16          # 128 bits -> 12 words
WORD_COUNT = 12
SEED_ITERATIONS = 2048
SEED_LENGTH = 64
SEED_SALT_PREFIX = "mnemonic"

_mnemo = Mnemonic("english")
WORDLIST: list[str] = list(_mnemo.wordlist)
_WORDSET = frozenset(WORDLIST)

Phrase = Union[str, Sequence[str]]


def normalize_phrase(phrase: Phrase) -> list[str]:
    """Split a phrase into lowercase words, collapsing whitespace."""
    if isinstance(phrase, str):
        text = phrase
    else:
        text = " ".join(phrase)
    return Mnemonic.normalize_string(text).strip().lower().split()


def generate_entropy(rng: Callable[[int], bytes] = secrets.token_bytes) -> bytes:
    return rng(ENTROPY_BYTES)


def entropy_to_mnemonic(entropy: bytes) -> list[str]:
    """
    Encode 16 bytes of entropy as 12 words.

    The 4-bit checksum is the top of SHA-256(entropy); the 132 bits are
    split into 11-bit wordlist indexes.
    """
    if len(entropy) != ENTROPY_BYTES:
        raise BadEntropyLength(f"Entropy must be {ENTROPY_BYTES} bytes, got {len(entropy)}")
    return _mnemo.to_mnemonic(bytes(entropy)).split(" ")


def mnemonic_to_entropy(phrase: Phrase) -> bytes:
    """
    Recover entropy from a 12-word phrase.

    Raises:
        BadEntropyLength: wrong number of words
        UnknownWord: a word outside the English list
        BadChecksum: checksum bits do not match
    """
    words = normalize_phrase(phrase)
    if len(words) != WORD_COUNT:
        raise BadEntropyLength(f"Expected {WORD_COUNT} words, got {len(words)}")
    for word in words:
        if word not in _WORDSET:
            raise UnknownWord(word)
    try:
        return bytes(_mnemo.to_entropy(words))
    except ValueError as e:
        raise BadChecksum("Mnemonic checksum mismatch") from e


def validate_mnemonic(phrase: Phrase) -> list[str]:
    """Validate and return the normalized word list."""
    mnemonic_to_entropy(phrase)
    return normalize_phrase(phrase)


def is_valid_mnemonic(phrase: Phrase) -> bool:
    try:
        mnemonic_to_entropy(phrase)
    except (BadEntropyLength, UnknownWord, BadChecksum):
        return False
    return True


def generate_mnemonic(rng: Callable[[int], bytes] = secrets.token_bytes) -> list[str]:
    return entropy_to_mnemonic(generate_entropy(rng))


def mnemonic_to_seed(phrase: Phrase, passphrase: str = "",
                     token: Optional[CancelToken] = None) -> bytes:
    """
    BIP-39 seed: PBKDF2-HMAC-SHA-512(phrase, "mnemonic" + passphrase, 2048, 64).

    The phrase is not validated here, matching BIP-39.
    """
    if isinstance(phrase, str):
        text = Mnemonic.normalize_string(phrase)
    else:
        text = Mnemonic.normalize_string(" ".join(phrase))
    salt = Mnemonic.normalize_string(SEED_SALT_PREFIX + passphrase)
    return pbkdf2_hmac_sha512(
        text.encode("utf-8"),
        salt.encode("utf-8"),
        SEED_ITERATIONS,
        SEED_LENGTH,
        token,
    )
