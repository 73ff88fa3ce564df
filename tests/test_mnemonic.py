"""
BIP-39 mnemonic tests
"""

import hashlib

import pytest

from wallet.errors import BadChecksum, BadEntropyLength, Cancelled, UnknownWord
from wallet.mnemonic import (
    WORDLIST,
    entropy_to_mnemonic,
    generate_mnemonic,
    is_valid_mnemonic,
    mnemonic_to_entropy,
    mnemonic_to_seed,
    normalize_phrase,
    validate_mnemonic,
)
from wallet.primitives import CancelToken


ZERO_PHRASE = " ".join(["abandon"] * 11 + ["about"])
ZERO_SEED = (
    "5eb00bbddcf069084889a8ab9155568165f5c453ccb85e70811aaed6f6da5fc1"
    "9a5ac40b389cd370d086206dec8aa6c43daea6690f20ad3d8d48b2d2ce9e38e4"
)
ZERO_SEED_TREZOR = (
    "c55257c360c07c72029aebc1b53c05ed0362ada38ead3e3e9efa3708e5349553"
    "1f09a6987599d18264c1e1c92f2cf141630c7a3c4ab7c81b2f001698e7463b04"
)


class TestEntropy:
    """Tests for entropy <-> phrase conversion."""

    def test_zero_entropy(self):
        assert " ".join(entropy_to_mnemonic(bytes(16))) == ZERO_PHRASE

    @pytest.mark.parametrize("entropy", [
        bytes(16),
        bytes(range(16)),
        b"\xff" * 16,
        bytes.fromhex("7f7f7f7f7f7f7f7f7f7f7f7f7f7f7f7f"),
    ])
    def test_round_trip(self, entropy):
        words = entropy_to_mnemonic(entropy)
        assert len(words) == 12
        assert all(word in WORDLIST for word in words)
        assert mnemonic_to_entropy(words) == entropy

    def test_wordlist_size(self):
        assert len(WORDLIST) == 2048
        assert WORDLIST[0] == "abandon"
        assert WORDLIST[-1] == "zoo"

    def test_wrong_entropy_length(self):
        with pytest.raises(BadEntropyLength):
            entropy_to_mnemonic(bytes(15))

    def test_generate_uses_rng(self, rng):
        words = generate_mnemonic(rng)
        assert is_valid_mnemonic(words)


class TestValidation:
    """Tests for phrase validation."""

    def test_normalizes_case_and_whitespace(self):
        messy = "  ABANDON abandon\tabandon abandon abandon abandon abandon abandon abandon abandon abandon  About "
        assert normalize_phrase(messy) == ZERO_PHRASE.split()
        assert validate_mnemonic(messy) == ZERO_PHRASE.split()

    def test_word_count(self):
        with pytest.raises(BadEntropyLength):
            mnemonic_to_entropy(" ".join(["abandon"] * 11))

    def test_unknown_word(self):
        with pytest.raises(UnknownWord):
            mnemonic_to_entropy(" ".join(["abandon"] * 11 + ["octra"]))

    def test_bad_checksum(self):
        with pytest.raises(BadChecksum):
            mnemonic_to_entropy(" ".join(["abandon"] * 12))

    def test_is_valid(self):
        assert is_valid_mnemonic(ZERO_PHRASE)
        assert not is_valid_mnemonic(" ".join(["abandon"] * 12))
        assert not is_valid_mnemonic("abandon")


class TestSeed:
    """Tests for seed stretching."""

    def test_zero_phrase_seed(self):
        assert mnemonic_to_seed(ZERO_PHRASE).hex() == ZERO_SEED

    def test_passphrase(self):
        assert mnemonic_to_seed(ZERO_PHRASE, "TREZOR").hex() == ZERO_SEED_TREZOR

    def test_matches_pbkdf2(self):
        phrase = " ".join(entropy_to_mnemonic(bytes(range(16))))
        expected = hashlib.pbkdf2_hmac("sha512", phrase.encode(), b"mnemonicpass", 2048, 64)
        assert mnemonic_to_seed(phrase, "pass") == expected

    def test_word_list_input(self):
        assert mnemonic_to_seed(ZERO_PHRASE.split()).hex() == ZERO_SEED

    def test_cancellable(self):
        token = CancelToken()
        assert mnemonic_to_seed(ZERO_PHRASE, token=token).hex() == ZERO_SEED
        token.cancel()
        with pytest.raises(Cancelled):
            mnemonic_to_seed(ZERO_PHRASE, token=token)
