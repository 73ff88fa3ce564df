"""
Command-line interface tests
"""

import io
import json

import pytest

from app import main
from conftest import RFC_PUBLIC, RFC_SECRET
from models.transaction import Transaction
from services.signing import transaction_to_json
from wallet.address import address_from_public_key
from wallet.codec import to_base64
from wallet.keys import recover_from_mnemonic


ZERO_MNEMONIC = " ".join(["abandon"] * 11 + ["about"])


@pytest.fixture
def tx_json(address_a, address_b) -> str:
    tx = Transaction.create(address_a, address_b, "2.5", 3, clock=lambda: 1_700_000_000.25)
    return transaction_to_json(tx)


class TestKeyCommands:
    """Tests for generate, recover and address."""

    def test_generate(self, capsys):
        assert main(["generate"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert len(out["mnemonic"]) == 12
        assert out["address"].startswith("oct")
        assert out["test_signature_valid"] is True
        assert recover_from_mnemonic(out["mnemonic"]).address == out["address"]

    def test_recover(self, capsys):
        assert main(["recover", ZERO_MNEMONIC]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["address"] == recover_from_mnemonic(ZERO_MNEMONIC).address
        assert out["derivationPath"] == "m (Master)"

    def test_recover_with_path(self, capsys):
        assert main(["recover", ZERO_MNEMONIC, "--path", "m/0'"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out["derivationPath"] == "m/0'"
        assert out["address"] != recover_from_mnemonic(ZERO_MNEMONIC).address

    def test_recover_word_count(self, capsys):
        assert main(["recover", " ".join(["abandon"] * 11)]) == 1
        assert capsys.readouterr().err.startswith("error: BadInputFormat:")

    def test_address(self, capsys):
        assert main(["address", to_base64(RFC_PUBLIC)]) == 0
        assert capsys.readouterr().out.strip() == address_from_public_key(RFC_PUBLIC)

    def test_address_bad_length(self, capsys):
        assert main(["address", to_base64(bytes(16))]) == 1
        assert capsys.readouterr().err.startswith("error: BadKeyLength:")


class TestTransactionCommands:
    """Tests for sign and verify."""

    def test_sign_then_verify(self, capsys, tx_json):
        assert main(["sign", tx_json, "--key", to_base64(RFC_SECRET)]) == 0
        signed = json.loads(capsys.readouterr().out)
        assert len(signed["hash"]) == 64

        args = ["verify", tx_json, "--signature", signed["signature"], "--public-key", to_base64(RFC_PUBLIC)]
        assert main(args) == 0
        assert json.loads(capsys.readouterr().out) == {"valid": True}

    def test_verify_wrong_key(self, capsys, tx_json, seed_a):
        assert main(["sign", tx_json, "--key", to_base64(seed_a)]) == 0
        signed = json.loads(capsys.readouterr().out)

        args = ["verify", tx_json, "--signature", signed["signature"], "--public-key", to_base64(RFC_PUBLIC)]
        assert main(args) == 1
        assert json.loads(capsys.readouterr().out) == {"valid": False}

    def test_sign_from_stdin(self, capsys, monkeypatch, tx_json):
        monkeypatch.setattr("sys.stdin", io.StringIO(tx_json))
        assert main(["sign", "-", "--key", to_base64(RFC_SECRET)]) == 0
        from_stdin = json.loads(capsys.readouterr().out)

        main(["sign", tx_json, "--key", to_base64(RFC_SECRET)])
        assert json.loads(capsys.readouterr().out) == from_stdin

    def test_sign_bad_json(self, capsys):
        assert main(["sign", "{nope", "--key", to_base64(RFC_SECRET)]) == 1
        assert capsys.readouterr().err.startswith("error: BadInputFormat:")

    def test_sign_short_key(self, capsys, tx_json):
        assert main(["sign", tx_json, "--key", to_base64(bytes(16))]) == 1
        assert "BadKeyLength" in capsys.readouterr().err


class TestParser:
    """Tests for argument handling."""

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "octra-wallet 0.1.0" in capsys.readouterr().out

    def test_command_required(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2
