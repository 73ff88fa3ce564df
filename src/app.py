"""
Octra Wallet - Command-line tools for Octra keys and transactions.

Entry point for the `octra-wallet` command.
"""

import argparse
import json
import logging
import sys
from typing import Optional

from models.transaction import Transaction
from services.logging import configure_logging
from services.settings import Settings
from services.signing import sign_transaction, verify_signature
from wallet import __version__
from wallet.address import derive_address
from wallet.errors import WalletError
from wallet.keys import generate_wallet, recover_from_mnemonic

logger = logging.getLogger(__name__)


def _read_transaction(text: str) -> Transaction:
    """TX_JSON argument; '-' reads it from stdin."""
    if text == "-":
        text = sys.stdin.read()
    return Transaction.from_json(text)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2))


def cmd_generate(args) -> int:
    _print_json(generate_wallet().to_dict())
    return 0


def cmd_recover(args) -> int:
    _print_json(recover_from_mnemonic(args.mnemonic, args.path).to_dict())
    return 0


def cmd_address(args) -> int:
    print(derive_address(args.public_key))
    return 0


def cmd_sign(args) -> int:
    tx = _read_transaction(args.tx_json)
    _print_json(sign_transaction(tx, args.key).to_dict())
    return 0


def cmd_verify(args) -> int:
    tx = _read_transaction(args.tx_json)
    valid = verify_signature(tx, args.signature, args.public_key)
    _print_json({"valid": valid})
    return 0 if valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="octra-wallet",
        description="Octra wallet key and transaction tools",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("generate", help="print a fresh wallet as JSON")
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("recover", help="recover a wallet from its 12-word mnemonic")
    p.add_argument("mnemonic", help="the mnemonic, quoted as one argument")
    p.add_argument("--path", default=None, help="derivation path such as m/0'")
    p.set_defaults(func=cmd_recover)

    p = sub.add_parser("address", help="derive the address of a base64 public key")
    p.add_argument("public_key", metavar="PUBKEY_B64")
    p.set_defaults(func=cmd_address)

    p = sub.add_parser("sign", help="sign a transaction")
    p.add_argument("tx_json", metavar="TX_JSON", help="transaction JSON, or - for stdin")
    p.add_argument("--key", required=True, metavar="PRIV_B64", help="base64 private key")
    p.set_defaults(func=cmd_sign)

    p = sub.add_parser("verify", help="verify a transaction signature")
    p.add_argument("tx_json", metavar="TX_JSON", help="transaction JSON, or - for stdin")
    p.add_argument("--signature", required=True, metavar="SIG_B64")
    p.add_argument("--public-key", required=True, metavar="PUB_B64")
    p.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[list] = None) -> int:
    """Application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging before anything else
    settings = Settings.load()
    level = logging.DEBUG if args.verbose else settings.log_level_value
    configure_logging(level, settings.log_retention_days)

    try:
        return args.func(args)
    except WalletError as e:
        logger.debug(f"Command failed: {e.kind}")
        print(f"error: {e.kind}: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
