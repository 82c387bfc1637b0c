#!/usr/bin/env python3
"""
SecretVault -- Operator helpers for a per-user credential vault.

The HTTP API itself runs under uvicorn (uvicorn asgi:app). This script holds
the small offline tasks an operator needs before and around that.

Usage:
  python main.py genkey
  python main.py genpass
  python main.py genpass --length 32
"""

import argparse
import secrets
import sys

from auth.crypto import DEFAULT_PASSWORD_LENGTH, PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH, CryptoSuite
from core.config import ENCRYPTION_KEY_BYTES
from core.errors import ValidationError


def _cmd_genkey(args: argparse.Namespace) -> int:
    """Print a fresh AES-256 key in the hex form ENCRYPTION_KEY expects."""
    print(secrets.token_hex(ENCRYPTION_KEY_BYTES))
    return 0


def _cmd_genpass(args: argparse.Namespace) -> int:
    try:
        print(CryptoSuite.generate_password(args.length))
    except ValidationError as e:
        print(f"  [!] {e.message}", file=sys.stderr)
        return 2
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="secretvault",
        description="Operator helpers for the SecretVault API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py genkey > .encryption_key
  python main.py genpass --length 32
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    genkey = sub.add_parser("genkey", help="Generate a value for ENCRYPTION_KEY")
    genkey.set_defaults(func=_cmd_genkey)

    genpass = sub.add_parser("genpass", help="Generate a random password")
    genpass.add_argument(
        "--length",
        type=int,
        default=DEFAULT_PASSWORD_LENGTH,
        metavar="N",
        help=f"Password length, {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} (default: {DEFAULT_PASSWORD_LENGTH})",
    )
    genpass.set_defaults(func=_cmd_genpass)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
