"""
Command-line interface for layersign.

Argument parsing, dispatch, and the small subcommands.
Signing lives in ``sign``, inspection in ``verify``, and configuration
in ``configure``.
"""

from __future__ import annotations

import argparse
import logging
import sys

from ...constants import DEFAULT_PAGE, SUPPORTED_DIGEST_ALGORITHMS, __version__
from .configure import cmd_configure
from .sign import cmd_sign
from .verify import cmd_check, cmd_fields


def _cmd_reset() -> None:
    """Clear all configuration: saved password and signing defaults."""
    from ...config import reset_all

    reset_all()
    print("All configuration cleared.")
    print("Run 'layersign configure' to reconfigure.")


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="layersign",
        description="Sign PDF documents with layered, incremental-update signatures.",
        epilog=(
            "Environment variables:\n"
            "  LAYERSIGN_KEYSTORE           PKCS#12 keystore path\n"
            "  LAYERSIGN_KEYSTORE_PASSWORD  Keystore password\n"
            "  LAYERSIGN_ALIAS              Key alias in the keystore\n"
            "  LAYERSIGN_NAME               Signer display name (default: certificate CN)\n"
            "  LAYERSIGN_LOCATION           Signing location\n"
            "  LAYERSIGN_REASON             Signature reason\n"
            "  LAYERSIGN_RESERVED_BYTES     Signature placeholder size in bytes\n"
            "  LAYERSIGN_DIGEST             Digest algorithm (sha256, sha384, sha512)\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"layersign {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug)",
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # sign
    p_sign = sub.add_parser("sign", help="Sign a PDF document")
    p_sign.add_argument("pdf", help="PDF file to sign")
    p_sign.add_argument("-o", "--output", help="Output file path (default: <name>_signed.pdf)")
    p_sign.add_argument("--keystore", default=None, help="PKCS#12 keystore (.p12/.pfx)")
    p_sign.add_argument("--alias", default=None, help="Key alias in the keystore")
    p_sign.add_argument("--name", default=None, help="Signer display name")
    p_sign.add_argument("--location", default=None, help="Signing location")
    p_sign.add_argument("--reason", default=None, help="Signature reason")
    p_sign.add_argument(
        "--page",
        type=int,
        default=DEFAULT_PAGE,
        help=f"1-based page for a new signature field (default: {DEFAULT_PAGE})",
    )
    p_sign.add_argument(
        "--rect",
        default=None,
        help="Signature rectangle as X,Y,W,H in PDF points (default: 50,50,200,70)",
    )
    p_sign.add_argument(
        "--reserved",
        type=int,
        default=None,
        help="Bytes reserved for the signature (default: sized by a dry run)",
    )
    p_sign.add_argument("--field", default=None, help="Signature field name")
    p_sign.add_argument(
        "--existing-field",
        action="store_true",
        default=False,
        help="Sign an unsigned signature field the document already has",
    )
    p_sign.add_argument("--image", default=None, help="Signature image shown beside the text")
    p_sign.add_argument(
        "--digest",
        choices=SUPPORTED_DIGEST_ALGORITHMS,
        default=None,
        help="Digest algorithm (default: sha256)",
    )

    # fields
    p_fields = sub.add_parser("fields", help="List signature fields in a PDF")
    p_fields.add_argument("pdf", help="PDF file")

    # check
    p_check = sub.add_parser("check", help="Check the digests of embedded signatures")
    p_check.add_argument("pdf", help="Signed PDF file")

    # configure
    p_conf = sub.add_parser("configure", help="Save signing defaults")
    p_conf.add_argument("--keystore", default=None, help="PKCS#12 keystore path")
    p_conf.add_argument("--alias", default=None, help="Key alias")
    p_conf.add_argument("--name", default=None, help="Signer display name")
    p_conf.add_argument("--location", default=None, help="Signing location")
    p_conf.add_argument("--reason", default=None, help="Signature reason")
    p_conf.add_argument("--reserved", type=int, default=None, help="Reserved signature bytes")
    p_conf.add_argument(
        "--save-password",
        action="store_true",
        default=False,
        help="Prompt for the keystore password and store it in the system keychain",
    )

    # reset
    sub.add_parser("reset", help="Clear all configuration and saved passwords")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command == "sign":
        cmd_sign(args)
    elif args.command == "fields":
        cmd_fields(args)
    elif args.command == "check":
        cmd_check(args)
    elif args.command == "configure":
        cmd_configure(args)
    elif args.command == "reset":
        _cmd_reset()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
