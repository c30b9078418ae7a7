"""Signing command handler for the layersign CLI."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ...api import sign
from ...config import get_signing_defaults, resolve_keystore_password
from ...constants import BYTES_PER_MB, DEFAULT_RECT, PDF_WARN_SIZE, __version__
from ...errors import BadPassword, LayersignError, PlaceholderTooSmall
from ..helpers import (
    atomic_write,
    default_output_path,
    format_size_kb,
    offer_save_password,
    parse_rect,
    prompt_password,
    safe_read_file,
)


def _resolve_keystore(args: argparse.Namespace) -> str:
    keystore = args.keystore or get_signing_defaults()["keystore"]
    if not keystore:
        print("Error: no keystore configured.", file=sys.stderr)
        print(
            "Pass --keystore, set LAYERSIGN_KEYSTORE, or run `layersign configure --keystore ...`.",
            file=sys.stderr,
        )
        sys.exit(1)
    return str(Path(keystore).expanduser())


def cmd_sign(args: argparse.Namespace) -> None:
    """Handle the 'sign' subcommand."""
    pdf_path = Path(args.pdf)
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    if len(pdf_bytes) > PDF_WARN_SIZE:
        print(
            f"  Warning: {pdf_path.name} is {len(pdf_bytes) / BYTES_PER_MB:.0f} MB. "
            "Large files may be slow.",
            file=sys.stderr,
        )

    try:
        rect = parse_rect(args.rect) if args.rect else DEFAULT_RECT
    except LayersignError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    keystore = _resolve_keystore(args)
    password = resolve_keystore_password(keystore)
    prompted = password is None
    if prompted:
        password = prompt_password(keystore)

    out = Path(args.output) if args.output else default_output_path(pdf_path)

    print(f"layersign v{__version__}")
    print(f"Keystore: {keystore}")
    if args.existing_field:
        print(f"Field: {args.field or '(first unsigned)'}")
    else:
        print(f"Page: {args.page}, Rect: {','.join(f'{v:g}' for v in rect)}")
    print()
    print(f"  Signing {pdf_path.name} ({format_size_kb(len(pdf_bytes))})...", end=" ", flush=True)

    try:
        signed = sign(
            pdf_bytes,
            keystore=keystore,
            password=password,
            alias=args.alias,
            name=args.name,
            location=args.location,
            reason=args.reason,
            page=args.page,
            rect=rect,
            reserved_bytes=args.reserved,
            field=args.field,
            existing_field=args.existing_field,
            image_path=args.image,
            digest_algorithm=args.digest,
        )
    except PlaceholderTooSmall as e:
        print("FAILED", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        print(f"  Retry with --reserved {max(e.required * 2, 8192)} or larger.", file=sys.stderr)
        sys.exit(1)
    except BadPassword as e:
        print("BAD PASSWORD", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        sys.exit(1)
    except LayersignError as e:
        print("FAILED", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        sys.exit(1)

    try:
        atomic_write(out, signed)
    except OSError as e:
        print("FAILED", file=sys.stderr)
        print(f"  Cannot write {out}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"OK -> {out.name} ({format_size_kb(len(signed))})")

    if prompted and password:
        offer_save_password(keystore, password)
