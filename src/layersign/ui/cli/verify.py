"""
Signature inspection commands.

cmd_check recomputes the digest of every embedded signature; it does not
verify the signature value or the certificate chain.
cmd_fields lists the signature fields a document declares.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ...api import check
from ...core.pdf import find_signature_fields
from ...errors import LayersignError
from ..helpers import format_size_kb, safe_read_file

if TYPE_CHECKING:
    import argparse


def cmd_check(args: argparse.Namespace) -> None:
    """Check all embedded PDF signatures."""
    pdf_path = Path(args.pdf)
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    print(f"Checking {pdf_path.name} ({format_size_kb(len(pdf_bytes))})...")

    try:
        results = check(pdf_bytes)
    except LayersignError as e:
        print(f"  ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    total = len(results)
    failed = 0
    for i, result in enumerate(results, 1):
        if total > 1:
            signer = (result["signer"] or {}).get("name") or "unknown signer"
            print(f"\n  Signature {i}/{total} ({signer}):")
            indent = "    "
        else:
            indent = "  "
        for detail in result["details"]:
            for line in detail.splitlines():
                print(f"{indent}{line}")
        if not result["valid"]:
            failed += 1

    print()
    if not failed:
        sig_word = "signature" if total == 1 else f"all {total} signatures"
        print(f"  RESULT: {sig_word.capitalize()} INTACT")
    else:
        print(f"  RESULT: {failed} of {total} signature(s) FAILED")
    print(
        "  (Digest integrity only: the signature value and certificate trust are not validated.)"
    )
    if failed:
        sys.exit(1)


def cmd_fields(args: argparse.Namespace) -> None:
    """List signature fields and whether they are signed."""
    pdf_path = Path(args.pdf)
    pdf_bytes = safe_read_file(pdf_path, "PDF")
    if pdf_bytes is None:
        sys.exit(1)

    try:
        fields = find_signature_fields(pdf_bytes)
    except LayersignError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not fields:
        print(f"{pdf_path.name}: no signature fields.")
        return

    print(f"{pdf_path.name}: {len(fields)} signature field(s)")
    for field in fields:
        status = "signed" if field.signed else "unsigned"
        where = f"page {field.page}" if field.page is not None else "no page"
        if field.is_visible and field.rect is not None:
            x0, y0, x1, y1 = field.rect
            where += f", rect {x0:g},{y0:g},{x1 - x0:g},{y1 - y0:g}"
        else:
            where += ", invisible"
        print(f"  {field.name}: {status} ({where})")
