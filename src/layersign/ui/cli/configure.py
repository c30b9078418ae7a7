"""
Configure command for the layersign CLI.

Saves signing defaults (keystore, alias, signer identity, reserved size)
and, optionally, the keystore password.  With no options it prints the
current configuration.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives import serialization

from ...config import (
    CONFIG_FILE,
    get_credential_storage_info,
    get_keystore_password,
    get_signing_defaults,
    save_keystore_password,
    save_signing_config,
)
from ...constants import ENV_KEYSTORE, ENV_NAME
from ...core.cert_info import extract_cert_info_from_der
from ...core.certificates import load_certificate_bundle
from ...errors import LayersignError
from ..helpers import confirm_choice, prompt_password

if TYPE_CHECKING:
    import argparse


# ── UI helpers ───────────────────────────────────────────────────────


def _print_signer_info(info: dict[str, str | None]) -> None:
    """Display signer certificate info."""
    print(f"\n  Name (CN):    {info['name']}")
    if info.get("email"):
        print(f"  Email:        {info['email']}")
    if info.get("organization"):
        print(f"  Organization: {info['organization']}")
    if info.get("dn"):
        print(f"  Full DN:      {info['dn']}")


def _print_current() -> None:
    defaults = get_signing_defaults()
    print("Current configuration:")
    print(f"  Keystore:     {defaults['keystore'] or '(not set)'}")
    if defaults["alias"]:
        print(f"  Alias:        {defaults['alias']}")
    print(f"  Name:         {defaults['name'] or '(certificate CN)'}")
    if defaults["location"]:
        print(f"  Location:     {defaults['location']}")
    print(f"  Reason:       {defaults['reason']}")
    reserved = defaults["reserved_bytes"]
    print(f"  Reserved:     {reserved if reserved else 'auto (dry run)'}")
    print(f"  Digest:       {defaults['digest_algorithm']}")
    if defaults["keystore"]:
        saved = get_keystore_password(defaults["keystore"]) is not None
        print(f"  Password:     {'saved' if saved else 'not saved'}")
    print(f"  Config file:  {CONFIG_FILE}")


def _check_keystore(keystore: str, alias: str | None) -> str:
    """Open the keystore once to confirm the password; return that password."""
    password = prompt_password(keystore)
    print(f"\nOpening {Path(keystore).name}...", end=" ", flush=True)
    try:
        bundle = load_certificate_bundle(keystore, password, alias)
    except LayersignError as e:
        print("FAILED")
        print(f"  {e}", file=sys.stderr)
        sys.exit(1)
    print("OK")
    _print_signer_info(
        extract_cert_info_from_der(bundle.leaf.public_bytes(serialization.Encoding.DER))
    )
    return password


# ── Main configure command ───────────────────────────────────────────


def cmd_configure(args: argparse.Namespace) -> None:
    """Save signing defaults and, with --save-password, the keystore password."""
    keystore = str(Path(args.keystore).expanduser().resolve()) if args.keystore else None
    values: dict[str, str | int | None] = {
        "keystore": keystore,
        "alias": args.alias,
        "name": args.name,
        "location": args.location,
        "reason": args.reason,
        "reserved_bytes": args.reserved,
    }

    if all(v is None for v in values.values()) and not args.save_password:
        _print_current()
        return

    try:
        save_signing_config(**values)
    except LayersignError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    saved = sorted(k for k, v in values.items() if v is not None)
    if saved:
        print(f"Saved to {CONFIG_FILE}: {', '.join(saved)}")
        print(f"Override anytime with {ENV_KEYSTORE} / {ENV_NAME} env variables.")

    if args.save_password:
        defaults = get_signing_defaults()
        target = defaults["keystore"]
        if not target:
            print("Error: --save-password needs a keystore (--keystore).", file=sys.stderr)
            sys.exit(1)
        password = _check_keystore(target, defaults["alias"])
        if confirm_choice("\nSave this keystore password?"):
            secure = save_keystore_password(target, password)
            print(f"Password saved to: {get_credential_storage_info()}")
            if not secure:
                print("  Warning: stored in plaintext; the system keychain was unavailable.")
        else:
            print("Password not saved.")
