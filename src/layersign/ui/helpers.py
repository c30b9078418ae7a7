"""
Common CLI helper functions for layersign.

Shared by the sign, inspection, and configure commands.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

from ..errors import ConfigError

__all__ = [
    "atomic_write",
    "confirm_choice",
    "default_output_path",
    "format_size_kb",
    "offer_save_password",
    "parse_rect",
    "prompt_password",
    "safe_input",
    "safe_read_file",
]

_BYTES_PER_KB = 1024  # Local constant avoids importing BYTES_PER_MB for a KB conversion


def format_size_kb(size_bytes: int) -> str:
    """Format a byte count as a human-readable KB string (e.g. '123.4 KB')."""
    return f"{size_bytes / _BYTES_PER_KB:.1f} KB"


def default_output_path(pdf_path: Path) -> Path:
    """Compute default output path for a signed PDF: '<stem>_signed.pdf'."""
    return pdf_path.with_name(f"{pdf_path.stem}_signed.pdf")


def parse_rect(text: str) -> tuple[float, float, float, float]:
    """Parse an "X,Y,W,H" rectangle given in PDF points.

    Raises:
        ConfigError: Wrong number of values or non-numeric values.
    """
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise ConfigError(f"Rectangle must be X,Y,W,H, got {text!r}")
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError as e:
        raise ConfigError(f"Rectangle values must be numbers, got {text!r}") from e
    return x, y, w, h


def safe_input(prompt: str) -> str | None:
    """Prompt user for input, returning None on EOF/KeyboardInterrupt.

    Prints a newline on interrupt to keep the terminal tidy.
    """
    try:
        return input(prompt).strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return None


def confirm_choice(message: str, default_yes: bool = True) -> bool:
    """
    Prompt user for yes/no confirmation.

    Args:
        message: Question to ask the user (without the [Y/n] suffix).
        default_yes: If True, empty input defaults to yes. If False, defaults to no.

    Returns:
        True if the user confirmed, False otherwise.
    """
    suffix = "[Y/n]" if default_yes else "[y/N]"
    try:
        answer = input(f"{message} {suffix} ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False

    if default_yes:
        return answer in ("", "y", "yes")
    else:
        return answer in ("y", "yes")


def safe_read_file(path: Path, kind: str = "file") -> bytes | None:
    """
    Read a file with uniform error handling.

    Returns:
        File contents as bytes, or None if the file doesn't exist or can't be read.
    """
    if not path.exists():
        print(f"Error: {kind} not found: {path}", file=sys.stderr)
        return None
    try:
        return path.read_bytes()
    except OSError as e:
        print(f"Error reading {kind}: {e}", file=sys.stderr)
        return None


def prompt_password(keystore: str) -> str:
    """
    Prompt for a keystore password without echo.

    An empty answer is allowed (unencrypted stores).

    Raises:
        SystemExit: If the user cancels (Ctrl-C, Ctrl-D).
    """
    import getpass

    try:
        return getpass.getpass(f"Password for {Path(keystore).name}: ")
    except (EOFError, KeyboardInterrupt):
        print()
        sys.exit(1)


def offer_save_password(keystore: str, password: str) -> None:
    """Ask the user if they want to save the keystore password.

    On confirmation, saves via the config module and prints storage info.
    """
    from ..config import get_credential_storage_info, save_keystore_password

    if confirm_choice("\nSave keystore password for future use?", default_yes=False):
        secure = save_keystore_password(keystore, password)
        print(f"Password saved to: {get_credential_storage_info()}")
        if not secure:
            print("  Warning: stored in plaintext; the system keychain was unavailable.")
        print("  (env var LAYERSIGN_KEYSTORE_PASSWORD always takes priority)")
    else:
        print("Password not saved.")


def atomic_write(path: Path, data: bytes) -> None:
    """Write data to a file atomically using temp file + rename.

    Prevents partial writes from leaving corrupt output files if
    the process is interrupted mid-write (e.g., disk full, Ctrl-C).
    """
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        os.write(fd, data)
        os.fsync(fd)
        os.close(fd)
        fd = -1
        tmp.replace(path)
    except Exception:
        if fd >= 0:
            os.close(fd)
        tmp.unlink(missing_ok=True)
        raise
