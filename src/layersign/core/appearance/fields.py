"""Display strings for the signature info layer.

Builds the text lines shown in the signature rectangle (signer, location,
date, reason) and formats the signing time independently of the locale.
"""

from __future__ import annotations

__all__ = ["build_info_lines", "format_utc_offset", "make_date_str"]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


def format_utc_offset(dt: datetime) -> str:
    """Format UTC offset cleanly: +0400 -> 'UTC+4', +0530 -> 'UTC+5:30', +0000 -> 'UTC'."""
    raw = dt.strftime("%z")  # e.g. "+0400", "-0530", "+0000"
    if not raw:
        return "UTC"
    sign = raw[0]
    hours = int(raw[1:3])
    minutes = int(raw[3:5])
    if hours == 0 and minutes == 0:
        return "UTC"
    offset = f"UTC{sign}{hours}"
    if minutes:
        offset += f":{minutes:02d}"
    return offset


# Locale-independent English month abbreviations.
# strftime("%b") depends on LC_TIME and can produce characters that
# Helvetica/WinAnsiEncoding cannot render.
_MONTH_ABBR = (
    "",
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def make_date_str(dt: datetime) -> str:
    """Human-friendly date with UTC offset, e.g. '7 Feb 2026, 09:51:42 UTC+4'.

    Naive datetimes are rendered without an offset suffix other than 'UTC'.
    """
    offset = format_utc_offset(dt)
    month = _MONTH_ABBR[dt.month]
    time_str = dt.strftime("%H:%M:%S")
    return f"{dt.day} {month} {dt.year}, {time_str} {offset}"


def build_info_lines(
    signer_name: str,
    location: str,
    signing_time: datetime,
    reason: str | None = None,
) -> list[str]:
    """Ordered lines for the info layer; the reason line is optional."""
    lines = [
        f"Digitally signed by: {signer_name}",
        f"Location: {location}",
        f"Date: {make_date_str(signing_time)}",
    ]
    if reason:
        lines.append(f"Reason: {reason}")
    return lines
