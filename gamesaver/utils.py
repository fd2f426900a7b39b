"""Shared utility functions."""

from __future__ import annotations

import re
from datetime import datetime, timezone

ILLEGAL_FILENAME_CHARS = '<>:"/\\|?*'


def format_size(size_bytes: int) -> str:
    """Format byte count to human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def sanitize_folder_name(name: str, fallback: str = "Game") -> str:
    """Strip illegal filename characters and trailing dots, collapse whitespace.

    "  Baldur's Gate: Enhanced.. " → "Baldur's Gate Enhanced"
    """
    cleaned = name.strip()
    for ch in ILLEGAL_FILENAME_CHARS:
        cleaned = cleaned.replace(ch, "")
    cleaned = cleaned.rstrip(".").strip()
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned or fallback


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(utc_now())
