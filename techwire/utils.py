"""Shared utility functions."""
import hashlib
import math
import re
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as dateparser

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def normalize_key(value: str) -> str:
    """Case-fold a cache identity and collapse its whitespace.

    ``"  Rust  2.0 "`` and ``"rust 2.0"`` map to the same key.
    """
    return " ".join((value or "").split()).lower()


def artifact_name(key: str, ext: str) -> str:
    """Deterministic on-disk filename for a (normalized) key."""
    return f"{hashlib.md5(key.encode('utf-8')).hexdigest()}{ext}"


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 bytes of ``text``."""
    h = _FNV_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def parse_timestamp(value: Union[str, int, float, None]) -> Optional[datetime]:
    """Parse epoch seconds or a date string into an aware UTC datetime."""
    if value is None or value == "":
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc)
        dt = dateparser.parse(str(value))
    except (ValueError, OverflowError, OSError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_since_seconds(value: str) -> int:
    """Parse a relative time string like '12h', '7d' into total seconds.

    Raises ValueError on invalid input.
    """
    match = re.match(r"^(\d+)\s*([smhdwMy])$", value.strip())
    if not match:
        raise ValueError(f"Invalid time value '{value}'. Use e.g. 30s, 30m, 2h, 1d, 1w, 3M, 1y")
    amount, unit = int(match.group(1)), match.group(2)
    multipliers = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800, "M": 2592000, "y": 31536000}
    return amount * multipliers[unit]


def human_size(num_bytes: int) -> str:
    """Format a byte count like '12.5 KB'."""
    sizes = ["Bytes", "KB", "MB", "GB"]
    if num_bytes <= 0:
        return "0 Bytes"
    i = min(int(math.floor(math.log(num_bytes, 1024))), len(sizes) - 1)
    return f"{round(num_bytes / math.pow(1024, i), 2)} {sizes[i]}"


def relative_time(dt: datetime) -> str:
    """Return a human-friendly relative time string like '2h ago'."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    diff = datetime.now(timezone.utc) - dt
    seconds = int(diff.total_seconds())
    if seconds < 0:
        return "just now"
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    weeks = days // 7
    return f"{weeks}w ago"
