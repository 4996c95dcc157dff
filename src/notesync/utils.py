"""Small helpers shared across notesync modules."""

from __future__ import annotations

import base64
import hashlib
import hmac as _hmac
import json
import secrets
from datetime import datetime, timezone


def utc_now_datetime() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Fixed width, so lexicographic order equals chronological order.
    """
    return format_datetime(datetime.now(timezone.utc))


def format_datetime(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_datetime(value: str) -> datetime:
    """Inverse of ``format_datetime``; also accepts any ISO-8601 string."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def hmac(secret: str, value: str) -> str:
    """Base64 HMAC-SHA256 of *value* keyed by *secret*."""
    digest = _hmac.new(
        secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def random_string(length: int = 12) -> str:
    alphabet = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_row(row: dict) -> str:
    """Stable SHA-1 of a row dict (sorted keys, compact JSON)."""
    canonical = json.dumps(row, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()
