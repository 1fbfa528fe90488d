"""Shared timestamp normalization helpers. All outputs are epoch milliseconds."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in ("%Y/%m/%d %H:%M:%S", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def to_epoch_ms(value: Any) -> Optional[float]:
    """Convert mixed timestamp inputs (ISO strings, datetimes, epoch s/ms) to epoch ms."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.timestamp() * 1000.0
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        # Values below ~2001-09 in ms are treated as epoch seconds.
        return float(value) if value > 1e12 else float(value) * 1000.0
    if isinstance(value, str):
        parsed = _parse_datetime_token(value)
        if parsed is None:
            return None
        return to_epoch_ms(parsed)
    return None


def mtime_ms(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime * 1000.0
    except OSError:
        return None


def latest(*values: Optional[float]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


def earliest(*values: Optional[float]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return min(present) if present else None
