"""
General utility functions for walking host responses.
Ported from yt-dlp's utils.py.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any


def traverse_obj(obj: Any, *paths: Any, default: Any = None) -> Any:
    """
    Traverse nested dicts/lists safely.
    Ported from yt-dlp's traverse_obj utility.

    Usage:
        traverse_obj(data, 'key1', 'key2', 'key3')
        traverse_obj(data, ('key1', 'key2'), ('alt_key1', 'alt_key2'))
    """
    for path in paths:
        if isinstance(path, (list, tuple)):
            result = obj
            for key in path:
                if result is None:
                    break
                if isinstance(result, dict):
                    result = result.get(key)
                elif isinstance(result, (list, tuple)):
                    try:
                        result = result[key]
                    except (IndexError, TypeError):
                        result = None
                else:
                    result = None
            if result is not None:
                return result
        else:
            if isinstance(obj, dict) and path in obj:
                return obj[path]
    return default


def int_or_none(v: Any, scale: int = 1) -> int | None:
    """Convert value to int or return None."""
    if v is None:
        return None
    try:
        return int(v) // scale
    except (ValueError, TypeError):
        return None


def str_or_none(v: Any) -> str | None:
    """Convert value to string or return None."""
    if v is None:
        return None
    result = str(v).strip()
    return result if result else None


def get_text(node: Any) -> str | None:
    """Read a host text node: ``{"simpleText": ...}`` or ``{"runs": [{"text": ...}]}``."""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return None
    if "simpleText" in node:
        return node["simpleText"]
    runs = node.get("runs")
    if isinstance(runs, list):
        return "".join(r.get("text", "") for r in runs if isinstance(r, dict))
    return None


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration given as seconds (int or digit string) or as a clock
    string like ``4:20`` / ``1:02:03``. Unparseable input gives zero.
    """
    if value is None:
        return timedelta()
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    value = str(value).strip()
    if value.isdigit():
        return timedelta(seconds=int(value))

    match = re.fullmatch(r"(?:(\d+):)?(\d{1,2}):(\d{2})", value)
    if not match:
        return timedelta()
    hours, minutes, seconds = match.groups()
    return timedelta(hours=int(hours or 0), minutes=int(minutes), seconds=int(seconds))


def parse_date(value: str | None) -> datetime | None:
    """Parse host dates (``2015-12-02`` or full ISO 8601) into aware UTC datetimes."""
    if not value:
        return None

    value = value.strip()
    for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z", "%Y%m%d"):
        try:
            dt = datetime.strptime(value, fmt)
        except ValueError:
            continue
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    return None
