import asyncio
import random
import string
import time
from datetime import datetime, timezone as dt_timezone
from typing import Optional

from django.utils import timezone

from .constants import DEFAULT_ICE_TTL_SECONDS, MAX_ICE_TTL_SECONDS

_ALPHANUMERIC = string.ascii_letters + string.digits


def clamp_expire(expire, default: int = DEFAULT_ICE_TTL_SECONDS, maximum: int = MAX_ICE_TTL_SECONDS) -> int:
    try:
        expire = int(expire)
    except (TypeError, ValueError):
        return default
    if expire <= 0:
        return default
    return min(expire, maximum)


def run_async(coro):
    """Helper to run async code in sync Django views."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def now_millis() -> int:
    return int(time.time() * 1000)


def random_suffix(length: int = 9) -> str:
    return "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(length))


def generate_id(prefix: str, *parts: str) -> str:
    """``<prefix>_<millis>[_<part>...]`` ids, matching what clients already sort on."""
    pieces = [prefix, str(now_millis())]
    pieces.extend(str(p) for p in parts if p)
    return "_".join(pieces)


def generate_link_id(length: int = 12) -> str:
    return "".join(random.SystemRandom().choice(_ALPHANUMERIC) for _ in range(length))


def normalize_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return timezone.make_aware(value, dt_timezone.utc)
        return value
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp(), tz=dt_timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return normalize_datetime(parsed)
    return None


def format_timestamp(ts) -> Optional[str]:
    if ts is None:
        return None
    if hasattr(ts, "isoformat"):
        return ts.isoformat()
    if hasattr(ts, "timestamp"):
        return datetime.fromtimestamp(ts.timestamp()).isoformat()
    return str(ts)


def sort_key_datetime(value) -> float:
    """Sort helper for mixed Firestore timestamps; missing values sort first."""
    normalized = normalize_datetime(value)
    return normalized.timestamp() if normalized else 0.0
