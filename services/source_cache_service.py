"""
Short-lived storage for parsed uploads.

The wizard resubmits the same file on preview, validate and apply. Parsed
tables are kept in memory keyed by a hash of the bytes and reader options,
with TTL expiration and a size bound. Derived rows are never cached.
Single-process only.
"""
import hashlib
import json
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from config import settings

_cache: dict[str, tuple[datetime, Any]] = {}
_lock = threading.Lock()


def make_cache_key(content: bytes, **options: Any) -> str:
    """SHA-256 of the file bytes plus the options that change parsing."""
    digest = hashlib.sha256(content)
    digest.update(json.dumps(options, sort_keys=True, default=str).encode("utf-8"))
    return digest.hexdigest()


def store_parsed(key: str, data: Any, ttl_minutes: Optional[int] = None) -> None:
    """Store a parsed source under key."""
    ttl = ttl_minutes if ttl_minutes is not None else settings.import_parse_cache_ttl_minutes
    expires_at = datetime.now() + timedelta(minutes=ttl)
    with _lock:
        _cache[key] = (expires_at, data)
        _cleanup_expired()
        _evict_oldest()


def retrieve_parsed(key: str) -> Optional[Any]:
    """Retrieve a parsed source by key. Returns None if expired/not found."""
    with _lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if datetime.now() > expires_at:
            del _cache[key]
            return None
        return data


def get_or_parse(key: str, parse: Callable[[], Any]) -> Any:
    """Return the cached parse for key, or run parse() and cache its result."""
    if settings.import_parse_cache_ttl_minutes == 0:
        return parse()
    cached = retrieve_parsed(key)
    if cached is not None:
        return cached
    data = parse()
    store_parsed(key, data)
    return data


def clear_cache() -> None:
    """Drop every entry."""
    with _lock:
        _cache.clear()


def cache_size() -> int:
    with _lock:
        return len(_cache)


def _cleanup_expired() -> None:
    """Remove all expired entries."""
    now = datetime.now()
    expired = [k for k, (exp, _) in _cache.items() if now > exp]
    for k in expired:
        del _cache[k]


def _evict_oldest() -> None:
    """Keep at most the configured number of entries (soonest-expiring go first)."""
    overflow = len(_cache) - settings.import_parse_cache_max_entries
    if overflow <= 0:
        return
    for k, _ in sorted(_cache.items(), key=lambda item: item[1][0])[:overflow]:
        del _cache[k]
