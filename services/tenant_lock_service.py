"""
Per-tenant write serialization.

Catalog-mutating imports for one tenant run one at a time; different
tenants never wait on each other. In-process only.

A tenant's lock is dropped from the registry once no thread holds or
waits for it, so the registry only holds tenants with an import in flight.
"""
import threading
from contextlib import contextmanager
from typing import Iterator

import structlog

logger = structlog.get_logger(__name__)

_locks: dict[str, threading.Lock] = {}
_users: dict[str, int] = {}
_registry_lock = threading.Lock()


def registered_tenants() -> int:
    """Number of tenants with a lock in the registry."""
    with _registry_lock:
        return len(_locks)


def _checkout(tenant_id: str) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(tenant_id)
        if lock is None:
            lock = _locks[tenant_id] = threading.Lock()
        _users[tenant_id] = _users.get(tenant_id, 0) + 1
        return lock


def _checkin(tenant_id: str) -> None:
    with _registry_lock:
        remaining = _users.get(tenant_id, 1) - 1
        if remaining > 0:
            _users[tenant_id] = remaining
            return
        _users.pop(tenant_id, None)
        _locks.pop(tenant_id, None)


@contextmanager
def tenant_write_lock(tenant_id: str) -> Iterator[None]:
    """Hold the tenant's write lock for the duration of the block."""
    lock = _checkout(tenant_id)
    try:
        if not lock.acquire(blocking=False):
            logger.info("tenant_write_lock_waiting", tenant_id=tenant_id, tenants_in_flight=registered_tenants())
            lock.acquire()
        try:
            yield
        finally:
            lock.release()
    finally:
        _checkin(tenant_id)
