"""
Per-provider serialization for mutating operations.

Conflict check and insert for one provider must never interleave with another
mutation of the same provider. Within a process that is guaranteed by one
lock per provider id; across processes the booking coordinator additionally
locks the provider row in the database.

Waiting is bounded: if the lock is not acquired within the timeout the
operation fails closed with ``ProviderBusyError`` and nothing is written.
"""

import logging
import threading
from contextlib import contextmanager

from .exceptions import ProviderBusyError

logger = logging.getLogger(__name__)


class ProviderLockRegistry:
    """Lock per provider id, kept only while some caller is holding or waiting on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def __len__(self):
        with self._guard:
            return len(self._locks)

    def _checkout(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key):
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, provider_id, timeout):
        """
        Hold the provider's lock for the duration of the ``with`` block.

        Raises:
            ProviderBusyError: the lock was not acquired within ``timeout`` seconds.
        """
        key = str(provider_id)
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=max(float(timeout), 0)):
                logger.warning(
                    "[LOCK] Timed out after %ss waiting for provider_id=%s", timeout, provider_id
                )
                raise ProviderBusyError()
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def is_held(self, provider_id) -> bool:
        with self._guard:
            entry = self._locks.get(str(provider_id))
            return entry is not None and entry[0].locked()


provider_locks = ProviderLockRegistry()
