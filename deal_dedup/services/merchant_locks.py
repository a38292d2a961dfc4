"""Per-merchant locks serializing check-then-insert.

Two workers importing the same deal for the same merchant must not both
see "unique" and both insert. Holding the merchant's lock across the
duplicate check and the write makes the pair atomic within one process;
the ``(merchant, url)`` unique index covers writers in other processes.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from deal_dedup.config.logging_config import get_logger

logger = get_logger(__name__)


class MerchantLockRegistry:
    """Lazily created ``threading.Lock`` per case-folded merchant name.

    Example:
        >>> locks = MerchantLockRegistry()
        >>> with locks.hold("Amazon"):
        ...     verdict = checker.check_for_duplicate(candidate)
        ...     repository.save_deal(deal)
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, merchant: str) -> threading.Lock:
        key = merchant.casefold()
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, merchant: str) -> Iterator[None]:
        """Hold the merchant's lock for the duration of the block."""
        lock = self.lock_for(merchant)
        if not lock.acquire(blocking=False):
            logger.debug("merchant_lock_wait", merchant=merchant)
            lock.acquire()
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
