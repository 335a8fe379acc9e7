"""
Per-cohort critical sections.

Aggregate-then-rerank for one cohort must not interleave with another
request doing the same for that cohort, or an older rank write can land
after a newer one. Different cohorts proceed in parallel.

The locks are in-process only; separate worker processes are serialized
by the database transaction alone.
"""

import threading
from contextlib import contextmanager, ExitStack
from typing import Dict, Hashable


class CohortLocks:

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, *keys: Hashable):
        """Acquire the locks for *keys* in sorted order, release on exit."""
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                stack.enter_context(self.lock_for(key))
            yield

    def __len__(self):
        with self._guard:
            return len(self._locks)


cohort_locks = CohortLocks()
