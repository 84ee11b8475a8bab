"""In-process mutual exclusion per aggregate.

Every mutation of a proposal, rebellion or community roster runs while
holding the lock for that aggregate, so duplicate checks, counter increments
and status transitions are never interleaved within one process.  Row locks
(``SELECT ... FOR UPDATE``) and compare-and-set updates cover the
multi-process case.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

PROPOSAL = "proposal"
REBELLION = "rebellion"
COMMUNITY = "community"


@dataclass(slots=True)
class _Slot:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class AggregateLocks:
    """Registry of re-entrant locks keyed by ``(kind, id)``.

    A lock lives only while some thread holds or waits for it; the registry
    drops it when the last user leaves.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[tuple[str, int], _Slot] = {}

    @contextmanager
    def hold(self, kind: str, aggregate_id: int) -> Iterator[None]:
        key = (kind, aggregate_id)
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[key]

    def __len__(self) -> int:
        return len(self._slots)


# Shared by every service instance in the process; sessions are per request.
DEFAULT_LOCKS = AggregateLocks()
