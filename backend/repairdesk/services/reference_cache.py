# Overview: Short-lived per-organization cache of currency and tax rate lists.

"""
Reference data cache

Currency and tax rate lists are read on nearly every quote, invoice and
printout but change rarely. Entries are keyed by (org_id, kind) and hold
immutable tuples (CurrencyInfo / TaxRateInfo), never ORM instances, so a
cached value stays valid after its session closes.

Invalidation triggers:
- any currency or tax rate mutation for an organization (invalidate(org_id))
- a core currency change or a backfill pass (invalidate() clears everything)
- TTL expiry (REFERENCE_CACHE_TTL_SECONDS, 0 disables caching)

This module must stay free of database imports: extensions.py builds the
shared instance.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Hashable, Optional


CURRENCIES = "currencies"
TAX_RATES = "tax_rates"


class ReferenceDataCache:
    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[tuple[Optional[int], Hashable], tuple[float, tuple]] = {}

    def init_app(self, app) -> None:
        self.ttl_seconds = float(app.config.get("REFERENCE_CACHE_TTL_SECONDS", self.ttl_seconds))
        self.invalidate()

    def get(self, org_id: Optional[int], kind: Hashable, loader: Callable[[], tuple]) -> tuple:
        """
        Return the cached tuple for (org_id, kind), calling loader() on a miss.

        The loader runs outside the lock; two concurrent misses may both load,
        and the later result wins.
        """
        key = (org_id, kind)
        if self.ttl_seconds > 0:
            with self._lock:
                entry = self._entries.get(key)
                if entry is not None and entry[0] > self._clock():
                    return entry[1]

        value = tuple(loader())

        if self.ttl_seconds > 0:
            with self._lock:
                self._entries[key] = (self._clock() + self.ttl_seconds, value)
        return value

    def invalidate(self, org_id: Optional[int] = None) -> None:
        """Drop one organization's entries, or everything when org_id is None."""
        with self._lock:
            if org_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == org_id]:
                del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
