"""
Owned state cell for the live TravelPlan.

The plan is observed by API readers and rewritten by enrichment completions
that race with each other and with manual edits.  Every write goes through
``update(fn)``: ``fn`` receives the latest plan and returns the next one,
and the read-modify-write happens under a lock so no completion can clobber
another's result.
"""
from __future__ import annotations

import threading
from typing import Callable, Optional

from TravelPlan import TravelPlan


class PlanStore:
    def __init__(self, plan: Optional[TravelPlan] = None):
        self._plan = plan
        self._lock = threading.Lock()

    def get(self) -> Optional[TravelPlan]:
        with self._lock:
            return self._plan

    def update(self, fn: Callable[[Optional[TravelPlan]], Optional[TravelPlan]]) -> Optional[TravelPlan]:
        """Apply ``fn`` to the latest plan and store what it returns.

        ``fn`` must be pure and synchronous; it runs while the lock is held.
        """
        with self._lock:
            self._plan = fn(self._plan)
            return self._plan
