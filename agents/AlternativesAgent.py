"""
Background enrichment: fetch alternative candidates for every itinerary point.

One queued task per (day, point).  Each task asks the planner for
alternatives and then merges them into the *latest* plan held by the
PlanStore, never into the plan it saw at submission time, so completions
arriving in any order keep each other's writes.

Usage (from main):
    scheduler = AlternativesScheduler(queue, planner)
    scheduler.prefetch(store)
"""

from __future__ import annotations

import logging
from typing import List, Optional

from agents.planning_agent import TripPlanner
from plan_store import PlanStore
from request_queue import RequestQueue
from TravelPlan import Alternative, TravelPlan, replace_point, set_alternatives

log = logging.getLogger(__name__)


class EnrichmentTaskError(RuntimeError):
    """A single alternatives fetch failed; the point keeps its old alternatives."""

    def __init__(self, point_name: str, day_idx: int, point_idx: int, cause: BaseException):
        super().__init__(
            f"Failed to fetch alternatives for {point_name} "
            f"(day {day_idx}, point {point_idx}): {cause}"
        )
        self.point_name = point_name
        self.day_idx = day_idx
        self.point_idx = point_idx


def merge_alternatives(
    plan: Optional[TravelPlan],
    plan_id: str,
    day_idx: int,
    point_idx: int,
    point_name: str,
    alternatives: List[Alternative],
) -> Optional[TravelPlan]:
    """Write ``alternatives`` into ``plan`` if the target point is still there.

    The write is skipped when the store now holds a different plan or the
    point at the coordinate was replaced after the task was submitted.
    """
    if plan is None or plan.id != plan_id:
        return plan
    point = plan.point_at(day_idx, point_idx)
    if point is None or point.name != point_name:
        log.info("Discarding stale alternatives for %s (day %d, point %d)",
                 point_name, day_idx, point_idx)
        return plan
    return set_alternatives(plan, day_idx, point_idx, alternatives)


class AlternativesScheduler:
    """Fans alternatives lookups out onto a shared RequestQueue."""

    def __init__(self, queue: RequestQueue, planner: TripPlanner):
        self.queue = queue
        self.planner = planner

    def _submit(self, store: PlanStore, plan_id: str, day_idx: int, point_idx: int,
                point_name: str, category: str) -> None:
        async def _task() -> None:
            try:
                alternatives = await self.planner.find_alternatives(point_name, category)
            except Exception as exc:
                raise EnrichmentTaskError(point_name, day_idx, point_idx, exc) from exc
            store.update(lambda latest: merge_alternatives(
                latest, plan_id, day_idx, point_idx, point_name, alternatives))

        self.queue.submit(_task)

    def prefetch(self, store: PlanStore) -> int:
        """Queue one lookup per point of the current plan; returns the count."""
        plan = store.get()
        if plan is None:
            return 0
        coords = plan.coordinates()
        for day_idx, point_idx in coords:
            point = plan.days[day_idx].points[point_idx]
            self._submit(store, plan.id, day_idx, point_idx, point.name, point.category)
        log.info("Queued %d alternatives lookups for plan %s", len(coords), plan.id)
        return len(coords)

    def request_alternatives(self, store: PlanStore, day_idx: int, point_idx: int) -> bool:
        """Queue a lookup for one point.  False if the coordinate does not exist."""
        plan = store.get()
        point = plan.point_at(day_idx, point_idx) if plan else None
        if point is None:
            return False
        self._submit(store, plan.id, day_idx, point_idx, point.name, point.category)
        return True

    def accept_alternative(self, store: PlanStore, day_idx: int, point_idx: int,
                           alternative: Alternative) -> Optional[TravelPlan]:
        """Replace a point with ``alternative`` and queue lookups for the newcomer."""
        updated = store.update(
            lambda latest: replace_point(latest, day_idx, point_idx, alternative)
            if latest is not None else None
        )
        self.request_alternatives(store, day_idx, point_idx)
        return updated
