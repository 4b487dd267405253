"""Trip cost estimates from the price strings the model writes.

Prices arrive as free text ("¥120", "¥80/人", "免费").  ``parse_price`` is
the single place that turns such text into a number.
"""
import math
import re
from dataclasses import dataclass

from dataclasses_json import dataclass_json

from TravelPlan import LocationPoint, TravelPlan

FREE_MARKERS = ("免费", "free")

_DIGITS_RE = re.compile(r"\d+")


def parse_price(text) -> int:
    """First run of digits in ``text``; 0 when there is none."""
    if not text:
        return 0
    match = _DIGITS_RE.search(str(text))
    return int(match.group(0)) if match else 0


def is_free(text) -> bool:
    lowered = str(text or "").lower()
    return any(marker in lowered for marker in FREE_MARKERS)


def calculate_point_cost(point: LocationPoint, travelers: int) -> int:
    """Cost of one stop for the whole group.

    Tickets are per person, except parking which is one flat fee per car.
    Hotels take one room per two travelers; other average costs are per person.
    """
    cost = 0

    if point.ticket_price and not is_free(point.ticket_price):
        price = parse_price(point.ticket_price)
        cost += price if point.category == "parking" else price * travelers

    if point.average_cost and not is_free(point.average_cost):
        price = parse_price(point.average_cost)
        if point.category == "hotel":
            cost += price * math.ceil(travelers / 2)
        else:
            cost += price * travelers

    return cost


@dataclass_json
@dataclass(frozen=True)
class CostBreakdown:
    transport: int = 0
    accommodation: int = 0
    dining: int = 0
    tickets: int = 0
    travelers: int = 1

    @property
    def total(self) -> int:
        return self.transport + self.accommodation + self.dining + self.tickets

    @property
    def per_person(self) -> float:
        return self.total / max(self.travelers, 1)

    def summary(self) -> dict:
        return {
            **self.to_dict(),
            "total": self.total,
            "per_person": round(self.per_person),
        }


_BUCKETS = {
    "parking": "transport",
    "hotel": "accommodation",
    "restaurant": "dining",
    "attraction": "tickets",
}


def calculate_total_cost(plan: TravelPlan) -> CostBreakdown:
    """Bucketed cost of the whole plan.

    Start/end points have no bucket and do not count towards the total.
    """
    travelers = plan.travelers
    buckets = {"transport": 0, "accommodation": 0, "dining": 0, "tickets": 0}

    for day in plan.days:
        buckets["transport"] += parse_price(day.transportation_cost)
        for point in day.points:
            bucket = _BUCKETS.get(point.category)
            if bucket:
                buckets[bucket] += calculate_point_cost(point, travelers)

    return CostBreakdown(travelers=travelers, **buckets)
