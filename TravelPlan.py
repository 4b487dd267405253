from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional

from dataclasses_json import LetterCase, Undefined, config, dataclass_json

CATEGORIES = ("attraction", "restaurant", "parking", "hotel", "start", "end")


class Pacing(Enum):
    COMPACT = "compact"
    MODERATE = "moderate"
    LEISURE = "leisure"

    @property
    def label(self) -> str:
        return {"compact": "紧凑", "moderate": "适中", "leisure": "休闲"}[self.value]


class AccommodationType(Enum):
    CAR = "car"
    HOTEL = "hotel"

    @property
    def label(self) -> str:
        return "车住" if self is AccommodationType.CAR else "酒店"


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass(frozen=True)
class Alternative:
    """A candidate replacement for an itinerary point."""
    name: str
    rating: float = 0.0
    user_ratings_total: int = 0
    description: str = ""
    lat: float = 0.0
    lng: float = 0.0
    ticket_price: Optional[str] = None
    average_cost: Optional[str] = None
    duration: Optional[str] = None


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass(frozen=True)
class LocationPoint:
    name: str
    category: str = field(default="attraction", metadata=config(field_name="type"))
    arrival_time: str = field(default="", metadata=config(field_name="arrivalTime"))  # HH:MM, Beijing time
    duration: str = ""
    ticket_price: Optional[str] = None  # "¥120" or "免费"
    average_cost: Optional[str] = None  # "¥80/人"
    description: str = ""
    rating: float = 0.0
    user_ratings_total: int = 0
    lat: float = 0.0
    lng: float = 0.0
    travel_time_to_next: Optional[str] = field(default=None, metadata=config(field_name="travelTimeToNext"))
    address: Optional[str] = None
    # None until enrichment lands; always replaced as a whole list
    alternatives: Optional[List[Alternative]] = None


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass(frozen=True)
class DayItinerary:
    day: int
    date: str = ""
    transportation_cost: Optional[str] = None  # fuel + tolls for the day
    points: List[LocationPoint] = field(default_factory=list)


@dataclass_json(letter_case=LetterCase.CAMEL, undefined=Undefined.EXCLUDE)
@dataclass(frozen=True)
class TravelPlan:
    id: str
    title: str
    start_point: str
    end_point: str
    start_time: str
    end_time: str
    travelers: int = 1
    is_round_trip: bool = False
    pacing: Pacing = Pacing.MODERATE
    include_accom: bool = True
    accommodation_type: AccommodationType = AccommodationType.HOTEL
    hotel_budget: int = 0
    must_visit: Optional[List[str]] = None
    avoid: Optional[List[str]] = None
    days: List[DayItinerary] = field(default_factory=list)

    @property
    def duration_days(self) -> int:
        """Always equal to the number of days actually planned."""
        return len(self.days)

    def point_at(self, day_idx: int, point_idx: int) -> Optional[LocationPoint]:
        if not (0 <= day_idx < len(self.days)):
            return None
        points = self.days[day_idx].points
        if not (0 <= point_idx < len(points)):
            return None
        return points[point_idx]

    def coordinates(self) -> List[tuple]:
        """All (day_idx, point_idx) pairs, in itinerary order."""
        return [(d, p) for d, day in enumerate(self.days) for p in range(len(day.points))]


@dataclass_json
@dataclass
class PlanRequest:
    start: str
    end: str
    start_time: str
    end_time: str
    days: int
    travelers: int = 1
    is_round_trip: bool = False
    pacing: Pacing = Pacing.MODERATE
    include_accom: bool = True
    accommodation_type: AccommodationType = AccommodationType.HOTEL
    hotel_budget: int = 500
    must_visit: List[str] = field(default_factory=list)
    avoid: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure transforms: every change yields a new TravelPlan
# ---------------------------------------------------------------------------

def with_point(
    plan: TravelPlan,
    day_idx: int,
    point_idx: int,
    fn: Callable[[LocationPoint], LocationPoint],
) -> TravelPlan:
    """Return a copy of ``plan`` with one point rewritten by ``fn``.

    Out-of-range coordinates leave the plan unchanged.
    """
    point = plan.point_at(day_idx, point_idx)
    if point is None:
        return plan
    day = plan.days[day_idx]
    points = list(day.points)
    points[point_idx] = fn(point)
    days = list(plan.days)
    days[day_idx] = replace(day, points=points)
    return replace(plan, days=days)


def set_alternatives(
    plan: TravelPlan, day_idx: int, point_idx: int, alternatives: List[Alternative],
) -> TravelPlan:
    return with_point(plan, day_idx, point_idx,
                      lambda pt: replace(pt, alternatives=list(alternatives)))


def replace_point(
    plan: TravelPlan, day_idx: int, point_idx: int, alternative: Alternative,
) -> TravelPlan:
    """Swap a point for one of its alternatives.

    Fields the candidate carries overlay the old point; category, arrival
    time and travel time are kept, and alternatives reset to an empty list.
    """
    def _swap(old: LocationPoint) -> LocationPoint:
        changes = {
            "name": alternative.name,
            "rating": alternative.rating,
            "user_ratings_total": alternative.user_ratings_total,
            "description": alternative.description,
            "lat": alternative.lat,
            "lng": alternative.lng,
            "alternatives": [],
        }
        for key in ("ticket_price", "average_cost", "duration"):
            value = getattr(alternative, key)
            if value is not None:
                changes[key] = value
        return replace(old, **changes)

    return with_point(plan, day_idx, point_idx, _swap)
