"""
Self-drive Itinerary Planner (direct chat-completion calls)

Three kinds of model round-trip, all through the same transport:

  1. Plan generation        → 1 call, decoded into a TravelPlan
  2. Alternatives for a stop → 1 call per point (fanned out by AlternativesAgent)
  3. Destination ideas      → 1 call

Every reply goes through ``extract_json`` so fenced, commented or truncated
JSON still yields a value.  Parser and transport errors propagate unchanged;
nothing here retries.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from agents.json_parser import extract_json
from agents.llm_client import ChatClient
from TravelPlan import (
    CATEGORIES,
    AccommodationType,
    Alternative,
    DayItinerary,
    LocationPoint,
    PlanRequest,
    TravelPlan,
)

logger = logging.getLogger(__name__)

ALTERNATIVES_PER_POINT = 5


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def _accommodation_rule(req: PlanRequest) -> str:
    if not req.include_accom:
        return "No accommodation needed."
    if req.accommodation_type is AccommodationType.HOTEL:
        return (f"Specific Hotel (Budget ~{req.hotel_budget} CNY). "
                "Find best value in this range.")
    return "Safe, specific parking lot suitable for car camping (with restrooms)."


def build_plan_system_prompt(req: PlanRequest) -> str:
    must_visit = ""
    if req.must_visit:
        must_visit = ("- **MUST VISIT**: You MUST include these specific places/experiences "
                      f"in the itinerary: {', '.join(req.must_visit)}.")
    avoid = ""
    if req.avoid:
        avoid = ("- **AVOID / BLOCK**: You MUST NOT include any of these places, brands, "
                 f"or areas: {', '.join(req.avoid)}.")
    round_trip = ("Yes. Return route MUST be different (Loop line) to maximize scenery."
                  if req.is_round_trip else "No, one way.")

    return f"""You are a Senior Travel Consultant & Local Expert for China.

**YOUR GOAL**: Design a "Travel Experience", NOT just a navigation route.
**PRIORITY**: Quality of Attractions > Food Quality > Scenic Route > Distance Efficiency.

**STRICT RULES FOR LOCATION SELECTION**:
1. **Must-Visit Attractions**: Include National 5A/4A Tourist Attractions and city landmarks.
2. **Specific Store Names (CRITICAL)**:
   - **Restaurants**: Provide the EXACT NAME (Dianping Black Pearl, Michelin, or Must-Eat List).
   - **Hotels**: Provide the EXACT NAME of a specific hotel.
   - **Parking**: Provide a specific Parking Lot Name.
3. **Smart Detours & Scenic Routing**: Do not simply take the shortest highway.
4. **Dining Standards**: Food must be a highlight.

**MANDATORY USER REQUIREMENTS (HIGHEST PRIORITY)**:
{must_visit}
{avoid}

**SCHEDULE LOGIC**:
1. **Timezone**: Beijing Time (UTC+8).
2. **Trip Duration**: EXACTLY from [{req.start_time}] to [{req.end_time}].
   - If starting in the afternoon/evening, DO NOT schedule morning activities for Day 1.
   - Ensure the last day's activities fit before the end time.
3. **Sleep Schedule**: STRICTLY 23:00 - 08:00 (No travel or activities).

**USER PREFERENCES**:
1. Group Size: {req.travelers} people.
2. Pacing: {req.pacing.label}.
3. Accommodation: {_accommodation_rule(req)}
4. Round Trip: {round_trip}
5. Language: Simplified Chinese (简体中文).

**OUTPUT FORMAT**:
- Return **ONLY** valid JSON.
- **ticket_price**: Real estimate (e.g. "¥120").
- **average_cost**: Dining/activity cost (e.g. "¥150/人").
- **duration**: e.g. "3小时".

JSON Structure:
{{
  "title": "string",
  "days": [
    {{
      "day": number,
      "date": "YYYY-MM-DD",
      "transportation_cost": "string (e.g. '¥200', estimated fuel + highway tolls for this day)",
      "points": [
        {{
          "name": "string (Specific Business/Spot Name)",
          "type": "attraction" | "restaurant" | "parking" | "hotel",
          "arrivalTime": "HH:mm",
          "duration": "string",
          "ticket_price": "string",
          "average_cost": "string",
          "description": "string",
          "rating": number (4.0-5.0),
          "user_ratings_total": number,
          "lat": number,
          "lng": number,
          "travelTimeToNext": "string"
        }}
      ]
    }}
  ]
}}"""


def build_plan_user_prompt(req: PlanRequest) -> str:
    lines = [
        f"Design a premium {req.days}-day self-driving itinerary from {req.start} to {req.end}.",
        f"Start: {req.start_time}, End: {req.end_time}. Travelers: {req.travelers}.",
    ]
    if req.must_visit:
        lines.append(f"Include: {', '.join(req.must_visit)}")
    if req.avoid:
        lines.append(f"Exclude: {', '.join(req.avoid)}")
    lines.append("Focus on 5A/4A attractions and Dianping high-rated food. "
                 "Specific store names for all stops.")
    return "\n".join(lines)


def build_alternatives_prompt(point_name: str, category: str) -> str:
    return f"""You are a travel assistant. Find {ALTERNATIVES_PER_POINT} alternative **Top-Tier** (>4.5 rating) places for "{point_name}" of type "{category}".

Rules:
1. If type is 'restaurant', candidates MUST be on Dianping Must-Eat List, Black Pearl, or Michelin.
2. If type is 'attraction', candidates MUST be 5A/4A or trending internet-famous spots.
3. Output **Exact Business Names**.

Language: Simplified Chinese (简体中文).
Output **ONLY** JSON Array: [{{"name", "rating", "user_ratings_total", "description", "lat", "lng", "ticket_price", "average_cost", "duration"}}]"""


def build_destinations_prompt(current_location: str) -> str:
    return f"""Recommend 5 **High-Quality** self-driving destinations >300km from {current_location}.
Focus on 5A scenic areas, historical cities, or unique landscapes.
Language: Simplified Chinese (简体中文).
Output **ONLY** JSON Array of strings: ["City1", "City2", ...]"""


# ---------------------------------------------------------------------------
# Normalisation (model output → decodable dicts)
# ---------------------------------------------------------------------------

def _as_number(value: Any, cast=float):
    try:
        return cast(float(value))
    except (TypeError, ValueError, OverflowError):
        return cast(0)


def _as_text(value: Any):
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _normalise_candidate(raw: Dict[str, Any]) -> Dict[str, Any]:
    item = dict(raw)
    item["name"] = _as_text(item.get("name")) or ""
    item["rating"] = _as_number(item.get("rating"))
    item["user_ratings_total"] = _as_number(item.get("user_ratings_total"), int)
    item["lat"] = _as_number(item.get("lat"))
    item["lng"] = _as_number(item.get("lng"))
    item["description"] = _as_text(item.get("description")) or ""
    for key in ("ticket_price", "average_cost", "duration"):
        if key in item:
            item[key] = _as_text(item[key])
    return item


def _normalise_point(raw: Dict[str, Any]) -> Dict[str, Any]:
    item = _normalise_candidate(raw)
    category = item.get("type")
    if category not in CATEGORIES:
        logger.warning("Point %r has unknown type %r, treating as attraction",
                       item["name"], category)
        item["type"] = "attraction"
    if not item.get("arrivalTime") and item.get("time"):
        item["arrivalTime"] = item["time"]
    item["arrivalTime"] = _as_text(item.get("arrivalTime")) or ""
    item["duration"] = _as_text(item.get("duration")) or ""
    item.pop("alternatives", None)
    return item


def _normalise_days(raw_days: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw_days, list):
        return []
    days = []
    for i, raw_day in enumerate(raw_days):
        if not isinstance(raw_day, dict):
            continue
        points = [_normalise_point(p) for p in raw_day.get("points") or []
                  if isinstance(p, dict)]
        days.append({
            "day": _as_number(raw_day.get("day", i + 1), int),
            "date": _as_text(raw_day.get("date")) or "",
            "transportation_cost": _as_text(raw_day.get("transportation_cost")),
            "points": points,
        })
    return days


def decode_alternatives(data: Any) -> List[Alternative]:
    """Accept a bare array or ``{"alternatives": [...]}``; anything else is empty."""
    if isinstance(data, dict):
        data = data.get("alternatives") or []
    if not isinstance(data, list):
        return []
    return [Alternative.from_dict(_normalise_candidate(c))
            for c in data if isinstance(c, dict)]


def decode_plan(data: Any, req: PlanRequest) -> TravelPlan:
    """Project a parsed reply onto a TravelPlan with a fresh id."""
    if not isinstance(data, dict):
        data = {}
    days = [DayItinerary.from_dict(d) for d in _normalise_days(data.get("days"))]
    if days and len(days) != req.days:
        logger.warning("Requested %d days, model returned %d", req.days, len(days))

    return TravelPlan(
        id=uuid.uuid4().hex,
        title=data.get("title") or f"{req.start} - {req.end} 深度自驾",
        start_point=req.start,
        end_point=req.end,
        start_time=req.start_time,
        end_time=req.end_time,
        travelers=req.travelers,
        is_round_trip=req.is_round_trip,
        pacing=req.pacing,
        include_accom=req.include_accom,
        accommodation_type=req.accommodation_type,
        hotel_budget=req.hotel_budget,
        must_visit=list(req.must_visit) or None,
        avoid=list(req.avoid) or None,
        days=days,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class TripPlanner:
    """Model-backed operations over a shared chat client."""

    def __init__(self, client: ChatClient):
        self.client = client

    async def generate_plan(self, req: PlanRequest) -> TravelPlan:
        raw = await self.client.complete([
            {"role": "system", "content": build_plan_system_prompt(req)},
            {"role": "user", "content": build_plan_user_prompt(req)},
        ])
        plan = decode_plan(extract_json(raw), req)
        logger.info("Generated plan %s: %d days, %d points", plan.id,
                    plan.duration_days, len(plan.coordinates()))
        return plan

    async def find_alternatives(self, point_name: str, category: str) -> List[Alternative]:
        raw = await self.client.complete([
            {"role": "system", "content": build_alternatives_prompt(point_name, category)},
            {"role": "user", "content": "Find premium alternatives. Return JSON."},
        ])
        return decode_alternatives(extract_json(raw))

    async def recommend_destinations(self, current_location: str) -> List[str]:
        raw = await self.client.complete([
            {"role": "system", "content": build_destinations_prompt(current_location)},
            {"role": "user", "content": "Recommend scenic destinations. Return JSON."},
        ])
        data = extract_json(raw)
        if not isinstance(data, list):
            return []
        return [str(name) for name in data if isinstance(name, (str, int, float))]
