import json
import os
import sys

import pytest

# Project root, needed for TravelPlan, settings, request_queue, etc.
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _root not in sys.path:
    sys.path.insert(0, _root)

from settings import ApiSettings
from TravelPlan import (
    AccommodationType,
    DayItinerary,
    LocationPoint,
    Pacing,
    PlanRequest,
    TravelPlan,
)


class StubClient:
    """Stands in for ChatClient: replies are popped in order, exceptions raised."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, messages, json_mode=True):
        self.calls.append(messages)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply, ensure_ascii=False)


@pytest.fixture
def api_settings():
    return ApiSettings(api_key="sk-test", base_url="https://llm.example.com/v1/chat/completions",
                       model="test-model")


@pytest.fixture
def plan_request():
    return PlanRequest(
        start="广州",
        end="汕尾",
        start_time="2026-06-01T09:00",
        end_time="2026-06-02T20:00",
        days=2,
        travelers=3,
        is_round_trip=True,
        pacing=Pacing.MODERATE,
        include_accom=True,
        accommodation_type=AccommodationType.HOTEL,
        hotel_budget=400,
        must_visit=["红海湾"],
        avoid=["网红打卡点"],
    )


@pytest.fixture
def sample_plan():
    return TravelPlan(
        id="plan-1",
        title="广深沿海美食之旅",
        start_point="广州",
        end_point="汕尾",
        start_time="2026-06-01T09:00",
        end_time="2026-06-02T20:00",
        travelers=3,
        days=[
            DayItinerary(day=1, date="2026-06-01", transportation_cost="¥150", points=[
                LocationPoint(name="红海湾", category="attraction", arrival_time="10:00",
                              ticket_price="¥60"),
                LocationPoint(name="海丰小吃", category="restaurant", arrival_time="12:30",
                              average_cost="¥80/人"),
                LocationPoint(name="汕尾维也纳酒店", category="hotel", arrival_time="20:00",
                              average_cost="¥400"),
            ]),
            DayItinerary(day=2, date="2026-06-02", points=[
                LocationPoint(name="凤山祖庙停车场", category="parking", arrival_time="09:00",
                              ticket_price="¥20"),
                LocationPoint(name="凤山祖庙", category="attraction", arrival_time="09:15",
                              ticket_price="免费"),
            ]),
        ],
    )
