"""FastAPI Backend - self-drive itinerary generation, enrichment and costs"""
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

# Load .env before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from agents.AlternativesAgent import AlternativesScheduler
from agents.json_parser import UnrecoverableFormat
from agents.llm_client import TransportError, create_chat_client
from agents.planning_agent import TripPlanner
from cost_calculator import calculate_point_cost, calculate_total_cost
from plan_store import PlanStore
from request_queue import RequestQueue
from settings import ApiSettings, SettingsError, load_settings
from TravelPlan import PlanRequest, TravelPlan

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Oldest plans are dropped once more than this many are held in memory
MAX_STORED_PLANS = int(os.getenv("MAX_STORED_PLANS", "100"))


class PlanCreate(BaseModel):
    start: str
    end: str
    start_time: str
    end_time: str
    days: int = Field(ge=1)
    travelers: int = Field(default=1, ge=1)
    is_round_trip: bool = False
    pacing: str = "moderate"
    include_accom: bool = True
    accommodation_type: str = "hotel"
    hotel_budget: int = 500
    must_visit: List[str] = []
    avoid: List[str] = []


class ReplaceRequest(BaseModel):
    alternative_index: int = Field(ge=0)


class SettingsUpdate(BaseModel):
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None


def _plan_response(plan: TravelPlan) -> dict:
    data = plan.to_dict(encode_json=True)
    data["durationDays"] = plan.duration_days
    for day_data, day in zip(data["days"], plan.days):
        for point_data, point in zip(day_data["points"], day.points):
            point_data["subtotal"] = calculate_point_cost(point, plan.travelers)
    data["costs"] = calculate_total_cost(plan).summary()
    return data


def create_app(
    planner: Optional[TripPlanner] = None,
    settings: Optional[ApiSettings] = None,
) -> FastAPI:
    """Build the API.  ``planner``/``settings`` may be injected (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings or load_settings()
        app.state.planner = planner or TripPlanner(
            create_chat_client(lambda: app.state.settings)
        )
        app.state.queue = RequestQueue(app.state.settings.enrichment_concurrency)
        app.state.scheduler = AlternativesScheduler(app.state.queue, app.state.planner)
        app.state.plans = {}
        yield

    app = FastAPI(
        title="Self-Drive Itinerary Planner API",
        description="LLM itinerary generation with background alternatives enrichment",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _store(plan_id: str) -> PlanStore:
        store = app.state.plans.get(plan_id)
        if store is None:
            raise HTTPException(status_code=404, detail="Plan not found")
        return store

    @app.post("/plans", status_code=status.HTTP_201_CREATED)
    async def create_plan(body: PlanCreate):
        """Generate a plan, then queue alternatives lookups for every point."""
        try:
            req = PlanRequest.from_dict(body.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        try:
            plan = await app.state.planner.generate_plan(req)
        except UnrecoverableFormat as e:
            raise HTTPException(status_code=422, detail=str(e))
        except TransportError as e:
            raise HTTPException(status_code=502, detail=f"Planning failed: {e}")
        except SettingsError as e:
            raise HTTPException(status_code=503, detail=str(e))

        store = PlanStore(plan)
        app.state.plans[plan.id] = store
        while len(app.state.plans) > MAX_STORED_PLANS:
            evicted = next(iter(app.state.plans))
            del app.state.plans[evicted]
            logger.info("Evicted plan %s", evicted)
        app.state.scheduler.prefetch(store)
        return _plan_response(plan)

    @app.get("/plans/{plan_id}")
    async def get_plan(plan_id: str):
        return _plan_response(_store(plan_id).get())

    @app.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_plan(plan_id: str):
        _store(plan_id)
        del app.state.plans[plan_id]

    @app.get("/plans/{plan_id}/costs")
    async def get_costs(plan_id: str):
        return calculate_total_cost(_store(plan_id).get()).summary()

    @app.post("/plans/{plan_id}/days/{day_idx}/points/{point_idx}/alternatives")
    async def point_alternatives(plan_id: str, day_idx: int, point_idx: int,
                                 response: Response):
        """Return cached alternatives, or queue a lookup when there are none yet."""
        store = _store(plan_id)
        point = store.get().point_at(day_idx, point_idx)
        if point is None:
            raise HTTPException(status_code=404, detail="Point not found")
        if point.alternatives:
            return {"status": "ready",
                    "alternatives": [a.to_dict() for a in point.alternatives]}
        app.state.scheduler.request_alternatives(store, day_idx, point_idx)
        response.status_code = status.HTTP_202_ACCEPTED
        return {"status": "queued", "alternatives": []}

    @app.post("/plans/{plan_id}/days/{day_idx}/points/{point_idx}/replace")
    async def replace_with_alternative(plan_id: str, day_idx: int, point_idx: int,
                                       body: ReplaceRequest):
        store = _store(plan_id)
        point = store.get().point_at(day_idx, point_idx)
        if point is None:
            raise HTTPException(status_code=404, detail="Point not found")
        candidates = point.alternatives or []
        if body.alternative_index >= len(candidates):
            raise HTTPException(status_code=404, detail="Alternative not found")

        plan = app.state.scheduler.accept_alternative(
            store, day_idx, point_idx, candidates[body.alternative_index])
        return _plan_response(plan)

    @app.get("/destinations")
    async def recommend_destinations(location: str = Query(..., description="Current city")):
        try:
            return {"destinations": await app.state.planner.recommend_destinations(location)}
        except UnrecoverableFormat as e:
            raise HTTPException(status_code=422, detail=str(e))
        except TransportError as e:
            raise HTTPException(status_code=502, detail=f"Recommendation failed: {e}")
        except SettingsError as e:
            raise HTTPException(status_code=503, detail=str(e))

    @app.put("/settings")
    async def update_settings(body: SettingsUpdate):
        app.state.settings = app.state.settings.override(**body.model_dump())
        return app.state.settings.redacted()

    @app.get("/health")
    async def health_check():
        current = app.state.settings
        return {
            "status": "ok",
            "version": "1.0.0",
            "llm": current.model,
            "llm_transport": current.transport,
            "plans": len(app.state.plans),
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
