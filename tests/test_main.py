"""
API tests for main.py

The planner is replaced by a fake so no request leaves the process.
"""
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

import main
from agents.json_parser import UnrecoverableFormat
from agents.llm_client import TransportError
from main import create_app
from settings import SettingsError
from TravelPlan import Alternative, set_alternatives

CANDIDATES = [Alternative(name="玄武山", rating=4.7), Alternative(name="金町湾", ticket_price="¥30")]

PLAN_BODY = {
    "start": "广州",
    "end": "汕尾",
    "start_time": "2026-06-01T09:00",
    "end_time": "2026-06-02T20:00",
    "days": 2,
    "travelers": 3,
    "pacing": "moderate",
    "must_visit": ["红海湾"],
}


class FakePlanner:
    def __init__(self, plan=None, error=None, alternatives=None, destinations=None):
        self.plan = plan
        self.error = error
        self.alternatives = alternatives
        self.destinations = destinations or []
        self.requests = []

    async def generate_plan(self, req):
        self.requests.append(req)
        if self.error:
            raise self.error
        return self.plan

    async def find_alternatives(self, point_name, category):
        if self.alternatives is None:
            raise TransportError("API Request Failed: 503")
        return list(self.alternatives)

    async def recommend_destinations(self, location):
        if self.error:
            raise self.error
        return self.destinations


@pytest.fixture
def make_client(api_settings):
    def factory(planner):
        return TestClient(create_app(planner=planner, settings=api_settings))
    return factory


@pytest.fixture
def enriched_plan(sample_plan):
    plan = sample_plan
    for d, p in sample_plan.coordinates():
        plan = set_alternatives(plan, d, p, CANDIDATES)
    return plan


class TestCreatePlan:
    def test_returns_plan_with_costs(self, make_client, sample_plan):
        planner = FakePlanner(plan=sample_plan)
        with make_client(planner) as client:
            response = client.post("/plans", json=PLAN_BODY)

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "plan-1"
        assert data["durationDays"] == 2
        assert data["days"][0]["points"][0]["type"] == "attraction"
        assert data["days"][0]["points"][0]["subtotal"] == 180
        assert data["days"][1]["points"][0]["subtotal"] == 20
        assert data["costs"]["total"] == 1390
        assert data["costs"]["per_person"] == 463

        req = planner.requests[0]
        assert req.travelers == 3
        assert req.must_visit == ["红海湾"]

    def test_format_failure_is_422(self, make_client):
        planner = FakePlanner(error=UnrecoverableFormat('{"days": ['))
        with make_client(planner) as client:
            response = client.post("/plans", json=PLAN_BODY)
        assert response.status_code == 422
        assert "reducing the number of days" in response.json()["detail"]

    def test_transport_failure_is_502(self, make_client):
        planner = FakePlanner(error=TransportError("API Request Failed: 500 - boom"))
        with make_client(planner) as client:
            response = client.post("/plans", json=PLAN_BODY)
        assert response.status_code == 502
        assert "500 - boom" in response.json()["detail"]

    def test_missing_credentials_is_503(self, make_client):
        planner = FakePlanner(error=SettingsError("Missing LLM settings: api_key"))
        with make_client(planner) as client:
            assert client.post("/plans", json=PLAN_BODY).status_code == 503

    def test_invalid_body(self, make_client, sample_plan):
        with make_client(FakePlanner(plan=sample_plan)) as client:
            assert client.post("/plans", json={**PLAN_BODY, "days": 0}).status_code == 422


class TestReadPlan:
    def test_get_plan_and_costs(self, make_client, sample_plan):
        with make_client(FakePlanner(plan=sample_plan)) as client:
            client.post("/plans", json=PLAN_BODY)
            plan = client.get("/plans/plan-1").json()
            costs = client.get("/plans/plan-1/costs").json()

        assert plan["title"] == "广深沿海美食之旅"
        assert costs == {"transport": 170, "accommodation": 800, "dining": 240,
                         "tickets": 180, "travelers": 3, "total": 1390, "per_person": 463}

    def test_delete_plan(self, make_client, sample_plan):
        with make_client(FakePlanner(plan=sample_plan)) as client:
            client.post("/plans", json=PLAN_BODY)
            assert client.delete("/plans/plan-1").status_code == 204
            assert client.get("/plans/plan-1").status_code == 404
            assert client.delete("/plans/plan-1").status_code == 404
            assert client.get("/health").json()["plans"] == 0

    def test_oldest_plan_is_evicted_past_the_cap(self, make_client, sample_plan, monkeypatch):
        monkeypatch.setattr(main, "MAX_STORED_PLANS", 2)
        planner = FakePlanner()
        with make_client(planner) as client:
            for plan_id in ("plan-a", "plan-b", "plan-c"):
                planner.plan = replace(sample_plan, id=plan_id)
                client.post("/plans", json=PLAN_BODY)
            assert client.get("/plans/plan-a").status_code == 404
            assert client.get("/plans/plan-b").status_code == 200
            assert client.get("/plans/plan-c").status_code == 200
            assert client.get("/health").json()["plans"] == 2

    def test_unknown_plan_is_404(self, make_client):
        with make_client(FakePlanner()) as client:
            assert client.get("/plans/nope").status_code == 404
            assert client.get("/plans/nope/costs").status_code == 404


class TestAlternatives:
    def test_ready_alternatives(self, make_client, enriched_plan):
        with make_client(FakePlanner(plan=enriched_plan, alternatives=CANDIDATES)) as client:
            client.post("/plans", json=PLAN_BODY)
            response = client.post("/plans/plan-1/days/0/points/0/alternatives")

        data = response.json()
        assert data["status"] == "ready"
        assert [a["name"] for a in data["alternatives"]] == ["玄武山", "金町湾"]

    def test_lookup_is_queued_when_missing(self, make_client, sample_plan):
        with make_client(FakePlanner(plan=sample_plan)) as client:
            client.post("/plans", json=PLAN_BODY)
            response = client.post("/plans/plan-1/days/1/points/1/alternatives")
        assert response.status_code == 202
        assert response.json() == {"status": "queued", "alternatives": []}

    def test_bad_coordinate_is_404(self, make_client, sample_plan):
        with make_client(FakePlanner(plan=sample_plan)) as client:
            client.post("/plans", json=PLAN_BODY)
            assert client.post("/plans/plan-1/days/7/points/0/alternatives").status_code == 404

    def test_replace(self, make_client, enriched_plan):
        with make_client(FakePlanner(plan=enriched_plan, alternatives=CANDIDATES)) as client:
            client.post("/plans", json=PLAN_BODY)
            response = client.post("/plans/plan-1/days/0/points/0/replace",
                                   json={"alternative_index": 1})

        assert response.status_code == 200
        point = response.json()["days"][0]["points"][0]
        assert point["name"] == "金町湾"
        assert point["type"] == "attraction"
        assert point["ticket_price"] == "¥30"
        assert point["alternatives"] == []

    def test_replace_unknown_index(self, make_client, enriched_plan):
        with make_client(FakePlanner(plan=enriched_plan, alternatives=CANDIDATES)) as client:
            client.post("/plans", json=PLAN_BODY)
            response = client.post("/plans/plan-1/days/0/points/0/replace",
                                   json={"alternative_index": 5})
        assert response.status_code == 404


class TestMisc:
    def test_destinations(self, make_client):
        with make_client(FakePlanner(destinations=["婺源", "黄山"])) as client:
            response = client.get("/destinations", params={"location": "杭州"})
        assert response.json() == {"destinations": ["婺源", "黄山"]}

    def test_destinations_transport_failure(self, make_client):
        with make_client(FakePlanner(error=TransportError("down"))) as client:
            assert client.get("/destinations", params={"location": "杭州"}).status_code == 502

    def test_settings_update_is_redacted(self, make_client):
        with make_client(FakePlanner()) as client:
            response = client.put("/settings", json={"model": "new-model", "api_key": "sk-new"})
            health = client.get("/health").json()

        assert response.json()["model"] == "new-model"
        assert response.json()["api_key"] == "***"
        assert health["llm"] == "new-model"

    def test_health(self, make_client):
        with make_client(FakePlanner()) as client:
            data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["plans"] == 0
