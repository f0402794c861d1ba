"""
Tests for the REST endpoints
Run with: pytest tests/test_api.py -v
"""

import pytest
from fastapi.testclient import TestClient

from backend.main import app
from backend.services import wager_sizing


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(wager_sizing, "_default_config", None)
    monkeypatch.delenv("RISK_PROFILE", raising=False)
    with TestClient(app) as c:
        yield c


FIELD = [
    {"id": "1", "base_score": 2.0, "odds_display": "8-5"},
    {"id": "2", "base_score": 1.6, "odds_display": "5-2"},
    {"id": "3", "base_score": 1.0, "odds_display": "4-1"},
    {"id": "4", "base_score": 1.5, "odds_display": "8-1"},
    {"id": "5", "base_score": 0.2, "odds_display": "10-1"},
    {"id": "6", "base_score": -0.5, "odds_display": "15-1"},
]


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["status"] == "operational"


class TestAnalyzeEndpoint:
    """POST /api/race/analyze"""

    def test_analyze(self, client):
        resp = client.post("/api/race/analyze", json={"entrants": FIELD, "temperature": 1.0})
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["results"]) == 6
        assert body["metrics"]["best_value_entrant"] == "4"
        assert body["metrics"]["probs_validated"]
        total = sum(r["model_probability"] for r in body["results"])
        assert total == pytest.approx(1.0, abs=0.01)

    def test_unparseable_odds_rejected(self, client):
        field = FIELD + [{"id": "7", "base_score": 0.0, "odds_display": "???"}]
        resp = client.post("/api/race/analyze", json={"entrants": field})
        assert resp.status_code == 422

    def test_empty_field(self, client):
        resp = client.post("/api/race/analyze", json={"entrants": []})
        assert resp.status_code == 200
        assert resp.json()["metrics"]["field_size"] == 0


class TestSizeEndpoint:
    """POST /api/wagers/size"""

    def test_size(self, client):
        resp = client.post("/api/wagers/size", json={
            "entrant_id": "3",
            "probability": 0.30,
            "decimal_odds": 4.0,
            "bankroll": {"current_bankroll": 1000.0},
            "config": {"risk_profile": "conservative"},
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["should_bet"]
        assert body["rounded_bet_size"] == 17.0

    def test_server_default_config(self, client):
        resp = client.post("/api/wagers/size", json={
            "probability": 0.30,
            "decimal_odds": 4.0,
            "bankroll": {"current_bankroll": 1000.0},
        })
        assert resp.status_code == 200
        assert resp.json()["rounded_bet_size"] == 17.0

    def test_inconsistent_config_is_400(self, client):
        resp = client.post("/api/wagers/size", json={
            "probability": 0.30,
            "decimal_odds": 4.0,
            "bankroll": {"current_bankroll": 1000.0},
            "config": {"min_bet": 100.0, "max_bet": 10.0},
        })
        assert resp.status_code == 400

    def test_whole_bankroll_stake_serialises_growth(self, client):
        resp = client.post("/api/wagers/size", json={
            "probability": 0.6,
            "decimal_odds": 4.0,
            "bankroll": {"current_bankroll": 2.0},
            "config": {"min_bet": 2.0, "max_bet_percent": 1.0, "kelly_multiplier": 1.0},
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["rounded_bet_size"] == 2.0
        assert body["expected_growth_rate"] == 0.0

    def test_invalid_probability_is_no_bet(self, client):
        resp = client.post("/api/wagers/size", json={
            "probability": 1.5,
            "decimal_odds": 4.0,
            "bankroll": {"current_bankroll": 1000.0},
        })
        assert resp.status_code == 200
        assert not resp.json()["should_bet"]


class TestExoticEndpoints:
    """POST /api/exotics/cost and /api/exotics/compare"""

    def test_cost(self, client):
        resp = client.post("/api/exotics/cost", json={
            "pool_type": "trifecta",
            "structure": "box",
            "position_sets": [["1", "2", "3", "4"]],
            "base_bet_unit": 1.0,
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["is_valid"]
        assert body["combinations"] == 24
        assert body["total_cost"] == pytest.approx(24.0)

    def test_invalid_ticket_is_reported(self, client):
        resp = client.post("/api/exotics/cost", json={
            "pool_type": "TRIFECTA",
            "structure": "BOX",
            "position_sets": [["1", "2"]],
        })
        assert resp.status_code == 200
        body = resp.json()
        assert not body["is_valid"]
        assert body["error"]

    def test_compare(self, client):
        resp = client.post("/api/exotics/compare", json={
            "selections": [
                {"entrant_id": "1", "decimal_odds": 2.6, "model_probability": 0.35},
                {"entrant_id": "2", "decimal_odds": 3.5, "model_probability": 0.23},
                {"entrant_id": "4", "decimal_odds": 9.0, "model_probability": 0.21},
                {"entrant_id": "3", "decimal_odds": 5.0, "model_probability": 0.13},
            ],
            "budget": 50.0,
            "pools": ["EXACTA", "TRIFECTA"],
        })
        assert resp.status_code == 200
        rows = resp.json()["rows"]
        assert rows
        assert rows[0]["is_recommended"]
        assert all(r["total_cost"] <= 50.0 for r in rows)

    def test_compare_needs_budget(self, client):
        resp = client.post("/api/exotics/compare", json={
            "selections": [{"entrant_id": "1", "decimal_odds": 2.6, "model_probability": 0.35}],
            "budget": 0,
        })
        assert resp.status_code == 422
