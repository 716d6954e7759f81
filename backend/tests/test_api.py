"""Tests for the dashboard API and admin gating."""

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from arena.agents import Decision, StaticClassifier
from arena.api.server import create_app
from arena.clock import FakeClock
from arena.config import Settings
from arena.positions import NeverClosePolicy
from arena.roster import AGENT_ROSTER
from arena.runtime import Arena
from arena.services.polymarket import PriceFeed
from arena.storage import MemoryStore

from factories import gamma_client, gamma_market, gamma_transport

ADMIN = {"X-Admin-Token": "let-me-in"}


@pytest.fixture
def arena(tmp_path: Path) -> Arena:
    clock = FakeClock()
    settings = Settings(
        _env_file=None,
        data_dir=tmp_path,
        admin_token="let-me-in",
        storage={"backend": "memory"},
    )
    arena = Arena(
        settings,
        store=MemoryStore(),
        price_feed=PriceFeed(gamma_client(gamma_transport({})), clock),
        classifier=StaticClassifier(default=Decision(prediction="YES", confidence=0.85)),
        closure_policy=NeverClosePolicy(),
        clock=clock,
    )

    async def seed() -> None:
        await arena.ledger.initialize(AGENT_ROSTER)
        await arena.markets.upsert_markets([gamma_market("m1")])

    asyncio.run(seed())
    return arena


@pytest.fixture
def client(arena: Arena) -> TestClient:
    return TestClient(create_app(arena))


def test_read_endpoints(client: TestClient) -> None:
    assert client.get("/api/health").json()["status"] == "ok"

    agents = client.get("/api/agents").json()
    assert len(agents) == 8
    assert "system_prompt" not in agents[0]

    board = client.get("/api/leaderboard", params={"sort_by": "roi"})
    assert board.status_code == 200
    assert len(board.json()) == 8

    assert client.get("/api/leaderboard", params={"sort_by": "luck"}).status_code == 400
    assert client.get("/api/markets/m1").json()["market"]["polymarket_id"] == "m1"
    assert client.get("/api/markets/nope").status_code == 404
    assert client.get("/api/agents/nobody/stats").status_code == 404


def test_admin_routes_require_token(client: TestClient) -> None:
    missing = client.post("/api/admin/reset-analyzed")
    assert missing.status_code == 403
    assert missing.json()["detail"] == "ADMIN ACCESS DENIED"

    wrong = client.post("/api/admin/reset-analyzed", headers={"X-Admin-Token": "guess"})
    assert wrong.status_code == 403

    ok = client.post("/api/admin/reset-analyzed", headers=ADMIN)
    assert ok.status_code == 200
    assert ok.json()["success"] is True


def test_admin_disabled_without_configured_token(arena: Arena) -> None:
    arena.settings.admin_token = ""
    client = TestClient(create_app(arena))
    response = client.post("/api/admin/bankruptcy-check", headers={"X-Admin-Token": ""})
    assert response.status_code == 403


def test_analysis_then_manual_resolution(client: TestClient) -> None:
    analysis = client.post("/api/admin/analysis", json={"market_id": "m1"}, headers=ADMIN)
    assert analysis.status_code == 200
    session = analysis.json()
    assert session["success"] is True
    placed = session["data"]["predictions_made"]
    assert placed == 3

    open_positions = client.get("/api/positions/open").json()
    assert len(open_positions) == 3

    bad = client.post("/api/admin/markets/m1/resolve", json={"outcome": "MAYBE"}, headers=ADMIN)
    assert bad.json()["success"] is False

    resolved = client.post("/api/admin/markets/m1/resolve", json={"outcome": "yes"}, headers=ADMIN)
    body = resolved.json()
    assert body["success"] is True
    assert body["data"]["predictions_resolved"] == 3

    winners = [
        b for b in client.get("/api/balances").json() if b["win_count"] == 1
    ]
    assert len(winners) == 3
    # $4 staked at 0.40 redeems $10
    assert all(b["current_balance"] == pytest.approx(1006.0) for b in winners)

    report = client.get("/api/positions/report").json()
    assert report["open_positions"] == 0
    assert report["closed_resolved"] == 3


def test_admin_errors_are_reported_not_raised(client: TestClient) -> None:
    unknown = client.post("/api/admin/trackers/nope/force", headers=ADMIN)
    assert unknown.status_code == 200
    assert unknown.json() == {"success": False, "message": "Unknown tracker: nope", "data": None}

    reset = client.post("/api/admin/agents/nobody/reset-balance", headers=ADMIN)
    assert reset.json()["success"] is False

    bankruptcy = client.post("/api/admin/bankruptcy-check", headers=ADMIN)
    assert bankruptcy.json()["data"]["checked"] == 8


def test_agent_stats_include_profile(client: TestClient) -> None:
    body = client.get("/api/agents/gemini-pro/stats").json()
    assert body["agent"]["name"] == "Gemini-Pro"
    assert body["balance"]["current_balance"] == 1000.0
    assert body["stats"]["total_predictions"] == 0
    assert body["net_worth"] == 1000.0
