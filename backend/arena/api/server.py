"""FastAPI dashboard and admin server for the Arena."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from arena import __version__
from arena.admin import ActionResult, AdminService
from arena.config import Settings, get_settings
from arena.ledger import net_worth
from arena.roster import AGENT_ROSTER, get_agent_profile
from arena.runtime import Arena
from arena.scheduler import TrackerSupervisor

logger = logging.getLogger(__name__)


class ResolveRequest(BaseModel):
    outcome: str


class AnalysisRequest(BaseModel):
    market_id: str | None = None


def create_app(
    arena: Arena | None = None,
    supervisor: TrackerSupervisor | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the app around an existing Arena, or one built at startup."""
    settings = settings or (arena.settings if arena is not None else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.arena is not None:
            yield
            return
        async with Arena(settings) as built:
            _bind(app, built, TrackerSupervisor(built.trackers))
            try:
                yield
            finally:
                app.state.supervisor.shutdown()

    app = FastAPI(title="Arena Dashboard API", version=__version__, lifespan=lifespan)
    app.state.arena = None
    if arena is not None:
        _bind(app, arena, supervisor or TrackerSupervisor(arena.trackers))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
        )

    def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
        if not settings.admin_token or x_admin_token != settings.admin_token:
            raise HTTPException(status_code=403, detail="ADMIN ACCESS DENIED")

    _register_routes(app, require_admin)
    return app


def _bind(app: FastAPI, arena: Arena, supervisor: TrackerSupervisor) -> None:
    app.state.arena = arena
    app.state.supervisor = supervisor
    app.state.admin = AdminService(arena, supervisor)


def _arena(request: Request) -> Arena:
    return request.app.state.arena


def _admin(request: Request) -> AdminService:
    return request.app.state.admin


def _register_routes(app: FastAPI, require_admin: Any) -> None:
    admin_only = [Depends(require_admin)]

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/api/agents")
    async def list_agents():
        """Roster without system prompts."""
        return [agent.model_dump(exclude={"system_prompt"}) for agent in AGENT_ROSTER]

    @app.get("/api/balances")
    async def list_balances(arena: Arena = Depends(_arena)):
        return [b.model_dump(mode="json") for b in await arena.ledger.get_all_balances()]

    @app.get("/api/leaderboard")
    async def leaderboard(
        sort_by: str = Query(default="balance"),
        arena: Arena = Depends(_arena),
    ):
        try:
            board = await arena.ledger.get_leaderboard(sort_by)  # type: ignore[arg-type]
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return [b.model_dump(mode="json") for b in board]

    @app.get("/api/agents/{agent_id}/predictions")
    async def agent_predictions(
        agent_id: str,
        limit: int = Query(default=50, ge=1, le=500),
        arena: Arena = Depends(_arena),
    ):
        predictions = await arena.positions.get_predictions_by_agent(agent_id, limit)
        return [p.model_dump(mode="json") for p in predictions]

    @app.get("/api/agents/{agent_id}/stats")
    async def agent_stats(agent_id: str, arena: Arena = Depends(_arena)):
        balance = await arena.ledger.get_balance(agent_id)
        if balance is None:
            raise HTTPException(status_code=404, detail=f"Agent {agent_id} not found")
        stats = await arena.positions.get_agent_stats(agent_id)
        profile = get_agent_profile(agent_id)
        return {
            "agent": profile.model_dump(exclude={"system_prompt"}) if profile else None,
            "balance": balance.model_dump(mode="json"),
            "stats": stats.model_dump(mode="json"),
            "unrealized_pnl": await arena.positions.calculate_unrealized_pnl(agent_id),
            "net_worth": await net_worth(arena.ledger, arena.positions, agent_id),
        }

    @app.get("/api/predictions/recent")
    async def recent_predictions(
        limit: int = Query(default=20, ge=1, le=200),
        arena: Arena = Depends(_arena),
    ):
        return [p.model_dump(mode="json") for p in await arena.positions.get_recent_predictions(limit)]

    @app.get("/api/positions/open")
    async def open_positions(market_id: str | None = None, arena: Arena = Depends(_arena)):
        return [p.model_dump(mode="json") for p in await arena.positions.get_open_positions(market_id)]

    @app.get("/api/positions/report")
    async def position_report(arena: Arena = Depends(_arena)):
        return (await arena.positions.position_report()).model_dump(mode="json")

    @app.get("/api/markets")
    async def list_markets(
        unanalyzed: bool = False,
        limit: int = Query(default=50, ge=1, le=1000),
        arena: Arena = Depends(_arena),
    ):
        if unanalyzed:
            markets = await arena.markets.get_unanalyzed_markets(limit)
        else:
            markets = sorted(
                await arena.markets.get_all_markets(), key=lambda m: m.volume, reverse=True
            )[:limit]
        return [m.model_dump(mode="json") for m in markets]

    @app.get("/api/markets/search")
    async def search_markets(q: str = Query(min_length=1), arena: Arena = Depends(_arena)):
        return [m.model_dump(mode="json") for m in await arena.markets.search_markets(q)]

    @app.get("/api/markets/stats")
    async def market_stats(arena: Arena = Depends(_arena)):
        return (await arena.markets.get_cache_stats()).model_dump(mode="json")

    @app.get("/api/markets/{market_id}")
    async def get_market(market_id: str, arena: Arena = Depends(_arena)):
        market = await arena.markets.get_market(market_id)
        if market is None:
            raise HTTPException(status_code=404, detail=f"Market {market_id} not found")
        odds = await arena.odds_store.get_odds(market_id)
        return {
            "market": market.model_dump(mode="json"),
            "odds": odds.model_dump(mode="json") if odds else None,
            "predictions": [
                p.model_dump(mode="json")
                for p in await arena.positions.get_predictions_by_market(market_id)
            ],
        }

    @app.get("/api/sessions")
    async def recent_sessions(
        limit: int = Query(default=10, ge=1, le=100),
        arena: Arena = Depends(_arena),
    ):
        return [s.model_dump(mode="json") for s in await arena.orchestrator.get_recent_sessions(limit)]

    @app.get("/api/trackers", response_model=ActionResult)
    async def tracker_status(admin: AdminService = Depends(_admin)):
        return await admin.tracker_status()

    @app.post("/api/admin/trackers/{name}/start", response_model=ActionResult, dependencies=admin_only)
    async def start_tracker(name: str, admin: AdminService = Depends(_admin)):
        return await admin.start_tracker(name)

    @app.post("/api/admin/trackers/{name}/stop", response_model=ActionResult, dependencies=admin_only)
    async def stop_tracker(name: str, admin: AdminService = Depends(_admin)):
        return await admin.stop_tracker(name)

    @app.post("/api/admin/trackers/{name}/force", response_model=ActionResult, dependencies=admin_only)
    async def force_tracker(name: str, admin: AdminService = Depends(_admin)):
        return await admin.force_cycle(name)

    @app.post("/api/admin/reset-analyzed", response_model=ActionResult, dependencies=admin_only)
    async def reset_analyzed(admin: AdminService = Depends(_admin)):
        return await admin.reset_analyzed()

    @app.post(
        "/api/admin/markets/{market_id}/resolve",
        response_model=ActionResult,
        dependencies=admin_only,
    )
    async def resolve_market(
        market_id: str, body: ResolveRequest, admin: AdminService = Depends(_admin)
    ):
        return await admin.resolve_market(market_id, body.outcome)

    @app.post(
        "/api/admin/agents/{agent_id}/reset-balance",
        response_model=ActionResult,
        dependencies=admin_only,
    )
    async def reset_balance(agent_id: str, admin: AdminService = Depends(_admin)):
        return await admin.reset_agent_balance(agent_id)

    @app.post("/api/admin/analysis", response_model=ActionResult, dependencies=admin_only)
    async def trigger_analysis(
        body: AnalysisRequest | None = None, admin: AdminService = Depends(_admin)
    ):
        return await admin.trigger_analysis(body.market_id if body else None)

    @app.post("/api/admin/bankruptcy-check", response_model=ActionResult, dependencies=admin_only)
    async def bankruptcy_check(admin: AdminService = Depends(_admin)):
        return await admin.check_bankruptcy()
