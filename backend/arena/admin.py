"""Admin actions over the running system.

Every action answers with an ``ActionResult``; unexpected errors are logged
with their traceback and reported as a generic message.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from arena.ledger.bankruptcy import run_bankruptcy_check
from arena.models import Side
from arena.outcomes import Declined, Ok
from arena.runtime import Arena
from arena.scheduler import TrackerSupervisor

logger = logging.getLogger(__name__)


class ActionResult(BaseModel):
    success: bool
    message: str
    data: Any = None


def _guarded(action: Callable[..., Awaitable[ActionResult]]) -> Callable[..., Awaitable[ActionResult]]:
    @functools.wraps(action)
    async def wrapper(*args: Any, **kwargs: Any) -> ActionResult:
        try:
            return await action(*args, **kwargs)
        except KeyError as e:
            return ActionResult(success=False, message=str(e).strip("'\""))
        except Exception as e:
            logger.error(f"Admin action {action.__name__} failed: {e}", exc_info=True)
            return ActionResult(success=False, message=f"{action.__name__} failed: internal error")

    return wrapper


class AdminService:
    def __init__(self, arena: Arena, supervisor: TrackerSupervisor):
        self.arena = arena
        self.supervisor = supervisor

    @_guarded
    async def start_tracker(self, name: str) -> ActionResult:
        if self.supervisor.start_tracker(name):
            return ActionResult(success=True, message=f"{name} tracker started")
        return ActionResult(success=False, message=f"{name} tracker is already running")

    @_guarded
    async def stop_tracker(self, name: str) -> ActionResult:
        if self.supervisor.stop_tracker(name):
            return ActionResult(success=True, message=f"{name} tracker stopped")
        return ActionResult(success=False, message=f"{name} tracker is not running")

    @_guarded
    async def force_cycle(self, name: str) -> ActionResult:
        result = await self.supervisor.force_cycle(name)
        if result is None:
            status = self.supervisor.trackers[name].status()
            reason = status.last_error or "skipped, a cycle is already in progress"
            return ActionResult(success=False, message=f"{name} cycle did not complete: {reason}")
        data = result.model_dump(mode="json") if isinstance(result, BaseModel) else result
        return ActionResult(success=True, message=f"{name} cycle completed", data=data)

    @_guarded
    async def tracker_status(self) -> ActionResult:
        return ActionResult(
            success=True,
            message="Tracker status",
            data={k: v.model_dump(mode="json") for k, v in self.supervisor.status().items()},
        )

    @_guarded
    async def reset_analyzed(self) -> ActionResult:
        markets_reset, predictions_cleared = await self.arena.orchestrator.reset_analyzed_status()
        return ActionResult(
            success=True,
            message=(
                f"Reset analyzed status on {markets_reset} markets "
                f"and cleared {predictions_cleared} predictions"
            ),
            data={"markets_reset": markets_reset, "predictions_cleared": predictions_cleared},
        )

    @_guarded
    async def resolve_market(self, market_id: str, outcome: str) -> ActionResult:
        side = outcome.upper()
        if side not in ("YES", "NO"):
            return ActionResult(success=False, message=f"Outcome must be YES or NO, got {outcome}")

        settled = await self.arena.markets.manually_resolve_market(market_id, side)  # type: ignore[arg-type]
        if isinstance(settled, Declined):
            return ActionResult(success=False, message=settled.message)
        result = settled.value
        return ActionResult(
            success=not result.errors,
            message=(
                f"Market {market_id} resolved {side}: {result.predictions_resolved} predictions "
                f"resolved, {result.positions_closed} positions closed, {len(result.errors)} errors"
            ),
            data=result.model_dump(mode="json"),
        )

    @_guarded
    async def reset_agent_balance(self, agent_id: str) -> ActionResult:
        reset = await self.arena.ledger.reset_agent_balance(agent_id)
        if isinstance(reset, Ok):
            return ActionResult(
                success=True,
                message=f"Reset {agent_id} to ${reset.value.current_balance:,.2f}",
                data=reset.value.model_dump(mode="json"),
            )
        return ActionResult(success=False, message=reset.message)

    @_guarded
    async def trigger_analysis(self, market_id: str | None = None) -> ActionResult:
        orchestrator = self.arena.orchestrator
        if market_id:
            session = await orchestrator.trigger_single_market_analysis(market_id, "admin")
        else:
            session = await orchestrator.trigger_analysis("admin")
        return ActionResult(
            success=session.status == "completed",
            message=(
                f"Session {session.session_id} {session.status}: "
                f"{session.predictions_made} predictions on {session.markets_analyzed} markets"
            ),
            data=session.model_dump(mode="json"),
        )

    @_guarded
    async def check_bankruptcy(self) -> ActionResult:
        report = await run_bankruptcy_check(self.arena.ledger, self.arena.positions)
        return ActionResult(
            success=True,
            message=(
                f"{report.checked} agents checked, {len(report.unable_to_bet)} below floor, "
                f"{len(report.newly_bankrupt)} newly bankrupt"
            ),
            data=report.model_dump(mode="json"),
        )
