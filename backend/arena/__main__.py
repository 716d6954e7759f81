"""Arena CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from arena import __version__
from arena.config import Settings, get_settings
from arena.outcomes import Declined, Ok
from arena.runtime import Arena
from arena.scheduler import start_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _init_logfire() -> bool:
    """Initialize Logfire if available, without failing commands."""
    try:
        from arena.observability import initialize_logfire

        return initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False


CONFIG_TEMPLATE = """# Arena Configuration
# Operational parameters for the prediction market competition.
# API keys and the admin token belong in the .env file, not here.

ledger:
  bankruptcy_floor: 10.00
  default_initial_balance: 1000.00

sizing:
  max_bet: 5.00
  max_bet_pct: 0.05
  min_bet: 1.00
  hot_streak: 3
  cold_streak: -3

positions:
  profit_taking_pnl_pct: 30.0
  profit_taking_probability: 0.15
  stop_loss_pnl_pct: -50.0
  stop_loss_probability: 0.08
  random_exit_base: 0.02
  random_exit_per_hour: 0.001
  random_exit_cap: 0.05

orchestrator:
  research_cost: 0.05
  min_volume: 1000
  markets_per_session: 3
  max_agents_per_market: 3
  min_days_to_close: 1
  reasoning_model: ""  # e.g. openai:gpt-4o-mini to run every agent on one model

trackers:
  odds_interval_seconds: 900
  positions_interval_seconds: 300
  market_refresh_interval_seconds: 7
  integrated_interval_seconds: 300
  cycle_timeout_seconds: 120
  odds_history_retention_days: 7

storage:
  backend: yaml

api:
  host: 127.0.0.1
  port: 8000
"""


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory structure and configuration files."""
    data_dir = Path("data").resolve()

    try:
        (data_dir / "store").mkdir(parents=True, exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Copy .env.example to .env and add your API keys and ADMIN_TOKEN")
        print("2. Review and customize data/config.yaml if needed")
        print("3. Run 'python -m arena config' to verify configuration")
        print("4. Run 'python -m arena run' to start the trackers\n")

        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Arena Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Store: {settings.storage.backend} ({settings.store_dir})\n")

        print("Ledger:")
        print(f"  Initial Balance: ${settings.ledger.default_initial_balance:,.2f}")
        print(f"  Bankruptcy Floor: ${settings.ledger.bankruptcy_floor:,.2f}\n")

        print("Bet Sizing:")
        print(f"  Max Bet: ${settings.sizing.max_bet:,.2f} or {settings.sizing.max_bet_pct:.0%} of balance")
        print(f"  Min Bet: ${settings.sizing.min_bet:,.2f}")
        for threshold, fraction in settings.sizing.confidence_bands:
            print(f"  Confidence >= {threshold:.0%}: {fraction:.0%} of ceiling")
        print()

        print("Position Management:")
        print(
            f"  Profit Taking: pnl >= {settings.positions.profit_taking_pnl_pct:g}% "
            f"@ p={settings.positions.profit_taking_probability}"
        )
        print(
            f"  Stop Loss: pnl <= {settings.positions.stop_loss_pnl_pct:g}% "
            f"@ p={settings.positions.stop_loss_probability}"
        )
        print(f"  Random Exit Cap: {settings.positions.random_exit_cap}\n")

        print("Analysis:")
        print(f"  Markets per Session: {settings.orchestrator.markets_per_session}")
        print(f"  Agents per Market: {settings.orchestrator.max_agents_per_market}")
        print(f"  Min Volume: {settings.orchestrator.min_volume:,.0f}")
        print(f"  Reasoning Model: {settings.orchestrator.reasoning_model or 'per agent'}\n")

        print("Trackers (seconds):")
        print(f"  Odds: {settings.trackers.odds_interval_seconds:g}")
        print(f"  Positions: {settings.trackers.positions_interval_seconds:g}")
        print(f"  Market Refresh: {settings.trackers.market_refresh_interval_seconds:g}")
        print(f"  Integrated: {settings.trackers.integrated_interval_seconds:g}")
        print(f"  Cycle Timeout: {settings.trackers.cycle_timeout_seconds:g}\n")

        print("API Keys:")
        print(f"  OpenAI: {'✓ Set' if settings.openai_api_key else '✗ Not set'}")
        print(f"  Admin Token: {'✓ Set' if settings.admin_token else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


async def _status(settings: Settings) -> None:
    async with Arena(settings) as arena:
        leaderboard = await arena.ledger.get_leaderboard("balance")
        open_positions = await arena.positions.get_open_positions()

        print("\n=== Arena Leaderboard ===\n")
        for rank, agent in enumerate(leaderboard, 1):
            flag = " (bankrupt)" if agent.bankrupt else ""
            print(
                f"  {rank}. {agent.agent_id:<15} ${agent.current_balance:>9,.2f}  "
                f"ROI {agent.roi:+6.1f}%  W/L {agent.win_count}/{agent.loss_count}  "
                f"streak {agent.current_streak:+d}{flag}"
            )

        print(f"\nOpen Positions: {len(open_positions)}")
        if open_positions:
            for i, pos in enumerate(open_positions[:5], 1):
                print(
                    f"  {i}. {pos.agent_id} {pos.prediction} ${pos.bet_amount:.2f} "
                    f"on {pos.market_question[:60]}"
                )
            if len(open_positions) > 5:
                print(f"  ... and {len(open_positions) - 5} more")
        else:
            print("  (None)")
        print()


def cmd_status(args: argparse.Namespace) -> int:
    """Display the leaderboard and open positions."""
    try:
        asyncio.run(_status(get_settings()))
        return 0

    except Exception as e:
        logger.error(f"Failed to read status: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1


async def _analyze(settings: Settings, market_id: str | None):
    async with Arena(settings) as arena:
        if market_id:
            return await arena.orchestrator.trigger_single_market_analysis(market_id, "cli")
        return await arena.orchestrator.trigger_analysis("cli")


def cmd_analyze(args: argparse.Namespace) -> int:
    """Run one analysis session manually."""
    _init_logfire()

    try:
        print("\n=== Analysis Session ===\n")

        session = asyncio.run(_analyze(get_settings(), args.market_id))

        print(f"Session {session.session_id}: {session.status}\n")
        print(f"Markets analyzed: {session.markets_analyzed}")
        print(f"Predictions made: {session.predictions_made}")
        print(f"Total wagered: ${session.total_wagered:,.2f}\n")

        placed = [r for r in session.results if r.status == "placed"]
        for result in placed[:10]:
            print(
                f"  • {result.agent_id}: {result.prediction} @ {result.confidence:.0%} "
                f"(${result.bet_amount:.2f}) on {result.market_id}"
            )
        if session.errors:
            print("\nErrors:")
            for error in session.errors:
                print(f"  • {error}")
        print()

        return 0 if session.status == "completed" else 1

    except Exception as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        print(f"\n❌ Analysis failed: {e}\n")
        return 1


async def _refresh(settings: Settings):
    async with Arena(settings) as arena:
        return await arena.trackers["market_refresh"].run_cycle()


def cmd_refresh(args: argparse.Namespace) -> int:
    """Refresh the market cache once, settling any newly resolved markets."""
    _init_logfire()

    try:
        print("\n=== Market Refresh ===\n")

        result = asyncio.run(_refresh(get_settings()))
        if result is None:
            print("❌ Refresh cycle did not complete (see logs)\n")
            return 1

        print("✓ Market refresh complete\n")
        print(f"Added: {result.added}")
        print(f"Updated: {result.updated}")
        print(f"Skipped: {result.skipped}")
        print(f"Newly resolved: {len(result.newly_resolved)}\n")

        return 0

    except Exception as e:
        logger.error(f"Market refresh failed: {e}", exc_info=True)
        print(f"\n❌ Market refresh failed: {e}\n")
        return 1


async def _resolve(settings: Settings, market_id: str, outcome: str):
    async with Arena(settings) as arena:
        return await arena.markets.manually_resolve_market(market_id, outcome)  # type: ignore[arg-type]


def cmd_resolve(args: argparse.Namespace) -> int:
    """Manually resolve a market and settle its predictions."""
    try:
        outcome = args.outcome.upper()
        print(f"\n=== Resolve {args.market_id} as {outcome} ===\n")

        settled = asyncio.run(_resolve(get_settings(), args.market_id, outcome))
        if isinstance(settled, Declined):
            print(f"❌ {settled.message}\n")
            return 1

        result = settled.value
        print("✓ Market resolved\n")
        print(f"Predictions resolved: {result.predictions_resolved}")
        print(f"Positions closed: {result.positions_closed}")
        if result.errors:
            print("\nErrors:")
            for error in result.errors:
                print(f"  • {error}")
        print()

        return 0 if not result.errors else 1

    except Exception as e:
        logger.error(f"Resolve failed: {e}", exc_info=True)
        print(f"\n❌ Resolve failed: {e}\n")
        return 1


async def _reset_balance(settings: Settings, agent_id: str):
    async with Arena(settings) as arena:
        return await arena.ledger.reset_agent_balance(agent_id)


def cmd_reset_balance(args: argparse.Namespace) -> int:
    """Reset one agent's balance and statistics."""
    try:
        reset = asyncio.run(_reset_balance(get_settings(), args.agent_id))
        if isinstance(reset, Ok):
            print(f"\n✓ {args.agent_id} reset to ${reset.value.current_balance:,.2f}\n")
            return 0

        print(f"\n❌ {reset.message}\n")
        return 1

    except Exception as e:
        logger.error(f"Balance reset failed: {e}", exc_info=True)
        print(f"\n❌ Balance reset failed: {e}\n")
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Start the tracking loops."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()

        print("\n=== Arena Prediction Market Competition ===\n")
        print(f"Version: {__version__}")
        print(f"Initial Balance: ${settings.ledger.default_initial_balance:,.2f}")
        print(f"Data Directory: {settings.data_dir}\n")

        if args.once:
            print("Running one refresh and one integrated cycle...\n")
            asyncio.run(_run_once(settings))
            print("\nCycle run complete.\n")
            return 0

        print("Starting scheduler...\n")
        start_scheduler(settings)

        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start system: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


async def _run_once(settings: Settings) -> None:
    async with Arena(settings) as arena:
        await arena.trackers["market_refresh"].run_cycle()
        await arena.trackers["integrated"].run_cycle()


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the dashboard and admin API."""
    import uvicorn

    from arena.api.server import create_app
    from arena.observability import instrument_app

    try:
        settings = get_settings()
        enabled = _init_logfire()

        app = create_app(settings=settings)
        instrument_app(app, enabled)

        uvicorn.run(
            app,
            host=args.host or settings.api.host,
            port=args.port or settings.api.port,
        )
        return 0

    except Exception as e:
        logger.error(f"Server failed: {e}", exc_info=True)
        print(f"\n❌ Server failed: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Arena: AI agents competing on simulated prediction market bets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Arena {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory and configuration files",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser(
        "status",
        help="Display the leaderboard and open positions",
    )
    parser_status.set_defaults(func=cmd_status)

    parser_analyze = subparsers.add_parser(
        "analyze",
        help="Run one analysis session manually",
    )
    parser_analyze.add_argument(
        "--market-id",
        default=None,
        help="Analyze only this market",
    )
    parser_analyze.set_defaults(func=cmd_analyze)

    parser_refresh = subparsers.add_parser(
        "refresh",
        help="Refresh the market cache once",
    )
    parser_refresh.set_defaults(func=cmd_refresh)

    parser_resolve = subparsers.add_parser(
        "resolve",
        help="Manually resolve a market",
    )
    parser_resolve.add_argument("market_id", help="Market to resolve")
    parser_resolve.add_argument("outcome", choices=["YES", "NO", "yes", "no"], help="Winning side")
    parser_resolve.set_defaults(func=cmd_resolve)

    parser_reset = subparsers.add_parser(
        "reset-balance",
        help="Reset an agent's balance and statistics",
    )
    parser_reset.add_argument("agent_id", help="Agent to reset")
    parser_reset.set_defaults(func=cmd_reset_balance)

    parser_run = subparsers.add_parser(
        "run",
        help="Start the tracking loops",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.add_argument(
        "--once",
        action="store_true",
        help="Run one market refresh and one integrated cycle then exit",
    )
    parser_run.set_defaults(func=cmd_run)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Serve the dashboard and admin API",
    )
    parser_serve.add_argument("--host", default=None, help="Bind address")
    parser_serve.add_argument("--port", type=int, default=None, help="Bind port")
    parser_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
