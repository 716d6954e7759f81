"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from arena.services.polymarket.config import PolymarketConfig

logger = logging.getLogger(__name__)


class LedgerConfig(BaseModel):
    """Bankroll accounting parameters."""

    bankruptcy_floor: float = 10.0
    default_initial_balance: float = 1000.0


class SizingConfig(BaseModel):
    """Confidence-weighted bet sizing and psychological adjustment."""

    max_bet: float = 5.0
    max_bet_pct: float = 0.05
    min_bet: float = 1.0
    # (confidence threshold, fraction of ceiling), highest first
    confidence_bands: list[tuple[float, float]] = Field(
        default_factory=lambda: [(0.85, 0.8), (0.75, 0.6), (0.65, 0.4), (0.55, 0.2)]
    )
    hot_streak: int = 3
    cold_streak: int = -3
    hot_multiplier: float = 1.2
    cold_multiplier: float = 0.8
    roi_loss_threshold: float = -20.0
    roi_loss_multiplier: float = 0.7
    roi_gain_threshold: float = 20.0
    roi_gain_multiplier: float = 1.1

    @field_validator("confidence_bands", mode="after")
    @classmethod
    def sort_bands(cls, v: list[tuple[float, float]]) -> list[tuple[float, float]]:
        """Keep bands ordered from the highest threshold down."""
        return sorted(v, key=lambda band: band[0], reverse=True)


class PositionConfig(BaseModel):
    """Stochastic closure policy parameters."""

    profit_taking_pnl_pct: float = 30.0
    profit_taking_probability: float = 0.15
    stop_loss_pnl_pct: float = -50.0
    stop_loss_probability: float = 0.08
    random_exit_base: float = 0.02
    random_exit_per_hour: float = 0.001
    random_exit_cap: float = 0.05
    random_seed: int | None = None


class OrchestratorConfig(BaseModel):
    """Analysis session parameters."""

    research_cost: float = 0.05
    min_volume: float = 1000.0
    markets_per_session: int = 3
    max_agents_per_market: int = 3
    min_days_to_close: float = 1.0
    # Empty: each agent runs on its own roster model.
    reasoning_model: str = ""


class TrackerConfig(BaseModel):
    """Tracking loop intervals in seconds."""

    odds_interval_seconds: float = 900
    positions_interval_seconds: float = 300
    market_refresh_interval_seconds: float = 7
    integrated_interval_seconds: float = 300
    cycle_timeout_seconds: float = 120
    odds_request_delay_seconds: float = 0.2
    odds_history_retention_days: int = 7
    refresh_market_limit: int = 0


class StorageConfig(BaseModel):
    """Key-value store backend selection."""

    backend: Literal["memory", "yaml"] = "yaml"
    directory_name: str = "store"


class ApiConfig(BaseModel):
    """Dashboard and admin HTTP server."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:3001"]
    )


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # API Keys
    openai_api_key: str = ""
    logfire_token: str = ""
    admin_token: str = ""

    environment: str = "development"

    # Nested configuration sections
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    sizing: SizingConfig = Field(default_factory=SizingConfig)
    positions: PositionConfig = Field(default_factory=PositionConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    trackers: TrackerConfig = Field(default_factory=TrackerConfig)
    price_feed: PolymarketConfig = Field(default_factory=PolymarketConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def store_dir(self) -> Path:
        return self.data_dir / self.storage.directory_name

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m arena init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in [
                "ledger",
                "sizing",
                "positions",
                "orchestrator",
                "trackers",
                "price_feed",
                "storage",
                "api",
            ]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    section_dict = section.model_dump()
                    section_dict.update(yaml_config[section_name] or {})
                    setattr(self, section_name, section.__class__(**section_dict))

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
