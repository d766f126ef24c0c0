"""
Configuration schema validation using Pydantic
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator, model_validator

from .clmm_math import MAX_TICK, MIN_TICK


class RebalanceConfig(BaseModel):
    """Live rebalancing parameters shared by the gate, math and executor.

    Instances are frozen; updates go through merged(), which re-validates the
    whole model and raises instead of clamping out-of-range values.
    """

    slippage_tolerance: float = Field(
        default=0.5, gt=0, allow_inf_nan=False, description="Slippage tolerance in percent"
    )
    range_width_percent: float = Field(
        default=10.0,
        gt=0,
        allow_inf_nan=False,
        description="Total width of a new range as percent of the current price",
    )
    min_rebalance_interval: float = Field(
        default=300.0,
        ge=0,
        allow_inf_nan=False,
        description="Minimum seconds between two rebalances",
    )
    gas_budget: int = Field(
        default=100_000_000, gt=0, description="Gas upper bound passed to the ledger"
    )
    auto_rebalance: bool = Field(
        default=True, description="Whether monitoring cycles may execute rebalances"
    )

    model_config = {
        "extra": "forbid",
        "frozen": True,
    }

    def merged(self, **changes: Any) -> "RebalanceConfig":
        """Return a new, fully re-validated config with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return RebalanceConfig(**data)


class PaperMarketSettings(BaseModel):
    """Pool and position seeded into the paper ledger."""

    pool_id: str = "0xpaper_pool"
    position_id: str = "0xpaper_position"
    coin_type_a: str = "0x2::sui::SUI"
    coin_type_b: str = "0xdba3::usdc::USDC"
    symbol_a: str = "SUI"
    symbol_b: str = "USDC"
    decimals_a: int = Field(default=9, ge=0, le=36)
    decimals_b: int = Field(default=6, ge=0, le=36)
    tick_spacing: int = Field(default=60, gt=0)
    fee_rate: int = Field(default=2500, ge=0, description="Fee rate in parts per million")
    current_tick: int = Field(default=0, ge=MIN_TICK, le=MAX_TICK)
    liquidity: int = Field(default=10**12, gt=0)
    tick_lower: int = Field(default=-600, ge=MIN_TICK, le=MAX_TICK)
    tick_upper: int = Field(default=600, ge=MIN_TICK, le=MAX_TICK)
    gas_cost_per_step: int = Field(default=1_500_000, ge=0)
    price_walk: List[int] = Field(
        default_factory=list,
        description="Tick moves applied to the pool before each scripted cycle",
    )

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def validate_position_range(self):
        if self.tick_lower >= self.tick_upper:
            raise ValueError("tick_lower must be less than tick_upper")
        for name in ("tick_lower", "tick_upper"):
            if getattr(self, name) % self.tick_spacing != 0:
                raise ValueError(f"{name} must be a multiple of tick_spacing")
        return self


class BotSettings(BaseModel):
    """Top-level settings file for a rebalance bot."""

    name: str = "clmm-rebalancer"
    position_id: str = Field(description="Position object id to monitor")
    check_interval_seconds: float = Field(default=30.0, gt=0, allow_inf_nan=False)
    rebalance: RebalanceConfig = Field(default_factory=RebalanceConfig)
    paper: PaperMarketSettings = Field(default_factory=PaperMarketSettings)

    model_config = {"extra": "forbid"}

    @field_validator("position_id")
    @classmethod
    def validate_position_id(cls, v):
        if not v or not v.strip():
            raise ValueError("position_id cannot be empty")
        return v.strip()


def validate_bot_settings(config_dict: Dict) -> BotSettings:
    """
    Validate a bot settings dictionary

    Raises:
        pydantic.ValidationError: If settings are invalid
    """
    return BotSettings(**config_dict)
