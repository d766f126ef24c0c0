"""
Core data types for range monitoring and rebalancing.

Snapshots are immutable values fetched fresh from the ledger on every check.
Token amounts, liquidity and sqrt prices are plain ints (arbitrary precision);
sqrt prices are Q64.64 fixed-point values.
"""

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class BotStatus(Enum):
    """Lifecycle state of a rebalance bot."""

    STOPPED = "stopped"
    RUNNING = "running"


class FailureKind(Enum):
    """Why a rebalance attempt did not go through.

    BAD_DATA is reserved for malformed upstream data (math domain errors) so it
    is never confused with an ordinary ledger rejection.
    """

    NO_POSITION = "no_position"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    NOT_NEEDED = "not_needed"
    BAD_DATA = "bad_data"
    EXECUTION_FAILED = "execution_failed"


@dataclass(frozen=True)
class TickRange:
    """A [tick_lower, tick_upper] price range."""

    tick_lower: int
    tick_upper: int

    @property
    def width(self) -> int:
        return self.tick_upper - self.tick_lower

    def contains(self, tick: int) -> bool:
        """Boundary ticks count as inside the range."""
        return self.tick_lower <= tick <= self.tick_upper

    def __str__(self) -> str:
        return f"[{self.tick_lower}, {self.tick_upper}]"


@dataclass(frozen=True)
class PoolSnapshot:
    """
    Point-in-time view of a concentrated-liquidity pool.

    Attributes:
        pool_id: On-chain pool object id
        coin_type_a: Type tag of token A
        coin_type_b: Type tag of token B
        tick_spacing: Spacing every range boundary must be a multiple of
        fee_rate: Pool fee rate as reported by the chain (parts per million)
        current_tick: Tick the pool price currently sits at
        sqrt_price: Current sqrt price (Q64.64)
        liquidity: Total active liquidity
        decimals_a: Decimals of token A
        decimals_b: Decimals of token B
        symbol_a: Display symbol of token A
        symbol_b: Display symbol of token B
    """

    pool_id: str
    coin_type_a: str
    coin_type_b: str
    tick_spacing: int
    fee_rate: int
    current_tick: int
    sqrt_price: int
    liquidity: int
    decimals_a: int = 9
    decimals_b: int = 9
    symbol_a: str = "TOKEN_A"
    symbol_b: str = "TOKEN_B"

    @property
    def current_price(self) -> Decimal:
        """Display price of token A in token B, adjusted for decimals."""
        return _display_price(self.sqrt_price, self.decimals_a, self.decimals_b)


def _display_price(sqrt_price: int, decimals_a: int, decimals_b: int) -> Decimal:
    # clmm_math imports this module
    from .clmm_math import sqrt_price_to_price

    return sqrt_price_to_price(sqrt_price, decimals_a, decimals_b)


@dataclass(frozen=True)
class PositionSnapshot:
    """
    Point-in-time view of a liquidity position and the pool it belongs to.

    amount_a/amount_b are reconstructed from liquidity and the position range
    at the pool's current sqrt price.
    """

    position_id: str
    pool_id: str
    coin_type_a: str
    coin_type_b: str
    liquidity: int
    tick_lower: int
    tick_upper: int
    current_tick: int
    sqrt_price: int
    amount_a: int
    amount_b: int
    decimals_a: int = 9
    decimals_b: int = 9
    symbol_a: str = "TOKEN_A"
    symbol_b: str = "TOKEN_B"

    @property
    def tick_range(self) -> TickRange:
        return TickRange(self.tick_lower, self.tick_upper)

    @property
    def current_price(self) -> Decimal:
        return _display_price(self.sqrt_price, self.decimals_a, self.decimals_b)

    def describe(self) -> str:
        return f"Current: {self.current_tick}, Range: {self.tick_range}"


@dataclass(frozen=True)
class LiquidityRemoval:
    """Result of the remove-liquidity step.

    amount_a/amount_b are the amounts actually withdrawn when the ledger
    reports them; None means the caller should fall back to the snapshot.
    """

    tx_id: str
    gas_cost: int = 0
    amount_a: Optional[int] = None
    amount_b: Optional[int] = None


@dataclass(frozen=True)
class PositionOpened:
    """Result of the open-and-fund step."""

    new_position_id: str
    tx_id: str
    gas_cost: int = 0


@dataclass(frozen=True)
class RebalanceResult:
    """Outcome of one rebalance attempt. Produced once, never mutated."""

    success: bool
    tx_id: Optional[str] = None
    gas_cost: int = 0
    new_range: Optional[TickRange] = None
    new_position_id: Optional[str] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    @classmethod
    def succeeded(
        cls,
        tx_id: str,
        gas_cost: int,
        new_range: TickRange,
        new_position_id: Optional[str] = None,
    ) -> "RebalanceResult":
        return cls(
            success=True,
            tx_id=tx_id,
            gas_cost=gas_cost,
            new_range=new_range,
            new_position_id=new_position_id,
        )

    @classmethod
    def failed(cls, error: str, kind: FailureKind) -> "RebalanceResult":
        return cls(success=False, error=error, failure_kind=kind)

    @property
    def is_bad_data(self) -> bool:
        return self.failure_kind is FailureKind.BAD_DATA

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for JSON serialization"""
        data = asdict(self)
        data["gas_cost"] = str(self.gas_cost)
        data["failure_kind"] = self.failure_kind.value if self.failure_kind else None
        return data


@dataclass(frozen=True)
class BotStateSnapshot:
    """Read-only copy of a bot's state handed out to callers."""

    is_running: bool
    position_id: Optional[str]
    last_rebalance_time: Optional[float]
    rebalance_count: int
    total_gas_spent: int
    errors: tuple = field(default_factory=tuple)

    @property
    def status(self) -> BotStatus:
        return BotStatus.RUNNING if self.is_running else BotStatus.STOPPED
