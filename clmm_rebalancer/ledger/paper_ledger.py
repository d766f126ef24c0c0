"""
Paper Ledger Client

In-memory simulation of a concentrated-liquidity pool ledger. Positions are
stored as raw on-chain fields and snapshots are rebuilt on every read, so the
bot sees the same reconstruction path it would against a real chain.
"""

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from fractions import Fraction
from typing import Deque, Dict, List, Optional, Tuple

from ..clmm_math import (
    Q64,
    liquidity_for_value,
    reconstruct_token_amounts,
    tick_to_sqrt_price,
)
from ..config_schema import PaperMarketSettings
from ..exceptions import (
    LedgerRejectedError,
    MathDomainError,
    PoolNotFoundError,
    PositionNotFoundError,
)
from ..types import LiquidityRemoval, PoolSnapshot, PositionOpened, PositionSnapshot
from .base import LedgerClient, assemble_position_snapshot

logger = logging.getLogger(__name__)


@dataclass
class PaperPoolState:
    """Mutable pool record"""

    pool_id: str
    coin_type_a: str
    coin_type_b: str
    tick_spacing: int
    fee_rate: int
    current_tick: int
    liquidity: int = 0
    decimals_a: int = 9
    decimals_b: int = 9
    symbol_a: str = "TOKEN_A"
    symbol_b: str = "TOKEN_B"


@dataclass
class PaperPositionState:
    """Mutable position record"""

    position_id: str
    pool_id: str
    liquidity: int
    tick_lower: int
    tick_upper: int
    closed: bool = False


class PaperLedgerClient(LedgerClient):
    """
    Paper ledger that simulates pool reads and rebalance steps

    Features:
    - Deterministic transaction and position ids
    - Fixed gas cost per step, checked against the gas budget
    - Minimum-amount enforcement on withdrawal
    - Internal swap on funding so any proceeds can fill a fresh range
    - Failure injection per operation for tests and drills
    - Latency simulation
    """

    OPERATIONS = (
        "fetch_position",
        "fetch_pool",
        "remove_liquidity",
        "open_and_fund_position",
    )

    def __init__(self, gas_cost_per_step: int = 1_500_000, latency_sim_ms: int = 0):
        self.gas_cost_per_step = gas_cost_per_step
        self.latency_sim_ms = latency_sim_ms

        self._pools: Dict[str, PaperPoolState] = {}
        self._positions: Dict[str, PaperPositionState] = {}
        self._injected: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._tx_counter = 0
        self._position_counter = 0

        self.call_log: List[Tuple[str, str]] = []
        self.metrics = {
            "fetches": 0,
            "liquidity_removals": 0,
            "positions_opened": 0,
            "rejections": 0,
            "total_gas": 0,
        }

    @classmethod
    def from_settings(cls, settings: PaperMarketSettings) -> "PaperLedgerClient":
        """Build a ledger seeded with one pool and one position."""
        ledger = cls(gas_cost_per_step=settings.gas_cost_per_step)
        ledger.add_pool(
            PaperPoolState(
                pool_id=settings.pool_id,
                coin_type_a=settings.coin_type_a,
                coin_type_b=settings.coin_type_b,
                tick_spacing=settings.tick_spacing,
                fee_rate=settings.fee_rate,
                current_tick=settings.current_tick,
                liquidity=settings.liquidity,
                decimals_a=settings.decimals_a,
                decimals_b=settings.decimals_b,
                symbol_a=settings.symbol_a,
                symbol_b=settings.symbol_b,
            )
        )
        ledger.add_position(
            settings.position_id,
            settings.pool_id,
            settings.liquidity,
            settings.tick_lower,
            settings.tick_upper,
        )
        return ledger

    # Seeding and market control

    def add_pool(self, pool: PaperPoolState) -> None:
        self._pools[pool.pool_id] = pool

    def add_position(
        self,
        position_id: str,
        pool_id: str,
        liquidity: int,
        tick_lower: int,
        tick_upper: int,
    ) -> None:
        if pool_id not in self._pools:
            raise PoolNotFoundError(pool_id)
        self._positions[position_id] = PaperPositionState(
            position_id=position_id,
            pool_id=pool_id,
            liquidity=liquidity,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
        )

    def set_pool_tick(self, pool_id: str, tick: int) -> None:
        """Move the pool price to a tick. Validates the tick before applying it."""
        tick_to_sqrt_price(tick)
        self._get_pool(pool_id).current_tick = tick
        logger.debug(f"Paper pool {pool_id} moved to tick {tick}")

    def move_pool_tick(self, pool_id: str, delta: int) -> int:
        pool = self._get_pool(pool_id)
        self.set_pool_tick(pool_id, pool.current_tick + delta)
        return pool.current_tick

    def fail_next(self, operation: str, error: Exception) -> None:
        """Make the next call of an operation raise the given error."""
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown ledger operation: {operation}")
        self._injected[operation].append(error)

    def get_position_record(self, position_id: str) -> Optional[PaperPositionState]:
        return self._positions.get(position_id)

    # LedgerClient implementation

    async def fetch_position(self, position_id: str) -> PositionSnapshot:
        await self._begin("fetch_position", position_id)
        record = self._positions.get(position_id)
        if record is None or record.closed:
            raise PositionNotFoundError(position_id)
        pool = self._pool_snapshot(record.pool_id)
        self.metrics["fetches"] += 1
        return assemble_position_snapshot(
            position_id, pool, record.liquidity, record.tick_lower, record.tick_upper
        )

    async def fetch_pool(self, pool_id: str) -> PoolSnapshot:
        await self._begin("fetch_pool", pool_id)
        self.metrics["fetches"] += 1
        return self._pool_snapshot(pool_id)

    async def remove_liquidity(
        self,
        position_id: str,
        pool_id: str,
        liquidity: int,
        min_amounts: Tuple[int, int] = (0, 0),
        gas_budget: Optional[int] = None,
    ) -> LiquidityRemoval:
        await self._begin("remove_liquidity", position_id)
        record = self._positions.get(position_id)
        if record is None or record.closed:
            raise PositionNotFoundError(position_id)
        if record.pool_id != pool_id:
            self._reject(
                f"Position {position_id} does not belong to pool {pool_id}",
                "remove_liquidity",
                position_id,
            )
        if liquidity < 0 or liquidity > record.liquidity:
            self._reject(
                f"Cannot remove {liquidity} liquidity from position holding "
                f"{record.liquidity}",
                "remove_liquidity",
                position_id,
            )
        self._check_gas(gas_budget, "remove_liquidity", position_id)

        pool = self._pool_snapshot(pool_id)
        amount_a, amount_b = reconstruct_token_amounts(
            liquidity,
            pool.sqrt_price,
            tick_to_sqrt_price(record.tick_lower),
            tick_to_sqrt_price(record.tick_upper),
        )
        if amount_a < min_amounts[0] or amount_b < min_amounts[1]:
            self._reject(
                f"Slippage check failed: got ({amount_a}, {amount_b}), "
                f"minimum ({min_amounts[0]}, {min_amounts[1]})",
                "remove_liquidity",
                position_id,
            )

        record.liquidity -= liquidity
        if record.liquidity == 0:
            record.closed = True
        self._get_pool(pool_id).liquidity -= liquidity

        tx_id = self._next_tx_id()
        self._charge_gas()
        self.metrics["liquidity_removals"] += 1
        logger.info(
            f"Paper removal {tx_id}: position {position_id} -> "
            f"({amount_a}, {amount_b})"
        )
        return LiquidityRemoval(
            tx_id=tx_id,
            gas_cost=self.gas_cost_per_step,
            amount_a=amount_a,
            amount_b=amount_b,
        )

    async def open_and_fund_position(
        self,
        pool_id: str,
        coin_types: Tuple[str, str],
        amounts: Tuple[int, int],
        tick_lower: int,
        tick_upper: int,
        min_amounts: Tuple[int, int],
        gas_budget: Optional[int] = None,
    ) -> PositionOpened:
        """
        Open a position and fund it with the given amounts.

        The paper pool swaps internally at the current price, so the deposit is
        sized by the total value of the amounts rather than their ratio.
        """
        await self._begin("open_and_fund_position", pool_id)
        pool_state = self._get_pool(pool_id)
        if (pool_state.coin_type_a, pool_state.coin_type_b) != tuple(coin_types):
            self._reject(
                f"Coin types {coin_types} do not match pool {pool_id}",
                "open_and_fund_position",
                pool_id,
            )
        spacing = pool_state.tick_spacing
        if (
            tick_lower >= tick_upper
            or tick_lower % spacing != 0
            or tick_upper % spacing != 0
        ):
            self._reject(
                f"Invalid range [{tick_lower}, {tick_upper}] for tick spacing {spacing}",
                "open_and_fund_position",
                pool_id,
            )
        if min_amounts[0] > amounts[0] or min_amounts[1] > amounts[1]:
            self._reject(
                f"Minimum amounts {min_amounts} exceed provided amounts {amounts}",
                "open_and_fund_position",
                pool_id,
            )
        self._check_gas(gas_budget, "open_and_fund_position", pool_id)

        pool = self._pool_snapshot(pool_id)
        price = Fraction(pool.sqrt_price * pool.sqrt_price, Q64 * Q64)
        value_in_b = amounts[0] * price + amounts[1]
        try:
            liquidity = liquidity_for_value(
                value_in_b,
                pool.sqrt_price,
                tick_to_sqrt_price(tick_lower),
                tick_to_sqrt_price(tick_upper),
            )
        except MathDomainError as e:
            self._reject(str(e), "open_and_fund_position", pool_id)

        self._position_counter += 1
        position_id = f"0xpaper_position_{self._position_counter}"
        self._positions[position_id] = PaperPositionState(
            position_id=position_id,
            pool_id=pool_id,
            liquidity=liquidity,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
        )
        pool_state.liquidity += liquidity

        tx_id = self._next_tx_id()
        self._charge_gas()
        self.metrics["positions_opened"] += 1
        logger.info(
            f"Paper open {tx_id}: position {position_id} "
            f"[{tick_lower}, {tick_upper}] liquidity={liquidity}"
        )
        return PositionOpened(
            new_position_id=position_id, tx_id=tx_id, gas_cost=self.gas_cost_per_step
        )

    # Internals

    async def _begin(self, operation: str, object_id: str) -> None:
        self.call_log.append((operation, object_id))
        if self.latency_sim_ms > 0:
            await asyncio.sleep(self.latency_sim_ms / 1000.0)
        injected = self._injected.get(operation)
        if injected:
            raise injected.popleft()

    def _get_pool(self, pool_id: str) -> PaperPoolState:
        pool = self._pools.get(pool_id)
        if pool is None:
            raise PoolNotFoundError(pool_id)
        return pool

    def _pool_snapshot(self, pool_id: str) -> PoolSnapshot:
        pool = self._get_pool(pool_id)
        return PoolSnapshot(
            pool_id=pool.pool_id,
            coin_type_a=pool.coin_type_a,
            coin_type_b=pool.coin_type_b,
            tick_spacing=pool.tick_spacing,
            fee_rate=pool.fee_rate,
            current_tick=pool.current_tick,
            sqrt_price=tick_to_sqrt_price(pool.current_tick),
            liquidity=pool.liquidity,
            decimals_a=pool.decimals_a,
            decimals_b=pool.decimals_b,
            symbol_a=pool.symbol_a,
            symbol_b=pool.symbol_b,
        )

    def _check_gas(self, gas_budget: Optional[int], operation: str, object_id: str) -> None:
        if gas_budget is not None and self.gas_cost_per_step > gas_budget:
            self._reject(
                f"Gas budget {gas_budget} below required {self.gas_cost_per_step}",
                operation,
                object_id,
            )

    def _reject(self, message: str, operation: str, object_id: str) -> None:
        self.metrics["rejections"] += 1
        logger.warning(f"Paper ledger rejected {operation}: {message}")
        raise LedgerRejectedError(message, operation=operation, object_id=object_id)

    def _next_tx_id(self) -> str:
        self._tx_counter += 1
        return f"0xpaper_tx_{self._tx_counter}"

    def _charge_gas(self) -> None:
        self.metrics["total_gas"] += self.gas_cost_per_step
