"""
Rebalance execution.

Sequences the two logical steps of a rebalance against a ledger client:
withdraw the whole position, then open and fund a new position centered on the
current tick. The ledger client owns atomicity of the underlying transactions;
nothing here assumes a rollback if the second step fails.
"""

from typing import Optional, Tuple

from .bot_state import BotState
from .clmm_math import compute_centered_range, min_amount_with_slippage
from .config_schema import RebalanceConfig
from .exceptions import MathDomainError, PositionNotFoundError
from .interfaces import SystemTimeProvider, TimeProvider
from .ledger.base import LEDGER_FAILURES, LedgerClient
from .rebalance_gate import is_out_of_range
from .types import FailureKind, PositionSnapshot, RebalanceResult
from .utils import get_logger

logger = get_logger(__name__)


class RebalanceExecutor:
    """
    Runs one rebalance attempt and applies its statistics to the bot state.

    Every failure is returned as a failed RebalanceResult with a FailureKind;
    execute() only raises for programming errors. Math domain errors map to
    BAD_DATA so malformed upstream data is never reported as a rejection.
    """

    def __init__(self, ledger: LedgerClient, time_provider: Optional[TimeProvider] = None):
        self.ledger = ledger
        self.time_provider = time_provider or SystemTimeProvider()

    async def execute(self, state: BotState, config: RebalanceConfig) -> RebalanceResult:
        """
        Rebalance the position monitored by state.

        On success the state gets one more rebalance, the combined gas of both
        steps and, when the ledger returns one, the new position id. On failure
        the state is left untouched.
        """
        position_id = state.position_id
        if not position_id:
            return RebalanceResult.failed(
                "No position being monitored", FailureKind.NO_POSITION
            )

        try:
            position = await self.ledger.fetch_position(position_id)
        except PositionNotFoundError as e:
            return self._fail(str(e), FailureKind.NOT_FOUND)
        except MathDomainError as e:
            return self._fail(f"Bad position data: {e}", FailureKind.BAD_DATA)
        except LEDGER_FAILURES as e:
            return self._fail(
                f"Failed to fetch position {position_id}: {e}", FailureKind.FETCH_FAILED
            )

        if not is_out_of_range(position):
            return RebalanceResult.failed(
                "Price is still within range", FailureKind.NOT_NEEDED
            )

        try:
            pool = await self.ledger.fetch_pool(position.pool_id)
        except LEDGER_FAILURES as e:
            return self._fail(
                f"Failed to fetch pool {position.pool_id}: {e}", FailureKind.FETCH_FAILED
            )

        try:
            new_range = compute_centered_range(
                pool.current_tick, pool.tick_spacing, config.range_width_percent
            )
            remove_mins = self._min_amounts(
                (position.amount_a, position.amount_b), config.slippage_tolerance
            )
        except MathDomainError as e:
            return self._fail(f"Bad pool data: {e}", FailureKind.BAD_DATA)

        logger.info(
            f"Rebalancing {position_id}: {position.tick_range} -> {new_range} "
            f"at tick {pool.current_tick}"
        )

        try:
            removal = await self.ledger.remove_liquidity(
                position_id,
                position.pool_id,
                position.liquidity,
                min_amounts=remove_mins,
                gas_budget=config.gas_budget,
            )
        except MathDomainError as e:
            return self._fail(f"Bad data while removing liquidity: {e}", FailureKind.BAD_DATA)
        except LEDGER_FAILURES as e:
            return self._fail(
                f"Failed to remove liquidity: {e}", FailureKind.EXECUTION_FAILED
            )

        amounts = self._withdrawn_amounts(position, removal.amount_a, removal.amount_b)

        try:
            opened = await self.ledger.open_and_fund_position(
                position.pool_id,
                (position.coin_type_a, position.coin_type_b),
                amounts,
                new_range.tick_lower,
                new_range.tick_upper,
                self._min_amounts(amounts, config.slippage_tolerance),
                gas_budget=config.gas_budget,
            )
        except MathDomainError as e:
            return self._fail(f"Bad data while opening position: {e}", FailureKind.BAD_DATA)
        except LEDGER_FAILURES as e:
            # Liquidity is already withdrawn at this point
            return self._fail(
                f"Failed to open new position after removal {removal.tx_id}: {e}",
                FailureKind.EXECUTION_FAILED,
            )

        gas_cost = removal.gas_cost + opened.gas_cost
        state.record_rebalance(
            gas_cost, self.time_provider.current_timestamp(), opened.new_position_id
        )

        logger.info(
            f"Rebalance complete: {position_id} -> {opened.new_position_id} "
            f"{new_range} tx={opened.tx_id} gas={gas_cost}"
        )
        return RebalanceResult.succeeded(
            tx_id=opened.tx_id,
            gas_cost=gas_cost,
            new_range=new_range,
            new_position_id=opened.new_position_id,
        )

    @staticmethod
    def _min_amounts(amounts: Tuple[int, int], slippage_tolerance: float) -> Tuple[int, int]:
        return (
            min_amount_with_slippage(amounts[0], slippage_tolerance),
            min_amount_with_slippage(amounts[1], slippage_tolerance),
        )

    @staticmethod
    def _withdrawn_amounts(
        position: PositionSnapshot, amount_a: Optional[int], amount_b: Optional[int]
    ) -> Tuple[int, int]:
        """Amounts reported by the removal, falling back to the snapshot's."""
        return (
            position.amount_a if amount_a is None else amount_a,
            position.amount_b if amount_b is None else amount_b,
        )

    @staticmethod
    def _fail(message: str, kind: FailureKind) -> RebalanceResult:
        if kind is FailureKind.BAD_DATA:
            logger.error(f"Rebalance aborted on malformed data: {message}")
        else:
            logger.warning(f"Rebalance failed: {message}")
        return RebalanceResult.failed(message, kind)
