"""
Ledger Client Interface

Abstraction between the rebalance engine and the chain: snapshot reads and the
two logical steps of a rebalance. Implementations own transport, signing and
transaction ordering; the engine treats every call as a black box.

Implementations should raise LedgerError subclasses. Timeouts and OSErrors
that slip through from the transport are still reported as ordinary ledger
failures (see LEDGER_FAILURES); anything else is a programming error.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from ..clmm_math import reconstruct_token_amounts, tick_to_sqrt_price
from ..exceptions import LedgerError, MathDomainError
from ..types import LiquidityRemoval, PoolSnapshot, PositionOpened, PositionSnapshot

# Exceptions a ledger call may raise for an ordinary, reportable failure
LEDGER_FAILURES = (LedgerError, asyncio.TimeoutError, OSError)


class LedgerClient(ABC):
    """Abstract base class for ledger clients"""

    @abstractmethod
    async def fetch_position(self, position_id: str) -> PositionSnapshot:
        """
        Fetch a fresh position snapshot.

        Raises:
            PositionNotFoundError: If the id does not resolve
            LedgerNetworkError: On transport failures
        """
        pass

    @abstractmethod
    async def fetch_pool(self, pool_id: str) -> PoolSnapshot:
        """
        Fetch a fresh pool snapshot.

        Raises:
            PoolNotFoundError: If the id does not resolve
            LedgerNetworkError: On transport failures
        """
        pass

    @abstractmethod
    async def remove_liquidity(
        self,
        position_id: str,
        pool_id: str,
        liquidity: int,
        min_amounts: Tuple[int, int] = (0, 0),
        gas_budget: Optional[int] = None,
    ) -> LiquidityRemoval:
        """Withdraw liquidity from a position.

        Raises:
            LedgerRejectedError: If the ledger refuses the step
        """
        pass

    @abstractmethod
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
        """Open a position in [tick_lower, tick_upper] and fund it.

        Raises:
            LedgerRejectedError: If the ledger refuses the step
        """
        pass


def assemble_position_snapshot(
    position_id: str,
    pool: PoolSnapshot,
    liquidity: int,
    tick_lower: int,
    tick_upper: int,
) -> PositionSnapshot:
    """
    Build a position snapshot from raw position fields and its pool.

    Token amounts are reconstructed from the liquidity and the range at the
    pool's current sqrt price, so ledger implementations only need to read the
    raw on-chain fields.

    Raises:
        MathDomainError: If the range or pool price is malformed
    """
    if tick_lower >= tick_upper:
        raise MathDomainError(
            f"Position {position_id} has an empty or inverted range "
            f"[{tick_lower}, {tick_upper}]",
            operation="assemble_position_snapshot",
            inputs={"tick_lower": tick_lower, "tick_upper": tick_upper},
        )

    amount_a, amount_b = reconstruct_token_amounts(
        liquidity,
        pool.sqrt_price,
        tick_to_sqrt_price(tick_lower),
        tick_to_sqrt_price(tick_upper),
    )

    return PositionSnapshot(
        position_id=position_id,
        pool_id=pool.pool_id,
        coin_type_a=pool.coin_type_a,
        coin_type_b=pool.coin_type_b,
        liquidity=liquidity,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        current_tick=pool.current_tick,
        sqrt_price=pool.sqrt_price,
        amount_a=amount_a,
        amount_b=amount_b,
        decimals_a=pool.decimals_a,
        decimals_b=pool.decimals_b,
        symbol_a=pool.symbol_a,
        symbol_b=pool.symbol_b,
    )
