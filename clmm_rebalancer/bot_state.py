"""
Operating state of a rebalance bot.

Owned by exactly one bot instance and mutated only by its cycles and explicit
API calls; callers receive frozen snapshots.
"""

from collections import deque
from typing import Deque, Optional

from .types import BotStateSnapshot

MAX_ERROR_HISTORY = 100


class BotState:
    """Run flag, monitored position, counters and a bounded error history."""

    def __init__(self, max_errors: int = MAX_ERROR_HISTORY):
        self.is_running = False
        self.position_id: Optional[str] = None
        self.last_rebalance_time: Optional[float] = None
        self.rebalance_count = 0
        self.total_gas_spent = 0
        self.errors: Deque[str] = deque(maxlen=max_errors)

    def record_error(self, line: str) -> None:
        """Append a formatted error line, evicting the oldest beyond capacity."""
        self.errors.append(line)

    def record_rebalance(
        self, gas_cost: int, now: float, new_position_id: Optional[str] = None
    ) -> None:
        """
        Apply the statistics of a successful rebalance.

        Gas is summed as an unbounded int. last_rebalance_time never moves
        backwards even if the clock does.
        """
        if gas_cost < 0:
            raise ValueError(f"Gas cost cannot be negative: {gas_cost}")
        self.rebalance_count += 1
        self.total_gas_spent += gas_cost
        if self.last_rebalance_time is None or now > self.last_rebalance_time:
            self.last_rebalance_time = now
        if new_position_id:
            self.position_id = new_position_id

    def snapshot(self) -> BotStateSnapshot:
        return BotStateSnapshot(
            is_running=self.is_running,
            position_id=self.position_id,
            last_rebalance_time=self.last_rebalance_time,
            rebalance_count=self.rebalance_count,
            total_gas_spent=self.total_gas_spent,
            errors=tuple(self.errors),
        )
