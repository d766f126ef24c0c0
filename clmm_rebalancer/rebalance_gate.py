"""
Range membership and rebalance gating.

Stateless predicates over a position snapshot, the bot state and the config.
Nothing here mutates its inputs, so every function can be called any number of
times with the same result.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Union

from .bot_state import BotState
from .config_schema import RebalanceConfig
from .types import BotStateSnapshot, PositionSnapshot

StateView = Union[BotState, BotStateSnapshot]


@dataclass(frozen=True)
class RebalanceCheck:
    """Decision on whether a rebalance should run now, with its reason."""

    needed: bool
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert check to dictionary for JSON serialization"""
        return asdict(self)


def is_out_of_range(position: PositionSnapshot) -> bool:
    """True iff the current tick lies strictly outside [tick_lower, tick_upper]."""
    return (
        position.current_tick < position.tick_lower
        or position.current_tick > position.tick_upper
    )


def seconds_until_rebalance_allowed(
    state: StateView, config: RebalanceConfig, now: float
) -> int:
    """Whole seconds (rounded up) until the minimum interval has elapsed."""
    if state.last_rebalance_time is None:
        return 0
    remaining = config.min_rebalance_interval - (now - state.last_rebalance_time)
    return max(0, math.ceil(remaining))


def can_rebalance(state: StateView, config: RebalanceConfig, now: float) -> bool:
    """True when no rebalance happened yet or the minimum interval has elapsed."""
    if state.last_rebalance_time is None:
        return True
    return now - state.last_rebalance_time >= config.min_rebalance_interval


def check_rebalance_needed(
    position: PositionSnapshot,
    state: StateView,
    config: RebalanceConfig,
    now: float,
) -> RebalanceCheck:
    """
    Combine range membership and the interval gate into one decision.

    A rebalance is needed only when the position is out of range and the
    minimum interval has elapsed.
    """
    if not is_out_of_range(position):
        return RebalanceCheck(
            needed=False, reason=f"Price in range. {position.describe()}"
        )

    if not can_rebalance(state, config, now):
        wait = seconds_until_rebalance_allowed(state, config, now)
        return RebalanceCheck(
            needed=False, reason=f"Waiting {wait}s for min rebalance interval"
        )

    return RebalanceCheck(
        needed=True, reason=f"Price out of range! {position.describe()}"
    )
