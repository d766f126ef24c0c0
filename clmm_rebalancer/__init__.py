"""
Concentrated-Liquidity Range Rebalancer.

Monitors a single concentrated-liquidity position and, when the pool price
leaves its tick range, withdraws the liquidity and re-deposits it into a new
range centered on the current price. Ships with an in-memory paper ledger for
dry runs and tests.
"""

from clmm_rebalancer.version import __version__

PROJECT_NAME = "CLMM-Range-Rebalancer"
VERSION = __version__

# Export main components for easier imports
from clmm_rebalancer.bot_state import BotState
from clmm_rebalancer.config_schema import BotSettings, RebalanceConfig
from clmm_rebalancer.interfaces import (
    CompositeObserver,
    DeterministicTimeProvider,
    LoggingObserver,
    NullObserver,
    RebalanceObserver,
    SystemTimeProvider,
    TimeProvider,
)
from clmm_rebalancer.ledger import LedgerClient, PaperLedgerClient
from clmm_rebalancer.rebalance_bot import RebalanceBot
from clmm_rebalancer.rebalance_executor import RebalanceExecutor
from clmm_rebalancer.rebalance_gate import RebalanceCheck, check_rebalance_needed
from clmm_rebalancer.types import (
    BotStateSnapshot,
    BotStatus,
    FailureKind,
    PoolSnapshot,
    PositionSnapshot,
    RebalanceResult,
    TickRange,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BotState",
    "BotSettings",
    "RebalanceConfig",
    "CompositeObserver",
    "DeterministicTimeProvider",
    "LoggingObserver",
    "NullObserver",
    "RebalanceObserver",
    "SystemTimeProvider",
    "TimeProvider",
    "LedgerClient",
    "PaperLedgerClient",
    "RebalanceBot",
    "RebalanceExecutor",
    "RebalanceCheck",
    "check_rebalance_needed",
    "BotStateSnapshot",
    "BotStatus",
    "FailureKind",
    "PoolSnapshot",
    "PositionSnapshot",
    "RebalanceResult",
    "TickRange",
]
