"""
Ledger clients for the range rebalancer.
"""

from .base import LEDGER_FAILURES, LedgerClient, assemble_position_snapshot
from .paper_ledger import PaperLedgerClient, PaperPoolState, PaperPositionState

__all__ = [
    "LEDGER_FAILURES",
    "LedgerClient",
    "assemble_position_snapshot",
    "PaperLedgerClient",
    "PaperPoolState",
    "PaperPositionState",
]
