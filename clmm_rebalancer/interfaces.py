"""
Dependency injection interfaces for improved testability and modularity.

Provides lightweight protocols for time and for the event consumers notified by
the rebalance bot. Instances are passed explicitly to the bot; there are no
module-level defaults to swap out.
"""

import logging
import time
from typing import Iterable, List, Optional, Protocol, runtime_checkable

from .types import RebalanceResult
from .utils import get_logger

logger = get_logger(__name__)


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time-related operations."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        ...


class SystemTimeProvider:
    """Production time provider using system time."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()


class DeterministicTimeProvider:
    """Deterministic time provider for testing and replays."""

    def __init__(self, start_time: float = 1704067200.0):  # 2024-01-01
        self._current_time = start_time

    def current_timestamp(self) -> float:
        """Get current timestamp."""
        return self._current_time

    def advance_time(self, seconds: float) -> None:
        """Manually advance time by specified seconds."""
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        """Set current time to specific timestamp."""
        self._current_time = timestamp


@runtime_checkable
class RebalanceObserver(Protocol):
    """Consumer of bot events.

    Called synchronously from inside a cycle; implementations must return
    promptly because the bot does not enforce a timeout.
    """

    def on_status_update(self, message: str) -> None:
        """Receive a timestamped status or error line."""
        ...

    def on_rebalance(self, result: RebalanceResult) -> None:
        """Receive the outcome of a rebalance attempt."""
        ...


class NullObserver:
    """Observer used when nobody is listening."""

    def on_status_update(self, message: str) -> None:
        pass

    def on_rebalance(self, result: RebalanceResult) -> None:
        pass


class LoggingObserver:
    """Forwards bot events to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def on_status_update(self, message: str) -> None:
        self._log.info(message)

    def on_rebalance(self, result: RebalanceResult) -> None:
        if result.success:
            self._log.info(
                f"Rebalanced into {result.new_range} tx={result.tx_id} gas={result.gas_cost}"
            )
        else:
            kind = result.failure_kind.value if result.failure_kind else "unknown"
            self._log.warning(f"Rebalance failed ({kind}): {result.error}")


class CompositeObserver:
    """Fans events out to several observers in order."""

    def __init__(self, observers: Iterable[RebalanceObserver]):
        self.observers: List[RebalanceObserver] = list(observers)

    def on_status_update(self, message: str) -> None:
        for observer in self.observers:
            observer.on_status_update(message)

    def on_rebalance(self, result: RebalanceResult) -> None:
        for observer in self.observers:
            observer.on_rebalance(result)
