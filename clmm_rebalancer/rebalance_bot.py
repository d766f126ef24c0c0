"""
Range Monitoring Bot

Owns the run/stop lifecycle of one monitored position. Each cycle fetches a
fresh snapshot, asks the gate whether a rebalance is due and, if so, hands the
position to the executor. Status and error lines are timestamped, logged and
forwarded to an observer.

Concurrency:
    Cycles, manual triggers and config updates are serialized by a single
    asyncio.Lock. A scheduled tick that finds a cycle in flight is skipped;
    a manual trigger waits for it. stop() cancels future scheduling but never
    interrupts a cycle already talking to the ledger.
"""

import asyncio
from typing import Any, Optional

from .bot_state import BotState
from .config_loader import merge_rebalance_config
from .config_schema import RebalanceConfig
from .exceptions import (
    BotAlreadyRunningError,
    ConfigurationError,
    InvalidPreconditionError,
    MathDomainError,
    NoPositionMonitoredError,
)
from .interfaces import NullObserver, RebalanceObserver, SystemTimeProvider, TimeProvider
from .ledger.base import LEDGER_FAILURES, LedgerClient
from .rebalance_executor import RebalanceExecutor
from .rebalance_gate import RebalanceCheck, check_rebalance_needed
from .types import BotStateSnapshot, PositionSnapshot, RebalanceResult
from .utils import format_status_line, get_logger

logger = get_logger(__name__)


class RebalanceBot:
    """Monitors one position and re-centers it when the price leaves its range."""

    def __init__(
        self,
        ledger: LedgerClient,
        config: Optional[RebalanceConfig] = None,
        observer: Optional[RebalanceObserver] = None,
        time_provider: Optional[TimeProvider] = None,
        executor: Optional[RebalanceExecutor] = None,
    ):
        self.ledger = ledger
        self.observer = observer or NullObserver()
        self.time_provider = time_provider or SystemTimeProvider()
        self.executor = executor or RebalanceExecutor(ledger, self.time_provider)

        self._config = config or RebalanceConfig()
        self._state = BotState()
        self._lock = asyncio.Lock()
        self._schedule_task: Optional[asyncio.Task] = None
        self.check_interval: Optional[float] = None

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def position_id(self) -> Optional[str]:
        return self._state.position_id

    async def start(self, position_id: str, check_interval: float = 30.0) -> None:
        """
        Start monitoring a position.

        Runs one cycle immediately, then schedules a cycle every check_interval
        seconds.

        Raises:
            BotAlreadyRunningError: If the bot is already running
            InvalidPreconditionError: On an empty position id
            ConfigurationError: On a non-positive check interval
        """
        if self._state.is_running:
            raise BotAlreadyRunningError(position_id=self._state.position_id)
        if not position_id or not position_id.strip():
            raise InvalidPreconditionError("Position id cannot be empty")
        if check_interval <= 0:
            raise ConfigurationError(
                f"Check interval must be positive, got {check_interval}",
                {"check_interval": check_interval},
            )

        self._state.position_id = position_id.strip()
        self._state.is_running = True
        self.check_interval = check_interval
        self._status(
            f"Bot started for position {self._state.position_id} "
            f"(checking every {check_interval}s)"
        )

        async with self._lock:
            await self._guarded_cycle()

        if self._state.is_running and self._schedule_task is None:
            self._schedule_task = asyncio.create_task(self._schedule_loop())

    def stop(self) -> None:
        """Stop scheduling cycles. No-op when already stopped."""
        if not self._state.is_running:
            return
        self._state.is_running = False
        if self._schedule_task is not None:
            self._schedule_task.cancel()
            self._schedule_task = None
        self._status("Bot stopped")

    async def _schedule_loop(self) -> None:
        logger.debug(f"Scheduling cycles every {self.check_interval}s")
        try:
            while self._state.is_running:
                await asyncio.sleep(self.check_interval)
                if not self._state.is_running:
                    break
                # Shielded so stop() leaves an in-flight cycle to finish
                await asyncio.shield(self.tick())
        except asyncio.CancelledError:
            logger.debug("Monitoring schedule cancelled")

    async def tick(self) -> bool:
        """
        Run one scheduled cycle.

        Returns:
            False if the cycle was skipped because the bot is stopped or a
            previous cycle is still in flight, True otherwise
        """
        if not self._state.is_running:
            return False
        if self._lock.locked():
            logger.warning("Previous cycle still in flight, skipping this tick")
            return False
        async with self._lock:
            await self._guarded_cycle()
        return True

    # Cycle

    async def _guarded_cycle(self) -> None:
        try:
            await self._run_cycle()
        except Exception as e:
            logger.exception("Unexpected error in monitoring cycle")
            self._error(f"Unexpected error in monitoring cycle: {e}")

    async def _run_cycle(self) -> None:
        config = self._config
        position_id = self._state.position_id

        try:
            position = await self.ledger.fetch_position(position_id)
        except MathDomainError as e:
            self._error(f"Bad position data for {position_id}: {e}")
            return
        except LEDGER_FAILURES as e:
            self._error(f"Failed to fetch position {position_id}: {e}")
            return

        now = self.time_provider.current_timestamp()
        check = check_rebalance_needed(position, self._state, config, now)
        self._status(check.reason)
        if not check.needed:
            return

        if not config.auto_rebalance:
            self._status("Auto-rebalance disabled, skipping execution")
            return

        result = await self.executor.execute(self._state, config)
        self._report(result)

    # Manual operations

    async def trigger_rebalance(self) -> RebalanceResult:
        """
        Rebalance now, bypassing the minimum interval.

        Waits for any in-flight cycle first. The executor still re-checks that
        the position is out of range.

        Raises:
            NoPositionMonitoredError: If no position is being monitored
        """
        if not self._state.position_id:
            raise NoPositionMonitoredError()

        async with self._lock:
            self._status(f"Manual rebalance triggered for {self._state.position_id}")
            result = await self.executor.execute(self._state, self._config)
            self._report(result)
            return result

    def update_config(self, **changes: Any) -> RebalanceConfig:
        """
        Apply a partial config update, effective from the next cycle.

        Raises:
            ConfigurationError: If any value is invalid; the live config is
                left unchanged
        """
        self._config = merge_rebalance_config(self._config, changes)
        self._status(
            f"Configuration updated: {', '.join(f'{k}={v}' for k, v in changes.items())}"
        )
        return self._config

    # Accessors

    def get_state(self) -> BotStateSnapshot:
        return self._state.snapshot()

    def get_config(self) -> RebalanceConfig:
        return self._config

    async def get_position_info(self) -> PositionSnapshot:
        """Fetch a fresh snapshot of the monitored position."""
        if not self._state.position_id:
            raise NoPositionMonitoredError()
        return await self.ledger.fetch_position(self._state.position_id)

    async def check_rebalance_needed(self) -> RebalanceCheck:
        """Evaluate the gate against a fresh snapshot without executing anything."""
        position = await self.get_position_info()
        return check_rebalance_needed(
            position, self._state, self._config, self.time_provider.current_timestamp()
        )

    # Reporting

    def _report(self, result: RebalanceResult) -> None:
        if result.success:
            self._status(
                f"Rebalance successful! TX: {result.tx_id}, "
                f"new range {result.new_range}, position {self._state.position_id}"
            )
        else:
            self._error(f"Rebalance failed: {result.error}")

        try:
            self.observer.on_rebalance(result)
        except Exception:
            logger.exception("Observer failed to handle rebalance result")

    def _status(self, message: str) -> None:
        line = format_status_line(message, self.time_provider.current_timestamp())
        logger.info(message)
        self._emit(line)

    def _error(self, message: str) -> None:
        line = format_status_line(
            message, self.time_provider.current_timestamp(), is_error=True
        )
        self._state.record_error(line)
        logger.error(message)
        self._emit(line)

    def _emit(self, line: str) -> None:
        try:
            self.observer.on_status_update(line)
        except Exception:
            logger.exception("Observer failed to handle status update")
