"""
Exception hierarchy for the range rebalancer.

Separates caller mistakes (invalid preconditions), malformed upstream data
(math domain errors) and ledger failures so that callers can report each one
differently.
"""

from typing import Any, Dict, Optional


class RebalancerError(Exception):
    """Base exception for all rebalancer related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(RebalancerError):
    """Raised when there are configuration-related issues."""

    pass


class ValidationError(RebalancerError):
    """Raised when validation of data or configuration fails."""

    pass


class InvalidPreconditionError(RebalancerError):
    """Raised when an operation is rejected because of the bot's current state."""

    pass


class BotAlreadyRunningError(InvalidPreconditionError):
    """Raised when starting a bot that is already running."""

    def __init__(
        self,
        message: str = "Bot is already running",
        position_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.position_id = position_id


class NoPositionMonitoredError(InvalidPreconditionError):
    """Raised when an operation needs a monitored position and there is none."""

    def __init__(
        self,
        message: str = "No position being monitored",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)


class MathDomainError(RebalancerError):
    """Raised when liquidity math receives inputs outside its domain.

    Signals malformed upstream data (zero sqrt price, inverted range, tick
    outside the supported domain) rather than an ordinary execution failure.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        inputs: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation
        self.inputs = inputs or {}


class LedgerError(RebalancerError):
    """Raised when a ledger client call fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        object_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.operation = operation
        self.object_id = object_id


class LedgerNetworkError(LedgerError):
    """Raised on transient transport failures (timeouts, dropped connections)."""

    pass


class LedgerRejectedError(LedgerError):
    """Raised when the ledger rejects a transaction."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        object_id: Optional[str] = None,
        tx_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, operation, object_id, details)
        self.tx_id = tx_id


class PositionNotFoundError(LedgerError):
    """Raised when a position id does not resolve to a position."""

    def __init__(self, position_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Position not found: {position_id}",
            operation="fetch_position",
            object_id=position_id,
            details=details,
        )


class PoolNotFoundError(LedgerError):
    """Raised when a pool id does not resolve to a pool."""

    def __init__(self, pool_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Pool not found: {pool_id}",
            operation="fetch_pool",
            object_id=pool_id,
            details=details,
        )
