"""
Logging configuration for cleaner output.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys


def setup(level=logging.INFO):
    """
    Configure logging for cleaner, more readable output.

    - Routes everything through one stdout handler on the root logger
    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    - Quiets the paper ledger's per-transaction chatter below DEBUG
    """

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    # Minimal format: time + level + message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # Package loggers carry their own handler; send them through the root one
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("clmm_rebalancer"):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    logging.getLogger("clmm_rebalancer.ledger.paper_ledger").setLevel(
        max(level, logging.WARNING)
    )
    logging.getLogger("__main__").setLevel(level)


def setup_minimal():
    """
    Even more minimal logging - only warnings and errors.
    Good for production or when you only care about problems.
    """
    setup(level=logging.WARNING)


def setup_debug():
    """
    Verbose logging for debugging.
    Shows everything including paper ledger transactions.
    """
    setup(level=logging.DEBUG)
    logging.getLogger("clmm_rebalancer.ledger.paper_ledger").setLevel(logging.DEBUG)
