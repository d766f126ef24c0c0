"""Version information for the range rebalancer."""

__version__ = "0.1.0"
