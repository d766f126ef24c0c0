"""
Prometheus Metrics for the Range Rebalancer

Observer that turns bot events into Prometheus counters and gauges, with an
optional aiohttp endpoint to expose them.
"""

import logging
import time
from typing import Any, Dict, Optional

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from .types import RebalanceResult

logger = logging.getLogger(__name__)

ERROR_MARKER = "] ERROR: "


class RebalanceMetrics:
    """
    Rebalance bot metrics collection and exposure

    Implements the observer interface, so it can be handed to a bot directly
    or through a CompositeObserver. Provides metrics for:
    - Rebalance attempts by outcome and failure kind
    - Gas spent by successful rebalances
    - Status and error line throughput
    - Time of the last successful rebalance
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, bot_name: str = "default"):
        """Initialize metrics with a custom registry or a fresh one"""
        self.registry = registry or CollectorRegistry()
        self.bot_name = bot_name
        self._initialize_metrics()

        self._runner = None
        self._site = None

    def _initialize_metrics(self):
        self.rebalances_total = Counter(
            "clmm_rebalancer_rebalances_total",
            "Rebalance attempts by outcome",
            ["bot", "outcome"],
            registry=self.registry,
        )
        self.rebalance_failures_total = Counter(
            "clmm_rebalancer_rebalance_failures_total",
            "Failed rebalance attempts by failure kind",
            ["bot", "kind"],
            registry=self.registry,
        )
        self.gas_spent_total = Counter(
            "clmm_rebalancer_gas_spent_total",
            "Gas spent by successful rebalances",
            ["bot"],
            registry=self.registry,
        )
        self.status_updates_total = Counter(
            "clmm_rebalancer_status_updates_total",
            "Status lines emitted by the bot",
            ["bot", "level"],
            registry=self.registry,
        )
        self.last_rebalance_timestamp = Gauge(
            "clmm_rebalancer_last_rebalance_timestamp_seconds",
            "Wall-clock time of the last successful rebalance",
            ["bot"],
            registry=self.registry,
        )

    # Observer interface

    def on_status_update(self, message: str) -> None:
        level = "error" if ERROR_MARKER in message else "info"
        self.status_updates_total.labels(bot=self.bot_name, level=level).inc()

    def on_rebalance(self, result: RebalanceResult) -> None:
        if result.success:
            self.rebalances_total.labels(bot=self.bot_name, outcome="success").inc()
            # Counter values are floats; very large gas totals lose precision here
            self.gas_spent_total.labels(bot=self.bot_name).inc(result.gas_cost)
            self.last_rebalance_timestamp.labels(bot=self.bot_name).set(time.time())
        else:
            self.rebalances_total.labels(bot=self.bot_name, outcome="failed").inc()
            kind = result.failure_kind.value if result.failure_kind else "unknown"
            self.rebalance_failures_total.labels(bot=self.bot_name, kind=kind).inc()

    # Readers

    def _sample(self, name: str, labels: Dict[str, str]) -> float:
        return self.registry.get_sample_value(name, labels) or 0.0

    def success_count(self) -> float:
        return self._sample(
            "clmm_rebalancer_rebalances_total", {"bot": self.bot_name, "outcome": "success"}
        )

    def failed_count(self) -> float:
        return self._sample(
            "clmm_rebalancer_rebalances_total", {"bot": self.bot_name, "outcome": "failed"}
        )

    def error_line_count(self) -> float:
        return self._sample(
            "clmm_rebalancer_status_updates_total", {"bot": self.bot_name, "level": "error"}
        )

    def render(self) -> bytes:
        return generate_latest(self.registry)

    # HTTP exposure

    async def start_server(
        self, port: int = 8000, host: str = "0.0.0.0", path: str = "/metrics"
    ) -> bool:
        """Start Prometheus metrics HTTP server"""
        try:
            app = web.Application()
            app.router.add_get(path, self._metrics_handler)
            app.router.add_get("/health", self._health_handler)

            self._runner = web.AppRunner(app)
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, host, port)
            await self._site.start()

            logger.info(f"Metrics server started on http://{host}:{port}{path}")
            return True

        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            return False

    async def stop_server(self) -> None:
        """Stop the metrics server"""
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Metrics server stopped")

    async def _metrics_handler(self, request):
        content_type = CONTENT_TYPE_LATEST.split(";")[0]
        return web.Response(body=self.render(), content_type=content_type)

    async def _health_handler(self, request):
        return web.json_response(self.get_metrics_summary())

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "service": "clmm_rebalancer_metrics",
            "bot": self.bot_name,
            "rebalances": self.success_count(),
            "failed_rebalances": self.failed_count(),
            "timestamp": time.time(),
        }
