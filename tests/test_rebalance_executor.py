"""
Tests for the rebalance executor.

Runs the remove-then-open sequence against the paper ledger, with small
subclasses where a test needs to observe or distort ledger traffic.
"""

import asyncio
from dataclasses import replace

import pytest

from clmm_rebalancer.bot_state import BotState
from clmm_rebalancer.clmm_math import min_amount_with_slippage
from clmm_rebalancer.config_schema import PaperMarketSettings, RebalanceConfig
from clmm_rebalancer.exceptions import LedgerNetworkError, LedgerRejectedError
from clmm_rebalancer.interfaces import DeterministicTimeProvider
from clmm_rebalancer.ledger import PaperLedgerClient
from clmm_rebalancer.rebalance_executor import RebalanceExecutor
from clmm_rebalancer.types import FailureKind, LiquidityRemoval, TickRange

POOL = "0xpaper_pool"
POSITION = "0xpaper_position"


class RecordingLedger(PaperLedgerClient):
    """Paper ledger that remembers the arguments of each rebalance step."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.remove_calls = []
        self.open_calls = []

    async def remove_liquidity(self, position_id, pool_id, liquidity, min_amounts=(0, 0), gas_budget=None):
        self.remove_calls.append(
            {
                "position_id": position_id,
                "liquidity": liquidity,
                "min_amounts": min_amounts,
                "gas_budget": gas_budget,
            }
        )
        return await super().remove_liquidity(
            position_id, pool_id, liquidity, min_amounts, gas_budget
        )

    async def open_and_fund_position(
        self, pool_id, coin_types, amounts, tick_lower, tick_upper, min_amounts, gas_budget=None
    ):
        self.open_calls.append(
            {
                "amounts": amounts,
                "range": (tick_lower, tick_upper),
                "min_amounts": min_amounts,
                "gas_budget": gas_budget,
            }
        )
        return await super().open_and_fund_position(
            pool_id, coin_types, amounts, tick_lower, tick_upper, min_amounts, gas_budget
        )


class SilentRemovalLedger(RecordingLedger):
    """Ledger whose removal step does not report withdrawn amounts."""

    async def remove_liquidity(self, position_id, pool_id, liquidity, min_amounts=(0, 0), gas_budget=None):
        removal = await super().remove_liquidity(
            position_id, pool_id, liquidity, min_amounts, gas_budget
        )
        return LiquidityRemoval(tx_id=removal.tx_id, gas_cost=removal.gas_cost)


class ZeroSpacingLedger(PaperLedgerClient):
    async def fetch_pool(self, pool_id):
        pool = await super().fetch_pool(pool_id)
        return replace(pool, tick_spacing=0)


def seeded(ledger_cls=RecordingLedger, **overrides):
    return ledger_cls.from_settings(PaperMarketSettings(**overrides))


@pytest.fixture
def clock():
    return DeterministicTimeProvider(start_time=1704067200.0)


@pytest.fixture
def config():
    return RebalanceConfig(slippage_tolerance=0.5, range_width_percent=10, gas_budget=50_000_000)


@pytest.fixture
def state():
    state = BotState()
    state.position_id = POSITION
    return state


class TestExecutorSuccess:
    @pytest.mark.asyncio
    async def test_rebalances_out_of_range_position(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 700)
        executor = RebalanceExecutor(ledger, clock)

        result = await executor.execute(state, config)

        assert result.success is True
        assert result.new_range == TickRange(180, 1200)
        assert result.tx_id == "0xpaper_tx_2"
        assert result.gas_cost == 3_000_000
        assert result.new_position_id == "0xpaper_position_1"
        assert result.failure_kind is None

        assert state.rebalance_count == 1
        assert state.total_gas_spent == 3_000_000
        assert state.last_rebalance_time == clock.current_timestamp()
        assert state.position_id == "0xpaper_position_1"

    @pytest.mark.asyncio
    async def test_passes_slippage_minimums_and_gas_budget(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, -700)
        snapshot = await ledger.fetch_position(POSITION)

        await RebalanceExecutor(ledger, clock).execute(state, config)

        remove = ledger.remove_calls[0]
        assert remove["liquidity"] == snapshot.liquidity
        assert remove["gas_budget"] == 50_000_000
        assert remove["min_amounts"] == (
            min_amount_with_slippage(snapshot.amount_a, 0.5),
            min_amount_with_slippage(snapshot.amount_b, 0.5),
        )

        opened = ledger.open_calls[0]
        assert opened["amounts"] == (snapshot.amount_a, snapshot.amount_b)
        assert opened["min_amounts"] == (
            min_amount_with_slippage(snapshot.amount_a, 0.5),
            0,
        )
        assert opened["gas_budget"] == 50_000_000
        assert opened["range"][0] <= -700 <= opened["range"][1]

    @pytest.mark.asyncio
    async def test_falls_back_to_snapshot_amounts(self, state, config, clock):
        ledger = seeded(SilentRemovalLedger)
        ledger.set_pool_tick(POOL, 700)
        snapshot = await ledger.fetch_position(POSITION)

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.success is True
        assert ledger.open_calls[0]["amounts"] == (snapshot.amount_a, snapshot.amount_b)

    @pytest.mark.asyncio
    async def test_stats_accumulate(self, state, config, clock):
        ledger = seeded()
        executor = RebalanceExecutor(ledger, clock)

        ledger.set_pool_tick(POOL, 700)
        await executor.execute(state, config)
        clock.advance_time(600)
        ledger.set_pool_tick(POOL, 3000)
        second = await executor.execute(state, config)

        assert second.success is True
        assert state.rebalance_count == 2
        assert state.total_gas_spent == 6_000_000
        assert state.position_id == "0xpaper_position_2"
        assert state.last_rebalance_time == 1704067200.0 + 600


class TestExecutorFailures:
    @pytest.mark.asyncio
    async def test_no_position(self, config, clock):
        result = await RebalanceExecutor(seeded(), clock).execute(BotState(), config)

        assert result.success is False
        assert result.failure_kind is FailureKind.NO_POSITION
        assert result.error == "No position being monitored"

    @pytest.mark.asyncio
    async def test_position_not_found(self, state, config, clock):
        state.position_id = "0xmissing"
        result = await RebalanceExecutor(seeded(), clock).execute(state, config)

        assert result.failure_kind is FailureKind.NOT_FOUND
        assert result.error == "Position not found: 0xmissing"

    @pytest.mark.asyncio
    async def test_fetch_failure(self, state, config, clock):
        ledger = seeded()
        ledger.fail_next("fetch_position", LedgerNetworkError("timeout"))

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.FETCH_FAILED
        assert "timeout" in result.error

    @pytest.mark.asyncio
    async def test_pool_fetch_failure(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 700)
        ledger.fail_next("fetch_pool", LedgerNetworkError("timeout"))

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.FETCH_FAILED
        assert ledger.remove_calls == []

    @pytest.mark.asyncio
    async def test_still_in_range(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 600)

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.success is False
        assert result.failure_kind is FailureKind.NOT_NEEDED
        assert result.error == "Price is still within range"
        assert ledger.remove_calls == []
        assert state.rebalance_count == 0

    @pytest.mark.asyncio
    async def test_removal_rejected(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 700)
        ledger.fail_next("remove_liquidity", LedgerRejectedError("MoveAbort"))

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.EXECUTION_FAILED
        assert result.is_bad_data is False
        assert "MoveAbort" in result.error
        assert state.rebalance_count == 0
        assert state.total_gas_spent == 0
        assert state.position_id == POSITION
        assert ledger.open_calls == []

    @pytest.mark.asyncio
    async def test_open_rejected_after_removal(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 700)
        ledger.fail_next("open_and_fund_position", LedgerRejectedError("insufficient gas"))

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.EXECUTION_FAILED
        assert "after removal 0xpaper_tx_1" in result.error
        assert state.rebalance_count == 0
        assert state.last_rebalance_time is None
        assert state.position_id == POSITION

    @pytest.mark.asyncio
    async def test_transport_errors_become_results(self, state, config, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 700)
        executor = RebalanceExecutor(ledger, clock)

        ledger.fail_next("fetch_pool", asyncio.TimeoutError())
        timed_out = await executor.execute(state, config)

        ledger.fail_next("remove_liquidity", ConnectionResetError("connection reset by peer"))
        reset = await executor.execute(state, config)

        assert timed_out.failure_kind is FailureKind.FETCH_FAILED
        assert reset.failure_kind is FailureKind.EXECUTION_FAILED
        assert reset.error == "Failed to remove liquidity: connection reset by peer"
        assert state.rebalance_count == 0
        assert state.position_id == POSITION

    @pytest.mark.asyncio
    async def test_gas_budget_too_small(self, state, clock):
        ledger = seeded()
        ledger.set_pool_tick(POOL, 700)
        config = RebalanceConfig(gas_budget=1)

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.EXECUTION_FAILED
        assert "Gas budget" in result.error


class TestBadData:
    @pytest.mark.asyncio
    async def test_malformed_pool_is_bad_data(self, state, config, clock):
        ledger = seeded(ZeroSpacingLedger)
        ledger.set_pool_tick(POOL, 700)

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.BAD_DATA
        assert result.is_bad_data is True
        assert "Tick spacing must be positive" in result.error
        assert state.rebalance_count == 0

    @pytest.mark.asyncio
    async def test_inverted_position_range_is_bad_data(self, config, clock):
        ledger = seeded()
        ledger.add_position("0xbroken", POOL, 10**9, 600, -600)
        state = BotState()
        state.position_id = "0xbroken"

        result = await RebalanceExecutor(ledger, clock).execute(state, config)

        assert result.failure_kind is FailureKind.BAD_DATA
        assert "inverted range" in result.error
