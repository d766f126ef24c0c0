"""
Unit tests for concentrated-liquidity math.

Sqrt prices are checked against an independent Decimal oracle computed through
exp/ln at higher precision than the implementation uses.
"""

from decimal import ROUND_FLOOR, Decimal, localcontext

import pytest

from clmm_rebalancer.clmm_math import (
    MAX_SQRT_PRICE,
    MAX_TICK,
    MIN_SQRT_PRICE,
    MIN_TICK,
    Q64,
    compute_centered_range,
    liquidity_for_value,
    min_amount_with_slippage,
    reconstruct_token_amounts,
    sqrt_price_to_price,
    sqrt_price_to_tick,
    tick_to_price,
    tick_to_sqrt_price,
)
from clmm_rebalancer.exceptions import MathDomainError
from clmm_rebalancer.types import TickRange

SAMPLE_TICKS = [
    MIN_TICK,
    -400000,
    -123457,
    -60,
    -1,
    0,
    1,
    60,
    1234,
    99999,
    443580,
    MAX_TICK,
]


def oracle_sqrt_price(tick: int) -> int:
    with localcontext() as ctx:
        ctx.prec = 120
        half_log = Decimal(tick) * Decimal("1.0001").ln() / 2
        value = half_log.exp() * Q64
        return int(value.to_integral_value(rounding=ROUND_FLOOR))


class TestTickToSqrtPrice:
    def test_tick_zero_is_exactly_one(self):
        assert tick_to_sqrt_price(0) == Q64

    @pytest.mark.parametrize("tick", SAMPLE_TICKS)
    def test_matches_oracle(self, tick):
        assert abs(tick_to_sqrt_price(tick) - oracle_sqrt_price(tick)) <= 1

    def test_strictly_increasing(self):
        values = [tick_to_sqrt_price(t) for t in range(-300, 301)]
        assert all(a < b for a, b in zip(values, values[1:]))

    def test_symmetry_around_zero(self):
        # sqrt(p(t)) * sqrt(p(-t)) == 1, so the product is Q64^2 up to rounding
        for tick in (1, 60, 5000):
            product = tick_to_sqrt_price(tick) * tick_to_sqrt_price(-tick)
            assert abs(product - Q64 * Q64) <= 2 * tick_to_sqrt_price(tick)

    def test_domain_constants(self):
        assert MIN_SQRT_PRICE == tick_to_sqrt_price(MIN_TICK)
        assert MAX_SQRT_PRICE == tick_to_sqrt_price(MAX_TICK)
        assert MIN_SQRT_PRICE < Q64 < MAX_SQRT_PRICE

    @pytest.mark.parametrize("tick", [MIN_TICK - 1, MAX_TICK + 1])
    def test_out_of_domain(self, tick):
        with pytest.raises(MathDomainError, match="outside supported domain"):
            tick_to_sqrt_price(tick)


class TestSqrtPriceToTick:
    @pytest.mark.parametrize("tick", SAMPLE_TICKS)
    def test_round_trip_is_exact(self, tick):
        assert sqrt_price_to_tick(tick_to_sqrt_price(tick)) == tick

    @pytest.mark.parametrize("tick", [-5000, -1, 0, 1, 777])
    def test_prices_between_ticks_map_down(self, tick):
        just_above = tick_to_sqrt_price(tick) + 1
        just_below_next = tick_to_sqrt_price(tick + 1) - 1

        assert sqrt_price_to_tick(just_above) == tick
        assert sqrt_price_to_tick(just_below_next) == tick

    def test_monotonic(self):
        prices = [tick_to_sqrt_price(t) for t in range(-100, 101, 7)]
        ticks = [sqrt_price_to_tick(p) for p in prices]
        assert ticks == sorted(ticks)

    @pytest.mark.parametrize("sqrt_price", [0, -Q64])
    def test_non_positive_rejected(self, sqrt_price):
        with pytest.raises(MathDomainError, match="must be positive"):
            sqrt_price_to_tick(sqrt_price)

    def test_outside_domain_rejected(self):
        with pytest.raises(MathDomainError, match="outside supported domain"):
            sqrt_price_to_tick(MAX_SQRT_PRICE + 10**20)


class TestPrices:
    def test_tick_to_price(self):
        assert tick_to_price(0) == 1
        assert tick_to_price(1) == Decimal("1.0001")
        assert tick_to_price(2) == Decimal("1.00020001")

    def test_sqrt_price_to_price(self):
        assert sqrt_price_to_price(Q64) == 1
        assert sqrt_price_to_price(2 * Q64) == 4

    def test_sqrt_price_to_price_with_decimals(self):
        # 9-decimal token A against 6-decimal token B
        assert sqrt_price_to_price(Q64, decimals_a=9, decimals_b=6) == 1000

    def test_sqrt_price_to_price_rejects_zero(self):
        with pytest.raises(MathDomainError):
            sqrt_price_to_price(0)


class TestReconstructTokenAmounts:
    LIQUIDITY = 10**12
    LOWER = Q64
    UPPER = 4 * Q64

    def test_in_range_split(self):
        amount_a, amount_b = reconstruct_token_amounts(
            self.LIQUIDITY, 2 * Q64, self.LOWER, self.UPPER
        )
        # A = L * (4 - 2) / (4 * 2) = L / 4, B = L * (2 - 1)
        assert amount_a == self.LIQUIDITY // 4
        assert amount_b == self.LIQUIDITY

    def test_below_range_all_token_a(self):
        amount_a, amount_b = reconstruct_token_amounts(
            self.LIQUIDITY, Q64 // 2, self.LOWER, self.UPPER
        )
        assert amount_a == self.LIQUIDITY * 3 // 4
        assert amount_b == 0

    def test_above_range_all_token_b(self):
        amount_a, amount_b = reconstruct_token_amounts(
            self.LIQUIDITY, 8 * Q64, self.LOWER, self.UPPER
        )
        assert amount_a == 0
        assert amount_b == self.LIQUIDITY * 3

    def test_continuous_at_lower_boundary(self):
        at_boundary = reconstruct_token_amounts(
            self.LIQUIDITY, self.LOWER, self.LOWER, self.UPPER
        )
        below = reconstruct_token_amounts(
            self.LIQUIDITY, self.LOWER - 1, self.LOWER, self.UPPER
        )
        assert at_boundary == below

    def test_continuous_at_upper_boundary(self):
        at_boundary = reconstruct_token_amounts(
            self.LIQUIDITY, self.UPPER, self.LOWER, self.UPPER
        )
        above = reconstruct_token_amounts(
            self.LIQUIDITY, self.UPPER + 1, self.LOWER, self.UPPER
        )
        assert at_boundary == above

    def test_zero_liquidity(self):
        assert reconstruct_token_amounts(0, 2 * Q64, self.LOWER, self.UPPER) == (0, 0)

    def test_real_ticks_never_negative(self):
        lower, upper = tick_to_sqrt_price(-600), tick_to_sqrt_price(600)
        for tick in (-1200, -600, -1, 0, 1, 600, 1200):
            amount_a, amount_b = reconstruct_token_amounts(
                10**18, tick_to_sqrt_price(tick), lower, upper
            )
            assert amount_a >= 0 and amount_b >= 0

    def test_huge_liquidity_stays_exact(self):
        liquidity = 2**200
        amount_a, amount_b = reconstruct_token_amounts(
            liquidity, 2 * Q64, self.LOWER, self.UPPER
        )
        assert amount_a == liquidity // 4
        assert amount_b == liquidity

    @pytest.mark.parametrize(
        "liquidity,current,lower,upper,match",
        [
            (1, 0, Q64, 2 * Q64, "Degenerate sqrt price"),
            (1, Q64, 0, 2 * Q64, "Degenerate sqrt price"),
            (-1, Q64, Q64, 2 * Q64, "cannot be negative"),
            (1, Q64, 2 * Q64, Q64, "Inverted range"),
        ],
    )
    def test_invalid_inputs(self, liquidity, current, lower, upper, match):
        with pytest.raises(MathDomainError, match=match) as exc_info:
            reconstruct_token_amounts(liquidity, current, lower, upper)
        assert exc_info.value.operation == "reconstruct_token_amounts"


class TestLiquidityForValue:
    def test_in_range_value_round_trip(self):
        lower, upper = tick_to_sqrt_price(-600), tick_to_sqrt_price(600)
        current = Q64
        amount_a, amount_b = reconstruct_token_amounts(10**12, current, lower, upper)

        liquidity = liquidity_for_value(amount_a + amount_b, current, lower, upper)
        # Truncation in the amounts can only lose value
        assert 10**12 - 100 <= liquidity <= 10**12

    def test_zero_value(self):
        lower, upper = tick_to_sqrt_price(-600), tick_to_sqrt_price(600)
        assert liquidity_for_value(0, Q64, lower, upper) == 0


class TestComputeCenteredRange:
    def test_scenario_1234(self):
        # 10% -> ~953 ticks, 477 each side, snapped out to multiples of 60
        assert compute_centered_range(1234, 60, 10) == TickRange(720, 1740)

    def test_centered_on_zero(self):
        assert compute_centered_range(0, 60, 10) == TickRange(-480, 480)

    @pytest.mark.parametrize("current_tick", [-99999, -1234, -61, -1, 0, 7, 1234, 300000])
    @pytest.mark.parametrize("tick_spacing", [1, 10, 60, 200])
    @pytest.mark.parametrize("width", [0.5, 5, 10, 50, 200])
    def test_range_properties(self, current_tick, tick_spacing, width):
        result = compute_centered_range(current_tick, tick_spacing, width)

        assert result.tick_lower < result.tick_upper
        assert result.tick_lower % tick_spacing == 0
        assert result.tick_upper % tick_spacing == 0
        assert result.tick_lower <= current_tick <= result.tick_upper

    def test_collapsed_range_is_widened(self, caplog):
        # 0.0001% is a tiny fraction of one tick
        with caplog.at_level("WARNING"):
            result = compute_centered_range(120, 60, 0.0001)

        assert result == TickRange(60, 180)
        assert "collapsed" in caplog.text

    def test_tiny_width_off_spacing_does_not_collapse(self):
        assert compute_centered_range(130, 60, 0.0001) == TickRange(120, 180)

    def test_clamped_to_domain(self):
        result = compute_centered_range(MIN_TICK + 100, 60, 10)
        assert result.tick_lower == -443580
        assert result.tick_lower <= MIN_TICK + 100 <= result.tick_upper

    def test_cannot_fit_above_highest_usable_tick(self):
        with pytest.raises(MathDomainError, match="Cannot fit a range"):
            compute_centered_range(MAX_TICK, 60, 10)

    @pytest.mark.parametrize(
        "tick_spacing,width",
        [(0, 10), (-60, 10), (60, 0), (60, -5), (60, float("nan")), (60, float("inf"))],
    )
    def test_invalid_parameters(self, tick_spacing, width):
        with pytest.raises(MathDomainError):
            compute_centered_range(0, tick_spacing, width)

    def test_tick_outside_domain(self):
        with pytest.raises(MathDomainError):
            compute_centered_range(MAX_TICK + 1, 60, 10)


class TestMinAmountWithSlippage:
    @pytest.mark.parametrize(
        "amount,tolerance,expected",
        [
            (1000, 0.5, 995),
            (999, 1, 989),
            (1000, 0.1, 999),
            (0, 0.5, 0),
            (1, 0.5, 0),
            (10**30, 0.5, 995 * 10**27),
            (1000, 100, 0),
            (1000, 250, 0),
            (1000, Decimal("2.5"), 975),
        ],
    )
    def test_values(self, amount, tolerance, expected):
        assert min_amount_with_slippage(amount, tolerance) == expected

    def test_never_exceeds_amount(self):
        for amount in (1, 7, 1000, 123456789):
            assert min_amount_with_slippage(amount, 0.01) <= amount

    def test_negative_amount(self):
        with pytest.raises(MathDomainError, match="Amount cannot be negative"):
            min_amount_with_slippage(-1, 0.5)

    def test_negative_tolerance(self):
        with pytest.raises(MathDomainError, match="cannot be negative"):
            min_amount_with_slippage(1000, -0.5)

    def test_nan_tolerance(self):
        with pytest.raises(MathDomainError, match="Invalid slippage tolerance"):
            min_amount_with_slippage(1000, float("nan"))
