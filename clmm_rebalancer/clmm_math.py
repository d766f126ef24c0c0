"""
Concentrated-liquidity math.

Pure functions converting between ticks, Q64.64 sqrt prices and linear prices,
reconstructing token amounts from liquidity, and sizing new ranges.

Key concepts:
    - tick: discrete price index, price = 1.0001^tick
    - sqrt price: sqrt(price) * 2^64, the chain's Q64.64 fixed-point format
    - liquidity: abstract depth unit; token amounts are derived from it and a
      price range

Sqrt prices are computed with Decimal at 80 significant digits and floored to
an int, so a result is exact to within one unit of the last Q64 bit. The only
floating point step is the log in compute_centered_range, whose output is
rounded to whole ticks before use.
"""

import math
from decimal import ROUND_FLOOR, Decimal, localcontext
from fractions import Fraction
from typing import Tuple, Union

from .exceptions import MathDomainError
from .types import TickRange
from .utils import get_logger

logger = get_logger(__name__)

# Tick domain supported by the CLMM pools (fits in a signed 32-bit int)
MIN_TICK = -443636
MAX_TICK = 443636

Q64 = 2**64

TICK_BASE = Decimal("1.0001")

_PRECISION = 80


def _check_tick(tick: int, operation: str) -> None:
    if not MIN_TICK <= tick <= MAX_TICK:
        raise MathDomainError(
            f"Tick {tick} outside supported domain [{MIN_TICK}, {MAX_TICK}]",
            operation=operation,
            inputs={"tick": tick},
        )


def tick_to_sqrt_price(tick: int) -> int:
    """
    Convert a tick to its Q64.64 sqrt price.

    sqrt_price = floor(sqrt(1.0001^tick) * 2^64)

    Raises:
        MathDomainError: If the tick is outside [MIN_TICK, MAX_TICK]
    """
    _check_tick(tick, "tick_to_sqrt_price")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        sqrt_price = (TICK_BASE**tick).sqrt()
        return int((sqrt_price * Q64).to_integral_value(rounding=ROUND_FLOOR))


MIN_SQRT_PRICE = tick_to_sqrt_price(MIN_TICK)
MAX_SQRT_PRICE = tick_to_sqrt_price(MAX_TICK)


def sqrt_price_to_tick(sqrt_price: int) -> int:
    """
    Convert a Q64.64 sqrt price to the greatest tick whose sqrt price does not
    exceed it.

    The Decimal log gives an estimate that is then corrected against
    tick_to_sqrt_price, so tick_to_sqrt_price(sqrt_price_to_tick(p)) <= p always
    holds and round trips from a tick are exact.
    """
    if sqrt_price <= 0:
        raise MathDomainError(
            "Sqrt price must be positive",
            operation="sqrt_price_to_tick",
            inputs={"sqrt_price": sqrt_price},
        )
    if not MIN_SQRT_PRICE <= sqrt_price <= MAX_SQRT_PRICE:
        raise MathDomainError(
            f"Sqrt price {sqrt_price} outside supported domain",
            operation="sqrt_price_to_tick",
            inputs={"sqrt_price": sqrt_price},
        )

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ratio = Decimal(sqrt_price) / Q64
        estimate = 2 * ratio.ln() / TICK_BASE.ln()
        tick = int(estimate.to_integral_value(rounding=ROUND_FLOOR))

    tick = max(MIN_TICK, min(MAX_TICK, tick))
    while tick > MIN_TICK and tick_to_sqrt_price(tick) > sqrt_price:
        tick -= 1
    while tick < MAX_TICK and tick_to_sqrt_price(tick + 1) <= sqrt_price:
        tick += 1
    return tick


def tick_to_price(tick: int) -> Decimal:
    """Raw price (token B per token A, no decimal adjustment) at a tick."""
    _check_tick(tick, "tick_to_price")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return +(TICK_BASE**tick)


def sqrt_price_to_price(sqrt_price: int, decimals_a: int = 0, decimals_b: int = 0) -> Decimal:
    """
    Linear price from a Q64.64 sqrt price.

    With token decimals supplied the result is the display price:
    (sqrt_price / 2^64)^2 * 10^(decimals_a - decimals_b).
    """
    if sqrt_price <= 0:
        raise MathDomainError(
            "Sqrt price must be positive",
            operation="sqrt_price_to_price",
            inputs={"sqrt_price": sqrt_price},
        )
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ratio = Decimal(sqrt_price) / Q64
        return ratio * ratio * Decimal(10) ** (decimals_a - decimals_b)


def _amount_a_delta(liquidity: int, sqrt_low: int, sqrt_high: int) -> int:
    return liquidity * (sqrt_high - sqrt_low) * Q64 // (sqrt_high * sqrt_low)


def _amount_b_delta(liquidity: int, sqrt_low: int, sqrt_high: int) -> int:
    return liquidity * (sqrt_high - sqrt_low) // Q64


def reconstruct_token_amounts(
    liquidity: int,
    sqrt_price_current: int,
    sqrt_price_lower: int,
    sqrt_price_upper: int,
) -> Tuple[int, int]:
    """
    Reconstruct token amounts held by a position.

    Three cases depending on where the current price sits:
        - below the range: everything is token A
        - above the range: everything is token B
        - inside the range (boundaries included): split between A and B

    All inputs are Q64.64 sqrt prices; arithmetic is integer with truncating
    division, so amounts are never negative.

    Returns:
        (amount_a, amount_b)

    Raises:
        MathDomainError: On a zero/negative sqrt price, negative liquidity or an
            inverted range
    """
    inputs = {
        "liquidity": liquidity,
        "sqrt_price_current": sqrt_price_current,
        "sqrt_price_lower": sqrt_price_lower,
        "sqrt_price_upper": sqrt_price_upper,
    }
    if liquidity < 0:
        raise MathDomainError(
            "Liquidity cannot be negative",
            operation="reconstruct_token_amounts",
            inputs=inputs,
        )
    if min(sqrt_price_current, sqrt_price_lower, sqrt_price_upper) <= 0:
        raise MathDomainError(
            "Degenerate sqrt price: values must be positive",
            operation="reconstruct_token_amounts",
            inputs=inputs,
        )
    if sqrt_price_lower > sqrt_price_upper:
        raise MathDomainError(
            "Inverted range: lower sqrt price above upper sqrt price",
            operation="reconstruct_token_amounts",
            inputs=inputs,
        )

    if sqrt_price_current < sqrt_price_lower:
        return _amount_a_delta(liquidity, sqrt_price_lower, sqrt_price_upper), 0
    if sqrt_price_current > sqrt_price_upper:
        return 0, _amount_b_delta(liquidity, sqrt_price_lower, sqrt_price_upper)
    return (
        _amount_a_delta(liquidity, sqrt_price_current, sqrt_price_upper),
        _amount_b_delta(liquidity, sqrt_price_lower, sqrt_price_current),
    )


def liquidity_for_value(
    value_in_b: Fraction,
    sqrt_price_current: int,
    sqrt_price_lower: int,
    sqrt_price_upper: int,
) -> int:
    """
    Largest liquidity whose position is worth at most value_in_b (token B units)
    at the current price.

    Used to size a fresh position from the proceeds of a withdrawn one.
    """
    unit = Q64
    unit_a, unit_b = reconstruct_token_amounts(
        unit, sqrt_price_current, sqrt_price_lower, sqrt_price_upper
    )
    price = Fraction(sqrt_price_current * sqrt_price_current, Q64 * Q64)
    unit_value = unit_a * price + unit_b
    if unit_value <= 0:
        raise MathDomainError(
            "Range holds no value at the current price",
            operation="liquidity_for_value",
            inputs={
                "sqrt_price_current": sqrt_price_current,
                "sqrt_price_lower": sqrt_price_lower,
                "sqrt_price_upper": sqrt_price_upper,
            },
        )
    return math.floor(unit * Fraction(value_in_b) / unit_value)


def _floor_to_spacing(tick: int, tick_spacing: int) -> int:
    return (tick // tick_spacing) * tick_spacing


def _ceil_to_spacing(tick: int, tick_spacing: int) -> int:
    return -((-tick) // tick_spacing) * tick_spacing


def tick_span_for_width(range_width_percent: float) -> float:
    """Number of ticks covering a price move of range_width_percent."""
    return math.log(1 + range_width_percent / 100) / math.log(1.0001)


def compute_centered_range(
    current_tick: int,
    tick_spacing: int,
    range_width_percent: float,
) -> TickRange:
    """
    Compute a spacing-aligned range centered on current_tick.

    The width percentage becomes a price ratio (1 + w/100), its log base 1.0001
    rounded to whole ticks gives the span, and half of it (rounded up) goes on
    each side of the current tick. The lower bound is floored and the upper
    bound ceiled to the spacing so the range always contains the intended span.
    A width too small to cover a single tick collapses the range when the
    current tick sits on a spacing multiple; it is then widened by one spacing
    on each side.

    Raises:
        MathDomainError: On non-positive spacing or width, a tick outside the
            domain, or a range that cannot fit inside the tick domain
    """
    inputs = {
        "current_tick": current_tick,
        "tick_spacing": tick_spacing,
        "range_width_percent": range_width_percent,
    }
    if tick_spacing <= 0:
        raise MathDomainError(
            "Tick spacing must be positive",
            operation="compute_centered_range",
            inputs=inputs,
        )
    if not (math.isfinite(range_width_percent) and range_width_percent > 0):
        raise MathDomainError(
            "Range width percent must be a positive finite number",
            operation="compute_centered_range",
            inputs=inputs,
        )
    _check_tick(current_tick, "compute_centered_range")

    tick_span = math.floor(tick_span_for_width(range_width_percent) + 0.5)
    half_span = -(-tick_span // 2)
    tick_lower = _floor_to_spacing(current_tick - half_span, tick_spacing)
    tick_upper = _ceil_to_spacing(current_tick + half_span, tick_spacing)

    while tick_lower >= tick_upper:
        logger.warning(
            f"Range collapsed to [{tick_lower}, {tick_upper}] "
            f"(width {range_width_percent}%, spacing {tick_spacing}); widening"
        )
        tick_lower -= tick_spacing
        tick_upper += tick_spacing

    tick_lower = max(tick_lower, _ceil_to_spacing(MIN_TICK, tick_spacing))
    tick_upper = min(tick_upper, _floor_to_spacing(MAX_TICK, tick_spacing))

    if not tick_lower <= current_tick <= tick_upper or tick_lower >= tick_upper:
        raise MathDomainError(
            f"Cannot fit a range around tick {current_tick} inside the tick domain",
            operation="compute_centered_range",
            inputs=inputs,
        )
    return TickRange(tick_lower, tick_upper)


def min_amount_with_slippage(
    amount: int, slippage_tolerance_pct: Union[int, float, Decimal]
) -> int:
    """
    Minimum acceptable amount after slippage.

    floor(amount * (1 - tolerance / 100)), computed exactly. A tolerance of 100%
    or more gives 0.

    Examples:
        >>> min_amount_with_slippage(1000, 0.5)
        995
        >>> min_amount_with_slippage(999, 1)
        989
    """
    if amount < 0:
        raise MathDomainError(
            "Amount cannot be negative",
            operation="min_amount_with_slippage",
            inputs={"amount": amount},
        )
    try:
        tolerance = Fraction(str(slippage_tolerance_pct))
    except (ValueError, TypeError) as e:
        raise MathDomainError(
            f"Invalid slippage tolerance: {slippage_tolerance_pct}",
            operation="min_amount_with_slippage",
            inputs={"slippage_tolerance_pct": slippage_tolerance_pct},
        ) from e
    if tolerance < 0:
        raise MathDomainError(
            "Slippage tolerance cannot be negative",
            operation="min_amount_with_slippage",
            inputs={"slippage_tolerance_pct": slippage_tolerance_pct},
        )
    if tolerance >= 100:
        return 0
    return math.floor(amount * (100 - tolerance) / 100)
