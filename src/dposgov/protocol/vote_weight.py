"""
dposgov/protocol/vote_weight.py

Inverse vote weight: converts stake into producer vote weight.

    weight = ((1 - variation) * sin(pi/2 * voted / producers) + variation) * staked

where producers = min(registered producers, 30). Voting for a single
producer credits at least `variation` of the stake; full credit is only
reached when votes are spread across the whole producer set.

Every validating node must compute the same bits, so the sine is not
taken from the platform libm. It is evaluated with a fixed-precision
Decimal Taylor series and rounded once to a double; the remaining
operations are plain IEEE-754 double arithmetic, which is correctly
rounded everywhere.
"""

import logging
from decimal import Decimal, localcontext

from ..config import VOTE_VARIATION, MAX_VOTED_PRODUCERS

logger = logging.getLogger("dposgov.protocol.vote_weight")


# ============================================================================
# CONSTANTS
# ============================================================================

# Digits carried through the series; far beyond double precision
SINE_PRECISION = 50

# pi to 60 significant digits
PI = Decimal("3.14159265358979323846264338327950288419716939937510582097494")
HALF_PI = Decimal("1.57079632679489661923132169163975144209858469968755291048747")
TWO_PI = Decimal("6.28318530717958647692528676655900576839433879875021164194988")


# ============================================================================
# DETERMINISTIC SINE
# ============================================================================

def deterministic_sin(x: Decimal) -> Decimal:
    """
    Sine of `x` (radians) computed in a fixed Decimal context.

    The result only depends on `x` and SINE_PRECISION, never on the
    host floating-point unit.
    """
    with localcontext() as ctx:
        ctx.prec = SINE_PRECISION + 10

        x = +x
        # Reduce into [-pi, pi]
        if x > PI or x < -PI:
            turns = (x / TWO_PI).to_integral_value()
            x -= turns * TWO_PI
            if x > PI:
                x -= TWO_PI
            elif x < -PI:
                x += TWO_PI

        # sin(x) = x - x^3/3! + x^5/5! - ...
        epsilon = Decimal(10) ** -(SINE_PRECISION + 5)
        x_squared = x * x
        term = x
        total = x
        n = 1
        while abs(term) > epsilon:
            term = -term * x_squared / ((n + 1) * (n + 2))
            total += term
            n += 2

    with localcontext() as ctx:
        ctx.prec = SINE_PRECISION
        return +total


def sin_quarter_turn_fraction(numerator: int, denominator: int) -> float:
    """sin(pi/2 * numerator / denominator) rounded once to a double."""
    with localcontext() as ctx:
        ctx.prec = SINE_PRECISION + 10
        angle = HALF_PI * Decimal(numerator) / Decimal(denominator)
    return float(deterministic_sin(angle))


# ============================================================================
# VOTE WEIGHT
# ============================================================================

def inverse_vote_weight(
    staked: float,
    voted_producers: int,
    registered_producers: int,
    variation: float = VOTE_VARIATION,
) -> float:
    """
    Calculate the vote weight of `staked` spread over `voted_producers`.

    Args:
        staked: Weight-bearing stake (>= 0)
        voted_producers: Number of producers voted for
        registered_producers: Producers registered on chain (capped at 30)
        variation: Minimum share of stake credited for any non-empty vote

    Returns:
        Vote weight, 0.0 when no producer is voted for
    """
    if voted_producers == 0:
        return 0.0

    total_producers = min(registered_producers, MAX_VOTED_PRODUCERS)
    if total_producers <= 0:
        raise ValueError("cannot weigh a vote when no producers are registered")

    k = 1.0 - variation
    return (k * sin_quarter_turn_fraction(voted_producers, total_producers) + variation) * float(staked)
