"""
XIRR and XNPV Calculations

Implements XIRR using Newton-Raphson with a bisection fallback, matching
Excel's XIRR function (actual/365 day count from the earliest flow).
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Sequence, Tuple

import numpy as np

from payback.calculations.dates import to_date, whole_months_between, DAYS_PER_YEAR
from payback.calculations.errors import (
    DivisionUndefined,
    InvalidCashFlowSet,
    InvalidInput,
    NoConvergence,
)

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 100
TOLERANCE = 1e-6
DEFAULT_GUESS = 0.1

# Newton steps at or below this rate put (1 + r) at or below zero
RATE_FLOOR = -0.999999

BISECTION_BRACKET = (-0.9999, 10.0)
BISECTION_MAX_ITERATIONS = 200

# Floating-point noise floor for large notionals, as a share of gross flows
RELATIVE_TOLERANCE = 1e-13


@dataclass(frozen=True)
class CashFlow:
    """A dated cash flow. Negative = outflow to the investor, positive = inflow."""

    date: date
    amount: float
    description: str = ""


@dataclass(frozen=True)
class XIRRResult:
    """Annualized return and summary figures for a set of cash flows."""

    rate: float  # Annualized, e.g. 0.184 for 18.4%
    total_invested: float
    net_profit: float
    hold_period_months: int


def consolidate_cash_flows(flows: Sequence[CashFlow]) -> List[Tuple[date, float]]:
    """
    Sum flows that fall on the same calendar day.

    Returns:
        (date, net amount) pairs sorted by date

    Raises:
        InvalidInput: If any amount is not a finite number
    """
    totals: Dict[date, float] = {}
    for flow in flows:
        if not math.isfinite(flow.amount):
            raise InvalidInput(f"Cash flow amount must be finite, got {flow.amount!r}")
        day = to_date(flow.date)
        totals[day] = totals.get(day, 0.0) + flow.amount
    return sorted(totals.items())


def _as_arrays(flows: Sequence[CashFlow]) -> Tuple[np.ndarray, np.ndarray]:
    """Convert flows to (year fractions from earliest date, amounts) arrays."""
    consolidated = consolidate_cash_flows(flows)
    if not consolidated:
        raise InvalidCashFlowSet("At least one cash flow required")

    base_date = consolidated[0][0]
    years = np.array(
        [(day - base_date).days / DAYS_PER_YEAR for day, _ in consolidated],
        dtype=float,
    )
    amounts = np.array([amount for _, amount in consolidated], dtype=float)
    return years, amounts


def _xnpv(years: np.ndarray, amounts: np.ndarray, rate: float) -> float:
    with np.errstate(all="ignore"):
        return float(np.sum(amounts / (1 + rate) ** years))


def _xnpv_derivative(years: np.ndarray, amounts: np.ndarray, rate: float) -> float:
    """Calculate derivative of XNPV with respect to rate."""
    with np.errstate(all="ignore"):
        return float(np.sum(-years * amounts / (1 + rate) ** (years + 1)))


def calculate_xnpv(flows: Sequence[CashFlow], discount_rate: float) -> float:
    """
    Calculate XNPV (NPV with specific dates).

    Args:
        flows: Dated cash flows, any order
        discount_rate: Annual discount rate (e.g., 0.10 for 10%)

    Returns:
        Net present value as of the earliest flow date
    """
    years, amounts = _as_arrays(flows)
    return _xnpv(years, amounts, discount_rate)


def _newton(
    years: np.ndarray,
    amounts: np.ndarray,
    guess: float,
    tolerance: float,
    max_iterations: int,
):
    """Return the Newton-Raphson root, or None if the iteration breaks down."""
    rate = guess

    for _ in range(max_iterations):
        npv = _xnpv(years, amounts, rate)
        if not math.isfinite(npv):
            return None
        if abs(npv) < tolerance:
            return rate

        dnpv = _xnpv_derivative(years, amounts, rate)
        if dnpv == 0 or not math.isfinite(dnpv):
            return None

        rate = rate - npv / dnpv
        if not math.isfinite(rate) or rate <= RATE_FLOOR:
            return None

    return None


def _bisect(years: np.ndarray, amounts: np.ndarray, tolerance: float) -> float:
    low, high = BISECTION_BRACKET
    npv_low = _xnpv(years, amounts, low)
    npv_high = _xnpv(years, amounts, high)

    if not (math.isfinite(npv_low) and math.isfinite(npv_high)):
        raise NoConvergence("XIRR bracket evaluation overflowed")
    if abs(npv_low) < tolerance:
        return low
    if abs(npv_high) < tolerance:
        return high
    if (npv_low > 0) == (npv_high > 0):
        raise NoConvergence(
            f"XIRR has no root between {low:.4%} and {high:.0%}"
        )

    for _ in range(BISECTION_MAX_ITERATIONS):
        mid = (low + high) / 2
        npv_mid = _xnpv(years, amounts, mid)

        if abs(npv_mid) < tolerance:
            return mid

        if (npv_mid > 0) == (npv_low > 0):
            low, npv_low = mid, npv_mid
        else:
            high = mid

        if high - low < 1e-15:
            break

    raise NoConvergence("XIRR bisection did not reach tolerance")


def effective_tolerance(flows: Sequence[CashFlow], tolerance: float = TOLERANCE) -> float:
    """
    The |XNPV| bound calculate_xirr actually enforces for these flows.

    Double precision cannot resolve XNPV below roughly 1e-13 of the gross
    flows, so for large notionals (e.g. IDR billions) the requested tolerance
    is raised to max(tolerance, 1e-13 * sum|netted amounts|). For flows
    totalling under 10 million the requested tolerance applies unchanged.
    """
    _, amounts = _as_arrays(flows)
    return _effective_tolerance(amounts, tolerance)


def _effective_tolerance(amounts: np.ndarray, tolerance: float) -> float:
    return max(tolerance, float(np.sum(np.abs(amounts))) * RELATIVE_TOLERANCE)


def calculate_xirr(
    flows: Sequence[CashFlow],
    guess: float = DEFAULT_GUESS,
    tolerance: float = TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> float:
    """
    Calculate XIRR (IRR with specific dates).

    Matches Excel's XIRR() function behavior for irregular cash flows. Flows on
    the same day are netted first. Newton-Raphson runs from the guess; if it
    diverges or exhausts its iterations, bisection over a wide bracket is tried
    before giving up.

    Args:
        flows: Dated cash flows, any order
        guess: Initial guess for rate (default 0.1 = 10%)
        tolerance: Requested |XNPV| bound at the returned rate; raised for
            large notionals, see effective_tolerance()
        max_iterations: Newton-Raphson iteration cap

    Returns:
        Annual IRR as decimal

    Raises:
        InvalidCashFlowSet: If the flows do not change sign
        NoConvergence: If neither method finds a root within tolerance
    """
    years, amounts = _as_arrays(flows)

    has_positive = bool(np.any(amounts > 0))
    has_negative = bool(np.any(amounts < 0))

    if not has_positive or not has_negative:
        raise InvalidCashFlowSet(
            "Cash flows must contain both positive and negative values"
        )

    tolerance = _effective_tolerance(amounts, tolerance)

    rate = _newton(years, amounts, guess, tolerance, max_iterations)
    if rate is not None:
        return rate

    logger.debug(f"XIRR Newton-Raphson failed from guess {guess}, falling back to bisection")
    try:
        return _bisect(years, amounts, tolerance)
    except NoConvergence as e:
        logger.warning(f"XIRR did not converge: {e}")
        raise


def calculate_multiple(flows: Sequence[CashFlow]) -> float:
    """
    Calculate equity multiple.

    Returns:
        Multiple (e.g., 2.0 = 2.0x return)

    Raises:
        DivisionUndefined: If there are no outflows
    """
    total_inflows = sum(flow.amount for flow in flows if flow.amount > 0)
    total_outflows = abs(sum(flow.amount for flow in flows if flow.amount < 0))

    if total_outflows == 0:
        raise DivisionUndefined("No investment (outflows) found")

    return total_inflows / total_outflows


def calculate_profit(flows: Sequence[CashFlow]) -> float:
    """Calculate profit (total inflows minus total outflows)."""
    return sum(flow.amount for flow in flows)


def calculate_total_invested(flows: Sequence[CashFlow]) -> float:
    """Sum of outflow magnitudes."""
    return sum(-flow.amount for flow in flows if flow.amount < 0)


def calculate_hold_period_months(flows: Sequence[CashFlow]) -> int:
    """Whole calendar months between the earliest and latest flow."""
    if not flows:
        return 0
    days = [to_date(flow.date) for flow in flows]
    return whole_months_between(min(days), max(days))


def solve(
    flows: Sequence[CashFlow],
    guess: float = DEFAULT_GUESS,
    tolerance: float = TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
) -> XIRRResult:
    """
    Solve for XIRR and summarize the investment.

    Raises:
        InvalidInput: If an amount is not finite
        InvalidCashFlowSet: If the flows do not change sign
        NoConvergence: If no rate brings |XNPV| within effective_tolerance()
    """
    rate = calculate_xirr(
        flows, guess=guess, tolerance=tolerance, max_iterations=max_iterations
    )

    return XIRRResult(
        rate=rate,
        total_invested=calculate_total_invested(flows),
        net_profit=calculate_profit(flows),
        hold_period_months=calculate_hold_period_months(flows),
    )
