"""
Rental Projection Calculations

Generates a 10-year projection for a short-term rental property: occupancy and
average daily rate (ADR) compound from their year-1 values, operating costs
compound per named series, and the management fee is a flat escalating base
plus an incentive on profit before fee.

Every year is computed in closed form from the year-1 inputs rather than from
the previous year's output, so reruns are bit-identical.
"""

import math
from dataclasses import dataclass, field, fields, replace
from typing import List, Optional, Tuple

from payback.calculations.errors import DivisionUndefined, InvalidInput

PROJECTION_YEARS = 10
DEFAULT_PERIOD_DAYS = 365


@dataclass(frozen=True)
class CostSeries:
    """A named operating cost that grows geometrically each year."""

    name: str
    y1_amount: float  # Year-1 cost in investment currency
    growth: float = 0.0  # Annual growth in percent (e.g., 4.0 for 4%)


@dataclass(frozen=True)
class YearlyAssumptions:
    """Inputs to a projection run. Percent fields use 0-100 units."""

    initial_investment: float
    y1_occupancy: float
    occupancy_growth: float
    adr: float
    adr_growth: float
    y1_base_fee: float
    incentive_fee_pct: float
    fee_escalation: float = 0.0
    operating_costs: Tuple[CostSeries, ...] = ()
    period_days: int = DEFAULT_PERIOD_DAYS


@dataclass(frozen=True)
class YearlyData:
    """Projected figures for a single year."""

    year: int
    occupancy: float
    adr: float
    gross_revenue: float
    operating_costs: float
    management_fee: float
    net_operating_income: float
    take_home_profit: float
    roi_after_management: float


@dataclass(frozen=True)
class AggregateAverages:
    """Arithmetic means across projected years."""

    years: int
    occupancy: float
    adr: float
    gross_revenue: float
    operating_costs: float
    management_fee: float
    net_operating_income: float
    take_home_profit: float
    roi_after_management: float
    total_take_home_profit: float = field(default=0.0)


AVERAGED_FIELDS = [
    "occupancy",
    "adr",
    "gross_revenue",
    "operating_costs",
    "management_fee",
    "net_operating_income",
    "take_home_profit",
    "roi_after_management",
]


# Bali villa defaults, amounts in IDR
DEFAULT_ASSUMPTIONS = YearlyAssumptions(
    initial_investment=3_500_000_000,
    y1_occupancy=70.0,
    occupancy_growth=2.0,
    adr=2_500_000,
    adr_growth=5.0,
    y1_base_fee=60_000_000,
    incentive_fee_pct=15.0,
    fee_escalation=3.0,
    operating_costs=(
        CostSeries(name="utilities", y1_amount=90_000_000, growth=4.0),
        CostSeries(name="maintenance", y1_amount=60_000_000, growth=5.0),
    ),
)


def growth_factor(growth_pct: float, year: int) -> float:
    """
    Calculate the compounding factor for a given projection year.

    Args:
        growth_pct: Annual growth in percent
        year: Projection year (1-indexed); year 1 has factor 1.0

    Returns:
        (1 + growth_pct/100) ** (year - 1)
    """
    return (1 + growth_pct / 100) ** (year - 1)


def incentive_fee(net_before_fee: float, incentive_fee_pct: float) -> float:
    """Incentive component of the management fee. Never negative."""
    if net_before_fee <= 0:
        return 0.0
    return net_before_fee * incentive_fee_pct / 100


def _require_finite(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInput(f"{name} must be a finite number, got {value!r}")


def validate_assumptions(assumptions: YearlyAssumptions) -> None:
    """
    Reject non-finite or out-of-range assumptions before any computation.

    Raises:
        InvalidInput: If any field is non-finite or out of range
        DivisionUndefined: If initial_investment is zero
    """
    for name in (
        "initial_investment",
        "y1_occupancy",
        "occupancy_growth",
        "adr",
        "adr_growth",
        "y1_base_fee",
        "incentive_fee_pct",
        "fee_escalation",
    ):
        _require_finite(name, getattr(assumptions, name))

    if not 0 <= assumptions.y1_occupancy <= 100:
        raise InvalidInput("y1_occupancy must be between 0 and 100")
    if not 0 <= assumptions.incentive_fee_pct <= 100:
        raise InvalidInput("incentive_fee_pct must be between 0 and 100")

    for name in ("initial_investment", "adr", "y1_base_fee"):
        if getattr(assumptions, name) < 0:
            raise InvalidInput(f"{name} cannot be negative")

    for name in ("occupancy_growth", "adr_growth", "fee_escalation"):
        if getattr(assumptions, name) <= -100:
            raise InvalidInput(f"{name} must be greater than -100%")

    if not isinstance(assumptions.period_days, int) or assumptions.period_days <= 0:
        raise InvalidInput("period_days must be a positive integer")

    for cost in assumptions.operating_costs:
        _require_finite(f"operating_costs[{cost.name}].y1_amount", cost.y1_amount)
        _require_finite(f"operating_costs[{cost.name}].growth", cost.growth)
        if cost.y1_amount < 0:
            raise InvalidInput(f"operating cost {cost.name!r} cannot be negative")
        if cost.growth <= -100:
            raise InvalidInput(f"operating cost {cost.name!r} growth must be greater than -100%")

    if assumptions.initial_investment == 0:
        raise DivisionUndefined("ROI is undefined for a zero initial investment")


def project_year(assumptions: YearlyAssumptions, year: int) -> YearlyData:
    """
    Project a single year from the year-1 assumptions.

    Does not validate; call project() for a checked run.
    """
    occupancy = assumptions.y1_occupancy * growth_factor(assumptions.occupancy_growth, year)
    occupancy = min(100.0, max(0.0, occupancy))

    adr = assumptions.adr * growth_factor(assumptions.adr_growth, year)
    gross_revenue = occupancy / 100 * adr * assumptions.period_days

    operating_costs = sum(
        cost.y1_amount * growth_factor(cost.growth, year)
        for cost in assumptions.operating_costs
    )

    net_before_fee = gross_revenue - operating_costs
    base_fee = assumptions.y1_base_fee * growth_factor(assumptions.fee_escalation, year)
    management_fee = base_fee + incentive_fee(net_before_fee, assumptions.incentive_fee_pct)

    take_home_profit = gross_revenue - operating_costs - management_fee
    roi = take_home_profit / assumptions.initial_investment * 100

    return YearlyData(
        year=year,
        occupancy=occupancy,
        adr=adr,
        gross_revenue=gross_revenue,
        operating_costs=operating_costs,
        management_fee=management_fee,
        net_operating_income=net_before_fee,
        take_home_profit=take_home_profit,
        roi_after_management=roi,
    )


def project(
    assumptions: YearlyAssumptions, years: int = PROJECTION_YEARS
) -> List[YearlyData]:
    """
    Generate the yearly projection.

    Args:
        assumptions: Year-1 values and growth rates
        years: Horizon length (default 10)

    Returns:
        One YearlyData per year, year 1 first

    Raises:
        InvalidInput: If assumptions are non-finite or out of range, or years
            is not a positive whole number
        DivisionUndefined: If initial_investment is zero
    """
    if not isinstance(years, int) or years <= 0:
        raise InvalidInput(f"years must be a positive whole number, got {years!r}")

    validate_assumptions(assumptions)
    return [project_year(assumptions, year) for year in range(1, years + 1)]


def average(data: List[YearlyData]) -> AggregateAverages:
    """
    Average every numeric field across the projected years.

    Raises:
        InvalidInput: If data is empty
    """
    if not data:
        raise InvalidInput("Cannot average an empty projection")

    count = len(data)
    means = {
        name: sum(getattr(row, name) for row in data) / count
        for name in AVERAGED_FIELDS
    }

    return AggregateAverages(
        years=count,
        total_take_home_profit=sum(row.take_home_profit for row in data),
        **means,
    )


def payback_year(initial_investment: float, data: List[YearlyData]) -> Optional[int]:
    """
    Find the first year whose cumulative take-home profit recovers the investment.

    Returns:
        Year number, or None if the investment is not recovered in the horizon
    """
    cumulative = 0.0
    for row in data:
        cumulative += row.take_home_profit
        if cumulative >= initial_investment:
            return row.year
    return None


def update_assumptions(assumptions: YearlyAssumptions, **changes) -> YearlyAssumptions:
    """
    Return a validated copy of assumptions with the given fields replaced.

    Raises:
        InvalidInput: If a field name is unknown or the result is invalid
    """
    known = {f.name for f in fields(YearlyAssumptions)}
    unknown = set(changes) - known
    if unknown:
        raise InvalidInput(f"Unknown assumption fields: {', '.join(sorted(unknown))}")

    if "operating_costs" in changes:
        changes["operating_costs"] = tuple(changes["operating_costs"])

    updated = replace(assumptions, **changes)
    validate_assumptions(updated)
    return updated


def with_cost(
    assumptions: YearlyAssumptions, name: str, y1_amount: float, growth: float = 0.0
) -> YearlyAssumptions:
    """Return a copy with the named cost series added or replaced."""
    new_cost = CostSeries(name=name, y1_amount=y1_amount, growth=growth)
    if any(cost.name == name for cost in assumptions.operating_costs):
        costs = [
            new_cost if cost.name == name else cost
            for cost in assumptions.operating_costs
        ]
    else:
        costs = list(assumptions.operating_costs) + [new_cost]
    return update_assumptions(assumptions, operating_costs=costs)
