"""
Tests for the XIRR solver and rental projection engine.
"""

import math
import pytest
from dataclasses import replace
from datetime import date, datetime

from payback.calculations.dates import add_months, whole_months_between, year_fraction
from payback.calculations.errors import (
    DivisionUndefined,
    InvalidCashFlowSet,
    InvalidInput,
    NoConvergence,
)
from payback.calculations.irr import (
    CashFlow,
    calculate_multiple,
    calculate_xirr,
    calculate_xnpv,
    consolidate_cash_flows,
    effective_tolerance,
    solve,
)
from payback.calculations.projection import (
    DEFAULT_ASSUMPTIONS,
    CostSeries,
    average,
    incentive_fee,
    payback_year,
    project,
    update_assumptions,
    with_cost,
)


class TestDateHelpers:
    """Test day and month arithmetic."""

    def test_year_fraction_actual_365(self):
        assert year_fraction(date(2025, 1, 1), date(2026, 1, 1)) == 1.0
        # 2024 is a leap year: 366 days
        assert year_fraction(date(2024, 1, 1), date(2025, 1, 1)) == 366 / 365

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)

    def test_whole_months_between(self):
        assert whole_months_between(date(2025, 1, 1), date(2026, 7, 15)) == 18
        assert whole_months_between(date(2025, 1, 15), date(2025, 2, 14)) == 0


class TestXIRRCalculations:
    """Test XIRR calculation functions."""

    def test_known_value_twenty_percent(self):
        """Invest 1M, receive 1.2M exactly 365 days later = 20%."""
        flows = [
            CashFlow(date(2025, 1, 1), -1_000_000),
            CashFlow(date(2026, 1, 1), 1_200_000),
        ]
        rate = calculate_xirr(flows)
        assert abs(rate - 0.20) < 1e-6

    def test_npv_at_solved_rate_is_zero(self):
        """The returned rate must zero the XNPV within tolerance."""
        flows = [
            CashFlow(date(2025, 1, 15), -1_750_000),
            CashFlow(date(2025, 2, 15), -350_000),
            CashFlow(date(2025, 3, 15), -350_000),
            CashFlow(date(2025, 7, 1), 40_000),
            CashFlow(date(2025, 11, 30), -25_000),
            CashFlow(date(2026, 1, 15), 2_900_000),
        ]
        rate = calculate_xirr(flows)
        assert abs(calculate_xnpv(flows, rate)) < 1e-6

    def test_order_independent(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2025, 6, 1), 30),
            CashFlow(date(2026, 1, 1), 90),
        ]
        assert calculate_xirr(flows) == pytest.approx(calculate_xirr(list(reversed(flows))))

    def test_negative_return(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2026, 1, 1), 90),
        ]
        rate = calculate_xirr(flows)
        assert rate == pytest.approx(-0.10, abs=1e-6)

    def test_same_day_flows_are_netted(self):
        """-100 and +50 on the same day behave as a single -50."""
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2025, 1, 1), 50),
            CashFlow(date(2026, 1, 1), 60),
        ]
        assert consolidate_cash_flows(flows) == [
            (date(2025, 1, 1), -50.0),
            (date(2026, 1, 1), 60.0),
        ]
        assert calculate_xirr(flows) == pytest.approx(0.20, abs=1e-6)

    def test_time_of_day_is_discarded(self):
        flows = [
            CashFlow(datetime(2025, 1, 1, 23, 30), -1_000_000),
            CashFlow(datetime(2026, 1, 1, 0, 5), 1_200_000),
        ]
        assert calculate_xirr(flows) == pytest.approx(0.20, abs=1e-6)

    def test_all_positive_flows_rejected(self):
        flows = [
            CashFlow(date(2025, 1, 1), 100),
            CashFlow(date(2026, 1, 1), 100),
        ]
        with pytest.raises(InvalidCashFlowSet):
            calculate_xirr(flows)

    def test_all_negative_flows_rejected(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2026, 1, 1), -100),
        ]
        with pytest.raises(InvalidCashFlowSet):
            calculate_xirr(flows)

    def test_sign_change_cancelled_by_netting_rejected(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2025, 1, 1), 100),
        ]
        with pytest.raises(InvalidCashFlowSet):
            calculate_xirr(flows)

    def test_empty_flows_rejected(self):
        with pytest.raises(InvalidCashFlowSet):
            calculate_xirr([])

    def test_non_finite_amount_rejected(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2026, 1, 1), math.inf),
        ]
        with pytest.raises(InvalidInput):
            calculate_xirr(flows)

    def test_bisection_fallback(self):
        """With no Newton iterations allowed, bisection still finds the root."""
        flows = [
            CashFlow(date(2025, 1, 1), -1_000_000),
            CashFlow(date(2026, 1, 1), 1_200_000),
        ]
        rate = calculate_xirr(flows, max_iterations=0)
        assert rate == pytest.approx(0.20, abs=1e-6)
        assert abs(calculate_xnpv(flows, rate)) < 1e-6

    def test_bisection_fallback_from_bad_guess(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2025, 7, 1), 20),
            CashFlow(date(2027, 1, 1), 120),
        ]
        rate = calculate_xirr(flows, guess=-0.9999)
        assert abs(calculate_xnpv(flows, rate)) < 1e-6

    def test_no_root_reports_no_convergence(self):
        """-100, +100, -100 at yearly intervals has a sign change but no real root."""
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2026, 1, 1), 100),
            CashFlow(date(2027, 1, 1), -100),
        ]
        with pytest.raises(NoConvergence):
            calculate_xirr(flows)

    def test_large_notional_round_trip(self):
        """IDR-sized amounts still converge."""
        flows = [
            CashFlow(date(2025, 1, 15), -3_500_000_000),
            CashFlow(date(2025, 1, 15), -150_000_000),
            CashFlow(date(2026, 1, 15), 4_095_000_000),
        ]
        rate = calculate_xirr(flows)
        assert rate == pytest.approx(4_095 / 3_650 - 1, abs=1e-9)
        assert abs(calculate_xnpv(flows, rate)) < effective_tolerance(flows)

    def test_effective_tolerance_for_idr_flows(self):
        """Billions in IDR: the bound scales with gross netted flows."""
        flows = [
            CashFlow(date(2025, 1, 1), -1_750_000_000),
            CashFlow(date(2025, 1, 1), -150_000_000),
        ] + [
            CashFlow(date(2025, month, 1), -350_000_000) for month in range(2, 7)
        ] + [
            CashFlow(date(2026, 1, 1), 4_095_000_000),
        ]
        bound = effective_tolerance(flows)
        assert bound == pytest.approx(7_745_000_000 * 1e-13)

        rate = calculate_xirr(flows)
        assert abs(calculate_xnpv(flows, rate)) < bound

    def test_effective_tolerance_small_flows(self):
        flows = [
            CashFlow(date(2025, 1, 1), -1_000_000),
            CashFlow(date(2026, 1, 1), 1_200_000),
        ]
        assert effective_tolerance(flows) == 1e-6


class TestSolve:
    """Test the summarized XIRR result."""

    def test_solve_summary(self):
        flows = [
            CashFlow(date(2025, 1, 1), -1_000_000),
            CashFlow(date(2025, 3, 1), -500_000),
            CashFlow(date(2026, 7, 15), 1_800_000),
        ]
        result = solve(flows)
        assert result.total_invested == 1_500_000
        assert result.net_profit == 300_000
        assert result.hold_period_months == 18
        assert abs(calculate_xnpv(flows, result.rate)) < 1e-6

    def test_solve_rejects_degenerate_input(self):
        with pytest.raises(InvalidCashFlowSet):
            solve([CashFlow(date(2025, 1, 1), 100), CashFlow(date(2026, 1, 1), 5)])

    def test_calculate_multiple(self):
        flows = [
            CashFlow(date(2025, 1, 1), -100),
            CashFlow(date(2025, 6, 1), 50),
            CashFlow(date(2026, 1, 1), 100),
        ]
        assert calculate_multiple(flows) == 1.5

    def test_multiple_without_outflows(self):
        with pytest.raises(DivisionUndefined):
            calculate_multiple([CashFlow(date(2025, 1, 1), 100)])


class TestProjection:
    """Test the 10-year rental projection."""

    def test_ten_years(self, assumptions):
        data = project(assumptions)
        assert len(data) == 10
        assert [row.year for row in data] == list(range(1, 11))

    def test_year_one_values(self, assumptions):
        y1 = project(assumptions)[0]
        assert y1.occupancy == 60
        assert y1.gross_revenue == pytest.approx(43_800)  # 0.6 * 200 * 365
        assert y1.operating_costs == pytest.approx(10_000)
        assert y1.net_operating_income == pytest.approx(33_800)
        assert y1.management_fee == pytest.approx(8_380)  # 5,000 + 10% of 33,800
        assert y1.take_home_profit == pytest.approx(25_420)
        assert y1.roi_after_management == pytest.approx(2.542)

    def test_year_two_compounds(self, assumptions):
        y2 = project(assumptions)[1]
        assert y2.occupancy == pytest.approx(61.2)
        assert y2.adr == pytest.approx(210)
        assert y2.gross_revenue == pytest.approx(46_909.8)
        assert y2.operating_costs == pytest.approx(10_300)
        assert y2.management_fee == pytest.approx(8_660.98)

    def test_deterministic(self, assumptions):
        assert project(assumptions) == project(assumptions)

    def test_roi_consistency(self, assumptions):
        for row in project(assumptions):
            assert row.take_home_profit == pytest.approx(
                row.net_operating_income - row.management_fee
            )
            assert row.roi_after_management == pytest.approx(
                row.take_home_profit / assumptions.initial_investment * 100
            )

    def test_revenue_non_decreasing_with_growth(self, assumptions):
        data = project(assumptions)
        for prev, curr in zip(data, data[1:]):
            assert curr.gross_revenue >= prev.gross_revenue

    def test_occupancy_clamped(self, assumptions):
        data = project(update_assumptions(assumptions, y1_occupancy=95, occupancy_growth=10))
        assert data[1].occupancy == 100
        assert all(row.occupancy <= 100 for row in data)

    def test_period_days(self, assumptions):
        y1 = project(update_assumptions(assumptions, period_days=360))[0]
        assert y1.gross_revenue == pytest.approx(0.6 * 200 * 360)

    def test_custom_horizon(self, assumptions):
        assert len(project(assumptions, years=5)) == 5

    @pytest.mark.parametrize("years", [0, -3, 2.5])
    def test_invalid_horizon(self, assumptions, years):
        with pytest.raises(InvalidInput):
            project(assumptions, years=years)

    def test_default_assumptions_project(self):
        data = project(DEFAULT_ASSUMPTIONS)
        assert data[0].take_home_profit > 0


class TestManagementFee:
    """Test the base + incentive fee structure."""

    def test_incentive_never_negative(self):
        assert incentive_fee(-50_000, 20) == 0.0
        assert incentive_fee(0, 20) == 0.0
        assert incentive_fee(10_000, 20) == 2_000

    def test_loss_year_pays_base_fee_only(self, assumptions):
        losing = with_cost(assumptions, "maintenance", 100_000)
        for row in project(losing):
            assert row.net_operating_income < 0
            assert row.management_fee == 5_000

    def test_base_fee_escalates(self, assumptions):
        losing = update_assumptions(
            with_cost(assumptions, "maintenance", 100_000), fee_escalation=3
        )
        y3 = project(losing)[2]
        assert y3.management_fee == pytest.approx(5_000 * 1.03 ** 2)


class TestProjectionErrors:
    """Test rejected assumptions."""

    def test_zero_investment(self, assumptions):
        with pytest.raises(DivisionUndefined):
            project(replace(assumptions, initial_investment=0))

    def test_zero_investment_rejected_on_update(self, assumptions):
        with pytest.raises(DivisionUndefined):
            update_assumptions(assumptions, initial_investment=0)

    @pytest.mark.parametrize(
        "changes",
        [
            {"y1_occupancy": -5},
            {"y1_occupancy": 120},
            {"adr": math.nan},
            {"adr_growth": math.inf},
            {"initial_investment": -1},
            {"incentive_fee_pct": 150},
            {"occupancy_growth": -100},
            {"period_days": 0},
            {"operating_costs": (CostSeries("bad", -1),)},
        ],
    )
    def test_invalid_input(self, assumptions, changes):
        with pytest.raises(InvalidInput):
            update_assumptions(assumptions, **changes)

    def test_unknown_field(self, assumptions):
        with pytest.raises(InvalidInput):
            update_assumptions(assumptions, vacancy=5)


class TestAverages:
    """Test aggregate averages."""

    def test_average_fields(self, assumptions):
        data = project(assumptions)
        avg = average(data)
        assert avg.years == 10
        assert avg.gross_revenue == pytest.approx(sum(r.gross_revenue for r in data) / 10)
        assert avg.roi_after_management == pytest.approx(
            sum(r.roi_after_management for r in data) / 10
        )
        assert avg.total_take_home_profit == pytest.approx(
            sum(r.take_home_profit for r in data)
        )

    def test_average_empty(self):
        with pytest.raises(InvalidInput):
            average([])


class TestAssumptionBuilders:
    """Test copy-on-update helpers and payback year."""

    def test_update_returns_copy(self, assumptions):
        updated = update_assumptions(assumptions, adr=250)
        assert updated.adr == 250
        assert assumptions.adr == 200

    def test_with_cost_adds_and_replaces(self, assumptions):
        added = with_cost(assumptions, "maintenance", 5_000, growth=4)
        assert [c.name for c in added.operating_costs] == ["utilities", "maintenance"]

        replaced = with_cost(added, "utilities", 12_000)
        assert replaced.operating_costs[0] == CostSeries("utilities", 12_000, 0.0)
        assert len(replaced.operating_costs) == 2
        assert len(assumptions.operating_costs) == 1

    def test_payback_year(self, assumptions):
        small = update_assumptions(assumptions, initial_investment=100_000)
        assert payback_year(small.initial_investment, project(small)) == 4

    def test_payback_not_reached(self, assumptions):
        assert payback_year(1e9, project(assumptions)) is None
