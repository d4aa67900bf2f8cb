"""
Financial calculation API endpoints.

These endpoints accept inputs and return calculated results.
Used by the UI for real-time updates on every input change.
"""

import logging
import uuid
from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from payback.calculations import cashflow, irr, projection
from payback.calculations.errors import CalculationError, NoConvergence
from payback.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _calculation_error(e: CalculationError) -> HTTPException:
    """Map an engine failure to an HTTP error the UI can render."""
    status_code = 422 if isinstance(e, NoConvergence) else 400
    logger.info(f"Calculation rejected ({e.kind}): {e}")
    return HTTPException(
        status_code=status_code,
        detail={"error": e.kind, "message": str(e)},
    )


def _solver_options() -> dict:
    settings = get_settings()
    return {
        "guess": settings.xirr_guess,
        "tolerance": settings.xirr_tolerance,
        "max_iterations": settings.xirr_max_iterations,
    }


class CostSeriesInput(BaseModel):
    """A named operating cost series."""

    name: str
    y1_amount: float
    growth: float = 0.0


class ProjectionInput(BaseModel):
    """Input for the 10-year rental projection. Percent fields use 0-100."""

    initial_investment: float
    y1_occupancy: float
    occupancy_growth: float = 0.0
    adr: float
    adr_growth: float = 0.0
    y1_base_fee: float = 0.0
    incentive_fee_pct: float = 0.0
    fee_escalation: float = 0.0
    operating_costs: List[CostSeriesInput] = []
    period_days: int = 365


class ProjectionResponse(BaseModel):
    """Response with yearly projections and averages."""

    years: List[dict]
    averages: dict
    payback_year: Optional[int] = None


@router.post("/projection", response_model=ProjectionResponse)
async def calculate_projection(inputs: ProjectionInput):
    """Project revenue, costs, fees and ROI year by year."""
    assumptions = projection.YearlyAssumptions(
        initial_investment=inputs.initial_investment,
        y1_occupancy=inputs.y1_occupancy,
        occupancy_growth=inputs.occupancy_growth,
        adr=inputs.adr,
        adr_growth=inputs.adr_growth,
        y1_base_fee=inputs.y1_base_fee,
        incentive_fee_pct=inputs.incentive_fee_pct,
        fee_escalation=inputs.fee_escalation,
        operating_costs=tuple(
            projection.CostSeries(name=c.name, y1_amount=c.y1_amount, growth=c.growth)
            for c in inputs.operating_costs
        ),
        period_days=inputs.period_days,
    )

    try:
        data = projection.project(assumptions, years=get_settings().projection_years)
        averages = projection.average(data)
    except CalculationError as e:
        raise _calculation_error(e)

    return ProjectionResponse(
        years=[asdict(row) for row in data],
        averages=asdict(averages),
        payback_year=projection.payback_year(inputs.initial_investment, data),
    )


class CashFlowInput(BaseModel):
    """A single dated cash flow."""

    date: date
    amount: float
    description: str = ""


class XIRRInput(BaseModel):
    """Input for XIRR calculation."""

    cash_flows: List[CashFlowInput]


class XIRRResponse(BaseModel):
    """Response with XIRR calculation."""

    rate: float
    total_invested: float
    net_profit: float
    hold_period_months: int
    multiple: Optional[float] = None


def _xirr_response(flows: List[irr.CashFlow], result: irr.XIRRResult) -> XIRRResponse:
    return XIRRResponse(
        rate=result.rate,
        total_invested=result.total_invested,
        net_profit=result.net_profit,
        hold_period_months=result.hold_period_months,
        multiple=irr.calculate_multiple(flows),
    )


@router.post("/xirr", response_model=XIRRResponse)
async def calculate_xirr_endpoint(inputs: XIRRInput):
    """Calculate XIRR for given dated cash flows."""
    flows = [
        irr.CashFlow(date=cf.date, amount=cf.amount, description=cf.description)
        for cf in inputs.cash_flows
    ]

    try:
        result = irr.solve(flows, **_solver_options())
        return _xirr_response(flows, result)
    except CalculationError as e:
        raise _calculation_error(e)


class PropertyInput(BaseModel):
    """Property details."""

    project_name: str = ""
    location: str = ""
    total_price: float
    handover_date: date
    purchase_date: Optional[date] = None


class PaymentInput(BaseModel):
    """Payment terms."""

    type: cashflow.PaymentType = cashflow.PaymentType.full
    down_payment_percent: float = 100.0
    installment_months: int = 0


class ExitInput(BaseModel):
    """Exit terms."""

    strategy: cashflow.ExitStrategyType = cashflow.ExitStrategyType.flip
    projected_sales_price: float
    closing_cost_percent: float = 0.0
    annual_rental_income: float = 0.0
    rental_growth: float = 0.0
    rental_years: int = 0


class CashFlowEntryInput(BaseModel):
    """Ad hoc income or expense entry."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: date
    description: str = ""
    type: cashflow.FlowType
    amount: float


class InvestmentInput(BaseModel):
    """Structured investment input."""

    property: PropertyInput
    payment: PaymentInput = PaymentInput()
    exit: ExitInput
    additional_cash_flows: List[CashFlowEntryInput] = []
    rental_income: Optional[List[float]] = None


class InvestmentResponse(BaseModel):
    """Response with generated cash flows and return metrics."""

    cash_flows: List[dict]
    result: XIRRResponse


@router.post("/investment", response_model=InvestmentResponse)
async def calculate_investment(inputs: InvestmentInput):
    """Build cash flows from investment terms and calculate XIRR."""
    data = cashflow.InvestmentData(
        property=cashflow.PropertyDetails(**inputs.property.model_dump()),
        payment=cashflow.PaymentTerms(**inputs.payment.model_dump()),
        exit=cashflow.ExitStrategy(**inputs.exit.model_dump()),
        additional_cash_flows=tuple(
            cashflow.CashFlowEntry(**entry.model_dump())
            for entry in inputs.additional_cash_flows
        ),
    )

    try:
        flows = cashflow.build_cash_flows(data, inputs.rental_income)
        result = irr.solve(flows, **_solver_options())
        response = _xirr_response(flows, result)
    except CalculationError as e:
        raise _calculation_error(e)

    return InvestmentResponse(
        cash_flows=[
            {"date": cf.date.isoformat(), "amount": cf.amount, "description": cf.description}
            for cf in flows
        ],
        result=response,
    )
