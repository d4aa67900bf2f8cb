"""
Investment Cash Flow Construction

Maps structured investment input (purchase price, payment plan, exit strategy,
ad hoc entries) to the dated cash flows consumed by the XIRR solver.

Sign convention: money paid by the investor is negative, money received is
positive.
"""

import enum
import math
import uuid
from dataclasses import dataclass, fields, replace
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from payback.calculations.dates import add_months, add_years
from payback.calculations.errors import InvalidInput
from payback.calculations.irr import CashFlow, XIRRResult, solve
from payback.calculations.projection import YearlyData


class PaymentType(str, enum.Enum):
    """How the purchase price is paid."""
    full = "full"
    plan = "plan"


class ExitStrategyType(str, enum.Enum):
    """How the investor realizes the investment."""
    flip = "flip"
    rent_resell = "rent-resell"
    milk_cow = "milk-cow"


class FlowType(str, enum.Enum):
    """Direction of an ad hoc cash flow entry."""
    inflow = "inflow"
    outflow = "outflow"


@dataclass(frozen=True)
class PropertyDetails:
    """The property being purchased."""

    project_name: str
    location: str
    total_price: float
    handover_date: date
    purchase_date: Optional[date] = None  # Defaults to today when building flows


@dataclass(frozen=True)
class PaymentTerms:
    """Down payment and installment plan."""

    type: PaymentType = PaymentType.full
    down_payment_percent: float = 100.0
    installment_months: int = 0


@dataclass(frozen=True)
class ExitStrategy:
    """Exit terms. Rental fields only apply to rent-resell and milk-cow."""

    projected_sales_price: float
    closing_cost_percent: float = 0.0
    strategy: ExitStrategyType = ExitStrategyType.flip
    annual_rental_income: float = 0.0
    rental_growth: float = 0.0  # Percent per year
    rental_years: int = 0


@dataclass(frozen=True)
class CashFlowEntry:
    """An ad hoc income or expense. Amount is a magnitude; type gives the sign."""

    id: str
    date: date
    description: str
    type: FlowType
    amount: float


@dataclass(frozen=True)
class InvestmentData:
    """Everything needed to build an investment's cash flows."""

    property: PropertyDetails
    payment: PaymentTerms
    exit: ExitStrategy
    additional_cash_flows: Tuple[CashFlowEntry, ...] = ()


def default_investment(today: Optional[date] = None) -> InvestmentData:
    """Sample off-plan villa purchase, amounts in IDR."""
    today = today or date.today()
    return InvestmentData(
        property=PropertyDetails(
            project_name="Villa Matahari Phase 1",
            location="Canggu, Bali",
            total_price=3_500_000_000,
            handover_date=today + timedelta(days=365),
            purchase_date=today,
        ),
        payment=PaymentTerms(
            type=PaymentType.plan,
            down_payment_percent=50,
            installment_months=5,
        ),
        exit=ExitStrategy(
            projected_sales_price=4_200_000_000,
            closing_cost_percent=2.5,
        ),
        additional_cash_flows=(
            CashFlowEntry(
                id=str(uuid.uuid4()),
                date=today,
                description="Furniture Package",
                type=FlowType.outflow,
                amount=150_000_000,
            ),
        ),
    )


def _check_percent(name: str, value: float) -> None:
    if not math.isfinite(value) or not 0 <= value <= 100:
        raise InvalidInput(f"{name} must be between 0 and 100")


def _check_amount(name: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise InvalidInput(f"{name} must be a finite, non-negative amount")


def validate_investment(data: InvestmentData) -> None:
    """
    Reject out-of-range investment input.

    Raises:
        InvalidInput: If any amount, percentage or period is invalid
    """
    _check_amount("total_price", data.property.total_price)
    _check_percent("down_payment_percent", data.payment.down_payment_percent)
    if not isinstance(data.payment.installment_months, int) or data.payment.installment_months < 0:
        raise InvalidInput("installment_months must be a non-negative whole number")

    _check_amount("projected_sales_price", data.exit.projected_sales_price)
    _check_percent("closing_cost_percent", data.exit.closing_cost_percent)
    if not math.isfinite(data.exit.annual_rental_income):
        raise InvalidInput("annual_rental_income must be finite")
    if not math.isfinite(data.exit.rental_growth) or data.exit.rental_growth <= -100:
        raise InvalidInput("rental_growth must be greater than -100%")
    if not isinstance(data.exit.rental_years, int) or data.exit.rental_years < 0:
        raise InvalidInput("rental_years must be a non-negative whole number")

    for entry in data.additional_cash_flows:
        _check_amount(f"cash flow {entry.description!r} amount", entry.amount)


def net_sale_proceeds(exit_strategy: ExitStrategy) -> float:
    """Projected sale price less closing costs."""
    return exit_strategy.projected_sales_price * (
        1 - exit_strategy.closing_cost_percent / 100
    )


def purchase_cash_flows(
    property_details: PropertyDetails, payment: PaymentTerms, purchase_date: date
) -> List[CashFlow]:
    """
    Build the purchase outflows.

    A full payment is one outflow on the purchase date. A plan pays the down
    payment on the purchase date and divides the balance evenly over
    installment_months monthly payments, the first one month after purchase.
    A plan without installments pays the balance with the down payment.
    """
    total_price = property_details.total_price

    if payment.type == PaymentType.full or payment.installment_months == 0:
        return [CashFlow(purchase_date, -total_price, "Full Payment")]

    down_payment = total_price * payment.down_payment_percent / 100
    installment = (total_price - down_payment) / payment.installment_months

    flows = []
    if down_payment > 0:
        flows.append(CashFlow(purchase_date, -down_payment, "Down Payment"))

    for month in range(1, payment.installment_months + 1):
        flows.append(
            CashFlow(
                add_months(purchase_date, month),
                -installment,
                f"Installment {month}/{payment.installment_months}",
            )
        )

    return flows


def entry_cash_flow(entry: CashFlowEntry) -> CashFlow:
    """Convert an ad hoc entry to a signed cash flow."""
    amount = entry.amount if entry.type == FlowType.inflow else -entry.amount
    return CashFlow(entry.date, amount, entry.description)


def rental_schedule(exit_strategy: ExitStrategy) -> List[float]:
    """Yearly rental income, compounding from the year-1 amount."""
    return [
        exit_strategy.annual_rental_income * (1 + exit_strategy.rental_growth / 100) ** (year - 1)
        for year in range(1, exit_strategy.rental_years + 1)
    ]


def rental_income_from_projection(data: Sequence[YearlyData]) -> List[float]:
    """Use a rental projection's take-home profit as the yearly income series."""
    return [row.take_home_profit for row in data]


def exit_cash_flows(
    exit_strategy: ExitStrategy,
    handover_date: date,
    rental_income: Optional[Sequence[float]] = None,
) -> List[CashFlow]:
    """
    Build the exit inflows for the chosen strategy.

    - flip: net sale proceeds on the handover date
    - rent-resell: yearly rental income on each handover anniversary, then the
      net sale proceeds on the last anniversary
    - milk-cow: yearly rental income only

    Args:
        exit_strategy: Exit terms
        handover_date: Date the property is delivered
        rental_income: Optional yearly income overriding the exit terms'
            annual_rental_income schedule (e.g. from a projection)
    """
    if exit_strategy.strategy == ExitStrategyType.flip:
        return [CashFlow(handover_date, net_sale_proceeds(exit_strategy), "Sale Proceeds")]

    if rental_income is None:
        rental_income = rental_schedule(exit_strategy)

    flows = [
        CashFlow(add_years(handover_date, year), amount, f"Rental Income Year {year}")
        for year, amount in enumerate(rental_income, start=1)
    ]

    if exit_strategy.strategy == ExitStrategyType.rent_resell:
        sale_date = add_years(handover_date, len(rental_income))
        flows.append(CashFlow(sale_date, net_sale_proceeds(exit_strategy), "Sale Proceeds"))

    return flows


def build_cash_flows(
    data: InvestmentData, rental_income: Optional[Sequence[float]] = None
) -> List[CashFlow]:
    """
    Build the full cash flow list for an investment.

    Order: purchase payments, ad hoc entries, exit flows.

    Raises:
        InvalidInput: If the investment data is out of range
    """
    validate_investment(data)
    purchase_date = data.property.purchase_date or date.today()

    flows = purchase_cash_flows(data.property, data.payment, purchase_date)
    flows.extend(entry_cash_flow(entry) for entry in data.additional_cash_flows)
    flows.extend(
        exit_cash_flows(data.exit, data.property.handover_date, rental_income)
    )
    return flows


def calculate_investment_return(
    data: InvestmentData,
    rental_income: Optional[Sequence[float]] = None,
    **solver_options,
) -> XIRRResult:
    """Build the investment's cash flows and solve for XIRR."""
    return solve(build_cash_flows(data, rental_income), **solver_options)


def _replace_known(obj, changes: dict):
    known = {f.name for f in fields(obj)}
    unknown = set(changes) - known
    if unknown:
        raise InvalidInput(f"Unknown fields: {', '.join(sorted(unknown))}")
    return replace(obj, **changes)


def update_property(data: InvestmentData, **changes) -> InvestmentData:
    """Return a copy with property details replaced."""
    return replace(data, property=_replace_known(data.property, changes))


def update_payment(data: InvestmentData, **changes) -> InvestmentData:
    """Return a copy with payment terms replaced."""
    return replace(data, payment=_replace_known(data.payment, changes))


def update_exit(data: InvestmentData, **changes) -> InvestmentData:
    """Return a copy with exit terms replaced."""
    return replace(data, exit=_replace_known(data.exit, changes))


def add_cash_flow(
    data: InvestmentData,
    date: date,
    description: str,
    type: FlowType,
    amount: float,
) -> InvestmentData:
    """Return a copy with a new ad hoc entry appended under a fresh id."""
    entry = CashFlowEntry(
        id=str(uuid.uuid4()),
        date=date,
        description=description,
        type=FlowType(type),
        amount=amount,
    )
    return replace(data, additional_cash_flows=data.additional_cash_flows + (entry,))


def remove_cash_flow(data: InvestmentData, entry_id: str) -> InvestmentData:
    """Return a copy without the entry with the given id."""
    return replace(
        data,
        additional_cash_flows=tuple(
            entry for entry in data.additional_cash_flows if entry.id != entry_id
        ),
    )


def update_cash_flow(data: InvestmentData, entry_id: str, **changes) -> InvestmentData:
    """Return a copy with the given entry's fields replaced. The id is fixed."""
    if "id" in changes:
        raise InvalidInput("Cash flow id cannot be changed")
    return replace(
        data,
        additional_cash_flows=tuple(
            _replace_known(entry, changes) if entry.id == entry_id else entry
            for entry in data.additional_cash_flows
        ),
    )
