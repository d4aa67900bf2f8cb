"""
Calculation Errors

Typed failures raised by the calculation engine. Every error is raised before
any partial result is produced, so callers never see NaN or Infinity in place
of a number.
"""


class CalculationError(ValueError):
    """Base class for all calculation failures."""

    kind = "calculation_error"


class InvalidInput(CalculationError):
    """Non-finite or out-of-range input rejected before computation."""

    kind = "invalid_input"


class DivisionUndefined(CalculationError):
    """A ratio was requested against a zero denominator (e.g. zero investment)."""

    kind = "division_undefined"


class InvalidCashFlowSet(CalculationError):
    """Cash flows without a sign change have no finite rate of return."""

    kind = "invalid_cash_flow_set"


class NoConvergence(CalculationError):
    """Root finding exhausted its iteration budget without meeting tolerance."""

    kind = "no_convergence"
