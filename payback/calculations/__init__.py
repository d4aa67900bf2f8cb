"""
Financial Calculation Engine

Core calculation modules for real estate investment analysis.
Rate-of-return calculations are designed to match Excel's XIRR behavior.
"""

from payback.calculations import cashflow, dates, errors, irr, projection

__all__ = ["cashflow", "dates", "errors", "irr", "projection"]
