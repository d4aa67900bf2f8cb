"""
Investment Payback

Rental projection and XIRR engine for real estate investments.
"""

__version__ = "0.1.0"
