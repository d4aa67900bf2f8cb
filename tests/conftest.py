"""
Pytest configuration and shared fixtures.
"""

import pytest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from payback.main import app
from payback.calculations.projection import CostSeries, YearlyAssumptions


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: marks integration tests")


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def assumptions():
    """Small villa with one growing cost series."""
    return YearlyAssumptions(
        initial_investment=1_000_000,
        y1_occupancy=60,
        occupancy_growth=2,
        adr=200,
        adr_growth=5,
        y1_base_fee=5_000,
        incentive_fee_pct=10,
        operating_costs=(CostSeries(name="utilities", y1_amount=10_000, growth=3),),
    )
