"""
Root conftest.py for Simulix backend tests.

This file contains shared fixtures and pytest configuration
that applies to all test modules.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the backend root is in the path
backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running",
    )


def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their name.

    - Tests with 'websocket' in name are marked with 'websocket'
    """
    for item in items:
        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def rng():
    """Seeded random source shared by numeric tests."""
    return np.random.default_rng(1234)


@pytest.fixture
def cities():
    """Fifty seeded cities on the K-means canvas."""
    from api.simulations.generators import generate_cities

    return generate_cities(50, rng=7)


@pytest.fixture
def inline_calculator():
    from api.simulations.tradeoff import InlineTradeoffCalculator

    return InlineTradeoffCalculator()


@pytest.fixture
def fresh_job_manager():
    """A private job manager, shut down after the test."""
    from api.jobs import JobManager

    manager = JobManager(max_workers=2)
    yield manager
    manager.shutdown(wait=True)
