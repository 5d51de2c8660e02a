"""
conftest.py

Pytest configuration and fixtures for SlippageGuard tests.
Provides order books, providers, engines and protection managers wired with
fresh in-memory stores for every test.
"""

import sys
from pathlib import Path

import pytest

# Add project root and src/ to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))
sys.path.append(str(project_root / "src"))

from tests.utils.mock_factories import (
    OrderBookFactory, TradeFactory,
    FakeClock, SteppingTimer
)

from slippage_guard.data.market_depth import SimulatedDepthProvider, StaticDepthProvider
from slippage_guard.data.stores import InMemoryStore, ReportLog
from slippage_guard.trading.execution.order_sizing import OrderSizeOptimizer
from slippage_guard.trading.execution.slippage import SlippageEstimator
from slippage_guard.trading.risk.slippage_protection import SlippageProtectionManager

# ============================================
# PYTEST CONFIGURATION
# ============================================

def pytest_configure(config):
    """Configure pytest settings and markers"""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "concurrency: marks tests that start threads")

def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location"""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        if "concurrent" in item.name.lower():
            item.add_marker(pytest.mark.concurrency)

# ============================================
# ORDER BOOK FIXTURES
# ============================================

@pytest.fixture
def ladder_book():
    """20 levels per side, 1.0 per level, zero spread at 45000"""
    return OrderBookFactory.create_ladder()

@pytest.fixture
def random_book():
    return OrderBookFactory.create_random()

@pytest.fixture
def thin_book():
    return OrderBookFactory.create_thin()

@pytest.fixture
def static_provider(ladder_book):
    return StaticDepthProvider({'BTC/USD': ladder_book}, prices={'BTC/USD': 45000.0})

@pytest.fixture
def simulated_provider():
    return SimulatedDepthProvider(seed=123)

# ============================================
# ENGINE AND MANAGER FIXTURES
# ============================================

@pytest.fixture
def estimator(static_provider):
    """Engine backed by the static ladder book and its own history store"""
    return SlippageEstimator(provider=static_provider, history_store=InMemoryStore('test_history'))

@pytest.fixture
def fake_clock():
    return FakeClock()

@pytest.fixture
def protection_manager(estimator, fake_clock):
    """Manager with fresh stores, a fixed wall clock and an instant budget clock"""
    return SlippageProtectionManager(
        estimator=estimator,
        preference_store=InMemoryStore('test_preferences'),
        report_log=ReportLog(capacity=1000),
        clock=fake_clock,
        budget_clock=SteppingTimer(step=0.0)
    )

@pytest.fixture
def optimizer(estimator):
    return OrderSizeOptimizer(estimator, min_chunk_fraction=0.1, convergence_fraction=0.05)

@pytest.fixture
def trade_request():
    return TradeFactory.create_request()

