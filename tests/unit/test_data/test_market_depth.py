"""
tests/unit/test_data/test_market_depth.py

Unit tests for order book snapshots and market depth providers.
"""

import sys
import logging
from dataclasses import FrozenInstanceError
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent.parent.parent
sys.path.append(str(project_root))
sys.path.append(str(project_root / "src"))

from tests.utils.mock_factories import OrderBookFactory

from slippage_guard.data.market_depth import (
    BookLevel,
    MarketSnapshot,
    SimulatedDepthProvider,
    StaticDepthProvider
)
from slippage_guard.trading.execution.slippage import OrderSide
from slippage_guard.utils.exceptions import InvalidInputError, MarketDataUnavailableError

# ============================================
# TEST BOOK LEVELS
# ============================================

class TestBookLevel:
    """Test single level validation"""

    def test_valid_level(self):
        level = BookLevel(price=100.0, quantity=2.5)
        assert level.notional == 250.0

    def test_zero_quantity_allowed(self):
        assert BookLevel(price=100.0, quantity=0.0).quantity == 0.0

    @pytest.mark.parametrize("price", [0.0, -1.0])
    def test_non_positive_price_rejected(self, price):
        with pytest.raises(InvalidInputError) as exc_info:
            BookLevel(price=price, quantity=1.0)
        assert exc_info.value.context['parameter_name'] == 'price'

    def test_negative_quantity_rejected(self):
        with pytest.raises(InvalidInputError):
            BookLevel(price=100.0, quantity=-0.1)

    @pytest.mark.parametrize("price, quantity", [
        (float('nan'), 1.0),
        (float('inf'), 1.0),
        (100.0, float('nan')),
        (100.0, float('inf')),
    ])
    def test_non_finite_values_rejected(self, price, quantity):
        with pytest.raises(InvalidInputError):
            BookLevel(price=price, quantity=quantity)

# ============================================
# TEST MARKET SNAPSHOT
# ============================================

class TestMarketSnapshot:
    """Test snapshot construction and derived values"""

    def test_from_tuples(self):
        snapshot = MarketSnapshot.from_levels([(99.0, 1.0), (98.0, 2.0)], [(101.0, 1.5)], symbol='X')

        assert snapshot.bids[1] == BookLevel(98.0, 2.0)
        assert snapshot.best_bid == 99.0
        assert snapshot.best_ask == 101.0
        assert snapshot.mid_price == 100.0
        assert snapshot.spread_percent == pytest.approx(2.0)
        assert len(snapshot.asks) == 1
        assert snapshot.current_price is None

    def test_accepts_book_levels(self):
        snapshot = MarketSnapshot.from_levels([BookLevel(99.0, 1.0)], [BookLevel(101.0, 1.0)])
        assert snapshot.best_ask == 101.0

    def test_invalid_level_rejected(self):
        with pytest.raises(InvalidInputError):
            MarketSnapshot.from_levels([(99.0, 1.0)], [(0.0, 1.0)])

    @pytest.mark.parametrize("asks, field", [
        ([(45000.0, float('nan'))], 'asks.quantity'),
        ([(45000.0, float('inf'))], 'asks.quantity'),
        ([(float('nan'), 1.0)], 'asks.price'),
    ])
    def test_non_finite_level_rejected(self, asks, field):
        with pytest.raises(InvalidInputError) as exc_info:
            MarketSnapshot.from_levels([(44990.0, 1.0)], asks, current_price=45000.0)
        assert exc_info.value.context['parameter_name'] == field

    def test_unsorted_levels_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            snapshot = MarketSnapshot.from_levels([(98.0, 1.0), (99.0, 1.0)], [(101.0, 1.0)])

        assert snapshot.bids[0].price == 98.0
        assert any('out of priority order' in r.getMessage() for r in caplog.records)

    def test_empty_book(self):
        snapshot = MarketSnapshot.from_levels([], [])

        assert snapshot.best_bid == 0.0
        assert snapshot.best_ask == 0.0
        assert snapshot.spread_percent == 100.0
        assert snapshot.bids == () and snapshot.asks == ()

    def test_one_sided_book_spread(self):
        """Test a missing bid side prices at zero"""
        snapshot = MarketSnapshot.from_levels([], [(100.0, 1.0)])

        assert snapshot.mid_price == 50.0
        assert snapshot.spread_percent == pytest.approx(200.0)

    def test_levels_for_side(self, ladder_book):
        assert ladder_book.levels_for(OrderSide.BUY) is ladder_book.asks
        assert ladder_book.levels_for('sell') is ladder_book.bids

    def test_levels_for_unknown_side(self, ladder_book):
        with pytest.raises(InvalidInputError):
            ladder_book.levels_for('hold')

    def test_with_current_price_copies(self, ladder_book):
        priced = ladder_book.with_current_price(45001.0)

        assert priced.current_price == 45001.0
        assert ladder_book.current_price is None
        assert priced.asks is ladder_book.asks
        assert priced.timestamp == ladder_book.timestamp

    def test_snapshot_immutable(self, ladder_book):
        with pytest.raises(FrozenInstanceError):
            ladder_book.current_price = 1.0

    def test_to_frame(self, ladder_book):
        frame = ladder_book.to_frame()

        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ['side', 'level', 'price', 'quantity']
        assert len(frame) == 40
        assert (frame['side'] == 'bid').sum() == 20
        assert frame.loc[frame['side'] == 'ask', 'price'].is_monotonic_increasing

    def test_empty_frame_has_columns(self):
        frame = MarketSnapshot.from_levels([], []).to_frame()
        assert frame.empty
        assert list(frame.columns) == ['side', 'level', 'price', 'quantity']

# ============================================
# TEST STATIC PROVIDER
# ============================================

class TestStaticDepthProvider:
    """Test the fixed-snapshot provider"""

    def test_depth_for_registered_symbol(self, static_provider, ladder_book):
        assert static_provider.depth('BTC/USD') is ladder_book

    def test_unknown_symbol_raises(self, static_provider):
        with pytest.raises(MarketDataUnavailableError) as exc_info:
            static_provider.depth('DOGE/USD')

        assert exc_info.value.context['symbol'] == 'DOGE/USD'
        assert exc_info.value.context['data_source'] == 'static'

    def test_price_lookup_order(self, ladder_book):
        provider = StaticDepthProvider({'A': ladder_book, 'B': ladder_book.with_current_price(44000.0)},
                                       prices={'C': 1.0})
        provider.register('C', ladder_book)

        assert provider.current_price('A', 'buy') == ladder_book.mid_price
        assert provider.current_price('B', 'buy') == 44000.0
        assert provider.current_price('C', 'buy') == 1.0

    def test_register_with_price(self, ladder_book):
        provider = StaticDepthProvider()
        provider.register('ETH/USD', ladder_book, price=3000.0)

        assert provider.current_price('ETH/USD', 'sell') == 3000.0

    def test_no_price_for_empty_book(self):
        provider = StaticDepthProvider({'X': MarketSnapshot.from_levels([], [])})
        with pytest.raises(MarketDataUnavailableError):
            provider.current_price('X', 'buy')

# ============================================
# TEST SIMULATED PROVIDER
# ============================================

class TestSimulatedDepthProvider:
    """Test the seeded synthetic provider"""

    def test_reproducible_with_seed(self):
        first = SimulatedDepthProvider(seed=7).depth('BTC/USD')
        second = SimulatedDepthProvider(seed=7).depth('BTC/USD')

        assert first.bids == second.bids
        assert first.asks == second.asks

    def test_book_shape(self, simulated_provider):
        snapshot = simulated_provider.depth('BTC/USD')

        assert len(snapshot.bids) == 20
        assert len(snapshot.asks) == 20
        assert snapshot.best_bid == snapshot.best_ask == 45000.0
        assert snapshot.symbol == 'BTC/USD'

        quantities = np.array([level.quantity for level in snapshot.asks])
        assert np.all(quantities >= 0.5)
        assert np.all(quantities < 2.5)

    def test_base_price_per_symbol(self):
        provider = SimulatedDepthProvider(base_prices={'ETH/USD': 3000.0})

        assert provider.current_price('ETH/USD', 'buy') == 3000.0
        assert provider.current_price('SOL/USD', 'buy') == 45000.0
        assert provider.depth('ETH/USD').best_ask == 3000.0

    def test_non_positive_bids_dropped(self):
        provider = SimulatedDepthProvider(default_price=50.0, levels=10, tick=10.0)
        snapshot = provider.depth('LOW')

        assert len(snapshot.bids) == 5
        assert len(snapshot.asks) == 10

    def test_random_factory_book(self):
        snapshot = OrderBookFactory.create_random(seed=1)
        assert snapshot.current_price == 45000.0
        assert len(snapshot.bids) == len(snapshot.asks) == 20
