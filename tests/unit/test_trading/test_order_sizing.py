"""
tests/unit/test_trading/test_order_sizing.py

Unit tests for the order split search.
"""

import sys
import math
from pathlib import Path

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent.parent.parent
sys.path.append(str(project_root))
sys.path.append(str(project_root / "src"))

from tests.utils.mock_factories import TradeFactory

from slippage_guard.trading.execution.order_sizing import OrderSizeOptimizer, SplitRecommendation
from slippage_guard.trading.execution.slippage import OrderSide
from slippage_guard.utils.exceptions import InvalidInputError

# ============================================
# TEST NO SPLIT
# ============================================

class TestNoSplit:
    """Orders whose full-size slippage is within the ceiling"""

    def test_small_order_not_split(self, optimizer):
        result = optimizer.should_split_order('BTC/USD', OrderSide.BUY, 1.0, max_slippage_percent=0.1)

        assert isinstance(result, SplitRecommendation)
        assert not result.should_split
        assert result.recommended_chunk_size is None
        assert result.estimated_chunks is None
        assert result.iterations == 0
        assert "within" in result.reason

    def test_default_ceiling_from_configuration(self, optimizer):
        """Test the whole ladder (about 0.21%) passes the configured 0.5% ceiling"""
        result = optimizer.should_split_order('BTC/USD', 'buy', 20.0)

        assert not result.should_split
        assert result.full_order_slippage_percent == pytest.approx(95 / 45000 * 100)

# ============================================
# TEST SPLIT SEARCH
# ============================================

class TestSplitSearch:
    """Binary search for the largest acceptable chunk"""

    @pytest.mark.parametrize("side", [OrderSide.BUY, OrderSide.SELL])
    def test_split_chunk_within_ceiling(self, optimizer, estimator, ladder_book, side):
        total = 20.0
        result = optimizer.should_split_order('BTC/USD', side, total, max_slippage_percent=0.1)

        assert result.should_split
        assert 0 < result.recommended_chunk_size <= total
        assert result.estimated_chunks == math.ceil(total / result.recommended_chunk_size)

        chunk_estimate = estimator.estimate(
            TradeFactory.create_request(side=side, quantity=result.recommended_chunk_size, expected_price=None),
            ladder_book.with_current_price(45000.0)
        )
        assert chunk_estimate.estimated_slippage_percent <= 0.1

    def test_search_converges_near_boundary(self, optimizer):
        """Test the chunk lands within the convergence tolerance of the 10-unit boundary"""
        result = optimizer.should_split_order('BTC/USD', 'buy', 20.0, max_slippage_percent=0.1)

        assert 10.0 - 20.0 * 0.05 <= result.recommended_chunk_size <= 10.0
        assert result.recommended_chunk_size == pytest.approx(9.875)
        assert result.estimated_chunks == 3
        assert result.iterations == 5

    def test_falls_back_to_minimum_chunk(self, optimizer):
        """Test a zero ceiling, which no positive chunk can meet, yields the minimum chunk"""
        result = optimizer.should_split_order('BTC/USD', 'buy', 20.0, max_slippage_percent=0.0)

        assert result.should_split
        assert result.recommended_chunk_size == pytest.approx(2.0)
        assert result.estimated_chunks == 10
        assert "minimum chunk size" in result.reason

    def test_thin_book_falls_back(self, optimizer, thin_book):
        result = optimizer.should_split_order('BTC/USD', 'buy', 10.0, max_slippage_percent=0.5,
                                              snapshot=thin_book)

        assert result.should_split
        assert result.recommended_chunk_size == pytest.approx(1.0)
        assert result.estimated_chunks == 10

    def test_expected_price_used_as_reference(self, optimizer):
        """Test a reference price above the book makes the full order look cheap"""
        result = optimizer.should_split_order('BTC/USD', 'buy', 20.0, max_slippage_percent=0.1,
                                              expected_price=45095.0)
        assert not result.should_split

# ============================================
# TEST SNAPSHOT HANDLING
# ============================================

class TestSnapshotHandling:
    """The search must reuse a single order book"""

    def test_depth_fetched_once(self, optimizer, static_provider, mocker):
        depth_spy = mocker.spy(static_provider, 'depth')

        optimizer.should_split_order('BTC/USD', 'buy', 20.0, max_slippage_percent=0.1)

        assert depth_spy.call_count == 1

    def test_supplied_snapshot_skips_provider(self, optimizer, static_provider, ladder_book, mocker):
        depth_spy = mocker.spy(static_provider, 'depth')

        optimizer.should_split_order('BTC/USD', 'buy', 20.0, max_slippage_percent=0.1,
                                     snapshot=ladder_book.with_current_price(45000.0))

        depth_spy.assert_not_called()

# ============================================
# TEST VALIDATION
# ============================================

class TestValidation:
    """Constructor and argument checks"""

    def test_defaults_from_configuration(self, estimator):
        optimizer = OrderSizeOptimizer(estimator)

        assert optimizer.min_chunk_fraction == 0.1
        assert optimizer.convergence_fraction == 0.05

    @pytest.mark.parametrize("fraction", [0.0, -0.1, 1.5])
    def test_invalid_min_chunk_fraction(self, estimator, fraction):
        with pytest.raises(InvalidInputError):
            OrderSizeOptimizer(estimator, min_chunk_fraction=fraction)

    def test_invalid_convergence_fraction(self, estimator):
        with pytest.raises(InvalidInputError):
            OrderSizeOptimizer(estimator, convergence_fraction=0.0)

    def test_non_positive_quantity_rejected(self, optimizer):
        with pytest.raises(InvalidInputError):
            optimizer.should_split_order('BTC/USD', 'buy', 0.0)

    def test_unknown_side_rejected(self, optimizer):
        with pytest.raises(InvalidInputError):
            optimizer.should_split_order('BTC/USD', 'hold', 1.0)
