# ============================================
# SlippageGuard - src/slippage_guard/trading/execution/order_sizing.py
# Order splitting under a slippage ceiling
# ============================================

import math
from dataclasses import dataclass
from typing import Optional, Union

from ...data.market_depth import MarketSnapshot
from ...utils.config_loader import get_slippage_setting
from ...utils.exceptions import InvalidInputError
from ...utils.logger import get_logger
from ...utils.timing import time_it
from .slippage import OrderSide, SlippageEstimator, TradeRequest

logger = get_logger('trading.execution.order_sizing')

@dataclass(frozen=True)
class SplitRecommendation:
    """Outcome of an order split search"""
    should_split: bool
    reason: str
    recommended_chunk_size: Optional[float] = None
    estimated_chunks: Optional[int] = None
    full_order_slippage_percent: float = 0.0
    iterations: int = 0

class OrderSizeOptimizer:
    """
    Finds the largest chunk of an order whose estimated slippage stays under
    a ceiling.

    Every estimate in one search runs against the same order book snapshot.
    """

    def __init__(self, estimator: SlippageEstimator, min_chunk_fraction: Optional[float] = None,
                 convergence_fraction: Optional[float] = None):
        self.estimator = estimator
        self.min_chunk_fraction = min_chunk_fraction if min_chunk_fraction is not None \
            else float(get_slippage_setting('order_sizing.min_chunk_fraction', 0.1))
        self.convergence_fraction = convergence_fraction if convergence_fraction is not None \
            else float(get_slippage_setting('order_sizing.convergence_fraction', 0.05))

        if not 0 < self.min_chunk_fraction <= 1:
            raise InvalidInputError("min_chunk_fraction must be in (0, 1]",
                                    parameter_name='min_chunk_fraction', provided_value=self.min_chunk_fraction)
        if self.convergence_fraction <= 0:
            raise InvalidInputError("convergence_fraction must be positive",
                                    parameter_name='convergence_fraction',
                                    provided_value=self.convergence_fraction)

    @time_it("order_split_search")
    def should_split_order(self, symbol: str, side: Union[OrderSide, str], total_quantity: float,
                           max_slippage_percent: Optional[float] = None,
                           snapshot: Optional[MarketSnapshot] = None,
                           expected_price: Optional[float] = None) -> SplitRecommendation:
        """
        Decide whether an order should be split and into what chunk size

        Args:
            symbol: Trading symbol
            side: Buy or sell
            total_quantity: Full order quantity
            max_slippage_percent: Slippage ceiling per chunk
            snapshot: Order book to search against (fetched once when None)
            expected_price: Reference price (snapshot price when None)

        Returns:
            SplitRecommendation
        """
        if max_slippage_percent is None:
            max_slippage_percent = float(get_slippage_setting('order_sizing.default_max_slippage_percent', 0.5))

        side = OrderSide.parse(side)
        full_request = TradeRequest(symbol=symbol, side=side, quantity=total_quantity,
                                    expected_price=expected_price)

        if snapshot is None:
            snapshot = self.estimator.fetch_snapshot(symbol, side)

        full_estimate = self.estimator.estimate(full_request, snapshot)
        full_percent = full_estimate.estimated_slippage_percent

        if full_percent <= max_slippage_percent:
            return SplitRecommendation(
                should_split=False,
                reason=f"Full order slippage ({full_percent:.4f}%) is within the "
                       f"{max_slippage_percent:.4f}% threshold",
                full_order_slippage_percent=full_percent
            )

        low = total_quantity * self.min_chunk_fraction
        high = total_quantity
        tolerance = total_quantity * self.convergence_fraction
        best: Optional[float] = None
        iterations = 0

        while high - low > tolerance:
            mid = (low + high) / 2
            iterations += 1

            estimate = self.estimator.estimate(
                TradeRequest(symbol=symbol, side=side, quantity=mid, expected_price=expected_price),
                snapshot
            )

            if estimate.estimated_slippage_percent <= max_slippage_percent:
                best = mid
                low = mid
            else:
                high = mid

        # Nothing passed: fall back to the smallest chunk searched
        chunk = best if best is not None else low
        chunks = math.ceil(round(total_quantity / chunk, 9))

        logger.info(f"Order split for {symbol}: {total_quantity} -> {chunks} chunks of {chunk:.6g} "
                    f"({iterations} iterations)")

        if best is None:
            reason = (f"No chunk size keeps slippage under {max_slippage_percent:.4f}%; "
                      f"using the minimum chunk size")
        else:
            reason = (f"Full order slippage ({full_percent:.4f}%) exceeds the "
                      f"{max_slippage_percent:.4f}% threshold; split into {chunks} chunks")

        return SplitRecommendation(
            should_split=True,
            reason=reason,
            recommended_chunk_size=chunk,
            estimated_chunks=chunks,
            full_order_slippage_percent=full_percent,
            iterations=iterations
        )
