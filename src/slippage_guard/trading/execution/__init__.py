# ============================================
# SlippageGuard - src/slippage_guard/trading/execution/__init__.py
# Estimation engine and order sizing
# ============================================

from .slippage import (
    ActualSlippage,
    HistoricalSlippageStats,
    OrderSide,
    PriceRange,
    Recommendation,
    SlippageEstimate,
    SlippageEstimator,
    ToleranceLevel,
    TradeRequest
)
from .order_sizing import OrderSizeOptimizer, SplitRecommendation
