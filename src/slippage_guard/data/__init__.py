# ============================================
# SlippageGuard - src/slippage_guard/data/__init__.py
# Market depth boundary and store abstractions
# ============================================

from .market_depth import (
    BookLevel,
    MarketDepthProvider,
    MarketSnapshot,
    SimulatedDepthProvider,
    StaticDepthProvider
)
from .stores import InMemoryStore, KeyValueStore, ReportLog
