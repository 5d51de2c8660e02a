# ============================================
# SlippageGuard - src/slippage_guard/trading/risk/__init__.py
# Pre-trade slippage protection
# ============================================

from .slippage_protection import (
    ProtectionAction,
    ProtectionDecision,
    ReportFilters,
    SlippageConfig,
    SlippageExport,
    SlippageProtectionManager,
    SlippageReport,
    SlippageStatistics,
    UserSlippagePreference
)
