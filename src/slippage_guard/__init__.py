# ============================================
# SlippageGuard - src/slippage_guard/__init__.py
# Slippage estimation and pre-trade protection
# ============================================

__version__ = "1.0.0"
