# ============================================
# SlippageGuard - src/slippage_guard/trading/__init__.py
# ============================================
