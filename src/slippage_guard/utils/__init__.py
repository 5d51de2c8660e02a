# ============================================
# SlippageGuard - src/slippage_guard/utils/__init__.py
# ============================================
