# ============================================
# SlippageGuard - src/slippage_guard/trading/execution/slippage.py
# Order-book slippage estimation and per-symbol slippage history
# ============================================

import contextlib
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from ...data.market_depth import BookLevel, MarketDepthProvider, MarketSnapshot
from ...data.stores import InMemoryStore, KeyValueStore
from ...utils.exceptions import InvalidConfigurationError, InvalidInputError
from ...utils.logger import get_logger
from ...utils.timing import time_it
from ...utils.validators import TradeInputValidator

logger = get_logger('trading.execution.slippage')

# ============================================
# Enums and Constants
# ============================================

class OrderSide(Enum):
    """Trade direction"""
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Union['OrderSide', str]) -> 'OrderSide':
        """Accept an OrderSide or a case-insensitive 'buy' / 'sell'"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidInputError(f"Unknown order side: {value}",
                                    parameter_name='side', provided_value=value)

class ToleranceLevel(Enum):
    """Named slippage tolerance presets"""
    STRICT = "STRICT"
    MODERATE = "MODERATE"
    RELAXED = "RELAXED"

    @classmethod
    def parse(cls, value: Union['ToleranceLevel', str]) -> 'ToleranceLevel':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise InvalidConfigurationError(f"Unknown tolerance level: {value}",
                                            field_name='tolerance_level', provided_value=value)

class Recommendation(Enum):
    """Engine-level recommendation for a prospective trade"""
    PROCEED = "proceed"
    CAUTION = "caution"
    DELAY = "delay"

TOLERANCE_PRESETS: Dict[ToleranceLevel, float] = {
    ToleranceLevel.STRICT: 0.1,
    ToleranceLevel.MODERATE: 0.5,
    ToleranceLevel.RELAXED: 1.0,
}

LIQUIDITY_PENALTY = 1.02
COVERAGE_LEVELS = 10
FULL_DEPTH_LEVELS = 20
RANGE_WIDENING = 1.2

DELAY_SLIPPAGE_PERCENT = 2.0
CAUTION_SLIPPAGE_PERCENT = 0.5
DELAY_LIQUIDITY_SCORE = 0.3
CAUTION_LIQUIDITY_SCORE = 0.6

DYNAMIC_LIQUIDITY_THRESHOLD = 0.5
DYNAMIC_VOLATILITY_THRESHOLD = 2.0
DYNAMIC_MAX_MULTIPLIER = 3.0

FAVORABLE_REASONING = "Market conditions are favorable with good liquidity"

# ============================================
# Data Structures
# ============================================

@dataclass(frozen=True)
class TradeRequest:
    """
    Prospective market order.

    Serves both as the estimation request and as the trade-execution context
    handed to the protection layer.
    """
    symbol: str
    side: OrderSide
    quantity: float
    expected_price: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)
    user_id: Optional[str] = None
    order_id: Optional[str] = None

    def __post_init__(self):
        # Frozen dataclass: normalise the side through object.__setattr__
        object.__setattr__(self, 'side', OrderSide.parse(self.side))
        TradeInputValidator().validate_request(
            self.symbol, self.side, self.quantity, self.expected_price
        ).raise_if_invalid(InvalidInputError)

@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float

@dataclass(frozen=True)
class SlippageEstimate:
    """Pre-trade slippage projection for one request"""
    estimated_slippage_percent: float
    estimated_slippage_amount: float
    current_market_price: float
    price_range: PriceRange
    liquidity_score: float
    recommendation: Recommendation
    reasoning: str

    symbol: Optional[str] = None
    side: Optional[OrderSide] = None
    quantity: float = 0.0
    estimated_execution_price: float = 0.0
    reference_price: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'side': self.side.value if self.side else None,
            'quantity': self.quantity,
            'estimated_slippage_percent': self.estimated_slippage_percent,
            'estimated_slippage_amount': self.estimated_slippage_amount,
            'current_market_price': self.current_market_price,
            'estimated_execution_price': self.estimated_execution_price,
            'reference_price': self.reference_price,
            'price_range': {'min': self.price_range.min, 'max': self.price_range.max},
            'liquidity_score': self.liquidity_score,
            'recommendation': self.recommendation.value,
            'reasoning': self.reasoning,
            'timestamp': self.timestamp.isoformat(),
        }

@dataclass(frozen=True)
class ActualSlippage:
    """Realized slippage of an executed trade"""
    amount: float
    percent: float
    total_cost: float

@dataclass(frozen=True)
class HistoricalSlippageStats:
    """Running slippage statistics for one symbol; replaced on every update"""
    symbol: str
    average_slippage_percent: float
    max_slippage_percent: float
    sample_count: int
    last_updated: datetime = field(default_factory=datetime.now)

    def updated_with(self, percent: float, when: Optional[datetime] = None) -> 'HistoricalSlippageStats':
        count = self.sample_count
        return HistoricalSlippageStats(
            symbol=self.symbol,
            average_slippage_percent=(self.average_slippage_percent * count + percent) / (count + 1),
            max_slippage_percent=max(self.max_slippage_percent, percent),
            sample_count=count + 1,
            last_updated=when or datetime.now()
        )

# ============================================
# Estimation Engine
# ============================================

class SlippageEstimator:
    """
    Slippage estimation engine.

    Walks the opposite side of an order book to project the execution price
    of a market order, scores market liquidity, and keeps running realized
    slippage statistics per symbol.
    """

    def __init__(self, provider: Optional[MarketDepthProvider] = None,
                 history_store: Optional[KeyValueStore] = None):
        self.provider = provider
        self.history_store = history_store if history_store is not None else InMemoryStore('slippage_history')

        # One lock per symbol; the guard lock protects the lock table itself
        self._symbol_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

        logger.info(f"Initialized SlippageEstimator "
                    f"(provider={getattr(provider, 'name', None) or 'none'})")

    # ----------------------------------------
    # Estimation
    # ----------------------------------------

    @time_it("slippage_estimation")
    def estimate(self, request: TradeRequest, snapshot: Optional[MarketSnapshot] = None) -> SlippageEstimate:
        """
        Estimate slippage for a prospective market order

        Args:
            request: Trade to estimate
            snapshot: Order book to walk; fetched from the provider when None

        Returns:
            SlippageEstimate

        Raises:
            InvalidInputError: No usable reference price, or no provider to fetch from
            MarketDataUnavailableError: Propagated from the provider
        """
        if snapshot is None:
            snapshot = self.fetch_snapshot(request.symbol, request.side)

        levels = snapshot.levels_for(request.side)
        execution_price = self._walk_book(levels, request.quantity)

        reference_price = self._reference_price(request, snapshot)

        amount = abs(execution_price - reference_price)
        percent = amount / reference_price * 100

        liquidity = self.liquidity_score(snapshot, levels, request.quantity)

        historical = self.get_historical_stats(request.symbol)
        historical_average = historical.average_slippage_percent if historical else 0.0
        range_pct = max(percent, historical_average) * RANGE_WIDENING
        price_range = PriceRange(
            min=reference_price * (1 - range_pct / 100),
            max=reference_price * (1 + range_pct / 100)
        )

        recommendation, reasoning = self._recommend(percent, liquidity, historical)

        logger.debug(f"Slippage estimate for {request.symbol} {request.side.value} {request.quantity}: "
                     f"{percent:.4f}% (liquidity {liquidity:.2f}, {recommendation.value})")

        return SlippageEstimate(
            estimated_slippage_percent=percent,
            estimated_slippage_amount=amount,
            current_market_price=snapshot.current_price if snapshot.current_price is not None else reference_price,
            price_range=price_range,
            liquidity_score=liquidity,
            recommendation=recommendation,
            reasoning=reasoning,
            symbol=request.symbol,
            side=request.side,
            quantity=request.quantity,
            estimated_execution_price=execution_price,
            reference_price=reference_price
        )

    def fetch_snapshot(self, symbol: str, side: Union[OrderSide, str]) -> MarketSnapshot:
        """Read depth and the current price from the provider; provider errors propagate"""
        if self.provider is None:
            raise InvalidInputError(
                f"No market snapshot supplied for {symbol} and no market depth provider configured",
                parameter_name='snapshot'
            )

        side = OrderSide.parse(side)
        depth = self.provider.depth(symbol)
        price = self.provider.current_price(symbol, side)
        return depth.with_current_price(price)

    def _walk_book(self, levels: Tuple[BookLevel, ...], quantity: float) -> float:
        """Average execution price of `quantity` consumed from `levels` in order"""
        remaining = quantity
        cost = 0.0
        filled = 0.0

        for level in levels:
            if remaining <= 0:
                break
            fill = min(remaining, level.quantity)
            cost += fill * level.price
            filled += fill
            remaining -= fill

        if remaining > 0 and levels:
            # Depth exhausted: price the remainder beyond the worst level
            worst_price = levels[-1].price
            cost += remaining * worst_price * LIQUIDITY_PENALTY
            filled += remaining

        return cost / filled if filled > 0 else 0.0

    def _reference_price(self, request: TradeRequest, snapshot: MarketSnapshot) -> float:
        reference_price = request.expected_price
        if reference_price is None:
            reference_price = snapshot.current_price
        if reference_price is None and self.provider is not None:
            reference_price = self.provider.current_price(request.symbol, request.side)

        if reference_price is None or reference_price <= 0:
            raise InvalidInputError(
                f"No positive reference price available for {request.symbol}",
                parameter_name='reference_price',
                provided_value=reference_price
            )
        return reference_price

    def liquidity_score(self, snapshot: MarketSnapshot, levels: Tuple[BookLevel, ...],
                        quantity: float) -> float:
        """
        Blend order coverage, spread tightness and book depth into [0, 1]

        Args:
            snapshot: Full order book (the spread is read from both sides)
            levels: Side the order executes against; coverage and depth read it
            quantity: Requested quantity

        Returns:
            Liquidity score clamped to [0, 1]
        """
        top_quantity = float(np.sum([level.quantity for level in levels[:COVERAGE_LEVELS]]))
        coverage = min(top_quantity / quantity, 1.0) if quantity > 0 else 1.0

        spread_score = max(0.0, 1 - snapshot.spread_percent / 2)
        depth_score = min(len(levels) / FULL_DEPTH_LEVELS, 1.0)

        score = 0.5 * coverage + 0.3 * spread_score + 0.2 * depth_score
        return float(np.clip(score, 0.0, 1.0))

    def _recommend(self, percent: float, liquidity: float,
                   historical: Optional[HistoricalSlippageStats]) -> Tuple[Recommendation, str]:
        reasons = []

        if percent > DELAY_SLIPPAGE_PERCENT:
            reasons.append(f"High estimated slippage ({percent:.2f}%)")
        elif percent > CAUTION_SLIPPAGE_PERCENT:
            reasons.append(f"Elevated estimated slippage ({percent:.2f}%)")

        if liquidity < DELAY_LIQUIDITY_SCORE:
            reasons.append("Low market liquidity")
        elif liquidity < CAUTION_LIQUIDITY_SCORE:
            reasons.append("Moderate market liquidity")

        if historical and percent > historical.average_slippage_percent * 2:
            reasons.append("Slippage significantly higher than historical average")

        if percent > DELAY_SLIPPAGE_PERCENT or liquidity < DELAY_LIQUIDITY_SCORE:
            return Recommendation.DELAY, f"Consider delaying trade: {', '.join(reasons)}"
        if percent > CAUTION_SLIPPAGE_PERCENT or liquidity < CAUTION_LIQUIDITY_SCORE:
            return Recommendation.CAUTION, f"Proceed with caution: {', '.join(reasons)}"
        return Recommendation.PROCEED, FAVORABLE_REASONING

    # ----------------------------------------
    # Realized Slippage and History
    # ----------------------------------------

    def calculate_actual_slippage(self, expected_price: float, actual_price: float,
                                  quantity: float) -> ActualSlippage:
        """Realized slippage of a fill against the expected price"""
        validator = TradeInputValidator()
        result = validator.validate_positive(expected_price, 'expected_price')
        result.merge(validator.validate_positive(actual_price, 'actual_price'))
        result.merge(validator.validate_non_negative(quantity, 'quantity'))
        result.raise_if_invalid(InvalidInputError)

        amount = abs(actual_price - expected_price)
        percent = amount / expected_price * 100

        return ActualSlippage(amount=amount, percent=percent, total_cost=amount * quantity)

    @contextlib.contextmanager
    def _symbol_lock(self, symbol: str, release_entry: bool = False):
        """Hold the symbol's lock; retry when the lock was dropped while waiting for it"""
        while True:
            with self._locks_guard:
                lock = self._symbol_locks[symbol]
            lock.acquire()
            with self._locks_guard:
                if self._symbol_locks.get(symbol) is lock:
                    break
            lock.release()

        try:
            yield
        finally:
            if release_entry:
                with self._locks_guard:
                    self._symbol_locks.pop(symbol, None)
            lock.release()

    def update_history(self, symbol: str, slippage_percent: float) -> HistoricalSlippageStats:
        """Fold one realized slippage percent into the symbol's running statistics"""
        with self._symbol_lock(symbol):
            current: Optional[HistoricalSlippageStats] = self.history_store.get(symbol)

            if current is None:
                updated = HistoricalSlippageStats(
                    symbol=symbol,
                    average_slippage_percent=slippage_percent,
                    max_slippage_percent=slippage_percent,
                    sample_count=1
                )
            else:
                updated = current.updated_with(slippage_percent)

            self.history_store.set(symbol, updated)

        logger.debug(f"Updated slippage history for {symbol}: avg {updated.average_slippage_percent:.4f}% "
                     f"over {updated.sample_count} samples")
        return updated

    def get_historical_stats(self, symbol: str) -> Optional[HistoricalSlippageStats]:
        return self.history_store.get(symbol)

    def clear_history(self, symbol: Optional[str] = None):
        """Drop history for one symbol, or for every symbol when None"""
        if symbol is not None:
            with self._symbol_lock(symbol, release_entry=True):
                self.history_store.delete(symbol)
            logger.info(f"Cleared historical slippage data for {symbol}")
        else:
            with self._locks_guard:
                known = list(self._symbol_locks)
            for known_symbol in known:
                with self._symbol_lock(known_symbol, release_entry=True):
                    pass
            self.history_store.clear()
            logger.info("Cleared all historical slippage data")

    # ----------------------------------------
    # Tolerance
    # ----------------------------------------

    def tolerance_for_level(self, level: Union[ToleranceLevel, str]) -> float:
        return TOLERANCE_PRESETS[ToleranceLevel.parse(level)]

    def dynamic_tolerance(self, base_tolerance_percent: float, liquidity_score: float,
                          volatility: float) -> float:
        """
        Widen a tolerance under thin liquidity or high volatility

        The result never drops below the base and never exceeds three times it.
        """
        liquidity_adjustment = 1 - liquidity_score if liquidity_score < DYNAMIC_LIQUIDITY_THRESHOLD else 0.0
        volatility_adjustment = volatility / 10 if volatility > DYNAMIC_VOLATILITY_THRESHOLD else 0.0

        adjusted = base_tolerance_percent * (1 + liquidity_adjustment + volatility_adjustment)
        return min(adjusted, base_tolerance_percent * DYNAMIC_MAX_MULTIPLIER)
