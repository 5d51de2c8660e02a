# ============================================
# SlippageGuard - src/slippage_guard/data/market_depth.py
# Order book snapshots and market depth providers
# ============================================

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..utils.exceptions import InvalidInputError, MarketDataUnavailableError
from ..utils.logger import get_logger
from ..utils.validators import OrderBookValidator

logger = get_logger('data.market_depth')

LevelInput = Union['BookLevel', Tuple[float, float], Sequence[float]]

# ============================================
# Snapshot Data Structures
# ============================================

@dataclass(frozen=True)
class BookLevel:
    """Single price level of an order book"""
    price: float
    quantity: float

    def __post_init__(self):
        if not math.isfinite(self.price) or self.price <= 0:
            raise InvalidInputError("Book level price must be a positive finite number",
                                    parameter_name='price', provided_value=self.price)
        if not math.isfinite(self.quantity) or self.quantity < 0:
            raise InvalidInputError("Book level quantity must be a finite, non-negative number",
                                    parameter_name='quantity', provided_value=self.quantity)

    @property
    def notional(self) -> float:
        return self.price * self.quantity

@dataclass(frozen=True)
class MarketSnapshot:
    """
    Point-in-time view of an order book.

    Bids and asks are stored best price first (bids descending, asks
    ascending). A snapshot is owned by one estimation call and never mutated.
    """
    bids: Tuple[BookLevel, ...] = ()
    asks: Tuple[BookLevel, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)
    current_price: Optional[float] = None
    symbol: Optional[str] = None

    @classmethod
    def from_levels(cls, bids: Iterable[LevelInput], asks: Iterable[LevelInput],
                    current_price: Optional[float] = None, symbol: Optional[str] = None,
                    timestamp: Optional[datetime] = None) -> 'MarketSnapshot':
        """
        Build a snapshot from (price, quantity) pairs or BookLevel objects

        Args:
            bids: Bid levels, best (highest) price first
            asks: Ask levels, best (lowest) price first
            current_price: Reference price reported by the provider
            symbol: Trading symbol
            timestamp: Capture time (defaults to now)

        Returns:
            MarketSnapshot with validated levels
        """
        bid_pairs = [_to_pair(level) for level in bids]
        ask_pairs = [_to_pair(level) for level in asks]

        validator = OrderBookValidator()
        result = validator.validate_levels(bid_pairs, 'bids', descending=True)
        result.merge(validator.validate_levels(ask_pairs, 'asks', descending=False))
        result.raise_if_invalid(InvalidInputError)

        bid_levels = tuple(BookLevel(price, quantity) for price, quantity in bid_pairs)
        ask_levels = tuple(BookLevel(price, quantity) for price, quantity in ask_pairs)

        return cls(
            bids=bid_levels,
            asks=ask_levels,
            timestamp=timestamp or datetime.now(),
            current_price=current_price,
            symbol=symbol
        )

    def with_current_price(self, price: float) -> 'MarketSnapshot':
        """Copy of this snapshot carrying a reference price"""
        return MarketSnapshot(bids=self.bids, asks=self.asks, timestamp=self.timestamp,
                              current_price=price, symbol=self.symbol)

    def levels_for(self, side: Any) -> Tuple[BookLevel, ...]:
        """Levels a market order on `side` executes against: asks for buys, bids for sells"""
        side_value = str(getattr(side, 'value', side)).lower()
        if side_value == 'buy':
            return self.asks
        if side_value == 'sell':
            return self.bids
        raise InvalidInputError(f"Unknown order side: {side}", parameter_name='side', provided_value=side)

    @property
    def best_bid(self) -> float:
        return self.bids[0].price if self.bids else 0.0

    @property
    def best_ask(self) -> float:
        return self.asks[0].price if self.asks else 0.0

    @property
    def mid_price(self) -> float:
        return (self.best_bid + self.best_ask) / 2

    @property
    def spread_percent(self) -> float:
        """Bid/ask spread relative to the mid price; 100 when the mid is not positive"""
        mid = self.mid_price
        if mid <= 0:
            return 100.0
        return (self.best_ask - self.best_bid) / mid * 100

    def to_frame(self) -> pd.DataFrame:
        """Both book sides as a DataFrame with side, level, price and quantity columns"""
        rows = []
        for side_name, levels in (('bid', self.bids), ('ask', self.asks)):
            for index, level in enumerate(levels):
                rows.append({
                    'side': side_name,
                    'level': index,
                    'price': level.price,
                    'quantity': level.quantity,
                })
        return pd.DataFrame(rows, columns=['side', 'level', 'price', 'quantity'])

def _to_pair(level: LevelInput) -> Tuple[float, float]:
    if isinstance(level, BookLevel):
        return level.price, level.quantity
    price, quantity = level
    return float(price), float(quantity)

# ============================================
# Provider Contract
# ============================================

class MarketDepthProvider(ABC):
    """
    Source of reference prices and order book snapshots.

    Implementations raise MarketDataUnavailableError when they cannot answer;
    callers propagate it without retrying.
    """

    name: str = "provider"

    @abstractmethod
    def current_price(self, symbol: str, side: Any) -> float:
        """Return the current reference price for a symbol"""
        pass

    @abstractmethod
    def depth(self, symbol: str) -> MarketSnapshot:
        """Return an order book snapshot for a symbol"""
        pass

class StaticDepthProvider(MarketDepthProvider):
    """Serves fixed snapshots registered per symbol"""

    name = "static"

    def __init__(self, snapshots: Optional[Mapping[str, MarketSnapshot]] = None,
                 prices: Optional[Mapping[str, float]] = None):
        self._snapshots: Dict[str, MarketSnapshot] = dict(snapshots or {})
        self._prices: Dict[str, float] = dict(prices or {})

    def register(self, symbol: str, snapshot: MarketSnapshot, price: Optional[float] = None):
        self._snapshots[symbol] = snapshot
        if price is not None:
            self._prices[symbol] = price

    def current_price(self, symbol: str, side: Any) -> float:
        if symbol in self._prices:
            return self._prices[symbol]

        snapshot = self.depth(symbol)
        if snapshot.current_price is not None:
            return snapshot.current_price
        if snapshot.bids and snapshot.asks:
            return snapshot.mid_price

        raise MarketDataUnavailableError(f"No reference price for {symbol}",
                                         symbol=symbol, source=self.name)

    def depth(self, symbol: str) -> MarketSnapshot:
        try:
            return self._snapshots[symbol]
        except KeyError:
            raise MarketDataUnavailableError(f"No order book registered for {symbol}",
                                             symbol=symbol, source=self.name)

class SimulatedDepthProvider(MarketDepthProvider):
    """
    Synthetic order book around a base price.

    Levels step away from the base price by a fixed tick on each side with
    random quantities drawn from a seeded generator, so runs are repeatable.
    """

    name = "simulated"

    def __init__(self, base_prices: Optional[Mapping[str, float]] = None, default_price: float = 45000.0,
                 levels: int = 20, tick: float = 10.0, min_quantity: float = 0.5,
                 quantity_spread: float = 2.0, seed: Optional[int] = 42):
        self.base_prices = dict(base_prices or {})
        self.default_price = default_price
        self.levels = levels
        self.tick = tick
        self.min_quantity = min_quantity
        self.quantity_spread = quantity_spread
        self._rng = np.random.default_rng(seed)

    def _base_price(self, symbol: str) -> float:
        return self.base_prices.get(symbol, self.default_price)

    def current_price(self, symbol: str, side: Any) -> float:
        logger.debug(f"Simulated price requested for {symbol}")
        return self._base_price(symbol)

    def depth(self, symbol: str) -> MarketSnapshot:
        base = self._base_price(symbol)
        offsets = np.arange(self.levels) * self.tick

        bid_prices = base - offsets
        ask_prices = base + offsets
        bid_qty = self.min_quantity + self._rng.random(self.levels) * self.quantity_spread
        ask_qty = self.min_quantity + self._rng.random(self.levels) * self.quantity_spread

        # Prices that would fall to zero or below are dropped
        bids = [(float(p), float(q)) for p, q in zip(bid_prices, bid_qty) if p > 0]
        asks = [(float(p), float(q)) for p, q in zip(ask_prices, ask_qty)]

        logger.debug(f"Simulated {len(bids)}x{len(asks)} book for {symbol} around {base}")
        return MarketSnapshot.from_levels(bids, asks, symbol=symbol)
