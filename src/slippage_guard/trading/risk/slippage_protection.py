# ============================================
# SlippageGuard - src/slippage_guard/trading/risk/slippage_protection.py
# Pre-trade slippage protection, slippage reporting and user preferences
# ============================================

import dataclasses
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ...data.market_depth import MarketSnapshot
from ...data.stores import InMemoryStore, KeyValueStore, ReportLog
from ...utils.config_loader import get_slippage_setting
from ...utils.exceptions import InvalidConfigurationError, InvalidInputError, log_exception
from ...utils.logger import get_audit_logger, get_logger
from ...utils.timing import ExecutionBudget
from ...utils.validators import validate_slippage_config
from ..execution.slippage import (
    OrderSide,
    Recommendation,
    SlippageEstimator,
    TOLERANCE_PRESETS,
    ToleranceLevel,
    TradeRequest
)

logger = get_logger('trading.risk.slippage_protection')
audit_logger = get_audit_logger('slippage_protection')

# ============================================
# Configuration
# ============================================

CONFIG_KEY_ALIASES = {
    'maxSlippagePercent': 'max_slippage_percent',
    'toleranceLevel': 'tolerance_level',
    'enableDynamicSlippage': 'enable_dynamic_slippage',
    'maxExecutionTimeMs': 'max_execution_time_ms',
}

DEFAULT_EXECUTION_BUDGET_MS = 5000

@dataclass(frozen=True)
class SlippageConfig:
    """
    Slippage limits applied to a trade.

    Validated on construction, so every stored config is in range:
    max_slippage_percent in [0, 100] and max_execution_time_ms, when set,
    in [100, 30000].
    """
    max_slippage_percent: float
    tolerance_level: ToleranceLevel = ToleranceLevel.MODERATE
    enable_dynamic_slippage: bool = False
    max_execution_time_ms: Optional[int] = None

    def __post_init__(self):
        validate_slippage_config(self.max_slippage_percent, self.max_execution_time_ms,
                                 self.tolerance_level)
        object.__setattr__(self, 'tolerance_level', ToleranceLevel.parse(self.tolerance_level))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'SlippageConfig':
        """
        Build a config from a YAML/JSON shaped mapping

        Args:
            data: Mapping with snake_case or camelCase keys

        Returns:
            Validated SlippageConfig
        """
        values = {}
        for key, value in data.items():
            name = CONFIG_KEY_ALIASES.get(key, key)
            if name in cls.__dataclass_fields__:
                values[name] = value

        if 'max_slippage_percent' not in values:
            raise InvalidConfigurationError("maxSlippagePercent is required",
                                            field_name='max_slippage_percent')
        return cls(**values)

    @classmethod
    def from_tolerance_level(cls, level: Union[ToleranceLevel, str], enable_dynamic_slippage: bool = True,
                             max_execution_time_ms: Optional[int] = DEFAULT_EXECUTION_BUDGET_MS) -> 'SlippageConfig':
        level = ToleranceLevel.parse(level)
        return cls(
            max_slippage_percent=TOLERANCE_PRESETS[level],
            tolerance_level=level,
            enable_dynamic_slippage=enable_dynamic_slippage,
            max_execution_time_ms=max_execution_time_ms
        )

    @property
    def execution_budget_ms(self) -> int:
        return self.max_execution_time_ms or DEFAULT_EXECUTION_BUDGET_MS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_slippage_percent': self.max_slippage_percent,
            'tolerance_level': self.tolerance_level.value,
            'enable_dynamic_slippage': self.enable_dynamic_slippage,
            'max_execution_time_ms': self.max_execution_time_ms,
        }

SYSTEM_DEFAULT_CONFIG = SlippageConfig(
    max_slippage_percent=0.5,
    tolerance_level=ToleranceLevel.MODERATE,
    enable_dynamic_slippage=True,
    max_execution_time_ms=DEFAULT_EXECUTION_BUDGET_MS
)

ConfigInput = Union[SlippageConfig, Mapping[str, Any]]

def _coerce_config(config: ConfigInput) -> SlippageConfig:
    if isinstance(config, SlippageConfig):
        return config
    if isinstance(config, Mapping):
        return SlippageConfig.from_dict(config)
    raise InvalidConfigurationError(f"Unsupported slippage configuration: {config!r}",
                                    field_name='config', provided_value=config)

# ============================================
# Data Structures
# ============================================

class ProtectionAction(Enum):
    """Policy-level outcome of a pre-trade check"""
    PROCEED = "proceed"
    CAUTION = "caution"
    REJECT = "reject"

@dataclass(frozen=True)
class UserSlippagePreference:
    """A user's default limits plus per-symbol overrides; replaced as a whole on each write"""
    user_id: str
    default_config: SlippageConfig
    symbol_overrides: Dict[str, SlippageConfig] = field(default_factory=dict)
    last_updated: datetime = field(default_factory=datetime.now)

    def config_for(self, symbol: str) -> SlippageConfig:
        return self.symbol_overrides.get(symbol, self.default_config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'default_config': self.default_config.to_dict(),
            'symbol_overrides': {symbol: cfg.to_dict() for symbol, cfg in self.symbol_overrides.items()},
            'last_updated': self.last_updated.isoformat(),
        }

@dataclass(frozen=True)
class SlippageReport:
    """Realized slippage of one executed trade; immutable once created"""
    expected_price: float
    actual_price: float
    slippage_amount: float
    slippage_percent: float
    quantity: float
    total_slippage_cost: float
    within_limits: bool
    timestamp: datetime
    symbol: str
    side: OrderSide
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    report_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'report_id': self.report_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'expected_price': self.expected_price,
            'actual_price': self.actual_price,
            'slippage_amount': self.slippage_amount,
            'slippage_percent': self.slippage_percent,
            'quantity': self.quantity,
            'total_slippage_cost': self.total_slippage_cost,
            'within_limits': self.within_limits,
            'timestamp': self.timestamp,
            'user_id': self.user_id,
            'order_id': self.order_id,
        }

@dataclass(frozen=True)
class ProtectionDecision:
    """Allow / caution / reject verdict for a prospective trade"""
    allowed: bool
    reason: str
    estimated_slippage: float
    max_allowed_slippage: float
    recommendation: ProtectionAction
    symbol: Optional[str] = None
    liquidity_score: Optional[float] = None
    execution_time_ms: float = 0.0

@dataclass(frozen=True)
class ReportFilters:
    """Conjunctive report filters; dates are inclusive"""
    symbol: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    only_exceeded: bool = False
    limit: Optional[int] = None

    def __post_init__(self):
        if self.limit is not None and (isinstance(self.limit, bool) or not isinstance(self.limit, int)
                                       or self.limit < 0):
            raise InvalidInputError("limit must be a non-negative integer",
                                    parameter_name='limit', provided_value=self.limit)
        if self.symbol is not None and (not isinstance(self.symbol, str) or not self.symbol.strip()):
            raise InvalidInputError("symbol filter must be a non-empty string",
                                    parameter_name='symbol', provided_value=self.symbol)

    def matches(self, report: SlippageReport) -> bool:
        if self.symbol is not None and report.symbol != self.symbol:
            return False
        if self.start_date is not None and report.timestamp < self.start_date:
            return False
        if self.end_date is not None and report.timestamp > self.end_date:
            return False
        if self.only_exceeded and report.within_limits:
            return False
        return True

@dataclass(frozen=True)
class SlippageStatistics:
    """Aggregate of realized slippage over a set of reports"""
    average_percent: float
    max_percent: float
    min_percent: float
    total_trades: int
    trades_exceeded: int
    total_cost: float

    @classmethod
    def zero(cls) -> 'SlippageStatistics':
        return cls(0.0, 0.0, 0.0, 0, 0, 0.0)

    @classmethod
    def from_reports(cls, reports: List[SlippageReport]) -> 'SlippageStatistics':
        if not reports:
            return cls.zero()

        percents = np.array([r.slippage_percent for r in reports], dtype=float)
        costs = np.array([r.total_slippage_cost for r in reports], dtype=float)

        return cls(
            average_percent=float(np.mean(percents)),
            max_percent=float(np.max(percents)),
            min_percent=float(np.min(percents)),
            total_trades=len(reports),
            trades_exceeded=sum(1 for r in reports if not r.within_limits),
            total_cost=float(np.sum(costs))
        )

    @property
    def exceedance_rate(self) -> float:
        return self.trades_exceeded / self.total_trades if self.total_trades else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'average_percent': self.average_percent,
            'max_percent': self.max_percent,
            'min_percent': self.min_percent,
            'total_trades': self.total_trades,
            'trades_exceeded': self.trades_exceeded,
            'total_cost': self.total_cost,
            'exceedance_rate': self.exceedance_rate,
        }

@dataclass(frozen=True)
class SlippageExport:
    """Report bundle; statistics is None for a system-wide export"""
    reports: Tuple[SlippageReport, ...]
    statistics: Optional[SlippageStatistics] = None
    symbol: Optional[str] = None
    generated_at: datetime = field(default_factory=datetime.now)

    def to_frame(self) -> pd.DataFrame:
        columns = list(SlippageReport.__dataclass_fields__.keys())
        return pd.DataFrame([report.to_dict() for report in self.reports], columns=columns)

# ============================================
# Protection Manager
# ============================================

class SlippageProtectionManager:
    """
    Pre-trade slippage protection.

    Resolves the slippage config that applies to a trade, turns an engine
    estimate into an allow / caution / reject decision, records realized
    slippage and answers report queries.
    """

    def __init__(self, estimator: Optional[SlippageEstimator] = None,
                 preference_store: Optional[KeyValueStore] = None,
                 report_log: Optional[ReportLog] = None,
                 volatility_source: Optional[Callable[[str], float]] = None,
                 default_config: Optional[ConfigInput] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 budget_clock: Callable[[], float] = time.perf_counter):
        """
        Initialize protection manager

        Args:
            estimator: Estimation engine (a provider-less engine by default)
            preference_store: Store of UserSlippagePreference keyed by user id
            report_log: Bounded report log (capacity from configuration by default)
            volatility_source: Callable returning a volatility signal for a symbol
            default_config: System default config (from configuration by default)
            clock: Wall clock for report timestamps and query windows
            budget_clock: Monotonic clock in seconds for the execution budget
        """
        self.estimator = estimator or SlippageEstimator()
        self.preference_store = preference_store if preference_store is not None else InMemoryStore('preferences')
        self.report_log = report_log if report_log is not None else ReportLog(
            int(get_slippage_setting('reports.max_reports_in_memory', 1000))
        )
        self.volatility_source = volatility_source
        self.clock = clock or datetime.now
        self.budget_clock = budget_clock

        self.default_config = _coerce_config(default_config) if default_config is not None \
            else self._configured_default()

        self.default_volatility = float(get_slippage_setting('protection.default_volatility', 1.0))
        self.warning_fraction = float(get_slippage_setting('protection.deadline_warning_fraction', 0.9))
        self.statistics_days_back = int(get_slippage_setting('protection.statistics_days_back', 7))
        self.export_statistics_days = int(get_slippage_setting('protection.export_statistics_days', 30))

        self._lock = threading.RLock()

        logger.info(f"Initialized SlippageProtectionManager (default max "
                    f"{self.default_config.max_slippage_percent}%, report capacity {self.report_log.capacity})")

    @staticmethod
    def _configured_default() -> SlippageConfig:
        defaults = get_slippage_setting('defaults')
        if not defaults:
            return SYSTEM_DEFAULT_CONFIG
        return SlippageConfig.from_dict(defaults)

    # ----------------------------------------
    # Configuration Resolution
    # ----------------------------------------

    def resolve_config(self, user_id: Optional[str], symbol: str,
                       override_config: Optional[ConfigInput] = None) -> SlippageConfig:
        """Explicit override, then user symbol override, then user default, then system default"""
        if override_config is not None:
            return _coerce_config(override_config)

        if user_id:
            preference: Optional[UserSlippagePreference] = self.preference_store.get(user_id)
            if preference is not None:
                return preference.config_for(symbol)

        return self.default_config

    def _volatility(self, symbol: str) -> float:
        if self.volatility_source is None:
            return self.default_volatility
        return float(self.volatility_source(symbol))

    # ----------------------------------------
    # Pre-trade Validation
    # ----------------------------------------

    def validate_trade_execution(self, context: TradeRequest,
                                 override_config: Optional[ConfigInput] = None,
                                 snapshot: Optional[MarketSnapshot] = None) -> ProtectionDecision:
        """
        Decide whether a trade may execute given its estimated slippage

        The execution budget is advisory: crossing the warning threshold logs a
        warning and the decision is still returned.

        Args:
            context: Trade to check
            override_config: Config taking precedence over stored preferences
            snapshot: Order book to estimate against (fetched when None)

        Returns:
            ProtectionDecision
        """
        budget = ExecutionBudget('slippage_validation', DEFAULT_EXECUTION_BUDGET_MS,
                                 warning_fraction=self.warning_fraction, clock=self.budget_clock)

        try:
            config = self.resolve_config(context.user_id, context.symbol, override_config)
            budget.budget_ms = float(config.execution_budget_ms)
            budget.checkpoint('config_resolution')

            estimate = self.estimator.estimate(context, snapshot)
            budget.checkpoint('estimation')

            max_allowed = config.max_slippage_percent
            if config.enable_dynamic_slippage:
                max_allowed = self.estimator.dynamic_tolerance(
                    config.max_slippage_percent, estimate.liquidity_score, self._volatility(context.symbol)
                )

            decision = self._decide(context.symbol, estimate.estimated_slippage_percent, max_allowed,
                                    estimate.recommendation, estimate.liquidity_score,
                                    budget.elapsed_ms)
            budget.checkpoint('decision')

        except Exception as e:
            log_exception(e, logger)
            raise

        logger.info(
            f"Slippage validation for {context.symbol}: {'ALLOWED' if decision.allowed else 'REJECTED'} "
            f"({decision.estimated_slippage:.4f}% vs {decision.max_allowed_slippage:.4f}% max) "
            f"in {decision.execution_time_ms:.1f}ms"
        )
        audit_logger.log_protection_decision(
            context.symbol, decision.allowed, decision.estimated_slippage, decision.max_allowed_slippage,
            recommendation=decision.recommendation.value,
            user_id=context.user_id,
            order_id=context.order_id
        )

        return decision

    def _decide(self, symbol: str, percent: float, max_allowed: float, recommendation: Recommendation,
                liquidity_score: float, elapsed_ms: float) -> ProtectionDecision:
        comparison = f"estimated slippage ({percent:.4f}%) vs maximum allowed ({max_allowed:.4f}%)"

        if percent > max_allowed:
            allowed, action = False, ProtectionAction.REJECT
            reason = f"Estimated slippage ({percent:.4f}%) exceeds maximum allowed ({max_allowed:.4f}%)"
        elif recommendation == Recommendation.DELAY:
            allowed, action = False, ProtectionAction.REJECT
            reason = f"Market conditions recommend delaying trade: {comparison}"
        elif recommendation == Recommendation.CAUTION:
            allowed, action = True, ProtectionAction.CAUTION
            reason = f"Trade allowed with caution: {comparison}"
        else:
            allowed, action = True, ProtectionAction.PROCEED
            reason = f"Trade within acceptable slippage limits: {comparison}"

        return ProtectionDecision(
            allowed=allowed,
            reason=reason,
            estimated_slippage=percent,
            max_allowed_slippage=max_allowed,
            recommendation=action,
            symbol=symbol,
            liquidity_score=liquidity_score,
            execution_time_ms=elapsed_ms
        )

    # ----------------------------------------
    # Post-trade Reporting
    # ----------------------------------------

    def record_slippage(self, context: TradeRequest, actual_execution_price: float) -> SlippageReport:
        """
        Record realized slippage of an executed trade

        within_limits compares against the static limit of the resolved config;
        dynamic widening is not applied to realized slippage.
        """
        if context.expected_price is None:
            raise InvalidInputError("expected_price is required to record slippage",
                                    parameter_name='expected_price')

        actual = self.estimator.calculate_actual_slippage(
            context.expected_price, actual_execution_price, context.quantity
        )

        config = self.resolve_config(context.user_id, context.symbol)
        max_allowed = config.max_slippage_percent
        within_limits = actual.percent <= max_allowed

        report = SlippageReport(
            expected_price=context.expected_price,
            actual_price=actual_execution_price,
            slippage_amount=actual.amount,
            slippage_percent=actual.percent,
            quantity=context.quantity,
            total_slippage_cost=actual.total_cost,
            within_limits=within_limits,
            timestamp=self.clock(),
            symbol=context.symbol,
            side=context.side,
            user_id=context.user_id,
            order_id=context.order_id
        )

        if self.report_log.append(report):
            logger.debug(f"Report log at capacity ({self.report_log.capacity}); evicted the oldest report")
        self.estimator.update_history(context.symbol, actual.percent)

        if not within_limits:
            logger.warning(f"Slippage exceeded limits for {context.symbol}: "
                           f"{actual.percent:.4f}% (max: {max_allowed}%)")

        logger.info(f"Recorded slippage for {context.symbol}: {actual.percent:.4f}% "
                    f"(cost: {actual.total_cost:.2f})")
        audit_logger.log_slippage_report(context.symbol, actual.percent, within_limits,
                                         report_id=report.report_id, user_id=context.user_id)

        return report

    # ----------------------------------------
    # Preferences
    # ----------------------------------------

    def set_user_preferences(self, user_id: str, config: ConfigInput,
                             symbol_overrides: Optional[Mapping[str, ConfigInput]] = None) -> UserSlippagePreference:
        """Replace a user's preferences; every config is validated before anything is stored"""
        default_config = _coerce_config(config)
        overrides = {symbol: _coerce_config(cfg) for symbol, cfg in (symbol_overrides or {}).items()}

        preference = UserSlippagePreference(
            user_id=user_id,
            default_config=default_config,
            symbol_overrides=overrides,
            last_updated=self.clock()
        )

        with self._lock:
            self.preference_store.set(user_id, preference)

        logger.info(f"Updated slippage preferences for user {user_id}")
        audit_logger.log_user_action(user_id, 'set_preferences', 'slippage_preferences',
                                     max_slippage_percent=default_config.max_slippage_percent,
                                     override_count=len(overrides))
        return preference

    def set_symbol_override(self, user_id: str, symbol: str, config: ConfigInput) -> UserSlippagePreference:
        """Set one symbol override, creating the user record with the system default if needed"""
        override = _coerce_config(config)

        with self._lock:
            existing: Optional[UserSlippagePreference] = self.preference_store.get(user_id)
            overrides = dict(existing.symbol_overrides) if existing else {}
            overrides[symbol] = override

            preference = UserSlippagePreference(
                user_id=user_id,
                default_config=existing.default_config if existing else self.default_config,
                symbol_overrides=overrides,
                last_updated=self.clock()
            )
            self.preference_store.set(user_id, preference)

        logger.info(f"Set symbol override for {symbol} (user: {user_id})")
        audit_logger.log_user_action(user_id, 'set_symbol_override', f'slippage_preferences/{symbol}',
                                     max_slippage_percent=override.max_slippage_percent)
        return preference

    def get_user_preferences(self, user_id: str) -> Optional[UserSlippagePreference]:
        return self.preference_store.get(user_id)

    def clear_user_preferences(self, user_id: Optional[str] = None):
        """Clear one user's preferences, or every user's when user_id is None"""
        with self._lock:
            if user_id:
                self.preference_store.delete(user_id)
                logger.info(f"Cleared preferences for user {user_id}")
            else:
                self.preference_store.clear()
                logger.info("Cleared all user preferences")

    def configure_tolerance_level(self, user_id: str, level: Union[ToleranceLevel, str],
                                  enable_dynamic: bool = True) -> UserSlippagePreference:
        """Store the preset for a tolerance level as the user's default config"""
        config = SlippageConfig.from_tolerance_level(
            level, enable_dynamic_slippage=enable_dynamic,
            max_execution_time_ms=self.default_config.execution_budget_ms
        )
        preference = self.set_user_preferences(user_id, config)

        logger.info(f"Updated slippage preferences for user {user_id}: "
                    f"{config.tolerance_level.value} ({config.max_slippage_percent}%)")
        return preference

    # ----------------------------------------
    # Queries
    # ----------------------------------------

    def get_reports(self, filters: Optional[ReportFilters] = None, **criteria) -> List[SlippageReport]:
        """
        Reports matching all filters, newest first

        Args:
            filters: ReportFilters instance
            **criteria: ReportFilters fields, applied on top of `filters`

        Returns:
            Matching reports truncated to `limit`
        """
        try:
            if filters is None:
                filters = ReportFilters(**criteria)
            elif criteria:
                filters = dataclasses.replace(filters, **criteria)
        except TypeError as e:
            raise InvalidInputError(f"Invalid report filter: {e}", parameter_name='filters')

        reports = self.report_log.filter(filters.matches)
        reports.sort(key=lambda r: r.timestamp, reverse=True)

        if filters.limit is not None:
            reports = reports[:filters.limit]
        return reports

    def get_statistics(self, symbol: str, days_back: Optional[int] = None) -> SlippageStatistics:
        """Statistics over the symbol's reports in [now - days_back, now]; zeroed when none match"""
        if days_back is None:
            days_back = self.statistics_days_back

        now = self.clock()
        reports = self.get_reports(symbol=symbol, start_date=now - timedelta(days=days_back), end_date=now)
        return SlippageStatistics.from_reports(reports)

    def export_data(self, symbol: Optional[str] = None) -> SlippageExport:
        reports = self.get_reports(symbol=symbol)
        statistics = self.get_statistics(symbol, self.export_statistics_days) if symbol is not None else None
        return SlippageExport(reports=tuple(reports), statistics=statistics, symbol=symbol,
                              generated_at=self.clock())

    def clear_reports(self):
        self.report_log.clear()
        logger.info("Cleared all slippage reports")

# ============================================
# Example Usage and Testing
# ============================================

if __name__ == "__main__":
    from ...data.market_depth import SimulatedDepthProvider

    print("Testing Slippage Protection")

    manager = SlippageProtectionManager(SlippageEstimator(SimulatedDepthProvider(seed=7)))

    print("\n1. Pre-trade validation")
    for quantity in (0.5, 5.0, 60.0):
        trade = TradeRequest(symbol="BTC/USD", side=OrderSide.BUY, quantity=quantity, expected_price=45000.0)
        result = manager.validate_trade_execution(trade)
        print(f"  {quantity:>5}: {result.recommendation.value:<8} {result.reason}")

    print("\n2. User preferences")
    manager.configure_tolerance_level("trader-1", ToleranceLevel.STRICT)
    manager.set_symbol_override("trader-1", "ETH/USD", {"maxSlippagePercent": 0.3})
    print(f"  {manager.get_user_preferences('trader-1').to_dict()}")

    print("\n3. Post-trade reporting")
    trade = TradeRequest(symbol="BTC/USD", side="buy", quantity=1.0, expected_price=45000.0, user_id="trader-1")
    for fill_price in (45010.0, 45120.0, 44990.0):
        report = manager.record_slippage(trade, fill_price)
        print(f"  {fill_price}: {report.slippage_percent:.4f}% within limits: {report.within_limits}")

    print(f"\n  Statistics: {manager.get_statistics('BTC/USD').to_dict()}")
