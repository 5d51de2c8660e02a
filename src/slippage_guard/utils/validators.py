# ============================================
# SlippageGuard - src/slippage_guard/utils/validators.py
# Validation for slippage configuration, trade inputs and order books
# ============================================

import math
from typing import Any, List, Optional, Sequence, Tuple, Type

from .exceptions import (
    InvalidConfigurationError,
    InvalidInputError,
    SlippageGuardBaseException
)
from .logger import get_logger

logger = get_logger('validators')

MAX_SLIPPAGE_PERCENT_RANGE = (0.0, 100.0)
MAX_EXECUTION_TIME_MS_RANGE = (100, 30000)
VALID_TOLERANCE_LEVELS = ('STRICT', 'MODERATE', 'RELAXED')
VALID_SIDES = ('buy', 'sell')

# ============================================
# Base Validation Framework
# ============================================

class ValidationResult:
    """Container for validation results"""

    def __init__(self, is_valid: bool = True, errors: Optional[List[str]] = None,
                 warnings: Optional[List[str]] = None):
        self.is_valid = is_valid
        self.errors = errors or []
        self.warnings = warnings or []
        self.first_field: Optional[str] = None
        self.first_value: Any = None

    def add_error(self, error: str, field_name: Optional[str] = None, value: Any = None):
        """Add an error message"""
        if self.is_valid:
            self.first_field = field_name
            self.first_value = value
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str):
        """Add a warning message"""
        self.warnings.append(warning)

    def merge(self, other: 'ValidationResult'):
        """Merge another validation result"""
        if not other.is_valid and self.is_valid:
            self.first_field = other.first_field
            self.first_value = other.first_value
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        if not other.is_valid:
            self.is_valid = False

    def raise_if_invalid(self, exception_class: Type[SlippageGuardBaseException] = InvalidInputError):
        """Raise exception if validation failed"""
        if self.is_valid:
            return

        error_msg = "; ".join(self.errors)
        if exception_class is InvalidConfigurationError:
            raise InvalidConfigurationError(error_msg, field_name=self.first_field,
                                            provided_value=self.first_value)
        if exception_class is InvalidInputError:
            raise InvalidInputError(error_msg, parameter_name=self.first_field,
                                    provided_value=self.first_value)
        raise exception_class(error_msg)

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)

# ============================================
# Slippage Configuration Validation
# ============================================

class SlippageConfigValidator:
    """Range checks applied to every slippage configuration write"""

    def validate(self, max_slippage_percent: Any, max_execution_time_ms: Any = None,
                 tolerance_level: Any = None) -> ValidationResult:
        result = ValidationResult()

        low, high = MAX_SLIPPAGE_PERCENT_RANGE
        if not _is_number(max_slippage_percent):
            result.add_error("maxSlippagePercent must be a number",
                             'max_slippage_percent', max_slippage_percent)
        elif not low <= max_slippage_percent <= high:
            result.add_error(f"maxSlippagePercent must be between {low:g} and {high:g}",
                             'max_slippage_percent', max_slippage_percent)

        if max_execution_time_ms is not None:
            low_ms, high_ms = MAX_EXECUTION_TIME_MS_RANGE
            if not _is_number(max_execution_time_ms):
                result.add_error("maxExecutionTimeMs must be a number",
                                 'max_execution_time_ms', max_execution_time_ms)
            elif not low_ms <= max_execution_time_ms <= high_ms:
                result.add_error(f"maxExecutionTimeMs must be between {low_ms} and {high_ms}",
                                 'max_execution_time_ms', max_execution_time_ms)

        if tolerance_level is not None:
            level_name = getattr(tolerance_level, 'value', tolerance_level)
            if str(level_name).upper() not in VALID_TOLERANCE_LEVELS:
                result.add_error(f"toleranceLevel must be one of {', '.join(VALID_TOLERANCE_LEVELS)}",
                                 'tolerance_level', tolerance_level)

        return result

# ============================================
# Trade Input Validation
# ============================================

class TradeInputValidator:
    """Checks on symbols, sides, quantities and prices"""

    def validate_request(self, symbol: Any, side: Any, quantity: Any,
                         expected_price: Any = None) -> ValidationResult:
        result = ValidationResult()

        if not isinstance(symbol, str) or not symbol.strip():
            result.add_error("symbol must be a non-empty string", 'symbol', symbol)

        side_value = getattr(side, 'value', side)
        if str(side_value).lower() not in VALID_SIDES:
            result.add_error("side must be 'buy' or 'sell'", 'side', side)

        result.merge(self.validate_positive(quantity, 'quantity'))

        if expected_price is not None:
            result.merge(self.validate_positive(expected_price, 'expected_price'))

        return result

    def validate_positive(self, value: Any, name: str) -> ValidationResult:
        result = ValidationResult()
        if not _is_number(value):
            result.add_error(f"{name} must be a finite number", name, value)
        elif value <= 0:
            result.add_error(f"{name} must be positive", name, value)
        return result

    def validate_non_negative(self, value: Any, name: str) -> ValidationResult:
        result = ValidationResult()
        if not _is_number(value):
            result.add_error(f"{name} must be a finite number", name, value)
        elif value < 0:
            result.add_error(f"{name} must not be negative", name, value)
        return result

# ============================================
# Order Book Validation
# ============================================

class OrderBookValidator:
    """Sanity checks for order book levels supplied by a depth provider"""

    def validate_levels(self, levels: Sequence[Tuple[float, float]], side_name: str,
                        descending: bool) -> ValidationResult:
        """
        Validate one side of a book.

        Non-positive prices and negative quantities are errors. Levels out of
        execution-priority order only produce a warning since the book is
        consumed in the order given.
        """
        result = ValidationResult()

        previous: Optional[float] = None
        for index, (price, quantity) in enumerate(levels):
            if not _is_number(price) or price <= 0:
                result.add_error(f"{side_name}[{index}] price must be positive", f"{side_name}.price", price)
            if not _is_number(quantity) or quantity < 0:
                result.add_error(f"{side_name}[{index}] quantity must not be negative",
                                 f"{side_name}.quantity", quantity)
            if previous is not None and _is_number(price):
                out_of_order = price > previous if descending else price < previous
                if out_of_order:
                    result.add_warning(f"{side_name}[{index}] is out of priority order")
            if _is_number(price):
                previous = price

        for warning in result.warnings:
            logger.warning(f"Order book warning: {warning}")

        return result

def validate_slippage_config(max_slippage_percent: Any, max_execution_time_ms: Any = None,
                             tolerance_level: Any = None) -> None:
    """Raise InvalidConfigurationError when any configuration value is out of range"""
    SlippageConfigValidator().validate(
        max_slippage_percent, max_execution_time_ms, tolerance_level
    ).raise_if_invalid(InvalidConfigurationError)
