# ============================================
# SlippageGuard - src/slippage_guard/utils/exceptions.py
# Exception hierarchy for slippage estimation and protection
# ============================================

import re
from typing import Any, Dict, List, Optional
from datetime import datetime

class SlippageGuardBaseException(Exception):
    """
    Base exception class for all SlippageGuard exceptions

    Features:
    - Error codes for programmatic handling
    - Context information for debugging
    - Severity levels for appropriate responses
    - User-friendly messages for callers that surface errors
    - Detailed technical info for logging
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        severity: str = "error",
        user_message: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
        cause: Optional[Exception] = None
    ):
        """
        Initialize base exception

        Args:
            message: Technical error message for logs
            error_code: Unique error code for programmatic handling
            context: Additional context information
            severity: Error severity (debug, info, warning, error, critical)
            user_message: User-friendly message
            suggestions: List of suggested solutions
            cause: Original exception that caused this error
        """
        super().__init__(message)

        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.severity = severity
        self.user_message = user_message or self._generate_user_message()
        self.suggestions = suggestions or []
        self.cause = cause
        self.timestamp = datetime.utcnow()

        self.context.update({
            'exception_type': self.__class__.__name__,
            'timestamp': self.timestamp.isoformat(),
            'severity': self.severity
        })

    def _generate_error_code(self) -> str:
        """Generate error code based on class name"""
        class_name = self.__class__.__name__
        # CamelCase -> UPPER_SNAKE_CASE
        error_code = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', class_name)
        error_code = re.sub('([a-z0-9])([A-Z])', r'\1_\2', error_code).upper()
        return error_code.replace('_EXCEPTION', '_ERROR')

    def _generate_user_message(self) -> str:
        return "An error occurred while processing the trade request."

# ============================================
# Market Data Exceptions
# ============================================

class DataError(SlippageGuardBaseException):
    """Base class for market-data related errors"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('severity', 'error')
        super().__init__(message, **kwargs)

class MarketDataUnavailableError(DataError):
    """Raised when the market depth provider cannot supply a price or order book"""

    def __init__(self, message: str, symbol: Optional[str] = None, source: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', None) or {}
        if symbol:
            context['symbol'] = symbol
        if source:
            context['data_source'] = source

        kwargs.setdefault(
            'user_message',
            f"Market data is unavailable{f' for {symbol}' if symbol else ''}. The trade cannot be evaluated."
        )
        kwargs.setdefault('suggestions', [
            "Retry once the market data provider recovers",
            "Verify the symbol is listed by the provider",
            "Supply an order book snapshot explicitly"
        ])

        super().__init__(message, context=context, **kwargs)

# ============================================
# Configuration Exceptions
# ============================================

class ConfigurationError(SlippageGuardBaseException):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_name: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', None) or {}
        if config_name:
            context['config_name'] = config_name

        kwargs.setdefault('severity', 'critical')
        kwargs.setdefault('user_message', "Application configuration error. Please contact support.")
        kwargs.setdefault('suggestions', [
            "Check configuration files",
            "Verify environment variables",
            "Restore default configuration"
        ])

        super().__init__(message, context=context, **kwargs)

class InvalidConfigurationError(ConfigurationError):
    """Raised when a slippage configuration value is out of its allowed range"""

    def __init__(self, message: str, field_name: Optional[str] = None, provided_value: Any = None, **kwargs):
        context = kwargs.pop('context', None) or {}
        if field_name:
            context['field_name'] = field_name
        if provided_value is not None:
            context['provided_value'] = provided_value

        kwargs.setdefault('severity', 'error')
        kwargs.setdefault('user_message', "The slippage configuration is invalid and was not applied.")
        kwargs.setdefault('suggestions', [
            "maxSlippagePercent must be between 0 and 100",
            "maxExecutionTimeMs must be between 100 and 30000",
            "toleranceLevel must be STRICT, MODERATE or RELAXED"
        ])

        super().__init__(message, context=context, **kwargs)

# ============================================
# Business Logic Exceptions
# ============================================

class BusinessLogicError(SlippageGuardBaseException):
    """Raised when business logic validation fails"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('severity', 'warning')
        super().__init__(message, **kwargs)

class InvalidInputError(BusinessLogicError):
    """Raised when trade parameters or prices are invalid"""

    def __init__(self, message: str, parameter_name: Optional[str] = None, provided_value: Any = None, **kwargs):
        context = kwargs.pop('context', None) or {}
        if parameter_name:
            context['parameter_name'] = parameter_name
        if provided_value is not None:
            context['provided_value'] = provided_value

        kwargs.setdefault('user_message', "Invalid trade parameters. Please check your inputs and try again.")
        kwargs.setdefault('suggestions', [
            "Prices and quantities must be positive",
            "Side must be 'buy' or 'sell'"
        ])

        super().__init__(message, context=context, **kwargs)

# ============================================
# Utility Functions
# ============================================

def log_exception(exception: Exception, logger):
    """Log exception with appropriate level and context"""
    if isinstance(exception, SlippageGuardBaseException):
        level_map = {
            'debug': logger.debug,
            'info': logger.info,
            'warning': logger.warning,
            'error': logger.error,
            'critical': logger.critical
        }

        log_func = level_map.get(exception.severity, logger.error)
        # 'message' is reserved on LogRecord
        extra = {k: v for k, v in exception.context.items() if k not in ('message', 'asctime')}
        log_func(
            f"[{exception.error_code}] {exception.message}",
            extra=extra,
            exc_info=exception.severity in ['error', 'critical']
        )
    else:
        logger.error(f"Unexpected exception: {str(exception)}", exc_info=True)

