# ============================================
# SlippageGuard - src/slippage_guard/utils/timing.py
# Timing utilities and soft execution budgets
# ============================================

import time
import functools
from typing import List, Optional, Callable
from dataclasses import dataclass

from .logger import get_logger
from .exceptions import BusinessLogicError

logger = get_logger('timing')

# ============================================
# Core Timing Classes
# ============================================

@dataclass
class TimingResult:
    """Container for timing measurement results"""
    operation_name: str
    start_time: float
    end_time: float
    duration: float

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds"""
        return self.duration * 1000

    @property
    def duration_str(self) -> str:
        """Human-readable duration string"""
        return format_duration(self.duration)

class Timer:
    """
    High-precision timer for measuring operation performance

    Used as a context manager; time_it wraps it as a decorator
    """

    def __init__(self, operation_name: str, auto_log: bool = True, log_level: str = 'debug'):
        self.operation_name = operation_name
        self.auto_log = auto_log
        self.log_level = log_level.lower()

        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.result: Optional[TimingResult] = None

    def start(self) -> 'Timer':
        """Start timing"""
        self.start_time = time.perf_counter()
        return self

    def stop(self) -> TimingResult:
        """Stop timing and return result"""
        if self.start_time is None:
            raise BusinessLogicError("Timer not started")

        self.end_time = time.perf_counter()
        duration = self.end_time - self.start_time

        self.result = TimingResult(
            operation_name=self.operation_name,
            start_time=self.start_time,
            end_time=self.end_time,
            duration=duration
        )

        if self.auto_log:
            self._log_result()

        return self.result

    def _log_result(self):
        if self.result is None:
            return

        message = f"Operation '{self.operation_name}' completed in {self.result.duration_str}"

        log_func = getattr(logger, self.log_level, logger.debug)
        log_func(message, extra={
            'operation_name': self.operation_name,
            'duration_ms': self.result.duration_ms,
            'performance_metric': True,
        })

    def __enter__(self) -> 'Timer':
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

        if exc_type is not None:
            logger.debug(
                f"Operation '{self.operation_name}' failed after {self.result.duration_str}",
                extra={
                    'operation_name': self.operation_name,
                    'error_type': exc_type.__name__,
                }
            )

# ============================================
# Soft Execution Budget
# ============================================

class ExecutionBudget:
    """
    Advisory wall-clock budget for a single call.

    Checkpoints compare elapsed time with a warning fraction of the budget and
    log a warning when it is crossed. Nothing is ever cancelled.
    """

    def __init__(self, operation_name: str, budget_ms: float, warning_fraction: float = 0.9,
                 clock: Callable[[], float] = time.perf_counter):
        self.operation_name = operation_name
        self.budget_ms = float(budget_ms)
        self.warning_fraction = warning_fraction
        self._clock = clock
        self._start = clock()
        self.warnings: List[str] = []

    @property
    def elapsed_ms(self) -> float:
        return (self._clock() - self._start) * 1000

    @property
    def threshold_ms(self) -> float:
        return self.budget_ms * self.warning_fraction

    def checkpoint(self, stage: str) -> bool:
        """Return True (and log a warning) when the warning threshold is exceeded."""
        elapsed = self.elapsed_ms
        if elapsed <= self.threshold_ms:
            return False

        message = (f"{self.operation_name} approaching time limit at '{stage}': "
                   f"{elapsed:.0f}ms / {self.budget_ms:.0f}ms")
        self.warnings.append(message)
        logger.warning(message, extra={
            'operation_name': self.operation_name,
            'stage': stage,
            'elapsed_ms': elapsed,
            'budget_ms': self.budget_ms,
        })
        return True

    @property
    def exceeded(self) -> bool:
        return bool(self.warnings)

# ============================================
# Decorators
# ============================================

def time_it(operation_name: Optional[str] = None, auto_log: bool = True, log_level: str = 'debug'):
    """
    Decorator to time function execution

    Args:
        operation_name: Custom operation name (defaults to function name)
        auto_log: Whether to automatically log timing results
        log_level: Log level for timing messages

    Returns:
        Decorator function
    """
    def decorator(func: Callable) -> Callable:
        name = operation_name or f"{func.__module__}.{func.__name__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with Timer(name, auto_log, log_level):
                return func(*args, **kwargs)

        return wrapper

    return decorator

# ============================================
# Utility Functions
# ============================================

def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string
    """
    if seconds < 0.001:
        return f"{seconds*1000000:.0f}us"
    elif seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = seconds % 60
        return f"{hours}h {minutes}m {secs:.0f}s"

