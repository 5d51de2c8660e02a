# ============================================
# SlippageGuard - src/slippage_guard/utils/logger.py
# Logging system with audit trail for protection decisions
# ============================================

import sys
import logging
import logging.config
from typing import Dict
from datetime import datetime

from .config_loader import get_config

class AuditLogger:
    """Audit trail logging for preference changes and trade decisions"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_user_action(self, user: str, action: str, resource: str, **details):
        """Log user actions for audit trail"""
        self.logger.info(
            f"USER_ACTION: {action} on {resource}",
            extra={
                'audit': True,
                'user': user,
                'action': action,
                'resource': resource,
                'event_time': datetime.utcnow().isoformat(),
                **details
            }
        )

    def log_protection_decision(self, symbol: str, allowed: bool, estimated_percent: float,
                                max_allowed_percent: float, **metadata):
        """Log a pre-trade slippage decision"""
        self.logger.info(
            f"PROTECTION_DECISION: {'ALLOWED' if allowed else 'REJECTED'} {symbol} "
            f"({estimated_percent:.4f}% vs {max_allowed_percent:.4f}% max)",
            extra={
                'audit': True,
                'event_type': 'protection_decision',
                'symbol': symbol,
                'allowed': allowed,
                'estimated_percent': estimated_percent,
                'max_allowed_percent': max_allowed_percent,
                'event_time': datetime.utcnow().isoformat(),
                **metadata
            }
        )

    def log_slippage_report(self, symbol: str, slippage_percent: float, within_limits: bool, **metadata):
        """Log a realized slippage report"""
        self.logger.info(
            f"SLIPPAGE_REPORT: {symbol} {slippage_percent:.4f}%",
            extra={
                'audit': True,
                'event_type': 'slippage_report',
                'symbol': symbol,
                'slippage_percent': slippage_percent,
                'within_limits': within_limits,
                'event_time': datetime.utcnow().isoformat(),
                **metadata
            }
        )

class SlippageGuardLogger:
    """
    Logging system for SlippageGuard

    Features:
    - dictConfig-driven setup from logging.yaml with console fallback
    - Audit trail for preference changes, decisions and reports
    - Component-specific loggers under the 'slippage_guard' namespace
    """

    ROOT_NAME = 'slippage_guard'

    def __init__(self):
        self._setup_logging()

        self._loggers: Dict[str, logging.Logger] = {}
        self._audit_loggers: Dict[str, AuditLogger] = {}

    def _setup_logging(self):
        try:
            logging_config = get_config('logging')
            if logging_config:
                logging.config.dictConfig(logging_config)
            else:
                self._setup_default_logging()
        except (ValueError, TypeError, AttributeError, ImportError) as e:
            print(f"Warning: Failed to load logging config, using defaults: {e}")
            self._setup_default_logging()

    def _setup_default_logging(self):
        package_logger = logging.getLogger(self.ROOT_NAME)
        package_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

        package_logger.setLevel(logging.INFO)
        package_logger.addHandler(console_handler)

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get a logger for a specific component

        Args:
            name: Logger name (e.g., 'trading.execution.slippage', 'data.stores')

        Returns:
            Logger under the 'slippage_guard' namespace
        """
        if name in self._loggers:
            return self._loggers[name]

        full_name = name if name.startswith(self.ROOT_NAME) else f"{self.ROOT_NAME}.{name}"
        logger = logging.getLogger(full_name)

        self._loggers[name] = logger

        return logger

    def get_audit_logger(self, name: str = "audit") -> AuditLogger:
        if name not in self._audit_loggers:
            self._audit_loggers[name] = AuditLogger(self.get_logger(f"audit.{name}"))

        return self._audit_loggers[name]

# Global logger instance
logger_system = SlippageGuardLogger()

def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific component"""
    return logger_system.get_logger(name)

def get_audit_logger(name: str = "audit") -> AuditLogger:
    """Get audit logger for governance"""
    return logger_system.get_audit_logger(name)
