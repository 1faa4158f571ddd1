"""
Structured logging system with JSON formatting and error categorization.
"""

import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict
from enum import Enum

from ..config import Config


class ErrorCategory(Enum):
    """Error categories for classification."""
    API_ERROR = "api"
    NETWORK_ERROR = "network"
    PARSING_ERROR = "parsing"
    CONFIGURATION_ERROR = "configuration"
    VALIDATION_ERROR = "validation"
    TIMEOUT_ERROR = "timeout"
    AUTHENTICATION_ERROR = "authentication"
    RATE_LIMIT_ERROR = "rate_limit"
    UNKNOWN_ERROR = "unknown"


class FallbackStage(Enum):
    """Stages of the fallback chain, used to tag log records."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    CONTENT_BANK = "content_bank"
    DEFAULT = "default"
    HEALTH = "health"


@dataclass
class LogEntry:
    """Structured log entry."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    stage: Optional[str] = None
    error_category: Optional[str] = None
    contextual_data: Optional[Dict[str, Any]] = None
    stack_trace: Optional[str] = None


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            stage=getattr(record, 'stage', None),
            error_category=getattr(record, 'error_category', None),
            contextual_data=getattr(record, 'structured_data', {}),
            stack_trace=self.formatException(record.exc_info) if record.exc_info else None
        )

        return json.dumps(asdict(log_entry), default=str, ensure_ascii=False)


class StructuredLogger:
    """Logger wrapper that attaches structured context to every record."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self._setup_logger()

    def _setup_logger(self):
        """Set up logger with JSON formatting."""
        self.logger.handlers.clear()
        self.logger.propagate = True

        log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)
        self.logger.setLevel(log_level)

        formatter = JSONFormatter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if Config.LOG_TO_FILE:
            file_handler = logging.FileHandler(self._get_log_file_path(), encoding='utf-8')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def _get_log_file_path(self) -> Path:
        """Get log file path with date-based naming."""
        Config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d")
        return Config.LOGS_DIR / f"couplequest_{timestamp}.log"

    def _log_with_context(self, level: int, message: str,
                          stage: Optional[FallbackStage] = None,
                          error_category: Optional[ErrorCategory] = None,
                          structured_data: Optional[Dict[str, Any]] = None,
                          exc_info: bool = False):
        """Log message with structured context."""
        extra = {}
        if stage:
            extra['stage'] = stage.value
        if error_category:
            extra['error_category'] = error_category.value
        if structured_data:
            extra['structured_data'] = structured_data

        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **context):
        self._log_with_context(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log_with_context(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._log_with_context(logging.WARNING, message, **context)

    def error(self, message: str, error_category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR, **context):
        """Log error message with categorization."""
        self._log_with_context(logging.ERROR, message, error_category=error_category, **context)

    def critical(self, message: str, error_category: ErrorCategory = ErrorCategory.UNKNOWN_ERROR, **context):
        """Log critical message with categorization."""
        self._log_with_context(logging.CRITICAL, message, error_category=error_category, **context)


_loggers: Dict[str, StructuredLogger] = {}
_logger_lock = threading.Lock()


def get_structured_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger instance."""
    with _logger_lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name)
        return _loggers[name]
