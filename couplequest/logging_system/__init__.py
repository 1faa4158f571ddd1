"""
Structured logging and error categorization.
"""

from .structured_logger import (
    StructuredLogger, ErrorCategory, FallbackStage, JSONFormatter,
    get_structured_logger
)
from .error_handler import ErrorClassifier

__all__ = [
    # Core logging
    'StructuredLogger', 'get_structured_logger', 'JSONFormatter',

    # Enums and types
    'ErrorCategory', 'FallbackStage',

    # Error handling
    'ErrorClassifier',
]
