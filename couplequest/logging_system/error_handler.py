"""
Error classification utilities used when logging provider failures.
"""

from typing import Dict, Any, Optional

from .structured_logger import ErrorCategory


class ErrorClassifier:
    """Classifies errors into categories based on type and message."""

    ERROR_TYPE_MAPPING = {
        # HTTP and provider errors
        'ProviderError': ErrorCategory.API_ERROR,
        'HTTPError': ErrorCategory.API_ERROR,
        'JSONDecodeError': ErrorCategory.PARSING_ERROR,

        # Network errors
        'ConnectionError': ErrorCategory.NETWORK_ERROR,
        'SSLError': ErrorCategory.NETWORK_ERROR,
        'ProxyError': ErrorCategory.NETWORK_ERROR,
        'TooManyRedirects': ErrorCategory.NETWORK_ERROR,
        'RequestException': ErrorCategory.NETWORK_ERROR,
        'ConnectionResetError': ErrorCategory.NETWORK_ERROR,
        'ConnectionRefusedError': ErrorCategory.NETWORK_ERROR,

        # Timeouts
        'Timeout': ErrorCategory.TIMEOUT_ERROR,
        'TimeoutError': ErrorCategory.TIMEOUT_ERROR,
        'ConnectTimeout': ErrorCategory.TIMEOUT_ERROR,
        'ReadTimeout': ErrorCategory.TIMEOUT_ERROR,

        # Malformed replies
        'ValueError': ErrorCategory.VALIDATION_ERROR,
        'TypeError': ErrorCategory.VALIDATION_ERROR,
        'KeyError': ErrorCategory.VALIDATION_ERROR,
        'IndexError': ErrorCategory.VALIDATION_ERROR,

        # Misconfiguration
        'ConfigurationError': ErrorCategory.CONFIGURATION_ERROR,
        'ProviderUnavailable': ErrorCategory.NETWORK_ERROR,
    }

    KEYWORD_CATEGORIES = [
        (('timeout', 'timed out'), ErrorCategory.TIMEOUT_ERROR),
        (('rate', '429', 'throttle', 'quota'), ErrorCategory.RATE_LIMIT_ERROR),
        (('auth', 'token', 'credential', '401', '403'), ErrorCategory.AUTHENTICATION_ERROR),
        (('connection', 'network', 'dns', 'socket', 'unreachable'), ErrorCategory.NETWORK_ERROR),
        (('parse', 'decode', 'json', 'format'), ErrorCategory.PARSING_ERROR),
        (('api', 'http', 'status', 'response'), ErrorCategory.API_ERROR),
    ]

    @classmethod
    def classify_error(cls, error: Optional[BaseException]) -> ErrorCategory:
        """Classify an error based on its type, then its message."""
        if error is None:
            return ErrorCategory.UNKNOWN_ERROR

        # Message keywords take precedence for the generic provider wrapper
        error_type = type(error).__name__
        if error_type in cls.ERROR_TYPE_MAPPING and error_type != 'ProviderError':
            return cls.ERROR_TYPE_MAPPING[error_type]

        error_message = str(error).lower()
        for keywords, category in cls.KEYWORD_CATEGORIES:
            if any(keyword in error_message for keyword in keywords):
                return category

        return cls.ERROR_TYPE_MAPPING.get(error_type, ErrorCategory.UNKNOWN_ERROR)

    @classmethod
    def get_error_context(cls, error: Optional[BaseException], **extra) -> Dict[str, Any]:
        """Extract loggable context from an error."""
        context = {
            'error_type': type(error).__name__ if error is not None else None,
            'error_message': str(error) if error is not None else 'Unknown error',
            'error_category': cls.classify_error(error).value,
        }
        context.update(extra)
        return context
