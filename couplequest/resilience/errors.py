"""
Exceptions raised inside the resilience layer.
"""

from typing import Optional


class ResilienceError(Exception):
    """Base class for resilience layer errors."""
    pass


class ConfigurationError(ResilienceError):
    """Invalid breaker or fallback configuration, raised at construction time."""
    pass


class ProviderError(ResilienceError):
    """An AI provider call failed."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderUnavailable(ResilienceError):
    """A provider was skipped because its availability or health gate failed."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider} unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class ExhaustedFallback(ResilienceError):
    """No tier above the hard-coded default produced a usable result."""
    pass
