"""
Resilience layer for the AI providers.

- Circuit breaker per provider with health tracking and auto-recovery
- Health registry aggregating breaker status
- Fallback coordinator walking primary -> secondary -> content bank -> default
- Static content bank of preset prompts
- Configuration with validation and environment overrides
"""

from .errors import (
    ResilienceError, ConfigurationError, ProviderError, ProviderUnavailable, ExhaustedFallback
)

from .config import (
    CircuitBreakerConfig, FallbackConfig, ResilienceConfig, ResilienceConfigManager,
    load_resilience_config
)

from .circuit_breaker import (
    CircuitState, CircuitStats, StateTransition, CircuitBreaker, HealthRegistry,
    build_default_registry, STATE_HISTORY_LIMIT
)

from .fallback_content import ContentBank, PresetContentBank, DEFAULT_CONTENT

from .fallback_coordinator import FallbackCoordinator

__all__ = [
    # Errors
    'ResilienceError', 'ConfigurationError', 'ProviderError', 'ProviderUnavailable',
    'ExhaustedFallback',

    # Configuration
    'CircuitBreakerConfig', 'FallbackConfig', 'ResilienceConfig', 'ResilienceConfigManager',
    'load_resilience_config',

    # Circuit Breaker
    'CircuitState', 'CircuitStats', 'StateTransition', 'CircuitBreaker', 'HealthRegistry',
    'build_default_registry', 'STATE_HISTORY_LIMIT',

    # Fallback Content
    'ContentBank', 'PresetContentBank', 'DEFAULT_CONTENT',

    # Coordination
    'FallbackCoordinator',
]
