"""
Configuration management for resilience features.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field, asdict

from ..config import Config
from ..logging_system import get_structured_logger, ErrorCategory
from .errors import ConfigurationError


@dataclass
class CircuitBreakerConfig:
    """Configuration for one circuit breaker."""
    failure_threshold: int = 3
    recovery_timeout: float = 60.0
    monitoring_period: float = 300.0
    auto_recovery: bool = True


@dataclass
class FallbackConfig:
    """Configuration for the fallback coordinator."""
    similarity_threshold: float = 0.8
    primary_service: str = "primary"
    secondary_service: str = "secondary"


@dataclass
class ResilienceConfig:
    """Main configuration for all resilience features."""
    # Stricter for the primary provider, more lenient for the local secondary
    primary: CircuitBreakerConfig = field(default_factory=lambda: CircuitBreakerConfig(
        failure_threshold=3, recovery_timeout=60.0, monitoring_period=300.0))
    secondary: CircuitBreakerConfig = field(default_factory=lambda: CircuitBreakerConfig(
        failure_threshold=5, recovery_timeout=30.0, monitoring_period=180.0))
    fallback: FallbackConfig = field(default_factory=FallbackConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResilienceConfig':
        config = cls()
        if 'primary' in data:
            config.primary = CircuitBreakerConfig(**data['primary'])
        if 'secondary' in data:
            config.secondary = CircuitBreakerConfig(**data['secondary'])
        if 'fallback' in data:
            config.fallback = FallbackConfig(**data['fallback'])
        return config


def validate_breaker_settings(prefix: str, failure_threshold: Any,
                              recovery_timeout: Any, monitoring_period: Any) -> List[str]:
    """Return human-readable issues with one breaker's settings."""
    issues = []

    if isinstance(failure_threshold, bool) or not isinstance(failure_threshold, int) \
            or failure_threshold < 1:
        issues.append(f"{prefix}failure_threshold must be an integer >= 1")
    if isinstance(recovery_timeout, bool) or not isinstance(recovery_timeout, (int, float)) \
            or recovery_timeout <= 0:
        issues.append(f"{prefix}recovery_timeout must be > 0")
    if isinstance(monitoring_period, bool) or not isinstance(monitoring_period, (int, float)) \
            or monitoring_period < 0:
        issues.append(f"{prefix}monitoring_period must be >= 0")

    return issues


class ResilienceConfigManager:
    """
    Manages resilience configuration loading, validation, and updates.
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        self.config_file = Path(config_file) if config_file else Config.RESILIENCE_CONFIG_FILE
        self.logger = get_structured_logger("resilience_config")
        self._config = None
        self._load_config()

    def _load_config(self):
        """Load configuration from file or create default."""
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                self._config = ResilienceConfig.from_dict(data)
            except (OSError, ValueError, TypeError) as e:
                self.logger.error(f"Error loading resilience config: {e}",
                                  error_category=ErrorCategory.CONFIGURATION_ERROR,
                                  structured_data={'config_file': str(self.config_file)})
                self._config = ResilienceConfig()
        else:
            self._config = ResilienceConfig()

    def save_config(self):
        """Save current configuration to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(asdict(self._config), f, indent=2, ensure_ascii=False)

    def get_config(self) -> ResilienceConfig:
        """Get current configuration."""
        return self._config

    def update_config(self, updates: Dict[str, Any]):
        """Update configuration with dotted-path keys, e.g. 'primary.failure_threshold'."""
        def update_nested(obj, key_path: List[str], value: Any):
            if len(key_path) == 1:
                if not hasattr(obj, key_path[0]):
                    raise ConfigurationError(f"Unknown resilience setting: {key_path[0]}")
                setattr(obj, key_path[0], value)
            else:
                current = getattr(obj, key_path[0])
                update_nested(current, key_path[1:], value)

        for key, value in updates.items():
            update_nested(self._config, key.split('.'), value)

    def reset_to_defaults(self):
        """Reset configuration to default values."""
        self._config = ResilienceConfig()

    def validate_config(self) -> List[str]:
        """Validate current configuration and return list of issues."""
        config = self._config
        issues = []

        for name in ('primary', 'secondary'):
            breaker = getattr(config, name)
            issues.extend(validate_breaker_settings(
                f"{name}.", breaker.failure_threshold,
                breaker.recovery_timeout, breaker.monitoring_period))

        if not (0 <= config.fallback.similarity_threshold <= 1):
            issues.append("fallback.similarity_threshold must be between 0 and 1")
        if config.fallback.primary_service == config.fallback.secondary_service:
            issues.append("fallback.primary_service and fallback.secondary_service must differ")

        return issues

    def validate_or_raise(self) -> ResilienceConfig:
        """Fail fast on an invalid configuration."""
        issues = self.validate_config()
        if issues:
            raise ConfigurationError("; ".join(issues))
        return self._config

    def get_environment_overrides(self) -> Dict[str, Any]:
        """
        Get configuration overrides from environment variables.

        Raises:
            ConfigurationError: If a variable is set to a non-numeric value
        """
        overrides = {}

        def read(variable: str, key: str, parse):
            value = os.getenv(variable)
            if not value:
                return
            try:
                overrides[key] = parse(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {variable}: {value!r}") from e

        for name in ('primary', 'secondary'):
            prefix = f"RESILIENCE_{name.upper()}_"
            read(prefix + "FAILURE_THRESHOLD", f"{name}.failure_threshold", int)
            read(prefix + "RECOVERY_TIMEOUT", f"{name}.recovery_timeout", float)
            read(prefix + "MONITORING_PERIOD", f"{name}.monitoring_period", float)

        read("RESILIENCE_SIMILARITY_THRESHOLD", "fallback.similarity_threshold", float)

        return overrides

    def apply_environment_overrides(self):
        """Apply environment variable overrides to configuration."""
        overrides = self.get_environment_overrides()
        if overrides:
            self.update_config(overrides)
            self.logger.info("Applied resilience environment overrides",
                             structured_data={'overrides': sorted(overrides)})


def load_resilience_config(config_file: Optional[Union[str, Path]] = None) -> ResilienceConfig:
    """Load, override from the environment and validate the resilience configuration."""
    manager = ResilienceConfigManager(config_file)
    manager.apply_environment_overrides()
    return manager.validate_or_raise()
