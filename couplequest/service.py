"""
Composition root wiring configuration, providers, registry and coordinator.
"""

from typing import Any, Dict, Iterable, Optional

from .ai import AIProvider, IFlowClient, OllamaClient
from .config import Config
from .logging_system import get_structured_logger, ErrorCategory, FallbackStage
from .models import GenerationResult, SentimentResult
from .resilience import (
    ConfigurationError, ContentBank, FallbackCoordinator, HealthRegistry, PresetContentBank,
    ResilienceConfig, build_default_registry, load_resilience_config
)


class AIService:
    """
    Owns the health registry for the process lifetime and exposes the two
    fallback-protected operations. Call ``shutdown()`` (or use it as a context
    manager) to stop the breakers' auto-recovery timers.
    """

    def __init__(self,
                 config: Optional[ResilienceConfig] = None,
                 primary: Optional[AIProvider] = None,
                 secondary: Optional[AIProvider] = None,
                 content_bank: Optional[ContentBank] = None,
                 registry: Optional[HealthRegistry] = None):
        """
        Raises:
            ConfigurationError: If provider timeouts or resilience settings are invalid
        """
        self.logger = get_structured_logger("ai_service")

        issues = Config.validate_config()
        if issues:
            raise ConfigurationError("; ".join(issues))

        missing = Config.get_missing_credentials()
        if missing and primary is None:
            self.logger.warning("Primary provider credentials missing, primary tier will fail",
                                stage=FallbackStage.PRIMARY,
                                error_category=ErrorCategory.AUTHENTICATION_ERROR,
                                structured_data={'missing': missing})

        self.config = config if config is not None else load_resilience_config()
        self.registry = registry if registry is not None else build_default_registry(self.config)
        self.coordinator = FallbackCoordinator.from_config(
            self.config,
            registry=self.registry,
            primary=primary if primary is not None else IFlowClient(),
            secondary=secondary if secondary is not None else OllamaClient(),
            content_bank=content_bank if content_bank is not None else PresetContentBank()
        )

        self.logger.info("AI service initialized",
                         stage=FallbackStage.HEALTH,
                         structured_data={'services': sorted(self.registry.get_all_status())})

    def generate_question(self, context: Optional[Dict[str, Any]] = None,
                          history: Optional[Iterable[Any]] = None,
                          recent_texts: Optional[Iterable[str]] = None) -> GenerationResult:
        return self.coordinator.generate(context, history, recent_texts)

    def analyze_sentiment(self, text: Optional[str]) -> Optional[SentimentResult]:
        return self.coordinator.analyze_sentiment(text)

    def health(self) -> Dict[str, Any]:
        return self.registry.get_overall_health()

    def shutdown(self):
        self.registry.stop_all()
        self.logger.info("AI service stopped", stage=FallbackStage.HEALTH)

    def __enter__(self) -> 'AIService':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
