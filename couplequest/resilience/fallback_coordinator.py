"""
Tiered fallback for prompt generation and sentiment analysis.

Generation walks primary provider -> secondary provider -> content bank ->
hard-coded default; sentiment analysis walks primary -> secondary -> keyword
analyzer. Every tier failure is caught and logged here, so callers always get
a result object whose ``source_tier`` tells how degraded it is.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..ai.providers import AIProvider
from ..logging_system import get_structured_logger, ErrorClassifier, FallbackStage
from ..models import (ContentItem, GenerationResult, HistoryEntry, Sentiment,
                      SentimentResult, SourceTier)
from ..processors import FallbackSentimentAnalyzer, TextSimilarity
from .circuit_breaker import HealthRegistry
from .config import ResilienceConfig
from .errors import ConfigurationError, ExhaustedFallback, ProviderError, ProviderUnavailable
from .fallback_content import DEFAULT_CONTENT, ContentBank

NEUTRAL_SCORE = 50


class FallbackCoordinator:
    """
    Orchestrates the provider fallback chain against a HealthRegistry.
    """

    def __init__(self,
                 registry: HealthRegistry,
                 primary: AIProvider,
                 secondary: Optional[AIProvider] = None,
                 content_bank: Optional[ContentBank] = None,
                 sentiment_analyzer: Optional[FallbackSentimentAnalyzer] = None,
                 similarity: Optional[TextSimilarity] = None,
                 similarity_threshold: float = 0.8,
                 primary_service: str = "primary",
                 secondary_service: str = "secondary",
                 logger=None):
        """
        Initialize coordinator.

        Args:
            registry: Health registry holding the providers' circuit breakers
            primary: First provider to try
            secondary: Provider tried when the primary fails
            content_bank: Source of stored prompts for generation
            sentiment_analyzer: Keyword analyzer, last tier of sentiment analysis
            similarity: Duplicate detector for content bank candidates
            similarity_threshold: Similarity above which a candidate is a repeat
            primary_service: Registry name of the primary provider
            secondary_service: Registry name of the secondary provider
            logger: Structured logger instance

        Raises:
            ConfigurationError: If the similarity threshold is outside [0, 1]
        """
        if not 0 <= similarity_threshold <= 1:
            raise ConfigurationError("similarity_threshold must be between 0 and 1")

        self.registry = registry
        self.primary = primary
        self.secondary = secondary
        self.content_bank = content_bank
        self.sentiment_analyzer = sentiment_analyzer or FallbackSentimentAnalyzer()
        self.similarity = similarity or TextSimilarity(similarity_threshold)
        self.similarity_threshold = similarity_threshold
        self.primary_service = primary_service
        self.secondary_service = secondary_service
        self.logger = logger or get_structured_logger("fallback_coordinator")

    @classmethod
    def from_config(cls, config: ResilienceConfig, registry: HealthRegistry,
                    primary: AIProvider, secondary: Optional[AIProvider] = None,
                    **kwargs) -> 'FallbackCoordinator':
        return cls(
            registry=registry,
            primary=primary,
            secondary=secondary,
            similarity_threshold=config.fallback.similarity_threshold,
            primary_service=config.fallback.primary_service,
            secondary_service=config.fallback.secondary_service,
            **kwargs
        )

    # Generation

    def generate(self, context: Optional[Dict[str, Any]] = None,
                 history: Optional[Iterable[Any]] = None,
                 recent_texts: Optional[Iterable[str]] = None) -> GenerationResult:
        """
        Produce a conversation prompt, degrading tier by tier.

        Args:
            context: Caller context forwarded to the providers
            history: Past answers (HistoryEntry or dicts with sentiment_score/keywords)
            recent_texts: Recently used prompts that content bank picks must not repeat

        Returns:
            GenerationResult tagged with the tier that produced it
        """
        context = context or {}
        entries = self._normalize_history(history)
        recent = [text for text in (recent_texts or []) if text]

        succeeded, content = self._call_provider(
            self.primary_service, FallbackStage.PRIMARY, "generate",
            lambda: self._require_text(self.primary.generate(context, entries), self.primary_service))
        if succeeded:
            return GenerationResult(content=content, source_tier=SourceTier.PRIMARY,
                                    category='ai_generated', tags=['AI生成'])

        if self._secondary_admitted("generate"):
            succeeded, content = self._call_provider(
                self.secondary_service, FallbackStage.SECONDARY, "generate",
                lambda: self._require_text(self.secondary.generate(context, entries), self.secondary_service))
            if succeeded:
                return GenerationResult(content=content, source_tier=SourceTier.SECONDARY,
                                        category='ai_generated', difficulty=2, tags=['本地生成', '备用'])

        result = self._from_content_bank(entries, recent)
        if result is not None:
            return result

        self.logger.warning("All generation tiers exhausted, returning default content",
                            stage=FallbackStage.DEFAULT)
        return GenerationResult.from_item(DEFAULT_CONTENT, SourceTier.DEFAULT)

    @staticmethod
    def select_category(history: Iterable[Any]) -> str:
        """
        Pick a content bank category from the mood of recent answers.

        Low mean sentiment asks for something fun, high mean sentiment can talk
        about the future, anything in between stays on feelings.
        """
        entries = FallbackCoordinator._normalize_history(history)
        if not entries:
            return 'daily'

        scores = [NEUTRAL_SCORE if entry.sentiment_score is None else entry.sentiment_score
                  for entry in entries]
        average = sum(scores) / len(scores)

        if average < 50:
            return 'fun'
        if average > 70:
            return 'future'
        return 'emotion'

    def _from_content_bank(self, history: List[HistoryEntry],
                           recent_texts: List[str]) -> Optional[GenerationResult]:
        if self.content_bank is None:
            return None

        category = self.select_category(history)
        try:
            item = self._pick_content(category, recent_texts)
        except ExhaustedFallback as e:
            self.logger.info(f"Content bank exhausted: {e}",
                             stage=FallbackStage.CONTENT_BANK,
                             structured_data={'category': category})
            return None
        except Exception as e:
            self.logger.error(f"Content bank lookup failed: {e}",
                              error_category=ErrorClassifier.classify_error(e),
                              stage=FallbackStage.CONTENT_BANK,
                              structured_data=ErrorClassifier.get_error_context(e, category=category))
            return None

        self.logger.info("Using content bank prompt",
                         stage=FallbackStage.CONTENT_BANK,
                         structured_data={'requested_category': category, 'category': item.category})
        return GenerationResult.from_item(item, SourceTier.CONTENT_BANK, requested_category=category)

    def _pick_content(self, category: str, recent_texts: List[str]) -> ContentItem:
        """Category pick first, then one retry across the whole bank."""
        item = self.content_bank.get_random_by_category(category)
        if item is not None and not self._is_repeat(item, recent_texts):
            return item

        self.logger.info("Retrying content bank without category",
                         stage=FallbackStage.CONTENT_BANK,
                         structured_data={
                             'category': category,
                             'reason': 'duplicate' if item is not None else 'empty_category'
                         })

        item = self.content_bank.get_random_by_category(None)
        if item is None:
            raise ExhaustedFallback("No content available in any category")
        if self._is_repeat(item, recent_texts):
            raise ExhaustedFallback("Only recently used content available")
        return item

    def _is_repeat(self, item: ContentItem, recent_texts: List[str]) -> bool:
        return self.similarity.is_duplicate(item.content, recent_texts, self.similarity_threshold)

    # Sentiment analysis

    def analyze_sentiment(self, text: Optional[str]) -> Optional[SentimentResult]:
        """
        Classify text, degrading from providers to keyword analysis.

        Returns:
            SentimentResult tagged with its tier, or None when text is empty
            and no provider could classify it
        """
        succeeded, result = self._call_provider(
            self.primary_service, FallbackStage.PRIMARY, "analyze_sentiment",
            lambda: self._parse_sentiment(self.primary.analyze_sentiment(text), text, SourceTier.PRIMARY))
        if succeeded:
            return result

        if self._secondary_admitted("analyze_sentiment"):
            succeeded, result = self._call_provider(
                self.secondary_service, FallbackStage.SECONDARY, "analyze_sentiment",
                lambda: self._parse_sentiment(self.secondary.analyze_sentiment(text), text, SourceTier.SECONDARY))
            if succeeded:
                return result

        self.logger.info("Using keyword sentiment analysis as fallback", stage=FallbackStage.DEFAULT)
        return self.sentiment_analyzer.analyze(text)

    def _parse_sentiment(self, reply: Any, text: Optional[str], tier: SourceTier) -> SentimentResult:
        if not isinstance(reply, dict):
            raise ValueError(f"Malformed sentiment reply: {type(reply).__name__}")

        sentiment = reply.get('sentiment')
        score = reply.get('score', reply.get('sentiment_score'))
        if sentiment is None or score is None:
            raise ValueError("Sentiment reply is missing 'sentiment' or 'score'")

        keywords = reply.get('keywords')
        if not isinstance(keywords, list):
            keywords = self.sentiment_analyzer.extract_keywords(text)

        return SentimentResult(
            sentiment=Sentiment(str(sentiment).lower()),
            score=float(score),
            keywords=[str(keyword) for keyword in keywords],
            source_tier=tier
        )

    # Shared tier plumbing

    def _call_provider(self, service_name: str, stage: FallbackStage, operation: str,
                       call: Callable[[], Any]) -> Tuple[bool, Any]:
        """Run one provider attempt and record its outcome in the registry."""
        try:
            result = call()
        except Exception as e:
            self.registry.mark_failure(service_name, e)
            self.logger.warning(f"{service_name} provider failed during {operation}",
                                stage=stage,
                                error_category=ErrorClassifier.classify_error(e),
                                structured_data=ErrorClassifier.get_error_context(
                                    e, service=service_name, tier=stage.value, operation=operation))
            return False, None

        self.registry.mark_success(service_name)
        self.logger.info(f"{service_name} provider succeeded during {operation}",
                         stage=stage,
                         structured_data={'service': service_name, 'operation': operation})
        return True, result

    def _secondary_admitted(self, operation: str) -> bool:
        """Both the live probe and the breaker must let the secondary through."""
        if self.secondary is None:
            return False

        try:
            available = bool(self.secondary.is_available())
        except Exception as e:
            self.logger.warning(f"Availability probe for {self.secondary_service} raised: {e}",
                                stage=FallbackStage.SECONDARY,
                                error_category=ErrorClassifier.classify_error(e))
            available = False

        if not available:
            self._log_skip(ProviderUnavailable(self.secondary_service, "availability probe failed"), operation)
            return False

        if not self.registry.is_healthy(self.secondary_service):
            self._log_skip(ProviderUnavailable(self.secondary_service, "circuit breaker is open"), operation)
            return False

        return True

    def _log_skip(self, skip: ProviderUnavailable, operation: str):
        self.logger.info(f"Skipping secondary provider: {skip}",
                         stage=FallbackStage.SECONDARY,
                         structured_data={
                             'service': skip.provider,
                             'reason': skip.reason,
                             'operation': operation
                         })

    @staticmethod
    def _require_text(reply: Any, service_name: str) -> str:
        if not isinstance(reply, str) or not reply.strip():
            raise ProviderError(f"Empty response from {service_name}", provider=service_name)
        return reply.strip()

    @staticmethod
    def _normalize_history(history: Optional[Iterable[Any]]) -> List[HistoryEntry]:
        entries = []
        for value in history or []:
            try:
                entries.append(HistoryEntry.from_value(value))
            except (TypeError, ValueError):
                entries.append(HistoryEntry())
        return entries
