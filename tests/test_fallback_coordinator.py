"""
Tests for the tiered fallback coordinator.
"""

import random
import pytest
from types import SimpleNamespace
from unittest.mock import Mock

from couplequest.ai.providers import AIProvider
from couplequest.models import ContentItem, HistoryEntry, Sentiment, SourceTier
from couplequest.resilience.circuit_breaker import CircuitState, HealthRegistry
from couplequest.resilience.config import ResilienceConfig
from couplequest.resilience.errors import ConfigurationError, ProviderError
from couplequest.resilience.fallback_content import DEFAULT_CONTENT, PresetContentBank
from couplequest.resilience.fallback_coordinator import FallbackCoordinator


class FakeProvider(AIProvider):
    """Scriptable provider; a reply that is an exception gets raised."""

    def __init__(self, reply="一起做过最疯狂的事是什么？", sentiment=None, available=True):
        self.reply = reply
        self.sentiment = sentiment if sentiment is not None else {
            'sentiment': 'positive', 'score': 80, 'keywords': ['开心']
        }
        self.available = available
        self.generate_calls = 0
        self.sentiment_calls = 0
        self.availability_checks = 0

    def generate(self, context, history):
        self.generate_calls += 1
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply

    def analyze_sentiment(self, text):
        self.sentiment_calls += 1
        if isinstance(self.sentiment, Exception):
            raise self.sentiment
        return self.sentiment

    def is_available(self):
        self.availability_checks += 1
        if isinstance(self.available, Exception):
            raise self.available
        return self.available


def make_registry(primary_threshold=3, secondary_threshold=5):
    registry = HealthRegistry()
    registry.register("primary", failure_threshold=primary_threshold,
                      recovery_timeout=60.0, auto_recovery=False)
    registry.register("secondary", failure_threshold=secondary_threshold,
                      recovery_timeout=30.0, auto_recovery=False)
    return registry


class TestGeneration:
    """Test the prompt generation chain."""

    def setup_method(self):
        self.registry = make_registry()
        self.primary = FakeProvider(reply="今天想一起做什么？")
        self.secondary = FakeProvider(reply="最近一次大笑是因为什么？")
        self.bank = PresetContentBank(rng=random.Random(7))

    def teardown_method(self):
        self.registry.stop_all()

    def make_coordinator(self, **kwargs):
        options = {
            'registry': self.registry,
            'primary': self.primary,
            'secondary': self.secondary,
            'content_bank': self.bank,
        }
        options.update(kwargs)
        return FallbackCoordinator(**options)

    def test_primary_success(self):
        result = self.make_coordinator().generate()

        assert result.source_tier == SourceTier.PRIMARY
        assert result.content == "今天想一起做什么？"
        assert result.category == 'ai_generated'
        assert result.tags == ['AI生成']
        assert self.registry.get("primary").stats.successful_requests == 1
        assert self.secondary.generate_calls == 0

    def test_primary_reply_is_stripped(self):
        self.primary.reply = "  你好吗？\n"

        result = self.make_coordinator().generate()

        assert result.content == "你好吗？"

    def test_secondary_after_primary_failure(self):
        self.primary.reply = ProviderError("upstream 503", provider="primary", status_code=503)

        result = self.make_coordinator().generate()

        assert result.source_tier == SourceTier.SECONDARY
        assert result.content == "最近一次大笑是因为什么？"
        assert result.difficulty == 2
        assert result.tags == ['本地生成', '备用']
        assert self.registry.get("primary").stats.failed_requests == 1
        assert self.registry.get("secondary").stats.successful_requests == 1

    def test_empty_primary_reply_counts_as_failure(self):
        self.primary.reply = "   "

        result = self.make_coordinator().generate()

        assert result.source_tier == SourceTier.SECONDARY
        assert self.registry.get("primary").failure_count == 1

    def test_unavailable_secondary_is_skipped_without_recording(self):
        self.primary.reply = RuntimeError("connection reset")
        self.secondary.available = False

        result = self.make_coordinator().generate()

        assert result.source_tier == SourceTier.CONTENT_BANK
        assert self.secondary.generate_calls == 0
        assert self.registry.get("secondary").stats.total_requests == 0
        assert self.registry.get("primary").stats.failed_requests == 1

    def test_raising_availability_probe_counts_as_unavailable(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.available = ConnectionError("refused")

        result = self.make_coordinator().generate()

        assert result.source_tier == SourceTier.CONTENT_BANK
        assert self.registry.get("secondary").stats.total_requests == 0

    def test_open_secondary_circuit_is_skipped(self):
        self.primary.reply = RuntimeError("boom")
        for _ in range(5):
            self.registry.mark_failure("secondary")
        assert self.registry.get("secondary").state == CircuitState.OPEN

        result = self.make_coordinator().generate()

        assert result.source_tier == SourceTier.CONTENT_BANK
        assert self.secondary.generate_calls == 0
        assert self.secondary.availability_checks == 1

    def test_primary_is_called_even_when_circuit_open(self):
        for _ in range(3):
            self.registry.mark_failure("primary")

        result = self.make_coordinator().generate()

        assert self.primary.generate_calls == 1
        assert result.source_tier == SourceTier.PRIMARY
        assert self.registry.get("primary").failure_count == 2

    def test_no_secondary_configured(self):
        self.primary.reply = RuntimeError("boom")

        result = self.make_coordinator(secondary=None).generate()

        assert result.source_tier == SourceTier.CONTENT_BANK

    def test_default_when_everything_fails(self):
        self.primary.reply = RuntimeError("primary down")
        self.secondary.reply = RuntimeError("secondary down")
        empty_bank = PresetContentBank(items=[])

        result = self.make_coordinator(content_bank=empty_bank).generate()

        assert result.source_tier == SourceTier.DEFAULT
        assert result.content == DEFAULT_CONTENT.content
        assert result.category == 'daily'
        assert result.tags == ['日常', '快乐']
        assert self.registry.get("primary").failure_count == 1
        assert self.registry.get("secondary").failure_count == 1

    def test_default_without_content_bank(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.reply = RuntimeError("boom")

        result = self.make_coordinator(content_bank=None).generate()

        assert result.source_tier == SourceTier.DEFAULT

    def test_content_bank_error_falls_through_to_default(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.available = False
        broken_bank = Mock()
        broken_bank.get_random_by_category.side_effect = IOError("disk gone")

        result = self.make_coordinator(content_bank=broken_bank).generate()

        assert result.source_tier == SourceTier.DEFAULT

    def test_low_mood_history_selects_fun(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.reply = RuntimeError("boom")
        history = [{'sentiment_score': 30}, {'sentiment_score': 40}]

        result = self.make_coordinator().generate(history=history)

        assert result.source_tier == SourceTier.CONTENT_BANK
        assert result.category == 'fun'
        assert result.metadata['requested_category'] == 'fun'

    def test_duplicate_triggers_uncategorized_retry(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.available = False
        repeat = ContentItem('今天最开心的一件事是什么？', 'daily')
        fresh = ContentItem('最想拥有的超能力是什么？', 'fun')
        bank = Mock()
        bank.get_random_by_category.side_effect = [repeat, fresh]

        result = self.make_coordinator(content_bank=bank).generate(
            recent_texts=['今天最开心的一件事是什么'])

        assert result.content == fresh.content
        assert result.source_tier == SourceTier.CONTENT_BANK
        assert [c.args[0] for c in bank.get_random_by_category.call_args_list] == ['daily', None]

    def test_duplicate_retry_that_repeats_again_uses_default(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.available = False
        repeat = ContentItem('今天吃了什么好吃的？', 'daily')
        bank = Mock()
        bank.get_random_by_category.return_value = repeat

        result = self.make_coordinator(content_bank=bank).generate(
            recent_texts=['今天吃了什么好吃的'])

        assert result.source_tier == SourceTier.DEFAULT
        assert bank.get_random_by_category.call_count == 2

    def test_empty_category_retries_whole_bank(self):
        self.primary.reply = RuntimeError("boom")
        self.secondary.available = False
        bank = PresetContentBank(items=[ContentItem('最想和哪个名人吃饭？', 'fun')])

        result = self.make_coordinator(content_bank=bank).generate()

        assert result.source_tier == SourceTier.CONTENT_BANK
        assert result.content == '最想和哪个名人吃饭？'
        assert result.metadata['requested_category'] == 'daily'

    def test_malformed_history_rows_are_neutral(self):
        history = ["not a row", {'sentiment_score': 'high'}]

        assert FallbackCoordinator.select_category(history) == 'emotion'

    def test_primary_failures_open_its_circuit(self):
        self.primary.reply = RuntimeError("boom")
        coordinator = self.make_coordinator()

        for _ in range(3):
            coordinator.generate()

        assert self.registry.get("primary").state == CircuitState.OPEN

    def test_invalid_similarity_threshold(self):
        with pytest.raises(ConfigurationError):
            self.make_coordinator(similarity_threshold=1.5)

    def test_from_config_uses_service_names(self):
        config = ResilienceConfig()
        config.fallback.primary_service = "iflow"
        config.fallback.secondary_service = "ollama"
        config.fallback.similarity_threshold = 0.9
        registry = HealthRegistry()
        registry.register("iflow", auto_recovery=False)
        registry.register("ollama", auto_recovery=False)

        coordinator = FallbackCoordinator.from_config(
            config, registry, self.primary, self.secondary, content_bank=self.bank)
        coordinator.generate()

        assert coordinator.similarity_threshold == 0.9
        assert registry.get("iflow").stats.successful_requests == 1


class TestCategorySelection:
    """Test mood-based category selection."""

    @pytest.mark.parametrize("scores,expected", [
        ([], 'daily'),
        ([30, 40], 'fun'),
        ([49], 'fun'),
        ([50], 'emotion'),
        ([70], 'emotion'),
        ([71], 'future'),
        ([90, 80], 'future'),
        ([None], 'emotion'),
        ([None, 0], 'fun'),
    ])
    def test_select_category(self, scores, expected):
        history = [HistoryEntry(sentiment_score=score) for score in scores]
        assert FallbackCoordinator.select_category(history) == expected

    def test_dict_rows(self):
        history = [{'sentiment_score': 85, 'keywords': ['旅行']}, {'sentiment_score': 95}]
        assert FallbackCoordinator.select_category(history) == 'future'

    def test_attribute_rows(self):
        history = [SimpleNamespace(sentiment_score=20, keywords=['加班']),
                   SimpleNamespace(sentiment_score=35.5)]

        assert FallbackCoordinator.select_category(history) == 'fun'

    def test_attribute_row_conversion(self):
        entry = HistoryEntry.from_value(SimpleNamespace(sentiment_score='88', keywords=('旅行', '海边')))

        assert entry.sentiment_score == 88.0
        assert entry.keywords == ['旅行', '海边']

    def test_attribute_row_without_score_is_neutral(self):
        entry = HistoryEntry.from_value(SimpleNamespace(keywords=None))

        assert entry.sentiment_score is None
        assert entry.keywords == []


class TestSentimentChain:
    """Test the sentiment analysis chain."""

    def setup_method(self):
        self.registry = make_registry()
        self.primary = FakeProvider(sentiment={'sentiment': 'positive', 'score': 82, 'keywords': ['旅行']})
        self.secondary = FakeProvider(sentiment={'sentiment': 'NEGATIVE', 'sentiment_score': 25.4})
        self.coordinator = FallbackCoordinator(self.registry, self.primary, self.secondary)

    def teardown_method(self):
        self.registry.stop_all()

    def test_primary_result(self):
        result = self.coordinator.analyze_sentiment("周末去旅行很开心")

        assert result.source_tier == SourceTier.PRIMARY
        assert result.sentiment == Sentiment.POSITIVE
        assert result.score == 82
        assert result.keywords == ['旅行']

    def test_secondary_result_normalizes_reply(self):
        self.primary.sentiment = RuntimeError("boom")

        result = self.coordinator.analyze_sentiment("今天有点累，心情不好")

        assert result.source_tier == SourceTier.SECONDARY
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.score == 25
        assert result.keywords == ['今天有点累', '心情不好']

    def test_malformed_reply_counts_as_failure(self):
        self.primary.sentiment = {'mood': 'great'}

        result = self.coordinator.analyze_sentiment("很开心")

        assert result.source_tier == SourceTier.SECONDARY
        assert self.registry.get("primary").failure_count == 1

    def test_unknown_label_counts_as_failure(self):
        self.primary.sentiment = {'sentiment': 'ecstatic', 'score': 99}

        result = self.coordinator.analyze_sentiment("很开心")

        assert result.source_tier == SourceTier.SECONDARY

    def test_keyword_fallback(self):
        self.primary.sentiment = RuntimeError("boom")
        self.secondary.sentiment = RuntimeError("boom")

        result = self.coordinator.analyze_sentiment("很开心很快乐")

        assert result.source_tier == SourceTier.DEFAULT
        assert result.sentiment == Sentiment.POSITIVE
        assert result.score == 70

    def test_keyword_fallback_skips_unavailable_secondary(self):
        self.primary.sentiment = RuntimeError("boom")
        self.secondary.available = False

        result = self.coordinator.analyze_sentiment("很难过很伤心")

        assert result.source_tier == SourceTier.DEFAULT
        assert result.sentiment == Sentiment.NEGATIVE
        assert result.score == 30
        assert self.secondary.sentiment_calls == 0

    def test_empty_text_returns_none_at_keyword_tier(self):
        self.primary.sentiment = RuntimeError("boom")
        self.secondary.sentiment = RuntimeError("boom")

        assert self.coordinator.analyze_sentiment("") is None
        assert self.coordinator.analyze_sentiment("   ") is None
