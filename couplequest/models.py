"""
Data models for the CoupleQuest AI service layer.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from enum import Enum


class SourceTier(Enum):
    """Fallback tier that produced a result."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    CONTENT_BANK = "content_bank"
    DEFAULT = "default"


class Sentiment(Enum):
    """Sentiment labels."""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


@dataclass
class ContentItem:
    """A conversation prompt, either generated or taken from the content bank."""
    content: str
    category: str = "daily"
    difficulty: int = 1
    tags: List[str] = field(default_factory=list)
    answer_type: str = "text"


@dataclass
class HistoryEntry:
    """One past answer of the couple, as far as the fallback chain cares."""
    sentiment_score: Optional[float] = None
    keywords: List[str] = field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> 'HistoryEntry':
        """Accept a HistoryEntry, a plain dict row or an object with matching attributes."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            score = value.get('sentiment_score')
            keywords = value.get('keywords')
        elif hasattr(value, 'sentiment_score') or hasattr(value, 'keywords'):
            score = getattr(value, 'sentiment_score', None)
            keywords = getattr(value, 'keywords', None)
        else:
            raise TypeError(f"Unsupported history entry: {type(value).__name__}")

        return cls(
            sentiment_score=float(score) if score is not None else None,
            keywords=list(keywords or [])
        )


@dataclass
class GenerationResult:
    """Generated prompt along with the tier it came from."""
    content: str
    source_tier: SourceTier
    category: str = "daily"
    difficulty: int = 1
    tags: List[str] = field(default_factory=list)
    answer_type: str = "text"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_item(cls, item: ContentItem, source_tier: SourceTier,
                  **metadata) -> 'GenerationResult':
        return cls(
            content=item.content,
            source_tier=source_tier,
            category=item.category,
            difficulty=item.difficulty,
            tags=list(item.tags),
            answer_type=item.answer_type,
            metadata=metadata
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'source': self.source_tier.value,
            'category': self.category,
            'difficulty': self.difficulty,
            'tags': list(self.tags),
            'answer_type': self.answer_type,
            'metadata': dict(self.metadata),
        }


@dataclass
class SentimentResult:
    """Sentiment classification of a short text."""
    sentiment: Sentiment
    score: int
    keywords: List[str] = field(default_factory=list)
    source_tier: SourceTier = SourceTier.DEFAULT

    def __post_init__(self):
        if isinstance(self.sentiment, str):
            self.sentiment = Sentiment(self.sentiment.lower())
        self.score = max(0, min(100, int(round(self.score))))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sentiment': self.sentiment.value,
            'sentiment_score': self.score,
            'keywords': list(self.keywords),
            'source': self.source_tier.value,
        }
