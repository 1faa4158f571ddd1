"""
Keyword-based sentiment analysis, the last tier of the sentiment fallback chain.
"""

import re
from typing import Dict, List, Optional

from ..models import Sentiment, SentimentResult, SourceTier

POSITIVE_WORDS = ['开心', '快乐', '幸福', '爱', '喜欢', '美好', '棒', '好', '满意',
                  '激动', '兴奋', '愉快', '甜蜜']
NEGATIVE_WORDS = ['难过', '伤心', '生气', '讨厌', '糟糕', '差', '不好', '失望',
                  '痛苦', '烦恼', '焦虑', '沮丧']

_KEYWORD_SPLIT_RE = re.compile(r'[，。！？；：“”‘’"\'（）《》【】、,.!?;:()\s]+')


class FallbackSentimentAnalyzer:
    """Deterministic sentiment scorer that never calls out to a provider."""

    def __init__(self, positive_words: Optional[List[str]] = None,
                 negative_words: Optional[List[str]] = None,
                 max_keywords: int = 5):
        self.positive_words = list(positive_words or POSITIVE_WORDS)
        self.negative_words = list(negative_words or NEGATIVE_WORDS)
        self.max_keywords = max_keywords

    def analyze(self, text: Optional[str]) -> Optional[SentimentResult]:
        """
        Score text by counting which sentiment keywords it contains.

        Args:
            text: Text to analyze

        Returns:
            SentimentResult, or None for empty or whitespace-only text
        """
        if not text:
            return None

        clean_text = text.strip()
        if not clean_text:
            return None

        positive_count = sum(1 for word in self.positive_words if word in clean_text)
        negative_count = sum(1 for word in self.negative_words if word in clean_text)

        sentiment = Sentiment.NEUTRAL
        score = 50

        if positive_count > negative_count:
            sentiment = Sentiment.POSITIVE
            score = min(50 + positive_count * 10, 100)
        elif negative_count > positive_count:
            sentiment = Sentiment.NEGATIVE
            score = max(50 - negative_count * 10, 0)

        return SentimentResult(
            sentiment=sentiment,
            score=score,
            keywords=self.extract_keywords(clean_text),
            source_tier=SourceTier.DEFAULT
        )

    def extract_keywords(self, text: Optional[str], max_keywords: Optional[int] = None) -> List[str]:
        """First tokens longer than one character, punctuation treated as whitespace."""
        if not text:
            return []

        limit = self.max_keywords if max_keywords is None else max_keywords
        words = [word for word in _KEYWORD_SPLIT_RE.split(text) if len(word) > 1]
        return words[:limit]

    def get_sentiment_keywords(self) -> Dict[str, List[str]]:
        return {
            'positive_words': list(self.positive_words),
            'negative_words': list(self.negative_words),
        }
