"""
Text processing modules: similarity and keyword sentiment.
"""

from .text_similarity import TextSimilarity
from .sentiment_analyzer import FallbackSentimentAnalyzer, POSITIVE_WORDS, NEGATIVE_WORDS

__all__ = ['TextSimilarity', 'FallbackSentimentAnalyzer', 'POSITIVE_WORDS', 'NEGATIVE_WORDS']
