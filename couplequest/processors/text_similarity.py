"""
Edit-distance based text similarity for detecting near-duplicate prompts.
"""

import re
from typing import Iterable, Optional

# Punctuation stripped before comparison (full- and half-width variants)
_PUNCTUATION_RE = re.compile(r'[？?。！!，,]')


class TextSimilarity:
    """Normalizes text and scores it by Levenshtein distance."""

    def __init__(self, similarity_threshold: float = 0.8):
        """
        Initialize similarity checker.

        Args:
            similarity_threshold: Similarity above which two texts count as duplicates
        """
        self.similarity_threshold = similarity_threshold

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        """Strip common punctuation, trim and lower-case."""
        if not text:
            return ''
        return _PUNCTUATION_RE.sub('', text).strip().lower()

    @staticmethod
    def levenshtein(a: str, b: str) -> int:
        """Minimum number of single-character edits turning a into b."""
        if a == b:
            return 0
        if not a:
            return len(b)
        if not b:
            return len(a)

        # Keep the shorter string in the inner loop
        if len(a) < len(b):
            a, b = b, a

        previous = list(range(len(b) + 1))
        for i, char_a in enumerate(a, 1):
            current = [i]
            for j, char_b in enumerate(b, 1):
                cost = 0 if char_a == char_b else 1
                current.append(min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost
                ))
            previous = current

        return previous[-1]

    def similarity(self, text1: Optional[str], text2: Optional[str]) -> float:
        """
        Similarity in [0, 1]: 1 - distance / longer length.

        Two empty inputs are identical (1.0); exactly one empty input scores 0.0.
        """
        if not text1 and not text2:
            return 1.0
        if not text1 or not text2:
            return 0.0

        norm1 = self.normalize(text1)
        norm2 = self.normalize(text2)

        longest = max(len(norm1), len(norm2))
        if longest == 0:
            return 1.0

        distance = self.levenshtein(norm1, norm2)
        return max(0.0, min(1.0, 1.0 - distance / longest))

    def is_duplicate(self, candidate: Optional[str], recent_texts: Optional[Iterable[str]],
                     threshold: Optional[float] = None) -> bool:
        """True if candidate matches or closely resembles any recent text."""
        if not recent_texts:
            return False

        threshold = self.similarity_threshold if threshold is None else threshold
        normalized_candidate = self.normalize(candidate)

        for recent in recent_texts:
            if normalized_candidate == self.normalize(recent):
                return True
            if self.similarity(candidate, recent) > threshold:
                return True

        return False
