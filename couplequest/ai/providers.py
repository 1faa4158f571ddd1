"""
Capability interface implemented by every AI provider adapter.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import HistoryEntry


class AIProvider(ABC):
    """
    Narrow interface the fallback coordinator talks to.

    ``generate`` and ``analyze_sentiment`` raise on failure; ``is_available``
    is a liveness probe and must never raise.
    """

    name: str = "provider"

    @abstractmethod
    def generate(self, context: Dict[str, Any], history: List[HistoryEntry]) -> str:
        """Generate one conversation prompt."""

    @abstractmethod
    def analyze_sentiment(self, text: str) -> Dict[str, Any]:
        """Classify text; returns a dict with 'sentiment' and 'score'."""

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap liveness probe."""


def build_simple_prompt(history: Optional[List[HistoryEntry]]) -> str:
    """Short generation prompt mentioning up to five recent topics."""
    base_prompt = '为一对情侣生成一个温馨有趣的日常问题。'

    if history:
        recent_topics = [keyword
                         for entry in history[-3:]
                         for keyword in HistoryEntry.from_value(entry).keywords][:5]
        if recent_topics:
            return f"{base_prompt} 最近关心的话题：{'、'.join(recent_topics)}。问题要温馨有趣，控制在20字以内。"

    return base_prompt


_JSON_OBJECT_RE = re.compile(r'\{[\s\S]*\}')


def extract_json_object(reply: str) -> Dict[str, Any]:
    """Pull the first JSON object out of a model reply."""
    match = _JSON_OBJECT_RE.search(reply or '')
    if not match:
        raise ValueError("Invalid response format: no JSON object in reply")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Invalid response format: JSON reply is not an object")
    return parsed
