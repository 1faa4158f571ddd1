"""
Static content bank used when no AI provider can generate a prompt.
"""

import random
import threading
from typing import Dict, Iterable, List, Optional, Protocol

from ..models import ContentItem
from ..logging_system import get_structured_logger, FallbackStage

# Last-resort prompt returned when every other tier came up empty
DEFAULT_CONTENT = ContentItem(
    content='今天最开心的一件事是什么？',
    category='daily',
    difficulty=1,
    tags=['日常', '快乐'],
    answer_type='text'
)


class ContentBank(Protocol):
    """Anything that can hand out a stored prompt for a category."""

    def get_random_by_category(self, category: Optional[str]) -> Optional[ContentItem]:
        ...


class PresetContentBank:
    """
    In-memory content bank seeded with preset conversation prompts.

    ``get_random_by_category(None)`` draws from every category.
    """

    def __init__(self, items: Optional[Iterable[ContentItem]] = None,
                 rng: Optional[random.Random] = None, logger=None):
        self.logger = logger or get_structured_logger("fallback_content")
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._items: Dict[str, List[ContentItem]] = {}

        for item in (self._load_preset_items() if items is None else items):
            self.add(item)

    def _load_preset_items(self) -> List[ContentItem]:
        """Load the built-in prompts for the daily, emotion, fun and future categories."""
        presets = {
            'daily': [
                ('今天最开心的一件事是什么？', 1, ['日常', '快乐', '分享']),
                ('今天吃了什么好吃的？', 1, ['日常', '美食', '分享']),
                ('今天工作/学习顺利吗？', 1, ['日常', '工作', '关心']),
                ('今天有什么新发现？', 1, ['日常', '探索', '好奇']),
                ('今天最想和对方分享的事是什么？', 1, ['日常', '分享', '互动']),
                ('今天学到了什么新东西？', 2, ['日常', '学习', '成长']),
            ],
            'emotion': [
                ('你最欣赏对方的什么品质？', 2, ['情感', '欣赏']),
                ('什么时候发现自己喜欢对方的？', 2, ['情感', '回忆']),
                ('对方做过最让你感动的事是什么？', 2, ['情感', '感动']),
                ('对方哪个小动作让你觉得可爱？', 1, ['情感', '细节']),
                ('什么时候觉得彼此最默契？', 2, ['情感', '默契']),
                ('对方说什么话会让你觉得很安心？', 2, ['情感', '安全感']),
            ],
            'fun': [
                ('如果你是一种动物，觉得自己是什么？', 1, ['有趣', '想象']),
                ('如果中了彩票，第一件事做什么？', 1, ['有趣', '假设']),
                ('最想拥有的超能力是什么？', 1, ['有趣', '想象']),
                ('如果可以穿越，想去哪个时代？', 1, ['有趣', '穿越']),
                ('最想和哪个名人吃饭？', 1, ['有趣', '名人']),
                ('如果必须只吃一种食物一年，选什么？', 1, ['有趣', '美食']),
            ],
            'future': [
                ('明年的这个时候，希望我们在做什么？', 2, ['未来', '规划']),
                ('想象一下我们退休后的生活？', 3, ['未来', '想象']),
                ('最想和对方一起实现的梦想是什么？', 2, ['未来', '梦想']),
                ('五年后希望自己是什么样子？', 2, ['未来', '成长']),
                ('最想住在哪里？描述一下理想的家。', 2, ['未来', '家']),
                ('希望未来我们一起去哪里旅行？', 1, ['未来', '旅行']),
            ],
        }

        return [
            ContentItem(content=text, category=category, difficulty=difficulty, tags=tags)
            for category, entries in presets.items()
            for text, difficulty, tags in entries
        ]

    def add(self, item: ContentItem):
        with self._lock:
            self._items.setdefault(item.category, []).append(item)

    def categories(self) -> List[str]:
        with self._lock:
            return sorted(category for category, items in self._items.items() if items)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(items) for items in self._items.values())

    def get_random_by_category(self, category: Optional[str],
                               exclude_contents: Optional[Iterable[str]] = None) -> Optional[ContentItem]:
        """
        Pick a random stored prompt.

        Args:
            category: Category to draw from, or None for any category
            exclude_contents: Prompt texts that must not be returned

        Returns:
            ContentItem, or None when nothing qualifies
        """
        excluded = set(exclude_contents or ())

        with self._lock:
            if category is None:
                pool = [item for items in self._items.values() for item in items]
            else:
                pool = list(self._items.get(category, []))

        candidates = [item for item in pool if item.content not in excluded]
        if not candidates:
            self.logger.debug("No preset content available",
                              stage=FallbackStage.CONTENT_BANK,
                              structured_data={'category': category, 'excluded': len(excluded)})
            return None

        return self._rng.choice(candidates)
