"""
Tests for the preset content bank.
"""

import random

from couplequest.models import ContentItem
from couplequest.resilience.fallback_content import DEFAULT_CONTENT, PresetContentBank


class TestPresetContentBank:
    """Test category lookup and exclusions."""

    def setup_method(self):
        self.bank = PresetContentBank(rng=random.Random(42))

    def test_preset_categories(self):
        assert self.bank.categories() == ['daily', 'emotion', 'fun', 'future']
        assert len(self.bank) == 24

    def test_pick_by_category(self):
        for category in self.bank.categories():
            item = self.bank.get_random_by_category(category)
            assert item.category == category

    def test_pick_from_any_category(self):
        item = self.bank.get_random_by_category(None)
        assert item.category in self.bank.categories()

    def test_unknown_category(self):
        assert self.bank.get_random_by_category('nonexistent') is None

    def test_exclusions(self):
        bank = PresetContentBank(items=[
            ContentItem('问题一', 'daily'),
            ContentItem('问题二', 'daily'),
        ])

        item = bank.get_random_by_category('daily', exclude_contents=['问题一'])
        assert item.content == '问题二'
        assert bank.get_random_by_category('daily', exclude_contents=['问题一', '问题二']) is None

    def test_empty_bank(self):
        bank = PresetContentBank(items=[])

        assert len(bank) == 0
        assert bank.categories() == []
        assert bank.get_random_by_category(None) is None

    def test_add(self):
        bank = PresetContentBank(items=[])
        bank.add(ContentItem('周末想去哪里？', 'weekend', tags=['周末']))

        assert bank.categories() == ['weekend']
        assert bank.get_random_by_category('weekend').tags == ['周末']

    def test_seeded_rng_is_deterministic(self):
        first = PresetContentBank(rng=random.Random(3))
        second = PresetContentBank(rng=random.Random(3))

        picks_first = [first.get_random_by_category('fun').content for _ in range(5)]
        picks_second = [second.get_random_by_category('fun').content for _ in range(5)]

        assert picks_first == picks_second

    def test_default_content(self):
        assert DEFAULT_CONTENT.content == '今天最开心的一件事是什么？'
        assert DEFAULT_CONTENT.category == 'daily'
        assert DEFAULT_CONTENT.difficulty == 1
        assert DEFAULT_CONTENT.tags == ['日常', '快乐']
        assert DEFAULT_CONTENT.answer_type == 'text'
