#!/usr/bin/env python3
"""Tests for the in-memory search history."""

import pytest

from zetaflow.history import SearchHistory
from zetaflow.models import QueryKind

TX_A = "0x" + "ab" * 32
TX_B = "0x" + "ac" * 32
ADDRESS = "0x" + "ab" * 20


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(clock):
    return SearchHistory(max_items=3, clock=clock)


class TestSearchHistory:
    """Tests for SearchHistory."""

    def test_newest_first(self, history, clock):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        clock.now += 1
        history.add_search(ADDRESS, QueryKind.ADDRESS, "testnet", 0, False)

        assert [item.query for item in history.get_history()] == [ADDRESS, TX_A]

    def test_repeat_search_replaces_entry(self, history, clock):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 0, False)
        history.add_search(ADDRESS, QueryKind.ADDRESS, "testnet", 0, False)
        history.add_search(TX_A.upper().replace("0X", "0x"), QueryKind.TRANSACTION_ID, "testnet", 1, True)

        items = history.get_history()
        assert len(items) == 2
        assert items[0].successful

    def test_same_query_on_other_network_is_separate(self, history):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "mainnet", 0, False)

        assert len(history) == 2

    def test_bounded(self, history):
        for i in range(5):
            history.add_search(f"0x{i:064x}", QueryKind.TRANSACTION_ID, "testnet", 1, True)

        items = history.get_history()
        assert len(items) == 3
        assert items[0].query == f"0x{4:064x}"

    def test_filters(self, history):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        history.add_search(ADDRESS, QueryKind.ADDRESS, "testnet", 0, False)
        history.add_search(TX_B, QueryKind.TRANSACTION_ID, "mainnet", 1, True)

        assert len(history.get_history(network="testnet")) == 2
        assert [i.query for i in history.get_history(kind=QueryKind.ADDRESS)] == [ADDRESS]
        assert len(history.get_history(successful_only=True)) == 2
        assert len(history.get_history(limit=1)) == 1

    def test_suggestions_rank_exact_then_prefix(self, history, clock):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        clock.now += 1
        history.add_search(ADDRESS, QueryKind.ADDRESS, "testnet", 1, True)

        suggestions = history.get_suggestions(ADDRESS)
        assert [s.query for s in suggestions] == [ADDRESS, TX_A]

        prefix = history.get_suggestions("0xab")
        # Both are prefix matches, so recency decides
        assert [s.query for s in prefix] == [ADDRESS, TX_A]

    def test_suggestions_ignore_short_input(self, history):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)

        assert history.get_suggestions("0") == []
        assert history.get_suggestions("") == []

    def test_substring_match_ranks_after_prefix(self, history):
        history.add_search("0x" + "ff" * 20, QueryKind.ADDRESS, "testnet", 1, True)
        history.add_search("0x" + "cd" * 19 + "ff", QueryKind.ADDRESS, "testnet", 1, True)

        suggestions = history.get_suggestions("0xff")
        assert [s.query for s in suggestions] == ["0x" + "ff" * 20]

        contains = history.get_suggestions("ffff")
        assert len(contains) == 1

    def test_remove_and_clear(self, history):
        item = history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        history.add_search(TX_B, QueryKind.TRANSACTION_ID, "mainnet", 1, True)

        assert history.remove_search(item.id)
        assert not history.remove_search(item.id)
        assert history.clear_network("mainnet") == 1
        assert len(history) == 0

        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        history.clear()
        assert len(history) == 0

    def test_statistics(self, history, clock):
        history.add_search(TX_A, QueryKind.TRANSACTION_ID, "testnet", 1, True)
        history.add_search(ADDRESS, QueryKind.ADDRESS, "testnet", 0, False)
        clock.now += 2 * 24 * 60 * 60
        history.add_search(TX_B, QueryKind.TRANSACTION_ID, "testnet", 1, True)

        stats = history.get_statistics()
        assert stats["total_searches"] == 3
        assert stats["successful_searches"] == 2
        assert stats["failed_searches"] == 1
        assert stats["success_rate"] == pytest.approx(2 / 3)
        assert stats["by_kind"] == {"transaction-id": 2, "address": 1}
        assert stats["recent_searches"] == 1

    def test_statistics_empty(self, history):
        assert history.get_statistics()["success_rate"] == 0.0

    def test_invalid_max_items(self):
        with pytest.raises(ValueError):
            SearchHistory(max_items=0)
