"""
In-memory search history.

Keeps the most recent searches, newest first, bounded to a fixed number of
items. Re-running a search replaces its earlier entry instead of adding a
duplicate.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .models import QueryKind

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class HistoryItem:
    """One recorded search."""
    id: str
    query: str
    kind: QueryKind
    network: str
    timestamp: float
    result_count: int
    successful: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "kind": self.kind.value,
            "network": self.network,
            "timestamp": self.timestamp,
            "result_count": self.result_count,
            "successful": self.successful,
        }


class SearchHistory:
    """Bounded, newest-first store of past searches."""

    MIN_SUGGESTION_LENGTH: int = 2

    def __init__(self, max_items: int = 100, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the history store.

        Args:
            max_items: Maximum number of items kept
            clock: Wall clock in seconds (injectable for tests)
        """
        if max_items <= 0:
            raise ValueError(f"max_items must be positive, got {max_items}")
        self.max_items = max_items
        self._clock = clock
        self._items: list[HistoryItem] = []

    def __len__(self) -> int:
        return len(self._items)

    @staticmethod
    def _same_search(item: HistoryItem, query: str, kind: QueryKind, network: str) -> bool:
        return item.query.lower() == query.lower() and item.kind == kind and item.network == network

    def add_search(
        self,
        query: str,
        kind: QueryKind,
        network: str,
        result_count: int,
        successful: bool,
    ) -> HistoryItem:
        """Record a search, replacing an earlier entry for the same query."""
        query = query.strip()
        self._items = [i for i in self._items if not self._same_search(i, query, kind, network)]

        item = HistoryItem(
            id=uuid.uuid4().hex,
            query=query,
            kind=kind,
            network=network,
            timestamp=self._clock(),
            result_count=result_count,
            successful=successful,
        )
        self._items.insert(0, item)

        if len(self._items) > self.max_items:
            del self._items[self.max_items:]

        logger.debug(f"Recorded search {query} ({kind.value}, {network}), {len(self._items)} item(s) in history")
        return item

    def get_history(
        self,
        limit: int | None = None,
        network: str | None = None,
        kind: QueryKind | None = None,
        successful_only: bool = False,
    ) -> list[HistoryItem]:
        """Return recorded searches, newest first, optionally filtered."""
        items = [
            item for item in self._items
            if (network is None or item.network == network)
            and (kind is None or item.kind == kind)
            and (not successful_only or item.successful)
        ]
        return items[:limit] if limit is not None else items

    def get_suggestions(
        self,
        partial_query: str,
        limit: int = 5,
        network: str | None = None,
        kind: QueryKind | None = None,
    ) -> list[HistoryItem]:
        """
        Suggest past searches containing ``partial_query``.

        Exact matches rank first, then prefix matches, then any other match;
        ties are broken by recency.
        """
        needle = (partial_query or "").strip().lower()
        if len(needle) < self.MIN_SUGGESTION_LENGTH:
            return []

        def rank(item: HistoryItem) -> int:
            query = item.query.lower()
            if query == needle:
                return 0
            if query.startswith(needle):
                return 1
            return 2

        candidates = [
            item for item in self.get_history(network=network, kind=kind)
            if needle in item.query.lower()
        ]
        # Stable sort keeps newest-first order within a rank
        candidates.sort(key=rank)
        return candidates[:limit]

    def remove_search(self, item_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.id != item_id]
        return len(self._items) < before

    def clear(self) -> None:
        self._items.clear()

    def clear_network(self, network: str) -> int:
        """Remove every item recorded on ``network``; returns the number removed."""
        before = len(self._items)
        self._items = [item for item in self._items if item.network != network]
        return before - len(self._items)

    def get_statistics(self, network: str | None = None) -> dict[str, Any]:
        """
        Summarize the history.

        Returns:
            Dictionary with totals, success rate, per-kind counts and the
            number of searches in the last 24 hours
        """
        items = self.get_history(network=network)
        total = len(items)
        successful = sum(1 for item in items if item.successful)
        cutoff = self._clock() - SECONDS_PER_DAY

        by_kind: dict[str, int] = {}
        for item in items:
            by_kind[item.kind.value] = by_kind.get(item.kind.value, 0) + 1

        return {
            "total_searches": total,
            "successful_searches": successful,
            "failed_searches": total - successful,
            "success_rate": successful / total if total else 0.0,
            "by_kind": by_kind,
            "recent_searches": sum(1 for item in items if item.timestamp >= cutoff),
        }
