from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from .content import ContentItem
from .utils import date_sort_key


class SiteIndex(Sequence[ContentItem]):
    """Items of one build, newest first.

    Sorted by date descending, ties broken by identifier ascending. Built
    once per build and never mutated afterwards.
    """

    def __init__(self, items: Iterable[ContentItem]):
        by_identifier: dict[str, ContentItem] = {}
        for item in items:
            if item.identifier in by_identifier:
                raise ValueError(f"Duplicate content identifier: {item.identifier}")
            by_identifier[item.identifier] = item
        ordered = sorted(by_identifier.values(), key=lambda i: i.identifier)
        ordered.sort(key=lambda i: date_sort_key(i.date), reverse=True)
        self._items: tuple[ContentItem, ...] = tuple(ordered)
        self._by_identifier = by_identifier

    def __iter__(self) -> Iterator[ContentItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, item):
        return self._items[item]

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return item in self._by_identifier
        return any(existing is item for existing in self._items)

    def get(self, identifier: str) -> ContentItem | None:
        return self._by_identifier.get(identifier)

    def identifiers(self) -> list[str]:
        return [item.identifier for item in self._items]

    def latest(self, count: int = 5) -> list[ContentItem]:
        return list(self._items[:count])

    def with_category(self, name: str) -> list[ContentItem]:
        return [item for item in self._items if name in item.categories]

    def categories(self) -> dict[str, list[ContentItem]]:
        """Map each category to its items, in index order.

        Categories appear in the order they are first seen.
        """
        mapping: dict[str, list[ContentItem]] = {}
        for item in self._items:
            for category in item.categories:
                mapping.setdefault(category, []).append(item)
        return mapping

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"SiteIndex({len(self._items)} items)"
