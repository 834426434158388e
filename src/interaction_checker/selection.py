"""The ordered, deduplicated set of items chosen for the next check."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from interaction_checker.models import Category, SelectedItem

logger = logging.getLogger(__name__)


class Selection:
    """Insertion-ordered selection with one entry per (id, category).

    Only this class mutates the item list. Order is kept for display; the
    check request does not depend on it beyond order within a category.
    """

    def __init__(self) -> None:
        self._items: list[SelectedItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[SelectedItem]:
        return iter(self._items)

    def __getitem__(self, index: int) -> SelectedItem:
        return self._items[index]

    @property
    def items(self) -> tuple[SelectedItem, ...]:
        """Snapshot of the current selection."""
        return tuple(self._items)

    def contains(self, item_id: str, category: Category) -> bool:
        return any(item.key == (item_id, category) for item in self._items)

    def count(self, category: Category) -> int:
        return sum(1 for item in self._items if item.category is category)

    def add(self, item: SelectedItem) -> bool:
        """Append item unless an entry with the same (id, category) exists.

        Returns:
            True if the selection changed. Duplicates are ignored silently.
        """
        if self.contains(item.id, item.category):
            logger.debug("Ignoring duplicate %s %s", item.category.value, item.id)
            return False
        self._items.append(item)
        return True

    def remove(self, index: int) -> SelectedItem:
        """Remove and return the item at index; later items shift down.

        Raises:
            IndexError: If index is out of range (negative indexes included).
        """
        if not 0 <= index < len(self._items):
            raise IndexError(f"No selected item at position {index} (have {len(self._items)})")
        return self._items.pop(index)

    def clear(self) -> None:
        self._items.clear()
