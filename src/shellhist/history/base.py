"""
Base class for history backends.

History is the capability interface a line editor talks to. A backend
persists HistoryItems, hands out identifiers, and answers SearchQuerys.
Every failure is raised as a StorageError subclass; backends never retry.

Why ABC over Protocol?
    - ABCs allow shared implementation (count_all) in the base class
    - We want nominal typing: a backend declares that it is a History
"""

from abc import ABC, abstractmethod
from typing import Callable

from shellhist.schema import (
    HistoryItem,
    HistoryItemId,
    HistorySessionId,
    SearchDirection,
    SearchQuery,
)


class History(ABC):
    """
    Abstract base class for history stores.

    Contract:
        - save assigns an id to new items and upserts items that have one
        - load/update/delete raise HistoryNotFoundError for absent ids
        - search returns a materialized list ordered by id in the
          query's direction; count ignores the query's limit
    """

    @abstractmethod
    def save(self, item: HistoryItem) -> HistoryItem:
        """
        Persist an item.

        Args:
            item: Item to insert (id is None) or replace (id is set)

        Returns:
            The item with its id populated
        """
        ...

    @abstractmethod
    def load(self, item_id: HistoryItemId) -> HistoryItem:
        """Fetch exactly one item by id."""
        ...

    @abstractmethod
    def search(self, query: SearchQuery) -> list[HistoryItem]:
        """Return every item matching the query, in scan order."""
        ...

    @abstractmethod
    def count(self, query: SearchQuery) -> int:
        """Return how many items the query matches, ignoring its limit."""
        ...

    @abstractmethod
    def update(
        self,
        item_id: HistoryItemId,
        updater: Callable[[HistoryItem], HistoryItem],
    ) -> None:
        """
        Replace an item with ``updater(item)``, keeping its id.

        The load and the save happen as one read-modify-write.
        """
        ...

    @abstractmethod
    def delete(self, item_id: HistoryItemId) -> None:
        """Remove an item."""
        ...

    @abstractmethod
    def new_session_id(self) -> HistorySessionId:
        """Allocate a session id greater than any the store has seen."""
        ...

    @abstractmethod
    def sync(self) -> None:
        """Flush buffered state to durable storage."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every item."""
        ...

    def count_all(self) -> int:
        """Number of items in the store."""
        return self.count(SearchQuery.everything(SearchDirection.FORWARD))
