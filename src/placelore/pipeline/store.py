"""In-memory keyed stores backing each feature slot."""

from __future__ import annotations

from typing import Any, Callable, Dict, Generic, Hashable, Iterator, Protocol, TypeVar

from placelore.models import Keyword, LifeHop, RelatedCity, TimelineEvent

R = TypeVar("R")
K = TypeVar("K", bound=Hashable)


class RecordSink(Protocol[R]):
    """Anything progressive emission can append records to."""

    def upsert(self, record: R) -> bool:
        """Insert the record unless its key is already present."""


class KeyedAppendStore(Generic[K, R]):
    """Ordered collection with insert-if-absent semantics.

    ``all()`` recomputes ordering from current contents every call. With no
    ``order_by`` the order is insertion order; ``max_items`` caps the store
    and further inserts are ignored.
    """

    def __init__(
        self,
        key: Callable[[R], K],
        *,
        order_by: Callable[[R], Any] | None = None,
        max_items: int | None = None,
    ) -> None:
        self._key = key
        self._order_by = order_by
        self._max_items = max_items
        self._items: Dict[K, R] = {}

    def upsert(self, record: R) -> bool:
        key = self._key(record)
        if key in self._items:
            return False
        if self._max_items is not None and len(self._items) >= self._max_items:
            return False
        self._items[key] = record
        return True

    def get(self, key: K) -> R | None:
        return self._items.get(key)

    def all(self) -> list[R]:
        items = list(self._items.values())
        if self._order_by is not None:
            # sorted() is stable: equal sort keys keep insertion order
            items = sorted(items, key=self._order_by)
        return items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[R]:
        return iter(self.all())


def _casefold_key(value: str) -> str:
    return value.strip().lower()


def timeline_store() -> KeyedAppendStore[str, TimelineEvent]:
    return KeyedAppendStore(lambda event: event.id, order_by=lambda event: event.date)


def keyword_store(max_words: int = 60) -> KeyedAppendStore[str, Keyword]:
    return KeyedAppendStore(lambda keyword: _casefold_key(keyword.word), max_items=max_words)


def life_hop_store() -> KeyedAppendStore[int, LifeHop]:
    # Hops may revisit a city, so the sequence position is the key.
    return KeyedAppendStore(lambda hop: hop.order, order_by=lambda hop: hop.order)


def related_city_store(max_items: int | None = None) -> KeyedAppendStore[str, RelatedCity]:
    return KeyedAppendStore(lambda city: _casefold_key(city.name), max_items=max_items)
