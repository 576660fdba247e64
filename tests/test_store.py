from __future__ import annotations

from datetime import date

from placelore.models import Keyword, LifeHop, RelatedCity, TimelineEvent
from placelore.pipeline.store import KeyedAppendStore, keyword_store, life_hop_store, related_city_store, timeline_store


def _event(event_id: str, when: date, title: str = "event") -> TimelineEvent:
    return TimelineEvent(id=event_id, date=when, title=title, description="")


def test_upsert_is_idempotent_and_first_insert_wins() -> None:
    store = timeline_store()
    assert store.upsert(_event("1", date(1900, 1, 1), title="first"))
    assert not store.upsert(_event("1", date(1800, 1, 1), title="second"))
    assert len(store) == 1
    assert store.get("1").title == "first"


def test_timeline_store_orders_by_date_after_out_of_order_inserts() -> None:
    store = timeline_store()
    store.upsert(_event("b", date(1950, 6, 1)))
    store.upsert(_event("a", date(1066, 10, 14)))
    store.upsert(_event("c", date(1789, 7, 14)))
    store.upsert(_event("d", date(1789, 7, 14)))
    assert [event.id for event in store.all()] == ["a", "c", "d", "b"]
    store.upsert(_event("e", date(1000, 1, 1)))
    assert store.all()[0].id == "e"


def test_keyword_store_caps_and_ignores_case() -> None:
    store = keyword_store(max_words=2)
    assert store.upsert(Keyword(word="Seine", weight=10))
    assert not store.upsert(Keyword(word="SEINE ", weight=99))
    assert store.upsert(Keyword(word="Louvre", weight=5))
    assert not store.upsert(Keyword(word="Montmartre", weight=5))
    assert [keyword.word for keyword in store.all()] == ["Seine", "Louvre"]


def test_life_hop_store_allows_revisits() -> None:
    store = life_hop_store()
    store.upsert(LifeHop(city="Munich", order=2))
    store.upsert(LifeHop(city="Ulm", order=0))
    store.upsert(LifeHop(city="Munich", order=1))
    assert [(hop.order, hop.city) for hop in store.all()] == [(0, "Ulm"), (1, "Munich"), (2, "Munich")]


def test_related_city_store_keeps_insertion_order() -> None:
    store = related_city_store(max_items=10)
    store.upsert(RelatedCity(name="Rome"))
    store.upsert(RelatedCity(name="Athens"))
    store.upsert(RelatedCity(name="rome"))
    assert [city.name for city in store] == ["Rome", "Athens"]
    assert "athens" in store


def test_clear_empties_store() -> None:
    store: KeyedAppendStore[str, str] = KeyedAppendStore(lambda value: value)
    store.upsert("x")
    store.clear()
    assert len(store) == 0
    assert store.all() == []
    assert store.upsert("x")
