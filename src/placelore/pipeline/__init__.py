"""Cancellation, progressive emission and keyed stores."""

from .cancellation import CancellationNotice, CancellationToken, FetchCancelController, SlotHandle
from .emitter import EmitterConfig, ProgressiveEmitter
from .store import (
    KeyedAppendStore,
    RecordSink,
    keyword_store,
    life_hop_store,
    related_city_store,
    timeline_store,
)

__all__ = [
    "CancellationNotice",
    "CancellationToken",
    "EmitterConfig",
    "FetchCancelController",
    "KeyedAppendStore",
    "ProgressiveEmitter",
    "RecordSink",
    "SlotHandle",
    "keyword_store",
    "life_hop_store",
    "related_city_store",
    "timeline_store",
]
