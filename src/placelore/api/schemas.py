"""Pydantic models for the PlaceLore API."""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from placelore.services.orchestrator import SlotSnapshot
from placelore.services.session import SelectionSnapshot

SelectionModeName = Literal["explore", "connections"]


class ChatMessageModel(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    content: str


class SearchRequest(BaseModel):
    prompt: Optional[str] = Field(default=None, description="Single user prompt")
    messages: Optional[List[ChatMessageModel]] = Field(default=None, description="Full chat history, overrides prompt")
    model: Optional[str] = Field(default=None, description="Override the configured model")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    search_type: Literal["fast", "pro", "auto"] = "pro"
    search_context_size: Optional[Literal["low", "medium", "high"]] = None


class SearchResultModel(BaseModel):
    title: str
    url: str
    date: Optional[str] = None
    last_updated: Optional[str] = None
    snippet: Optional[str] = None
    source: Optional[str] = None


class SearchResponse(BaseModel):
    text: str
    usage: Optional[Dict[str, Any]] = None
    search_results: List[SearchResultModel] = Field(default_factory=list)


class SelectionRequest(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    mode: SelectionModeName = "explore"


class LocateRequest(BaseModel):
    name: str = Field(..., min_length=1, description="City or place name typed by the user")
    mode: SelectionModeName = "explore"


class ShuffleRequest(BaseModel):
    mode: SelectionModeName = "explore"


class PersonPathRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Name of a famous person")


class FeatureSnapshotModel(BaseModel):
    feature: str
    state: str
    subject: Optional[str] = None
    records: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False
    updated_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, snapshot: SlotSnapshot) -> "FeatureSnapshotModel":
        return cls(
            feature=snapshot.feature,
            state=snapshot.state.value,
            subject=snapshot.subject,
            records=[_record_dict(record) for record in snapshot.records],
            error=snapshot.error,
            message=snapshot.message,
            retryable=snapshot.retryable,
            updated_at=snapshot.updated_at,
        )


class SelectionResponse(BaseModel):
    state: str
    mode: Optional[SelectionModeName] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    city: Optional[str] = None
    detailed_name: Optional[str] = None
    display_name: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    features: Dict[str, FeatureSnapshotModel] = Field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: SelectionSnapshot) -> "SelectionResponse":
        return cls(
            state=snapshot.state.value,
            mode=snapshot.mode.value if snapshot.mode else None,
            lat=snapshot.point.lat if snapshot.point else None,
            lon=snapshot.point.lon if snapshot.point else None,
            city=snapshot.city,
            detailed_name=snapshot.detailed_name,
            display_name=snapshot.display_name,
            error=snapshot.error,
            message=snapshot.message,
            features={name: FeatureSnapshotModel.from_snapshot(item) for name, item in snapshot.features.items()},
        )


def _record_dict(record: object) -> Dict[str, Any]:
    if is_dataclass(record) and not isinstance(record, type):
        data = asdict(record)
        # sequences of sources come back as tuples
        return {key: list(value) if isinstance(value, tuple) else value for key, value in data.items()}
    if isinstance(record, dict):
        return dict(record)
    return {"value": record}
