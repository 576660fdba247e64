"""Service layer orchestrations for PlaceLore."""

from .features import (
    ConnectionsOrchestrator,
    OverviewOrchestrator,
    PersonPathOrchestrator,
    TimelineOrchestrator,
    WordCloudOrchestrator,
)
from .orchestrator import FeatureOrchestrator, FeatureResult, SlotSnapshot, SlotState
from .prompts import PromptBuilder, PromptBuilderConfig
from .session import CityResolver, MapSession, SelectionMode, SelectionSnapshot, build_session

__all__ = [
    "CityResolver",
    "ConnectionsOrchestrator",
    "FeatureOrchestrator",
    "FeatureResult",
    "MapSession",
    "OverviewOrchestrator",
    "PersonPathOrchestrator",
    "PromptBuilder",
    "PromptBuilderConfig",
    "SelectionMode",
    "SelectionSnapshot",
    "SlotSnapshot",
    "SlotState",
    "TimelineOrchestrator",
    "WordCloudOrchestrator",
    "build_session",
]
