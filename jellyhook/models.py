"""Typed records shared by the stores and the dispatch engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class TriggerType(str, Enum):
    EVENT = "event"
    SCHEDULED = "scheduled"


class ContentKind(str, Enum):
    MOVIE = "movie"
    SERIES = "series"


@dataclass
class Webhook:
    id: int
    name: str
    url: str
    trigger_type: TriggerType
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    payload: Any = field(default_factory=dict)
    event_type: str | None = None
    enabled: bool = True
    last_triggered: datetime | None = None
    created_at: datetime | None = None
    # Set when stored headers/payload could not be parsed; delivery is refused
    config_error: str | None = None

    @property
    def http_method(self) -> str:
        return (self.method or "POST").upper()


@dataclass
class ContentStat:
    title: str
    unique_viewers: int = 0
    total_minutes: float = 0.0


@dataclass
class UsageStats:
    active_users: int = 0
    total_plays: int = 0
    total_hours: float = 0.0


@dataclass
class Period:
    start: date
    end: date
    label: str


@dataclass
class SummaryDigest:
    period: Period
    top_movies: list[ContentStat] = field(default_factory=list)
    top_series: list[ContentStat] = field(default_factory=list)
    stats: UsageStats = field(default_factory=UsageStats)
