from __future__ import annotations

import datetime
import threading
from typing import List, Protocol

from pydantic import BaseModel, Field


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ParseUsage(BaseModel):
    user_id: str
    bank: str
    parsed_at: datetime.datetime = Field(default_factory=_utcnow)


class UsageTracker(Protocol):
    """Conteo de parseos por usuario. El almacenamiento real vive afuera."""

    def count_by_user(self, user_id: str, start: datetime.datetime, end: datetime.datetime) -> int:
        ...

    def record(self, usage: ParseUsage) -> None:
        ...


class InMemoryUsageTracker:
    """Implementación en memoria (CLI y tests)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.records: List[ParseUsage] = []

    def count_by_user(self, user_id: str, start: datetime.datetime, end: datetime.datetime) -> int:
        with self._lock:
            return sum(1 for r in self.records if r.user_id == user_id and start <= r.parsed_at <= end)

    def record(self, usage: ParseUsage) -> None:
        with self._lock:
            self.records.append(usage)


def month_start(now: datetime.datetime) -> datetime.datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
