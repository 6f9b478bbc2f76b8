"""Append-only JSONL log of collection attempts."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field, ValidationError

LOGGER = logging.getLogger("gradeboard.history")


class CollectionEvent(BaseModel):
    """Structured record for one `collect` call."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stuno: str
    outcome: Literal["cached", "collected", "failed"]
    stage: str | None = Field(default=None, description="Stage that failed, if any.")
    returncode: int | None = None
    count: int | None = None
    duration_seconds: float = 0.0
    message: str | None = None


class CollectionHistory:
    """Append-only JSONL logger for collection runs."""

    def __init__(self, output_path: Path):
        self.output_path = output_path

    def log(self, event: CollectionEvent | Dict[str, Any]) -> CollectionEvent:
        """Write a single event to disk and return the normalized object."""
        if not isinstance(event, CollectionEvent):
            event = CollectionEvent(**event)
        line = event.model_dump_json()
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
        return event

    def tail(self, limit: int = 20) -> List[CollectionEvent]:
        """Return the most recent events, oldest first. Corrupt lines are skipped."""
        if not self.output_path.exists():
            return []
        events: List[CollectionEvent] = []
        for raw in self.output_path.read_text(encoding="utf-8").splitlines():
            if not raw.strip():
                continue
            try:
                events.append(CollectionEvent.model_validate(json.loads(raw)))
            except (json.JSONDecodeError, ValidationError):
                LOGGER.warning("Skipping unreadable history line in %s", self.output_path)
        return events[-limit:] if limit else events


__all__ = ["CollectionEvent", "CollectionHistory"]
