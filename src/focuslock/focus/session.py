"""Record of a finished (or interrupted) timer session."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from focuslock.focus.timer import TimerMode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """A single focus or break session.

    Sessions are immutable: the recorder builds a finalized copy with
    ``finalize()`` and hands that to the store.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    duration_minutes: int = Field(default=0, ge=0)
    label: str = ""
    category: str = ""
    was_interrupted: bool = False
    mode: TimerMode = TimerMode.FOCUS

    @model_validator(mode="after")
    def _check_times(self) -> Session:
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self

    @property
    def is_completed(self) -> bool:
        return (
            self.end_time is not None
            and self.end_time > self.start_time
            and self.duration_minutes > 0
        )

    @property
    def formatted_duration(self) -> str:
        if self.duration_minutes >= 60:
            return f"{self.duration_minutes // 60}h {self.duration_minutes % 60}m"
        return f"{self.duration_minutes}m"

    def finalize(
        self,
        duration_minutes: int,
        was_interrupted: bool,
        end_time: datetime | None = None,
    ) -> Session:
        """Return the finished copy of this session."""
        end_time = end_time or utcnow()
        return self.model_copy(
            update={
                "end_time": max(end_time, self.start_time),
                "duration_minutes": max(0, duration_minutes),
                "was_interrupted": was_interrupted,
            }
        )

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to database dictionary."""
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_minutes": self.duration_minutes,
            "label": self.label,
            "category": self.category,
            "was_interrupted": self.was_interrupted,
            "mode": self.mode.value,
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Session:
        """Create from database row."""
        return cls(
            id=row["id"],
            start_time=row["start_time"],
            end_time=row.get("end_time"),
            duration_minutes=row.get("duration_minutes") or 0,
            label=row.get("label") or "",
            category=row.get("category") or "",
            was_interrupted=bool(row.get("was_interrupted")),
            mode=row.get("mode") or TimerMode.FOCUS.value,
        )
