"""
Recurrence data model.

Provides:
- Frequency and weekday lookup tables shared by the parser and generator
- RecurrenceOptions: structured input for building a rule string
- RecurrenceRule: the parsed, validated form of a rule string
- OccurrenceWindow / RecurrencePattern: engine outputs
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


RecurrenceFrequency = Literal["daily", "weekly", "monthly", "yearly"]

FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "YEARLY")

# Index 0 is Monday, matching datetime.weekday()
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"

# Returned by describe when a stored rule cannot be parsed ("custom repeat")
CUSTOM_RECURRENCE_LABEL = "Lặp lại tùy chỉnh"


def format_until(value: datetime) -> str:
    """
    Format an UNTIL bound in UTC.

    Naive datetimes are taken to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(UNTIL_FORMAT)


class RecurrenceOptions(BaseModel):
    """Structured options used to generate a rule string."""

    model_config = ConfigDict(frozen=True)

    frequency: RecurrenceFrequency = Field(
        ...,
        description="Step unit of the series",
    )
    interval: int = Field(
        default=1,
        ge=1,
        description="Repeat every N units",
    )
    until: Optional[datetime] = Field(
        None,
        description="Inclusive upper bound on occurrences",
    )
    count: Optional[int] = Field(
        None,
        ge=1,
        description="Total number of occurrences in the series",
    )
    byweekday: list[int] = Field(
        default_factory=list,
        description="Weekday indices, 0 = Monday ... 6 = Sunday",
    )


@dataclass(frozen=True)
class RecurrenceRule:
    """A fully validated recurrence rule."""

    frequency: str
    interval: int = 1
    count: Optional[int] = None
    until: Optional[datetime] = None
    byday: tuple[str, ...] = ()

    @property
    def byweekday(self) -> tuple[int, ...]:
        """BYDAY tokens as weekday indices (0 = Monday)."""
        return tuple(WEEKDAY_CODES.index(code) for code in self.byday)

    def to_rrule_string(self) -> str:
        """Serialize to the canonical semicolon-separated form."""
        parts = [f"FREQ={self.frequency}", f"INTERVAL={self.interval}"]
        if self.until is not None:
            parts.append(f"UNTIL={format_until(self.until)}")
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.byday:
            parts.append("BYDAY=" + ",".join(self.byday))
        return ";".join(parts)


@dataclass
class OccurrenceWindow:
    """A single occurrence of a recurring event with its end time."""

    start: datetime
    end: Optional[datetime]
    recurrence_id: str


@dataclass(frozen=True)
class RecurrencePattern:
    """A pre-built rule offered to users when creating an event."""

    label: str
    value: str
