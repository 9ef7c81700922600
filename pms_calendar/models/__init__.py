"""
Data models for the recurrence engine.
"""

from pms_calendar.models.recurrence import (
    CUSTOM_RECURRENCE_LABEL,
    FREQUENCIES,
    WEEKDAY_CODES,
    WEEKDAY_NAMES,
    OccurrenceWindow,
    RecurrenceFrequency,
    RecurrenceOptions,
    RecurrencePattern,
    RecurrenceRule,
    format_until,
)

__all__ = [
    "CUSTOM_RECURRENCE_LABEL",
    "FREQUENCIES",
    "WEEKDAY_CODES",
    "WEEKDAY_NAMES",
    "OccurrenceWindow",
    "RecurrenceFrequency",
    "RecurrenceOptions",
    "RecurrencePattern",
    "RecurrenceRule",
    "format_until",
]
