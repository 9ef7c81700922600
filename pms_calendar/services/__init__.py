"""
Calendar services.
"""

from pms_calendar.services.recurrence import (
    count_occurrences_in_range,
    describe_recurrence,
    expand_occurrence_windows,
    expand_recurrence,
    format_recurrence_id,
    generate_rrule,
    get_common_patterns,
    get_next_occurrence,
    is_valid_rrule,
    parse_recurrence_rule,
    validate_rrule,
)

__all__ = [
    "count_occurrences_in_range",
    "describe_recurrence",
    "expand_occurrence_windows",
    "expand_recurrence",
    "format_recurrence_id",
    "generate_rrule",
    "get_common_patterns",
    "get_next_occurrence",
    "is_valid_rrule",
    "parse_recurrence_rule",
    "validate_rrule",
]
