"""
Recurrence rule engine.

Turns stored recurrence rules (RFC 5545 RRULE subset: FREQ, INTERVAL,
COUNT, UNTIL, BYDAY) into concrete occurrences:
- Generates rule strings from structured options
- Validates user-supplied rules before they are persisted
- Expands a rule into occurrences within a bounded query window
- Finds the next occurrence after an instant
- Describes a rule in plain English

Uses python-dateutil for the calendar arithmetic. Every operation except
parse_recurrence_rule degrades to a fallback value on malformed rules so a
bad stored rule never breaks a calendar render.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from dateutil.rrule import (
    DAILY,
    MONTHLY,
    WEEKLY,
    YEARLY,
    FR,
    MO,
    SA,
    SU,
    TH,
    TU,
    WE,
    rrule,
)

from pms_calendar.config import get_settings
from pms_calendar.exceptions import InvalidRecurrenceRuleError
from pms_calendar.models.recurrence import (
    FREQUENCIES,
    WEEKDAY_CODES,
    WEEKDAY_NAMES,
    OccurrenceWindow,
    RecurrenceOptions,
    RecurrencePattern,
    RecurrenceRule,
)

logger = logging.getLogger(__name__)


_RULE_KEYS = frozenset({"FREQ", "INTERVAL", "COUNT", "UNTIL", "BYDAY"})

_FREQUENCY_MAP = {
    "DAILY": DAILY,
    "WEEKLY": WEEKLY,
    "MONTHLY": MONTHLY,
    "YEARLY": YEARLY,
}

_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)

_UNTIL_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d")

_POSITIVE_INT = re.compile(r"^[0-9]+$")

_UNIT_NAMES = {
    "DAILY": "day",
    "WEEKLY": "week",
    "MONTHLY": "month",
    "YEARLY": "year",
}

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


# =============================================================================
# Parsing
# =============================================================================


def _parse_positive_int(key: str, value: str, rrule_string: str) -> int:
    if not _POSITIVE_INT.match(value) or int(value) < 1:
        raise InvalidRecurrenceRuleError(
            f"{key} must be a positive integer, got {value!r}", rrule_string
        )
    return int(value)


def _parse_until(value: str, rrule_string: str) -> datetime:
    for fmt in _UNTIL_FORMATS:
        try:
            parsed = datetime.strptime(value.upper(), fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc)
    raise InvalidRecurrenceRuleError(
        f"UNTIL is not a valid date-time: {value!r}", rrule_string
    )


def _parse_byday(value: str, rrule_string: str) -> tuple[str, ...]:
    codes: list[str] = []
    for token in value.split(","):
        code = token.strip().upper()
        if code not in WEEKDAY_CODES:
            raise InvalidRecurrenceRuleError(
                f"Unknown BYDAY weekday: {token!r}", rrule_string
            )
        if code not in codes:
            codes.append(code)
    return tuple(codes)


def _extract_rule_body(rrule_string: str) -> str:
    """Strip the optional RRULE: prefix and drop DTSTART lines."""
    body = None
    for line in rrule_string.strip().splitlines():
        line = line.strip()
        if not line or line.upper().startswith("DTSTART"):
            continue
        if line.upper().startswith("RRULE:"):
            line = line[len("RRULE:"):]
        if body is not None:
            raise InvalidRecurrenceRuleError(
                "RRULE string contains more than one rule", rrule_string
            )
        body = line
    if not body:
        raise InvalidRecurrenceRuleError(
            "RRULE string has no rule component", rrule_string
        )
    return body


def parse_recurrence_rule(rrule_string: str) -> RecurrenceRule:
    """
    Parse an RRULE string into a validated RecurrenceRule.

    Args:
        rrule_string: Rule such as 'FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE'

    Returns:
        Parsed RecurrenceRule

    Raises:
        InvalidRecurrenceRuleError: If any component is missing, unknown or malformed
    """
    if not rrule_string or not rrule_string.strip():
        raise InvalidRecurrenceRuleError("RRULE string is empty", rrule_string)

    fields: dict[str, str] = {}
    for component in _extract_rule_body(rrule_string).split(";"):
        if not component.strip():
            continue
        key, sep, value = component.partition("=")
        key = key.strip().upper()
        value = value.strip()
        if not sep or not value:
            raise InvalidRecurrenceRuleError(
                f"Malformed RRULE component: {component!r}", rrule_string
            )
        if key not in _RULE_KEYS:
            raise InvalidRecurrenceRuleError(
                f"Unsupported RRULE component: {key}", rrule_string
            )
        if key in fields:
            raise InvalidRecurrenceRuleError(
                f"Duplicate RRULE component: {key}", rrule_string
            )
        fields[key] = value

    if "FREQ" not in fields:
        raise InvalidRecurrenceRuleError(
            "RRULE must contain FREQ component", rrule_string
        )
    frequency = fields["FREQ"].upper()
    if frequency not in FREQUENCIES:
        raise InvalidRecurrenceRuleError(
            f"Unsupported FREQ: {fields['FREQ']!r}", rrule_string
        )

    return RecurrenceRule(
        frequency=frequency,
        interval=_parse_positive_int("INTERVAL", fields.get("INTERVAL", "1"), rrule_string),
        count=(
            _parse_positive_int("COUNT", fields["COUNT"], rrule_string)
            if "COUNT" in fields
            else None
        ),
        until=_parse_until(fields["UNTIL"], rrule_string) if "UNTIL" in fields else None,
        byday=_parse_byday(fields["BYDAY"], rrule_string) if "BYDAY" in fields else (),
    )


# =============================================================================
# Expansion helpers
# =============================================================================


def _align(value: datetime, reference: datetime) -> datetime:
    """
    Make value comparable with reference.

    Naive datetimes are treated as UTC.
    """
    if reference.tzinfo is None:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _build_rrule(rule: RecurrenceRule, anchor: datetime, dtstart: Optional[datetime] = None) -> rrule:
    """
    Build a dateutil rrule for a series anchored at anchor.

    dtstart, when given, is a later period start produced by _fast_forward;
    day-of-month and month are always pinned from the anchor so the series
    keeps its phase. UNTIL is not passed to dateutil; _iter_occurrences
    applies it so COUNT and UNTIL can coexist. Without BYDAY, month and year
    steps clamp to the last valid day (Jan 31 -> Feb 28, Feb 29 -> Feb 28).
    """
    kwargs = {
        "freq": _FREQUENCY_MAP[rule.frequency],
        "dtstart": dtstart or anchor,
        "interval": rule.interval,
        "count": rule.count,
        "cache": False,
    }
    if rule.byday:
        kwargs["byweekday"] = tuple(_WEEKDAYS[index] for index in rule.byweekday)
    elif rule.frequency == "MONTHLY":
        if anchor.day > 28:
            kwargs["bymonthday"] = tuple(range(28, anchor.day + 1))
            kwargs["bysetpos"] = -1
        else:
            kwargs["bymonthday"] = (anchor.day,)
    elif rule.frequency == "YEARLY":
        kwargs["bymonth"] = anchor.month
        if (anchor.month, anchor.day) == (2, 29):
            kwargs["bymonthday"] = (28, 29)
            kwargs["bysetpos"] = -1
        else:
            kwargs["bymonthday"] = (anchor.day,)
    return rrule(**kwargs)


def _fast_forward(rule: RecurrenceRule, anchor: datetime, target: datetime) -> Optional[datetime]:
    """
    Find a period start of the series shortly before target.

    Skips whole multiples of INTERVAL arithmetically so dateutil does not
    walk every step between an old anchor and a far-future target. Keeps
    one period of margin. Returns None when there is nothing to skip or the
    rule carries a COUNT, which needs every step from the anchor.
    """
    if rule.count is not None or target <= anchor:
        return None

    if rule.frequency in ("DAILY", "WEEKLY"):
        unit_days = 1 if rule.frequency == "DAILY" else 7
        periods = (target - anchor).days // unit_days
    elif rule.frequency == "MONTHLY":
        periods = (target.year - anchor.year) * 12 + target.month - anchor.month
    else:
        periods = target.year - anchor.year

    steps = max(periods // rule.interval - 1, 0) * rule.interval
    if steps == 0:
        return None

    if rule.frequency in ("DAILY", "WEEKLY"):
        return anchor + timedelta(days=steps * unit_days)
    if rule.frequency == "MONTHLY":
        month_index = anchor.year * 12 + anchor.month - 1 + steps
        return anchor.replace(year=month_index // 12, month=month_index % 12 + 1, day=1)
    return anchor.replace(year=anchor.year + steps, month=1, day=1)


def _iter_occurrences(
    rule: RecurrenceRule,
    anchor: datetime,
    after: datetime,
    inc: bool,
) -> Iterator[datetime]:
    """Yield occurrences after (or at, if inc) the given instant, ascending."""
    until = _align(rule.until, anchor) if rule.until is not None else None
    series = _build_rrule(rule, anchor, _fast_forward(rule, anchor, after))
    for occurrence in series.xafter(after, inc=inc):
        if until is not None and occurrence > until:
            return
        yield occurrence


def _iter_window(
    rule: RecurrenceRule,
    start_time: datetime,
    range_start: datetime,
    range_end: datetime,
    limit: int,
) -> Iterator[datetime]:
    """Yield occurrences within [range_start, range_end], at most limit of them."""
    produced = 0
    for occurrence in _iter_occurrences(rule, start_time, range_start, inc=True):
        if occurrence > range_end:
            return
        if produced >= limit:
            logger.warning(
                f"Expansion of '{rule.to_rrule_string()}' capped at {limit} occurrences "
                f"for window {range_start.isoformat()} - {range_end.isoformat()}"
            )
            return
        produced += 1
        yield occurrence


def _resolve_window(
    rrule_string: str,
    start_time: datetime,
    range_start: datetime,
    range_end: datetime,
    max_occurrences: Optional[int],
) -> Iterator[datetime]:
    range_start = _align(range_start, start_time)
    range_end = _align(range_end, start_time)
    if range_end < range_start:
        return iter(())

    try:
        rule = parse_recurrence_rule(rrule_string)
    except InvalidRecurrenceRuleError as e:
        # Treat as a single, non-recurring occurrence
        logger.debug(f"Falling back to single occurrence: {e.message}")
        if range_start <= start_time <= range_end:
            return iter((start_time,))
        return iter(())

    limit = max_occurrences or get_settings().recurrence_max_occurrences
    return _iter_window(rule, start_time, range_start, range_end, limit)


# =============================================================================
# Public operations
# =============================================================================


def generate_rrule(options: RecurrenceOptions) -> str:
    """
    Generate an RRULE string from structured options.

    Weekday indices outside 0-6 are dropped; the rest are emitted Monday-first.

    Args:
        options: Frequency, interval and optional bounds / weekdays

    Returns:
        Rule string such as 'FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR'
    """
    weekdays = sorted({day for day in options.byweekday if 0 <= day < len(WEEKDAY_CODES)})
    rule = RecurrenceRule(
        frequency=options.frequency.upper(),
        interval=options.interval,
        count=options.count,
        until=options.until,
        byday=tuple(WEEKDAY_CODES[day] for day in weekdays),
    )
    return rule.to_rrule_string()


def validate_rrule(rrule_string: str) -> tuple[bool, Optional[str]]:
    """
    Validate an RRULE string.

    Args:
        rrule_string: RRULE string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        parse_recurrence_rule(rrule_string)
    except InvalidRecurrenceRuleError as e:
        return False, e.message
    return True, None


def is_valid_rrule(rrule_string: str) -> bool:
    """Check if an RRULE string is valid."""
    is_valid, _ = validate_rrule(rrule_string)
    return is_valid


def expand_recurrence(
    rrule_string: str,
    start_time: datetime,
    range_start: datetime,
    range_end: datetime,
    max_occurrences: Optional[int] = None,
) -> list[datetime]:
    """
    Expand a recurring event into occurrences within a time window.

    The rule is anchored at start_time. If the rule cannot be parsed, the
    event is treated as non-recurring: [start_time] when it lies in the
    window, otherwise [].

    Args:
        rrule_string: Stored RRULE string
        start_time: Event start (first occurrence of the series)
        range_start: Start of query window (inclusive)
        range_end: End of query window (inclusive)
        max_occurrences: Safety limit (default: settings.recurrence_max_occurrences)

    Returns:
        Ascending list of occurrence datetimes
    """
    try:
        return list(
            _resolve_window(rrule_string, start_time, range_start, range_end, max_occurrences)
        )
    except (ValueError, OverflowError) as e:
        logger.debug(f"Recurrence expansion failed for '{rrule_string}': {e}")
        return []


def expand_occurrence_windows(
    rrule_string: str,
    start_time: datetime,
    end_time: Optional[datetime],
    range_start: datetime,
    range_end: datetime,
    max_occurrences: Optional[int] = None,
) -> list[OccurrenceWindow]:
    """
    Expand a recurring event into start/end windows.

    Each occurrence keeps the event's duration (end_time - start_time).
    A missing end_time or a non-positive duration leaves end as None.
    """
    duration = None
    if end_time is not None and _align(end_time, start_time) > start_time:
        duration = _align(end_time, start_time) - start_time

    return [
        OccurrenceWindow(
            start=occurrence,
            end=occurrence + duration if duration is not None else None,
            recurrence_id=format_recurrence_id(occurrence),
        )
        for occurrence in expand_recurrence(
            rrule_string, start_time, range_start, range_end, max_occurrences
        )
    ]


def count_occurrences_in_range(
    rrule_string: str,
    start_time: datetime,
    range_start: datetime,
    range_end: datetime,
    max_count: Optional[int] = None,
) -> int:
    """
    Count occurrences within a time window without materializing them.

    Useful for checking if expansion would be expensive.

    Returns:
        Number of occurrences (capped at max_count)
    """
    try:
        return sum(
            1 for _ in _resolve_window(rrule_string, start_time, range_start, range_end, max_count)
        )
    except (ValueError, OverflowError) as e:
        logger.debug(f"Recurrence count failed for '{rrule_string}': {e}")
        return 0


def get_next_occurrence(
    rrule_string: str,
    start_time: datetime,
    after: Optional[datetime] = None,
    inc: bool = False,
) -> Optional[datetime]:
    """
    Get the next occurrence of a recurring event.

    Args:
        rrule_string: Stored RRULE string
        start_time: Event start (first occurrence of the series)
        after: Find occurrence after this time (default: now)
        inc: Also accept an occurrence equal to after

    Returns:
        Next occurrence datetime, or None if the rule is invalid or exhausted
    """
    try:
        rule = parse_recurrence_rule(rrule_string)
    except InvalidRecurrenceRuleError as e:
        logger.debug(f"No next occurrence for invalid rule: {e.message}")
        return None

    if after is None:
        after = datetime.now(timezone.utc)
    after = _align(after, start_time)

    try:
        return next(_iter_occurrences(rule, start_time, after, inc), None)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Next occurrence lookup failed for '{rrule_string}': {e}")
        return None


def _describe_until(until: datetime) -> str:
    return f"{_MONTH_NAMES[until.month - 1]} {until.day}, {until.year}"


def describe_recurrence(rrule_string: str) -> str:
    """
    Describe an RRULE string in plain English.

    Examples: 'every day', 'every 3 days', 'every week on Monday, Friday',
    'every weekday for 10 times'. Rules that cannot be parsed return
    settings.recurrence_custom_label.
    """
    try:
        rule = parse_recurrence_rule(rrule_string)
    except InvalidRecurrenceRuleError:
        return get_settings().recurrence_custom_label

    unit = _UNIT_NAMES[rule.frequency]
    weekdays = sorted(rule.byweekday)

    if rule.frequency == "WEEKLY" and rule.interval == 1 and weekdays == [0, 1, 2, 3, 4]:
        text = "every weekday"
    else:
        text = f"every {unit}" if rule.interval == 1 else f"every {rule.interval} {unit}s"
        if weekdays:
            text += " on " + ", ".join(WEEKDAY_NAMES[day] for day in weekdays)

    if rule.count is not None:
        text += f" for {rule.count} {'time' if rule.count == 1 else 'times'}"
    if rule.until is not None:
        text += f" until {_describe_until(rule.until)}"
    return text


def get_common_patterns() -> list[RecurrencePattern]:
    """
    Get the pre-built recurrence patterns offered when creating an event.

    Returns:
        Daily, weekly, weekdays (Mon-Fri), monthly and yearly patterns
    """
    return [
        RecurrencePattern(
            label="Hàng ngày",
            value=generate_rrule(RecurrenceOptions(frequency="daily")),
        ),
        RecurrencePattern(
            label="Hàng tuần",
            value=generate_rrule(RecurrenceOptions(frequency="weekly")),
        ),
        RecurrencePattern(
            label="Các ngày trong tuần",
            value=generate_rrule(
                RecurrenceOptions(frequency="weekly", byweekday=[0, 1, 2, 3, 4])
            ),
        ),
        RecurrencePattern(
            label="Hàng tháng",
            value=generate_rrule(RecurrenceOptions(frequency="monthly")),
        ),
        RecurrencePattern(
            label="Hàng năm",
            value=generate_rrule(RecurrenceOptions(frequency="yearly")),
        ),
    ]


# =============================================================================
# Recurrence ID
# =============================================================================


def format_recurrence_id(dt: datetime) -> str:
    """
    Format a datetime as a recurrence ID (iCalendar RECURRENCE-ID format).

    Aware datetimes are converted to UTC and suffixed with 'Z'.

    Args:
        dt: Datetime to format

    Returns:
        String in YYYYMMDDTHHMMSS[Z] format
    """
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return dt.strftime("%Y%m%dT%H%M%S")

