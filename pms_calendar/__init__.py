"""
Recurrence engine for the PMS calendar.

Expands stored RRULE strings into concrete event occurrences.
"""

__version__ = "0.1.0"
