"""
Exceptions for recurrence rule handling.
"""


class InvalidRecurrenceRuleError(ValueError):
    """
    A recurrence rule string does not conform to the rule grammar.

    Raised by the strict parser only. Public engine operations catch it and
    degrade to their documented fallback values.
    """

    def __init__(self, message: str, rrule_string: str | None = None):
        super().__init__(message)
        self.message = message
        self.rrule_string = rrule_string
