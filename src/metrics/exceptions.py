"""
Metrics Engine Errors

Every error names the rule that failed and the first record that triggered
it, so a failed run can be diagnosed without re-running it.
"""

from typing import Any, Dict, Optional


class MetricsError(Exception):
    """Base class for errors that abort a metrics run"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        record: Optional[Dict[str, Any]] = None,
    ):
        self.rule = rule
        self.record = record
        detail = message
        if rule:
            detail = f"[{rule}] {detail}"
        if record:
            detail = f"{detail} (record: {record})"
        super().__init__(detail)


class ValidationError(MetricsError):
    """Malformed or missing required input field"""


class InvalidRecordError(ValidationError):
    """A subscription record cannot be consolidated"""


class IntegrityError(MetricsError):
    """Referential mismatch between streams or derived facts"""


class EmptyInputError(MetricsError):
    """No data to bound the calendar"""
