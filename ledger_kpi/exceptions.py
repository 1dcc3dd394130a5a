"""Domain exceptions for the Sales Ledger KPI Pipeline.

All exceptions inherit from LedgerKPIError. They are local to a single
computation call and never fatal to the process.
"""

from typing import Any, Optional, Tuple


class LedgerKPIError(Exception):
    """Base exception for all ledger KPI errors."""

    pass


class InvalidDimensionError(LedgerKPIError):
    """Raised when a grouping configuration is unusable.

    This exception is raised when:
    - An aggregation is requested with zero dimensions
    - A dimension extractor raises on a record
    """

    def __init__(self, message: str, dimension: Optional[str] = None):
        super().__init__(message)
        self.dimension = dimension


class EmptyGroupError(LedgerKPIError):
    """Raised when a ratio metric has a zero denominator.

    Reported per group by the aggregation engine: the metric is left
    undefined for that group and the other groups still resolve.
    """

    def __init__(self, metric: str, group_key: Optional[Tuple[Any, ...]] = None):
        self.metric = metric
        self.group_key = group_key
        where = f" for group {group_key!r}" if group_key is not None else ""
        super().__init__(f"Cannot compute {metric}{where}: denominator is zero")


class MissingFieldError(LedgerKPIError):
    """Raised when a record lacks a field the active computation needs.

    The aggregation engine excludes such records and counts them in its
    skipped-record tally.
    """

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Record is missing required field '{field}'")
