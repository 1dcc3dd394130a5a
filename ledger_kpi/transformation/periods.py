"""
Period Metadata

Describes the reporting periods of a ledger (e.g. calendar months) and flags
partial ones. The trend decomposer never looks at raw dates itself; callers
build this metadata and pass it in.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Set

import structlog

from ledger_kpi.config import get_settings
from ledger_kpi.quality.validity import RecordFilter, is_valid_sale
from ledger_kpi.records import SalesRecord
from .dimensions import YEAR_MONTH, DimensionLike, as_dimension

logger = structlog.get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class PeriodMetadata:
    """Caller-supplied facts about one period"""
    period: Any
    is_partial: bool
    active_days: Optional[int] = None
    expected_days: Optional[int] = None


def build_period_metadata(
    records: Iterable[SalesRecord],
    period_extractor: DimensionLike = YEAR_MONTH,
    expected_days: Optional[int] = None,
    filter: RecordFilter = is_valid_sale,
) -> Dict[Any, PeriodMetadata]:
    """
    Count the distinct transaction days observed in each period.

    A period seen on fewer than ``expected_days`` distinct days is partial
    (e.g. a month whose only data is its last day).

    Args:
        records: Raw record set
        period_extractor: Period dimension, calendar month by default
        expected_days: Days a full period spans (settings.kpi.expected_period_days)
        filter: Which records count towards activity

    Returns:
        Mapping of period to PeriodMetadata
    """
    expected = settings.kpi.expected_period_days if expected_days is None else expected_days
    period_dim = as_dimension(period_extractor)

    days: Dict[Any, Set[Any]] = {}
    for record in records:
        if not filter(record) or record.date is None:
            continue
        period = period_dim(record)
        if period is None:
            continue
        days.setdefault(period, set()).add(record.date)

    metadata = {
        period: PeriodMetadata(
            period=period,
            is_partial=len(seen) < expected,
            active_days=len(seen),
            expected_days=expected,
        )
        for period, seen in sorted(days.items())
    }

    partial = [str(p) for p, m in metadata.items() if m.is_partial]
    if partial:
        logger.info("Partial periods detected", periods=partial, expected_days=expected)

    return metadata
