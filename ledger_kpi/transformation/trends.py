"""
Trend Decomposition

Compares consecutive periods per value of a secondary dimension and
attributes revenue declines to volume or price:

- volume-driven: units fell while average selling price held or rose
- price-driven: average selling price fell while units held or rose
- mixed: anything else
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from ledger_kpi.config import get_settings
from ledger_kpi.quality.validity import RecordFilter, is_valid_sale
from ledger_kpi.records import SalesRecord
from .aggregation import GroupMetrics, aggregate, round_half_up
from .dimensions import DimensionLike
from .periods import PeriodMetadata

logger = structlog.get_logger(__name__)
settings = get_settings()


class RevenueDriver(str, Enum):
    """What drove a revenue decline"""
    VOLUME = "volume_driven"
    PRICE = "price_driven"
    MIXED = "mixed"


class ComparisonStatus(str, Enum):
    """Whether two periods could be compared"""
    COMPARABLE = "comparable"
    NO_BASELINE = "no_comparable_baseline"


class PeriodComparison(BaseModel):
    """Change of one dimension value between two consecutive periods"""

    model_config = ConfigDict(frozen=True)

    dimension_value: Any
    period_a: Any
    period_b: Any
    status: ComparisonStatus
    revenue_a: Optional[float] = None
    revenue_b: Optional[float] = None
    units_a: Optional[int] = None
    units_b: Optional[int] = None
    asp_a: Optional[float] = None
    asp_b: Optional[float] = None
    revenue_delta: Optional[float] = None
    unit_delta: Optional[int] = None
    asp_delta: Optional[float] = None
    driver: Optional[RevenueDriver] = None
    partial_period: bool = False

    @property
    def is_decline(self) -> bool:
        return self.revenue_delta is not None and self.revenue_delta < 0


def classify_revenue_change(
    revenue_delta: float,
    unit_delta: int,
    asp_delta: float,
) -> Optional[RevenueDriver]:
    """Attribute a revenue decline; returns None when revenue did not decline"""
    if revenue_delta >= 0:
        return None
    if unit_delta < 0 and asp_delta >= 0:
        return RevenueDriver.VOLUME
    if asp_delta < 0 and unit_delta >= 0:
        return RevenueDriver.PRICE
    return RevenueDriver.MIXED


def _has_volume(group: Optional[GroupMetrics]) -> bool:
    return group is not None and group.unit_count > 0 and group.avg_selling_price is not None


def _compare(
    value: Any,
    period_a: Any,
    period_b: Any,
    a: Optional[GroupMetrics],
    b: Optional[GroupMetrics],
    partial: bool,
    places: int,
) -> PeriodComparison:
    if not (_has_volume(a) and _has_volume(b)):
        return PeriodComparison(
            dimension_value=value,
            period_a=period_a,
            period_b=period_b,
            status=ComparisonStatus.NO_BASELINE,
            revenue_a=a.revenue if a else None,
            revenue_b=b.revenue if b else None,
            units_a=a.unit_count if a else None,
            units_b=b.unit_count if b else None,
            partial_period=partial,
        )

    revenue_delta = round_half_up(b.revenue - a.revenue, places)
    unit_delta = b.unit_count - a.unit_count
    asp_delta = round_half_up(b.avg_selling_price - a.avg_selling_price, places)

    return PeriodComparison(
        dimension_value=value,
        period_a=period_a,
        period_b=period_b,
        status=ComparisonStatus.COMPARABLE,
        revenue_a=a.revenue,
        revenue_b=b.revenue,
        units_a=a.unit_count,
        units_b=b.unit_count,
        asp_a=a.avg_selling_price,
        asp_b=b.avg_selling_price,
        revenue_delta=revenue_delta,
        unit_delta=unit_delta,
        asp_delta=asp_delta,
        driver=classify_revenue_change(revenue_delta, unit_delta, asp_delta),
        partial_period=partial,
    )


def decompose_trend(
    records: Iterable[SalesRecord],
    period_extractor: DimensionLike,
    secondary_dimension: DimensionLike,
    *,
    period_metadata: Optional[Mapping[Any, PeriodMetadata]] = None,
    exclude_partial: Optional[bool] = None,
    filter: RecordFilter = is_valid_sale,
    max_workers: Optional[int] = None,
    decimal_places: Optional[int] = None,
) -> List[PeriodComparison]:
    """
    Compare consecutive periods for every value of a secondary dimension.

    Periods are all period keys observed in the filtered set, in ascending
    order. When either side of a pair has no valid-sale volume for a value,
    the comparison is reported as NO_BASELINE with null deltas.

    Args:
        records: Raw record set
        period_extractor: Period dimension, e.g. YEAR_MONTH
        secondary_dimension: Dimension to break the trend down by
        period_metadata: Partial-period flags keyed by period
        exclude_partial: Drop partial periods instead of flagging them
            (settings.kpi.exclude_partial_periods by default)
        filter: Record predicate, the valid-sale rule by default

    Returns:
        Comparisons ordered by period, then by dimension value
    """
    places = settings.kpi.decimal_places if decimal_places is None else decimal_places
    if exclude_partial is None:
        exclude_partial = settings.kpi.exclude_partial_periods
    metadata = period_metadata or {}

    result = aggregate(
        records,
        [period_extractor, secondary_dimension],
        filter,
        max_workers=max_workers,
        decimal_places=places,
    )

    def is_partial(period: Any) -> bool:
        meta = metadata.get(period)
        return bool(meta and meta.is_partial)

    periods = sorted({key[0] for key in result.keys()})
    if exclude_partial:
        dropped = [p for p in periods if is_partial(p)]
        periods = [p for p in periods if not is_partial(p)]
        if dropped:
            logger.info("Excluding partial periods from trend", periods=[str(p) for p in dropped])

    values = sorted({key[1] for key in result.keys()})

    comparisons: List[PeriodComparison] = []
    for period_a, period_b in zip(periods, periods[1:]):
        partial = is_partial(period_a) or is_partial(period_b)
        for value in values:
            comparisons.append(
                _compare(
                    value,
                    period_a,
                    period_b,
                    result.get((period_a, value)),
                    result.get((period_b, value)),
                    partial,
                    places,
                )
            )

    summary: Dict[str, int] = {}
    for c in comparisons:
        label = c.driver.value if c.driver else c.status.value
        summary[label] = summary.get(label, 0) + 1

    logger.info(
        f"Trend decomposition produced {len(comparisons)} comparisons",
        dimension=result.dimensions[1],
        periods=len(periods),
        outcomes=summary,
    )

    return comparisons
