"""
Aggregation Engine

Groups valid ledger records by an arbitrary tuple of dimensions and computes
per-group sales metrics:
- revenue (sum of amount)
- order_count (distinct order ids)
- unit_count (sum of quantity)
- aov (revenue / order_count)
- avg_selling_price (revenue / unit_count)
- revenue_share_pct (share of total valid-sale revenue)

Ratios are computed from unrounded sums and rounded half-up afterwards.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from functools import reduce
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import polars as pl
import structlog
from pydantic import BaseModel, ConfigDict

from ledger_kpi.config import get_settings
from ledger_kpi.exceptions import EmptyGroupError, MissingFieldError
from ledger_kpi.quality.validity import RecordFilter, is_valid_sale, valid_sale_total
from ledger_kpi.records import SalesRecord
from .dimensions import Dimension, DimensionLike, extract_key, resolve_dimensions

logger = structlog.get_logger(__name__)
settings = get_settings()

GroupKey = Tuple[Any, ...]

METRICS = (
    "revenue",
    "order_count",
    "unit_count",
    "aov",
    "avg_selling_price",
    "revenue_share_pct",
)

# Metric columns of a flattened result row; dimension names may not shadow them
RESULT_COLUMNS = METRICS + ("record_count",)


def round_half_up(value: float, places: Optional[int] = None) -> float:
    """Round like SQL ROUND(): half away from zero on the decimal representation"""
    places = settings.kpi.decimal_places if places is None else places
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def compute_aov(
    revenue: float,
    order_count: int,
    group_key: Optional[GroupKey] = None,
    places: Optional[int] = None,
) -> float:
    """Average order value; raises EmptyGroupError when there are no orders"""
    if order_count == 0:
        raise EmptyGroupError("aov", group_key)
    return round_half_up(revenue / order_count, places)


def compute_asp(
    revenue: float,
    unit_count: int,
    group_key: Optional[GroupKey] = None,
    places: Optional[int] = None,
) -> float:
    """Average selling price; raises EmptyGroupError when no units were sold"""
    if unit_count == 0:
        raise EmptyGroupError("avg_selling_price", group_key)
    return round_half_up(revenue / unit_count, places)


def compute_share(
    revenue: float,
    grand_total: float,
    group_key: Optional[GroupKey] = None,
    places: Optional[int] = None,
) -> float:
    """Revenue share in percent of the grand total"""
    if grand_total == 0:
        raise EmptyGroupError("revenue_share_pct", group_key)
    return round_half_up(revenue / grand_total * 100, places)


@dataclass
class GroupAccumulator:
    """Running totals for one group; partial accumulators merge associatively"""
    revenue: float = 0.0
    order_ids: Set[Any] = field(default_factory=set)
    unit_count: int = 0
    record_count: int = 0

    def add(self, record: SalesRecord) -> None:
        self.revenue += record.amount
        self.order_ids.add(record.order_id)
        self.unit_count += record.quantity
        self.record_count += 1

    def merge(self, other: "GroupAccumulator") -> "GroupAccumulator":
        return GroupAccumulator(
            revenue=self.revenue + other.revenue,
            order_ids=self.order_ids | other.order_ids,
            unit_count=self.unit_count + other.unit_count,
            record_count=self.record_count + other.record_count,
        )


@dataclass
class _PartialAggregate:
    """Grouping state of one partition of the record set"""
    groups: Dict[GroupKey, GroupAccumulator] = field(default_factory=dict)
    skipped: Counter = field(default_factory=Counter)
    records_seen: int = 0
    records_filtered_out: int = 0


def _merge_partials(left: _PartialAggregate, right: _PartialAggregate) -> _PartialAggregate:
    groups = dict(left.groups)
    for key, acc in right.groups.items():
        groups[key] = groups[key].merge(acc) if key in groups else acc
    return _PartialAggregate(
        groups=groups,
        skipped=left.skipped + right.skipped,
        records_seen=left.records_seen + right.records_seen,
        records_filtered_out=left.records_filtered_out + right.records_filtered_out,
    )


def _require(record: SalesRecord, name: str) -> None:
    if getattr(record, name, None) is None:
        raise MissingFieldError(name)


def _accumulate(
    records: Iterable[SalesRecord],
    dimensions: Sequence[Dimension],
    predicate: RecordFilter,
) -> _PartialAggregate:
    partial = _PartialAggregate()
    for record in records:
        partial.records_seen += 1
        if not predicate(record):
            partial.records_filtered_out += 1
            continue
        try:
            key = extract_key(record, dimensions)
            _require(record, "order_id")
            _require(record, "quantity")
            _require(record, "amount")
        except MissingFieldError as e:
            partial.skipped[e.field] += 1
            continue

        acc = partial.groups.get(key)
        if acc is None:
            acc = partial.groups[key] = GroupAccumulator()
        acc.add(record)
    return partial


def _partition(records: Sequence[SalesRecord], parts: int) -> List[Sequence[SalesRecord]]:
    size = max(1, -(-len(records) // parts))
    return [records[i:i + size] for i in range(0, len(records), size)]


class GroupMetrics(BaseModel):
    """Metrics of one group. Ratio metrics are None when undefined."""

    model_config = ConfigDict(frozen=True)

    key: Tuple[Any, ...]
    revenue: float
    order_count: int
    unit_count: int
    aov: Optional[float] = None
    avg_selling_price: Optional[float] = None
    revenue_share_pct: Optional[float] = None
    record_count: int = 0


@dataclass
class AggregationResult:
    """
    Mapping from group key tuple to GroupMetrics.

    Iteration order is not meaningful; use ``sorted_by`` for ranked output.
    Records excluded for a missing field are tallied per field in ``skipped``,
    and ratio metrics that could not be computed are listed in
    ``empty_groups``.
    """
    dimensions: Tuple[str, ...]
    groups: Dict[GroupKey, GroupMetrics]
    grand_total_revenue: float
    records_seen: int = 0
    records_filtered_out: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)
    empty_groups: List[EmptyGroupError] = field(default_factory=list)

    def __getitem__(self, key: GroupKey) -> GroupMetrics:
        return self.groups[key]

    def __contains__(self, key: object) -> bool:
        return key in self.groups

    def __iter__(self) -> Iterator[GroupKey]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    def get(self, key: GroupKey, default: Optional[GroupMetrics] = None) -> Optional[GroupMetrics]:
        return self.groups.get(key, default)

    def keys(self):
        return self.groups.keys()

    def values(self):
        return self.groups.values()

    def items(self):
        return self.groups.items()

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())

    def total_revenue(self) -> float:
        """Sum of the (rounded) group revenues"""
        return round_half_up(sum(g.revenue for g in self.groups.values()))

    def sorted_by(
        self,
        metric: str = "revenue",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[GroupMetrics]:
        """
        Rank groups by a metric.

        Ties keep ascending order of the group key. Groups where the metric
        is undefined come last.
        """
        if metric not in METRICS:
            raise ValueError(f"Unknown metric '{metric}', expected one of {METRICS}")

        by_key = [self.groups[k] for k in sorted(self.groups)]
        defined = [g for g in by_key if getattr(g, metric) is not None]
        undefined = [g for g in by_key if getattr(g, metric) is None]

        # sort() is stable under reverse=True, so key order survives ties
        ranked = sorted(defined, key=lambda g: getattr(g, metric), reverse=descending)
        ranked.extend(undefined)
        return ranked[:limit] if limit is not None else ranked

    def top(self, n: Optional[int] = None, by: str = "revenue") -> List[GroupMetrics]:
        """Highest n groups by a metric"""
        return self.sorted_by(by, descending=True, limit=settings.kpi.top_n if n is None else n)

    def to_rows(self, order_by: Optional[str] = None, descending: bool = True) -> List[Dict[str, Any]]:
        """Flatten to dicts with one column per dimension, ordered by key unless a metric is given"""
        if order_by is None:
            ordered = [self.groups[k] for k in sorted(self.groups)]
        else:
            ordered = self.sorted_by(order_by, descending=descending)

        rows = []
        for group in ordered:
            row = dict(zip(self.dimensions, group.key))
            row.update(group.model_dump(exclude={"key"}))
            rows.append(row)
        return rows

    def to_frame(self, order_by: Optional[str] = None, descending: bool = True) -> pl.DataFrame:
        """Result table as a Polars DataFrame"""
        rows = self.to_rows(order_by=order_by, descending=descending)
        if not rows:
            columns = list(self.dimensions) + [m for m in GroupMetrics.model_fields if m != "key"]
            return pl.DataFrame(schema=columns)
        return pl.DataFrame(rows, infer_schema_length=None)


def aggregate(
    records: Iterable[SalesRecord],
    dimensions: Sequence[DimensionLike],
    filter: RecordFilter = is_valid_sale,
    *,
    max_workers: Optional[int] = None,
    decimal_places: Optional[int] = None,
) -> AggregationResult:
    """
    Group records by dimensions and compute sales metrics per group.

    Args:
        records: Full raw record set (not mutated)
        dimensions: Ordered, non-empty list of Dimension objects or extractor callables
        filter: Record predicate, the valid-sale rule by default
        max_workers: Threads for the grouping pass (settings.kpi.max_workers by default)
        decimal_places: Rounding for money and ratio metrics

    Returns:
        AggregationResult, built fresh on every call

    Raises:
        InvalidDimensionError: no dimensions given, or an extractor raised
    """
    dims = resolve_dimensions(dimensions, reserved=RESULT_COLUMNS)
    places = settings.kpi.decimal_places if decimal_places is None else decimal_places
    workers = settings.kpi.max_workers if max_workers is None else max_workers

    if not isinstance(records, Sequence):
        records = list(records)

    # Shared read-only denominator for every group's share, whatever the grouping
    grand_total = valid_sale_total(records)

    if workers > 1 and len(records) > workers:
        chunks = _partition(records, workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            partials = list(pool.map(lambda chunk: _accumulate(chunk, dims, filter), chunks))
        partial = reduce(_merge_partials, partials, _PartialAggregate())
    else:
        partial = _accumulate(records, dims, filter)

    groups: Dict[GroupKey, GroupMetrics] = {}
    empty_groups: List[EmptyGroupError] = []

    for key, acc in partial.groups.items():
        order_count = len(acc.order_ids)
        ratios: Dict[str, Optional[float]] = {}
        for metric, compute, denominator in (
            ("aov", compute_aov, order_count),
            ("avg_selling_price", compute_asp, acc.unit_count),
            ("revenue_share_pct", compute_share, grand_total),
        ):
            try:
                ratios[metric] = compute(acc.revenue, denominator, key, places)
            except EmptyGroupError as e:
                empty_groups.append(e)
                ratios[metric] = None

        groups[key] = GroupMetrics(
            key=key,
            revenue=round_half_up(acc.revenue, places),
            order_count=order_count,
            unit_count=acc.unit_count,
            record_count=acc.record_count,
            **ratios,
        )

    if partial.skipped:
        logger.warning(
            "Records skipped for missing fields",
            dimensions=[d.name for d in dims],
            skipped=dict(partial.skipped),
        )
    for error in empty_groups:
        logger.warning("Undefined group metric", metric=error.metric, group=repr(error.group_key))

    logger.debug(
        f"Aggregated {partial.records_seen} records into {len(groups)} groups",
        dimensions=[d.name for d in dims],
        filtered_out=partial.records_filtered_out,
    )

    return AggregationResult(
        dimensions=tuple(d.name for d in dims),
        groups=groups,
        grand_total_revenue=round_half_up(grand_total, places),
        records_seen=partial.records_seen,
        records_filtered_out=partial.records_filtered_out,
        skipped=dict(partial.skipped),
        empty_groups=empty_groups,
    )
