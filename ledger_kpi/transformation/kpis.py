"""
KPI Pipeline

Builds the standard set of ledger KPI tables from a raw record set:
headline summary, category, month, geography and channel breakdowns, and the
month x category volume/price trend.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog
from pydantic import BaseModel, ConfigDict

from ledger_kpi.config import get_settings
from ledger_kpi.exceptions import EmptyGroupError
from ledger_kpi.quality.validity import ValidSaleView
from ledger_kpi.records import SalesRecord
from .aggregation import (
    AggregationResult,
    GroupMetrics,
    aggregate,
    compute_aov,
    round_half_up,
)
from .dimensions import CATEGORY, FULFILMENT, IS_B2B, SHIP_STATE, YEAR_MONTH
from .periods import PeriodMetadata, build_period_metadata
from .trends import PeriodComparison, decompose_trend

logger = structlog.get_logger(__name__)
settings = get_settings()


class LedgerSummary(BaseModel):
    """Headline KPIs of a ledger"""

    model_config = ConfigDict(frozen=True)

    total_rows: int
    valid_rows: int
    valid_sales_pct: Optional[float]
    total_revenue: float
    total_orders: int
    total_units: int
    aov: Optional[float]
    avg_units_per_order: Optional[float]
    earliest_date: Optional[date] = None
    latest_date: Optional[date] = None


def summarize_ledger(records: Iterable[SalesRecord]) -> LedgerSummary:
    """
    Compute headline KPIs.

    Row counts and the date range cover the raw ledger; money, order and unit
    figures cover valid sales only.
    """
    if not isinstance(records, Sequence):
        records = list(records)

    dates = [r.date for r in records if r.date is not None]

    revenue = 0.0
    orders = set()
    units = 0
    valid_rows = 0
    for record in ValidSaleView(records):
        valid_rows += 1
        revenue += record.amount
        if record.order_id is not None:
            orders.add(record.order_id)
        if record.quantity is not None:
            units += record.quantity

    try:
        aov = compute_aov(revenue, len(orders))
        units_per_order = round_half_up(units / len(orders))
    except EmptyGroupError:
        aov = None
        units_per_order = None

    return LedgerSummary(
        total_rows=len(records),
        valid_rows=valid_rows,
        valid_sales_pct=round_half_up(valid_rows / len(records) * 100) if records else None,
        total_revenue=round_half_up(revenue),
        total_orders=len(orders),
        total_units=units,
        aov=aov,
        avg_units_per_order=units_per_order,
        earliest_date=min(dates) if dates else None,
        latest_date=max(dates) if dates else None,
    )


@dataclass
class KPIReport:
    """All KPI tables for one ledger, ready for a report assembler"""
    summary: LedgerSummary
    tables: Dict[str, AggregationResult] = field(default_factory=dict)
    rankings: Dict[str, List[GroupMetrics]] = field(default_factory=dict)
    period_metadata: Dict[Any, PeriodMetadata] = field(default_factory=dict)
    trend: List[PeriodComparison] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def declines(self) -> List[PeriodComparison]:
        """Trend comparisons where revenue fell"""
        return [c for c in self.trend if c.is_decline]

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the whole report"""
        return {
            "generated_at": self.generated_at.isoformat(),
            "summary": self.summary.model_dump(mode="json"),
            "tables": {name: result.to_rows() for name, result in self.tables.items()},
            "rankings": {
                name: [g.model_dump(mode="json") for g in groups]
                for name, groups in self.rankings.items()
            },
            "period_metadata": {
                str(period): {
                    "is_partial": meta.is_partial,
                    "active_days": meta.active_days,
                    "expected_days": meta.expected_days,
                }
                for period, meta in self.period_metadata.items()
            },
            "trend": [c.model_dump(mode="json") for c in self.trend],
        }


# Report tables and the dimensions they group by
REPORT_TABLES = {
    "category_performance": (CATEGORY,),
    "monthly_performance": (YEAR_MONTH,),
    "monthly_category": (YEAR_MONTH, CATEGORY),
    "state_performance": (SHIP_STATE,),
    "b2b_channel": (IS_B2B,),
    "fulfilment_channel": (FULFILMENT,),
    "category_fulfilment": (CATEGORY, FULFILMENT),
}


class KPIPipeline:
    """
    Ledger KPI orchestrator.

    Runs every report table over the same raw record set, ranks the
    geography and category tables, builds period metadata and decomposes
    the month x category trend.

    Example:
        pipeline = KPIPipeline(top_n=10)
        report = pipeline.run(records)
    """

    def __init__(
        self,
        top_n: Optional[int] = None,
        expected_period_days: Optional[int] = None,
        exclude_partial_periods: Optional[bool] = None,
        max_workers: Optional[int] = None,
    ):
        self.top_n = settings.kpi.top_n if top_n is None else top_n
        self.expected_period_days = (
            settings.kpi.expected_period_days if expected_period_days is None else expected_period_days
        )
        self.exclude_partial_periods = (
            settings.kpi.exclude_partial_periods
            if exclude_partial_periods is None
            else exclude_partial_periods
        )
        self.max_workers = max_workers

    def build_tables(self, records: Sequence[SalesRecord]) -> Dict[str, AggregationResult]:
        """Aggregate every report table"""
        tables = {}
        for name, dimensions in REPORT_TABLES.items():
            tables[name] = aggregate(records, dimensions, max_workers=self.max_workers)
            logger.info(
                f"Built table {name}",
                groups=len(tables[name]),
                skipped=tables[name].skipped_total,
            )
        return tables

    def build_rankings(self, tables: Dict[str, AggregationResult]) -> Dict[str, List[GroupMetrics]]:
        """Ranked cut-offs used by the report narrative"""
        return {
            "categories_by_revenue": tables["category_performance"].sorted_by("revenue"),
            "categories_by_aov": tables["category_performance"].sorted_by("aov"),
            "categories_by_share": tables["category_performance"].sorted_by("revenue_share_pct"),
            "top_states_by_revenue": tables["state_performance"].top(self.top_n, by="revenue"),
            "top_states_by_aov": tables["state_performance"].top(self.top_n, by="aov"),
        }

    def run(self, records: Iterable[SalesRecord]) -> KPIReport:
        """
        Run the full KPI pipeline.

        Args:
            records: Raw ledger records; never mutated or filtered in place

        Returns:
            KPIReport with summary, tables, rankings and trend
        """
        started_at = datetime.utcnow()
        if not isinstance(records, Sequence):
            records = list(records)

        logger.info(f"Starting KPI pipeline with {len(records)} records")

        summary = summarize_ledger(records)
        tables = self.build_tables(records)
        rankings = self.build_rankings(tables)

        period_metadata = build_period_metadata(
            records, YEAR_MONTH, expected_days=self.expected_period_days
        )
        trend = decompose_trend(
            records,
            YEAR_MONTH,
            CATEGORY,
            period_metadata=period_metadata,
            exclude_partial=self.exclude_partial_periods,
            max_workers=self.max_workers,
        )

        duration = (datetime.utcnow() - started_at).total_seconds()
        logger.info(
            "KPI pipeline complete",
            valid_rows=summary.valid_rows,
            total_revenue=summary.total_revenue,
            tables=len(tables),
            comparisons=len(trend),
            duration_seconds=round(duration, 3),
        )

        return KPIReport(
            summary=summary,
            tables=tables,
            rankings=rankings,
            period_metadata=period_metadata,
            trend=trend,
        )


def build_kpi_report(records: Iterable[SalesRecord], top_n: Optional[int] = None) -> KPIReport:
    """
    Convenience function to run the KPI pipeline with default settings.

    Args:
        records: Raw ledger records
        top_n: Cut-off for ranked geography tables

    Returns:
        KPIReport
    """
    return KPIPipeline(top_n=top_n).run(records)
