"""
KPI Transformation Module
"""
from .aggregation import AggregationResult, GroupMetrics, aggregate
from .dimensions import (
    CATEGORY,
    DAY,
    FULFILMENT,
    IS_B2B,
    SHIP_STATE,
    STATUS,
    YEAR_MONTH,
    Dimension,
    field_dimension,
)
from .kpis import KPIPipeline, KPIReport, LedgerSummary, build_kpi_report, summarize_ledger
from .periods import PeriodMetadata, build_period_metadata
from .trends import ComparisonStatus, PeriodComparison, RevenueDriver, decompose_trend

__all__ = [
    "AggregationResult",
    "GroupMetrics",
    "aggregate",
    "CATEGORY",
    "DAY",
    "FULFILMENT",
    "IS_B2B",
    "SHIP_STATE",
    "STATUS",
    "YEAR_MONTH",
    "Dimension",
    "field_dimension",
    "KPIPipeline",
    "KPIReport",
    "LedgerSummary",
    "build_kpi_report",
    "summarize_ledger",
    "PeriodMetadata",
    "build_period_metadata",
    "ComparisonStatus",
    "PeriodComparison",
    "RevenueDriver",
    "decompose_trend",
]
