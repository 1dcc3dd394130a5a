"""
Ledger KPI Report Entry Point

Loads a sales ledger, runs the KPI pipeline and prints the report tables.
Usage:
    ledger-kpi data/raw/sales_report.csv
    ledger-kpi data/raw/sales_report.parquet --format parquet --top-n 5
    ledger-kpi data/raw/sales_report.csv --export-valid --json report.json
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import polars as pl
import structlog

from ledger_kpi.config.logging import configure_logging
from ledger_kpi.export import LedgerExporter
from ledger_kpi.ingestion import FileFormat, LedgerFileConfig, LedgerLoader, records_to_frame
from ledger_kpi.ingestion.ledger_loader import LoadStatus
from ledger_kpi.quality import ValidationResult, ValidationStatus, create_ledger_validator, profile_ledger
from ledger_kpi.transformation import KPIPipeline, KPIReport

logger = structlog.get_logger(__name__)


def _print_table(title: str, df: pl.DataFrame) -> None:
    print(f"\n== {title} ==")
    with pl.Config(tbl_rows=50, tbl_cols=20, tbl_width_chars=160):
        print(df)


def print_report(report: KPIReport) -> None:
    """Print every table of a KPI report to stdout"""
    summary = report.summary.model_dump()
    _print_table("Summary", pl.DataFrame([summary]))

    orderings = {
        "category_performance": "revenue",
        "state_performance": "revenue",
    }
    for name, result in report.tables.items():
        _print_table(name, result.to_frame(order_by=orderings.get(name)))

    for name, groups in report.rankings.items():
        rows = [
            {"group": " / ".join(str(part) for part in g.key), **g.model_dump(exclude={"key"})}
            for g in groups
        ]
        _print_table(name, pl.DataFrame(rows, infer_schema_length=None) if rows else pl.DataFrame())

    if report.trend:
        trend = pl.DataFrame([c.model_dump(mode="json") for c in report.trend], infer_schema_length=None)
        _print_table("Revenue trend by category", trend)


def print_validation(result: ValidationResult) -> None:
    """Print one row per quality check"""
    rows = [
        {
            "check": c.name,
            "passed": c.passed,
            "severity": c.severity.value,
            "failed_rows": c.failed_rows,
            "message": c.message,
        }
        for c in result.checks
    ]
    _print_table(f"Quality checks ({result.status.value})", pl.DataFrame(rows))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sales ledger KPI report")
    parser.add_argument("path", help="Ledger file to load")
    parser.add_argument(
        "--format",
        choices=[f.value for f in FileFormat],
        default=FileFormat.CSV.value,
        help="Ledger file format",
    )
    parser.add_argument("--top-n", type=int, default=None, help="Cut-off for ranked tables")
    parser.add_argument("--workers", type=int, default=None, help="Threads for grouping")
    parser.add_argument(
        "--exclude-partial",
        action="store_true",
        help="Drop partial periods from the trend instead of flagging them",
    )
    parser.add_argument("--export-valid", action="store_true", help="Export valid sales to the curated zone")
    parser.add_argument("--json", dest="json_path", default=None, help="Also write the report as JSON")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, log_format="text")

    records, load_result = LedgerLoader().load(
        LedgerFileConfig(file_path=args.path, file_format=FileFormat(args.format))
    )
    if load_result.status != LoadStatus.COMPLETED:
        logger.error("Cannot build report", error=load_result.error_message)
        return 1

    validation = create_ledger_validator().validate(records_to_frame(records))
    print_validation(validation)
    if validation.status == ValidationStatus.FAILED:
        logger.error("Ledger failed blocking quality checks", failed=validation.failed_checks)
        return 1

    profile = profile_ledger(records)
    _print_table(
        "Ledger profile",
        pl.DataFrame([profile.model_dump(exclude={"null_counts", "non_positive_by_status"})]),
    )
    if profile.non_positive_by_status:
        _print_table(
            "Non-positive amounts by status",
            pl.DataFrame(
                {
                    "status": list(profile.non_positive_by_status),
                    "rows": list(profile.non_positive_by_status.values()),
                }
            ),
        )

    pipeline = KPIPipeline(
        top_n=args.top_n,
        exclude_partial_periods=True if args.exclude_partial else None,
        max_workers=args.workers,
    )
    report = pipeline.run(records)
    print_report(report)

    if args.export_valid:
        LedgerExporter().write_valid_sales(records)

    if args.json_path:
        Path(args.json_path).write_text(json.dumps(report.to_dict(), indent=2, default=str), encoding="utf-8")
        logger.info("Report written", path=args.json_path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
