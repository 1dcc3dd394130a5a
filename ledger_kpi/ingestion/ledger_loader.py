"""
Ledger Loader

Reads a marketplace sales report (CSV or Parquet) with Polars and turns it
into SalesRecord values. Only the columns the KPI pipeline needs are kept;
no row is filtered out here.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import polars as pl
import structlog
from pydantic import BaseModel

from ledger_kpi.config import get_settings
from ledger_kpi.records import RECORD_FIELDS, SalesRecord

logger = structlog.get_logger(__name__)
settings = get_settings()


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    PARQUET = "parquet"


class LoadStatus(str, Enum):
    """Ledger load status"""
    COMPLETED = "completed"
    FAILED = "failed"


# Source column -> record field, as found in the marketplace sales report
DEFAULT_COLUMN_MAPPING: Dict[str, str] = {
    "Order ID": "order_id",
    "Status": "status",
    "Date": "date",
    "Category": "category",
    "Qty": "quantity",
    "Amount": "amount",
    "ship-state": "ship_state",
    "B2B": "is_b2b",
    "Fulfilment": "fulfilment",
}

REQUIRED_FIELDS = ("order_id", "status", "date", "category", "quantity", "amount")

RECORD_SCHEMA = {
    "order_id": pl.Utf8,
    "status": pl.Utf8,
    "date": pl.Date,
    "category": pl.Utf8,
    "quantity": pl.Int64,
    "amount": pl.Float64,
    "ship_state": pl.Utf8,
    "is_b2b": pl.Boolean,
    "fulfilment": pl.Utf8,
}

_TEXT_FIELDS = ("order_id", "status", "category", "ship_state", "fulfilment")


@dataclass
class LedgerFileConfig:
    """Configuration for reading a ledger file"""
    file_path: Union[str, Path]
    file_format: FileFormat = FileFormat.CSV
    column_mapping: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMN_MAPPING))
    delimiter: str = ","
    encoding: str = "utf8"
    date_format: str = field(default_factory=lambda: settings.source.date_format)
    null_values: List[str] = field(default_factory=lambda: list(settings.source.null_values))


class LoadResult(BaseModel):
    """Result of a ledger load"""
    file_path: str
    status: LoadStatus
    rows_loaded: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None


def _parse_bool(column: str) -> pl.Expr:
    text = pl.col(column).cast(pl.Utf8).str.strip_chars().str.to_lowercase()
    return (
        pl.when(text.is_in(["true", "1", "yes"]))
        .then(pl.lit(True))
        .when(text.is_in(["false", "0", "no"]))
        .then(pl.lit(False))
        .otherwise(pl.lit(None, dtype=pl.Boolean))
        .alias(column)
    )


def normalize_ledger_frame(df: pl.DataFrame, date_format: Optional[str] = None) -> pl.DataFrame:
    """
    Coerce a frame already keyed by record field names to the record schema.

    Optional fields that are absent are added as nulls. Values that cannot be
    parsed become null rather than failing the load.
    """
    date_format = date_format or settings.source.date_format

    missing = [name for name in REQUIRED_FIELDS if name not in df.columns]
    if missing:
        raise ValueError(f"Ledger is missing required columns: {missing}")

    for name in RECORD_FIELDS:
        if name not in df.columns:
            df = df.with_columns(pl.lit(None, dtype=RECORD_SCHEMA[name]).alias(name))

    df = df.select(list(RECORD_FIELDS))

    exprs = [pl.col(name).cast(pl.Utf8).str.strip_chars().alias(name) for name in _TEXT_FIELDS]

    if df["quantity"].dtype == pl.Utf8:
        exprs.append(pl.col("quantity").str.strip_chars().cast(pl.Float64, strict=False).cast(pl.Int64, strict=False))
    else:
        exprs.append(pl.col("quantity").cast(pl.Int64, strict=False))

    if df["amount"].dtype == pl.Utf8:
        exprs.append(pl.col("amount").str.strip_chars().cast(pl.Float64, strict=False))
    else:
        exprs.append(pl.col("amount").cast(pl.Float64, strict=False))

    date_dtype = df["date"].dtype
    if date_dtype == pl.Utf8:
        exprs.append(pl.col("date").str.strip_chars().str.strptime(pl.Date, date_format, strict=False))
    elif date_dtype == pl.Datetime:
        exprs.append(pl.col("date").dt.date())
    else:
        exprs.append(pl.col("date").cast(pl.Date, strict=False))

    if df["is_b2b"].dtype == pl.Boolean:
        exprs.append(pl.col("is_b2b"))
    else:
        exprs.append(_parse_bool("is_b2b"))

    return df.with_columns(exprs)


def frame_to_records(df: pl.DataFrame) -> List[SalesRecord]:
    """Convert a normalized ledger frame into records, keeping row order"""
    return [SalesRecord(**row) for row in df.select(list(RECORD_FIELDS)).iter_rows(named=True)]


def records_to_frame(records: Iterable[SalesRecord]) -> pl.DataFrame:
    """Convert records into a frame with the record schema"""
    rows = [record.to_dict() for record in records]
    return pl.DataFrame(rows, schema=RECORD_SCHEMA, strict=False)


class LedgerLoader:
    """
    Ledger file reader.

    Example:
        loader = LedgerLoader()
        records, result = loader.load(LedgerFileConfig("data/raw/sales_report.csv"))
    """

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for load auditing"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: LedgerFileConfig) -> pl.DataFrame:
        """Read CSV with every column as text; typing happens in normalization"""
        return pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            null_values=config.null_values,
            infer_schema_length=0,
        )

    def _read_parquet(self, config: LedgerFileConfig) -> pl.DataFrame:
        """Read Parquet file"""
        return pl.read_parquet(config.file_path)

    def _read_file(self, config: LedgerFileConfig) -> pl.DataFrame:
        """Read file based on format"""
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.PARQUET: self._read_parquet,
        }
        reader = readers.get(config.file_format)
        if not reader:
            raise ValueError(f"Unsupported file format: {config.file_format}")
        return reader(config)

    def read_frame(self, config: LedgerFileConfig) -> pl.DataFrame:
        """Read and normalize a ledger file into the record schema"""
        file_path = Path(config.file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        df = self._read_file(config)
        mapping = {src: dst for src, dst in config.column_mapping.items() if src in df.columns}
        df = df.rename(mapping)
        return normalize_ledger_frame(df, config.date_format)

    def load(self, config: LedgerFileConfig) -> Tuple[List[SalesRecord], LoadResult]:
        """
        Load a ledger file into records.

        Args:
            config: Ledger file configuration

        Returns:
            Records in file order and the LoadResult; on failure the record
            list is empty and the result carries the error
        """
        file_path = Path(config.file_path)
        started_at = datetime.utcnow()

        logger.info("Starting ledger load", file=str(file_path), format=config.file_format.value)

        try:
            file_hash = self._compute_file_hash(file_path) if file_path.exists() else None
            df = self.read_frame(config)
            records = frame_to_records(df)
        except Exception as e:
            completed_at = datetime.utcnow()
            logger.error("Ledger load failed", error=str(e), file=str(file_path))
            return [], LoadResult(
                file_path=str(file_path),
                status=LoadStatus.FAILED,
                error_message=str(e),
                started_at=started_at,
                completed_at=completed_at,
                load_duration_seconds=(completed_at - started_at).total_seconds(),
            )

        completed_at = datetime.utcnow()
        result = LoadResult(
            file_path=str(file_path),
            status=LoadStatus.COMPLETED,
            rows_loaded=len(records),
            started_at=started_at,
            completed_at=completed_at,
            load_duration_seconds=(completed_at - started_at).total_seconds(),
            file_hash=file_hash,
        )

        logger.info(
            "Ledger load completed",
            rows_loaded=result.rows_loaded,
            duration_seconds=result.load_duration_seconds,
        )
        return records, result
