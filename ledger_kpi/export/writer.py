"""
Ledger Exporter

Writes ledger records for external reprocessing. The raw ledger can be
written in full, or only the records behind the valid-sale view.
"""

from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import structlog

from ledger_kpi.config import get_settings
from ledger_kpi.ingestion.ledger_loader import FileFormat, records_to_frame
from ledger_kpi.quality.validity import export_valid_sales
from ledger_kpi.records import SalesRecord

logger = structlog.get_logger(__name__)
settings = get_settings()


class LedgerExporter:
    """
    Timestamped ledger export to the curated zone.

    Example:
        exporter = LedgerExporter()
        path = exporter.write_valid_sales(records)
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        file_format: Optional[FileFormat] = None,
    ):
        self.output_path = Path(output_path or settings.source.curated_path)
        self.file_format = FileFormat(file_format or settings.source.export_format)
        self.output_path.mkdir(parents=True, exist_ok=True)

    def _write_output(self, records: Iterable[SalesRecord], name: str) -> str:
        """Write records to the curated zone"""
        df = records_to_frame(records)
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        output_file = self.output_path / f"{name}_{timestamp}.{self.file_format.value}"

        if self.file_format == FileFormat.PARQUET:
            df.write_parquet(output_file)
        else:
            df.write_csv(output_file)

        logger.info(f"Written {len(df)} rows to {output_file}")
        return str(output_file)

    def write_raw(self, records: Iterable[SalesRecord], name: str = "ledger_raw") -> str:
        """Export the full raw ledger, invalid rows included"""
        return self._write_output(records, name)

    def write_valid_sales(self, records: Iterable[SalesRecord], name: str = "ledger_valid_sales") -> str:
        """Export only the records that count as valid sales"""
        return self._write_output(export_valid_sales(records), name)
