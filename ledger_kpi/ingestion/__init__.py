"""
Ledger Ingestion Module
"""
from .ledger_loader import (
    FileFormat,
    LedgerFileConfig,
    LedgerLoader,
    LoadResult,
    frame_to_records,
    records_to_frame,
)

__all__ = [
    "FileFormat",
    "LedgerFileConfig",
    "LedgerLoader",
    "LoadResult",
    "frame_to_records",
    "records_to_frame",
]
