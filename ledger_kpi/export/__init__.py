"""
Ledger Export Module
"""
from .writer import LedgerExporter

__all__ = ["LedgerExporter"]
