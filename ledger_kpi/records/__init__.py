"""
Ledger Record Module
"""
from .models import RECORD_FIELDS, SalesRecord

__all__ = [
    "RECORD_FIELDS",
    "SalesRecord",
]
