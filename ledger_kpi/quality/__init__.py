"""
Data Quality Module
"""
from .validity import ValidSaleView, export_valid_sales, is_valid_sale, valid_sales
from .validators import (
    LedgerValidator,
    ValidationResult,
    ValidationStatus,
    create_ledger_validator,
    profile_ledger,
)

__all__ = [
    "ValidSaleView",
    "export_valid_sales",
    "is_valid_sale",
    "valid_sales",
    "LedgerValidator",
    "ValidationResult",
    "ValidationStatus",
    "create_ledger_validator",
    "profile_ledger",
]
