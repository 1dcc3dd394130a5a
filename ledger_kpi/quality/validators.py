"""
Ledger Data Quality Checks

Rule-based checks over the raw ledger frame, plus a profile of the rows the
valid-sale rule excludes. Checks only report: no row is dropped or repaired.

Features:
- Null checks on required fields
- Range / positivity checks on amounts
- Allowed-value checks on channel columns
- Custom frame-level rules
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import polars as pl
import structlog
from pydantic import BaseModel, ConfigDict

from ledger_kpi.records import SalesRecord
from .validity import is_valid_sale

logger = structlog.get_logger(__name__)

FULFILMENT_CHANNELS = ["Amazon", "Merchant"]


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    def get(self, name: str) -> Optional[ValidationCheck]:
        return next((c for c in self.checks if c.name == name), None)


class LedgerValidator:
    """
    Chainable validator for the raw ledger frame.

    Example:
        validator = LedgerValidator()
        validator.add_not_null_check("category")
        validator.add_positive_check("amount", allow_zero=False)
        result = validator.validate(df)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    @staticmethod
    def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
        return ValidationCheck(
            name=name,
            passed=False,
            severity=severity,
            message=f"Column '{column}' not found",
        )

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "LedgerValidator":
        """Add check for null values in column"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"not_null_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            null_count = df[column].null_count()
            total = len(df)
            passed = null_count == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {null_count} null values" if not passed else f"Column '{column}' has no null values",
                details={"null_count": null_count, "null_percentage": (null_count / total) * 100 if total > 0 else 0},
                failed_rows=null_count,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        inclusive_min: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "LedgerValidator":
        """Add check for values within specified range; nulls are not counted"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"range_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            conditions = []
            if min_value is not None:
                below = pl.col(column) < min_value if inclusive_min else pl.col(column) <= min_value
                conditions.append(below)
            if max_value is not None:
                conditions.append(pl.col(column) > max_value)

            if not conditions:
                return ValidationCheck(
                    name=name,
                    passed=True,
                    severity=severity,
                    message="No range specified",
                )

            combined = conditions[0]
            for cond in conditions[1:]:
                combined = combined | cond

            out_of_range = df.filter(combined).height
            total = len(df)
            passed = out_of_range == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {out_of_range} values outside range [{min_value}, {max_value}]" if not passed else "All values in range",
                details={"min": min_value, "max": max_value, "out_of_range_count": out_of_range},
                failed_rows=out_of_range,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_positive_check(
        self,
        column: str,
        allow_zero: bool = True,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "LedgerValidator":
        """Add check for positive values"""
        return self.add_range_check(column, min_value=0, inclusive_min=allow_zero, severity=severity)

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "LedgerValidator":
        """Add check for values in allowed set"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            name = f"enum_{column}"
            if column not in df.columns:
                return self._missing_column(name, column, severity)

            invalid = df.filter(
                ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null()
            ).height
            total = len(df)
            passed = invalid == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=f"Column '{column}' has {invalid} invalid values" if not passed else "All values are valid",
                details={"allowed_values": allowed_values, "invalid_count": invalid},
                failed_rows=invalid,
                total_rows=total,
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "LedgerValidator":
        """Add custom validation check"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except Exception as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {str(e)}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=len(df),
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: Ledger frame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info(f"Running {len(self._checks)} validation checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.info(
            f"Validation complete: {status.value}",
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )


def create_ledger_validator() -> LedgerValidator:
    """
    Create pre-configured validator for the raw sales ledger.

    Everything except a missing order id is a warning: refunds, adjustments
    and incomplete rows are expected in the ledger and stay there.
    """
    return (
        LedgerValidator()
        .add_not_null_check("order_id")
        .add_not_null_check("status")
        .add_not_null_check("category", severity=ValidationSeverity.WARNING)
        .add_not_null_check("date", severity=ValidationSeverity.WARNING)
        .add_not_null_check("quantity", severity=ValidationSeverity.WARNING)
        .add_not_null_check("amount", severity=ValidationSeverity.WARNING)
        .add_positive_check("amount", allow_zero=False, severity=ValidationSeverity.WARNING)
        .add_enum_check("fulfilment", FULFILMENT_CHANNELS, severity=ValidationSeverity.WARNING)
    )


class LedgerProfile(BaseModel):
    """What the raw ledger contains and what the valid-sale rule keeps"""

    model_config = ConfigDict(frozen=True)

    total_rows: int
    null_counts: Dict[str, int]
    non_positive_amount_rows: int
    non_positive_amount_pct: Optional[float]
    non_positive_by_status: Dict[str, int]
    valid_rows: int
    valid_rows_pct: Optional[float]


def profile_ledger(
    records: Iterable[SalesRecord],
    fields: Sequence[str] = ("category", "date", "quantity", "amount"),
) -> LedgerProfile:
    """
    Profile a raw record set.

    Non-positive amounts are broken down by status: they are not limited to
    cancellations, which is why they are excluded rather than deleted.
    """
    if not isinstance(records, Sequence):
        records = list(records)

    total = len(records)
    nulls = {name: sum(1 for r in records if getattr(r, name, None) is None) for name in fields}

    non_positive = [r for r in records if r.amount is not None and r.amount <= 0]
    by_status = Counter(r.status if r.status is not None else "<null>" for r in non_positive)
    valid_rows = sum(1 for r in records if is_valid_sale(r))

    def pct(part: int) -> Optional[float]:
        return round(part / total * 100, 2) if total else None

    profile = LedgerProfile(
        total_rows=total,
        null_counts=nulls,
        non_positive_amount_rows=len(non_positive),
        non_positive_amount_pct=pct(len(non_positive)),
        non_positive_by_status=dict(by_status.most_common()),
        valid_rows=valid_rows,
        valid_rows_pct=pct(valid_rows),
    )

    logger.info(
        "Ledger profiled",
        total_rows=total,
        valid_rows=valid_rows,
        non_positive_amount_rows=len(non_positive),
    )
    return profile
