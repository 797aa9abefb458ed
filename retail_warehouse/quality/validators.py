"""
Data Validation Module

Rule-based quality checks over cleansed and dimensional frames.

Most checks are row predicates: a polars expression that is true for every
offending row. A check passes when no row matches. Frame-level invariants
(dense surrogate keys, one active product version) are registered as custom
checks instead.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Invariant broken
    WARNING = "warning"  # Expected under dirty input, reported for audit


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


CheckFunc = Callable[[pl.DataFrame], ValidationCheck]


class DataValidator:
    """
    Data validator with a fluent check builder.

    Example:
        result = (
            DataValidator("dim_customers")
            .add_not_null_check("customer_key")
            .add_dense_key_check("customer_key")
            .validate(df)
        )
    """

    def __init__(self, name: str = "validator", strict_mode: bool = False):
        self.name = name
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[CheckFunc] = []

    def _add_row_check(
        self,
        name: str,
        column: str,
        offending: pl.Expr,
        problem: str,
        severity: ValidationSeverity,
        details: Optional[Dict[str, Any]] = None,
    ) -> "DataValidator":
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                )

            failed = df.select(offending.fill_null(False).sum()).item() if df.height else 0
            return ValidationCheck(
                name=name,
                passed=failed == 0,
                severity=severity,
                message=f"Column '{column}' has {failed} {problem}" if failed else f"Column '{column}' ok",
                details={**(details or {}), "failed_count": failed},
                failed_rows=failed,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        return self._add_row_check(
            f"not_null_{column}", column, pl.col(column).is_null(), "null values", severity
        )

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every value occurs once; repeats after the first count as failures"""
        return self._add_row_check(
            f"unique_{column}", column, ~pl.col(column).is_first_distinct(), "duplicate values", severity
        )

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within an inclusive range; either bound may be open"""
        outside = pl.lit(False)
        if min_value is not None:
            outside = outside | (pl.col(column) < min_value)
        if max_value is not None:
            outside = outside | (pl.col(column) > max_value)

        return self._add_row_check(
            f"range_{column}",
            column,
            outside,
            f"values outside [{min_value}, {max_value}]",
            severity,
            details={"min": min_value, "max": max_value},
        )

    def add_enum_check(
        self,
        column: str,
        allowed_values: Sequence[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set (nulls are ignored)"""
        return self._add_row_check(
            f"enum_{column}",
            column,
            pl.col(column).is_not_null() & ~pl.col(column).is_in(list(allowed_values)),
            "values outside the allowed set",
            severity,
            details={"allowed_values": list(allowed_values)},
        )

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
        allow_null: bool = True,
    ) -> "DataValidator":
        """
        Add check that every value of column exists in reference_df.

        With allow_null=False, null references count as orphans too.
        """
        known = reference_df[reference_column].drop_nulls().unique().to_list()
        member = pl.col(column).is_in(known) if known else pl.lit(False)
        orphan = pl.col(column).is_not_null() & ~member
        if not allow_null:
            orphan = orphan | pl.col(column).is_null()

        return self._add_row_check(
            f"ref_integrity_{column}", column, orphan, "orphan records", severity
        )

    def add_dense_key_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that surrogate keys are exactly 1..n"""
        def is_dense(df: pl.DataFrame) -> bool:
            keys = df[column].drop_nulls().sort().to_list()
            return keys == list(range(1, df.height + 1))

        return self.add_custom_check(
            f"dense_{column}",
            is_dense,
            f"Column '{column}' is not a dense 1..n sequence",
            severity=severity,
        )

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add a frame-level check; a check that raises is reported as failed"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except (pl.exceptions.PolarsError, KeyError, TypeError, ValueError) as e:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Check failed with error: {e}",
                )
            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message="Check passed" if passed else message_on_fail,
                total_rows=df.height,
            )

        self._checks.append(check)
        return self

    def _status(self, failed_checks: int, warning_count: int) -> ValidationStatus:
        if failed_checks or (warning_count and self.strict_mode):
            return ValidationStatus.FAILED
        if warning_count:
            return ValidationStatus.PARTIAL
        return ValidationStatus.PASSED

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all registered checks.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = [check(df) for check in self._checks]

        failures = [r for r in results if not r.passed]
        for r in failures:
            logger.warning(
                f"Validation failed: {r.name}",
                validator=self.name,
                message=r.message,
                severity=r.severity.value,
            )

        failed_checks = sum(1 for r in failures if r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in failures if r.severity == ValidationSeverity.WARNING)
        status = self._status(failed_checks, warning_count)

        result = ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=len(results) - len(failures),
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            f"Validation complete: {status.value}",
            validator=self.name,
            rows=df.height,
            success_rate=round(result.success_rate, 1),
            failed=failed_checks,
            warnings=warning_count,
        )

        return result


def _single_active_version(df: pl.DataFrame) -> bool:
    active = df.filter(pl.col("prd_end_dt").is_null())
    return active["prd_key"].n_unique() == active.height


def _end_not_before_start(df: pl.DataFrame) -> bool:
    return df.filter(pl.col("prd_end_dt") < pl.col("prd_start_dt")).height == 0


# Pre-built validators for each stage output
def create_cleansed_customers_validator(strict_mode: bool = False) -> DataValidator:
    """Create validator for cleansed customer records"""
    return (
        DataValidator("crm_cust_info", strict_mode=strict_mode)
        .add_not_null_check("cst_id")
        .add_unique_check("cst_id")
        .add_enum_check("cst_marital_status", ["Single", "Married", "n/a"])
        .add_enum_check("cst_gndr", ["Female", "Male", "n/a"])
    )


def create_cleansed_products_validator(strict_mode: bool = False) -> DataValidator:
    """Create validator for cleansed product versions"""
    return (
        DataValidator("crm_prd_info", strict_mode=strict_mode)
        .add_not_null_check("prd_key")
        .add_range_check("prd_cost", min_value=0, severity=ValidationSeverity.WARNING)
        .add_custom_check(
            "single_active_version",
            _single_active_version,
            "More than one active version for a product key",
        )
        .add_custom_check(
            "end_not_before_start",
            _end_not_before_start,
            "Product version ends before it starts",
            severity=ValidationSeverity.WARNING,
        )
    )


def create_customer_dimension_validator(strict_mode: bool = False) -> DataValidator:
    """Create validator for the customer dimension"""
    return (
        DataValidator("dim_customers", strict_mode=strict_mode)
        .add_not_null_check("customer_key")
        .add_unique_check("customer_key")
        .add_dense_key_check("customer_key")
        .add_unique_check("customer_id")
        .add_enum_check("gender", ["Female", "Male", "n/a"])
    )


def create_product_dimension_validator(strict_mode: bool = False) -> DataValidator:
    """Create validator for the product dimension"""
    return (
        DataValidator("dim_products", strict_mode=strict_mode)
        .add_not_null_check("product_key")
        .add_unique_check("product_key")
        .add_dense_key_check("product_key")
        .add_unique_check("product_number")
    )


def create_sales_fact_validator(
    customer_dimension: pl.DataFrame,
    product_dimension: pl.DataFrame,
    strict_mode: bool = False,
) -> DataValidator:
    """
    Create validator for the sales fact.

    Unresolved keys are retained by the builder, so they surface as warnings.
    """
    return (
        DataValidator("fact_sales", strict_mode=strict_mode)
        .add_not_null_check("order_number")
        .add_referential_integrity_check(
            "product_key", product_dimension, "product_key",
            severity=ValidationSeverity.WARNING, allow_null=False,
        )
        .add_referential_integrity_check(
            "customer_key", customer_dimension, "customer_key",
            severity=ValidationSeverity.WARNING, allow_null=False,
        )
        .add_range_check("quantity", min_value=0, severity=ValidationSeverity.WARNING)
    )
