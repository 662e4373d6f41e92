"""
Data Validation Module

Rule-based checks over the polars frames extracted by the warehouse loader.
Every rule counts violating rows; a rule with zero violations passes.

Rules:
- Not null
- Unique (single column or column combination)
- Range
- Referential integrity against another frame
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Blocks the load
    WARNING = "warning"  # Logged, load continues


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
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks with ERROR severity"""
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]

    @property
    def warnings(self) -> List[ValidationCheck]:
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.WARNING]


@dataclass
class _Rule:
    name: str
    columns: Sequence[str]
    severity: ValidationSeverity
    count_violations: Callable[[pl.DataFrame], int]
    describe: str  # formatted with ``count``

    def evaluate(self, df: pl.DataFrame) -> ValidationCheck:
        missing = [c for c in self.columns if c not in df.columns]
        if missing:
            return ValidationCheck(
                name=self.name,
                passed=False,
                severity=self.severity,
                message=f"Column '{missing[0]}' not found",
            )

        violations = self.count_violations(df)
        return ValidationCheck(
            name=self.name,
            passed=violations == 0,
            severity=self.severity,
            message=self.describe.format(count=violations) if violations else f"{self.name} ok",
            details={"violations": violations},
            failed_rows=violations,
            total_rows=df.height,
        )


class DataValidator:
    """
    Chainable suite of checks run against one frame.

    Example:
        result = (
            DataValidator("products")
            .add_not_null_check("product_id")
            .add_range_check("price", min_value=0)
            .validate(df)
        )
    """

    def __init__(self, name: str = "dataset", strict_mode: bool = False):
        self.name = name
        self.strict_mode = strict_mode  # Warnings fail the suite too
        self._rules: List[_Rule] = []

    def _add(self, rule: _Rule) -> "DataValidator":
        self._rules.append(rule)
        return self

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        return self._add(_Rule(
            name=f"not_null_{column}",
            columns=[column],
            severity=severity,
            count_violations=lambda df: df[column].null_count(),
            describe=f"Column '{column}' has {{count}} null values",
        ))

    def add_unique_check(
        self,
        columns: List[str],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Rows beyond the first for each distinct value of ``columns`` are violations."""
        return self._add(_Rule(
            name="unique_" + "_".join(columns),
            columns=columns,
            severity=severity,
            count_violations=lambda df: df.height - df.select(columns).unique().height,
            describe=f"Columns {columns} have {{count}} duplicate rows",
        ))

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Values outside ``[min_value, max_value]``; nulls are ignored."""
        def count(df: pl.DataFrame) -> int:
            # Decimal columns compare through Float64
            value = pl.col(column).cast(pl.Float64)
            outside = pl.lit(False)
            if min_value is not None:
                outside = outside | (value < min_value)
            if max_value is not None:
                outside = outside | (value > max_value)
            return df.filter(outside.fill_null(False)).height

        return self._add(_Rule(
            name=f"range_{column}",
            columns=[column],
            severity=severity,
            count_violations=count,
            describe=f"Column '{column}' has {{count}} values outside [{min_value}, {max_value}]",
        ))

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Non-null values of ``column`` missing from ``reference_df[reference_column]``."""
        reference = reference_df[reference_column].drop_nulls().unique().to_list()

        def count(df: pl.DataFrame) -> int:
            known = pl.col(column).is_in(reference) if reference else pl.lit(False)
            return df.filter(pl.col(column).is_not_null() & ~known).height

        return self._add(_Rule(
            name=f"ref_integrity_{column}",
            columns=[column],
            severity=severity,
            count_violations=count,
            describe=f"Column '{column}' has {{count}} values missing from '{reference_column}'",
        ))

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run every rule against ``df``.

        Status is FAILED when an ERROR rule fails (or any rule, in strict
        mode), PARTIAL when only WARNING rules fail, PASSED otherwise.
        """
        started_at = _utcnow()
        checks = [rule.evaluate(df) for rule in self._rules]

        for check in checks:
            if not check.passed:
                logger.warning(
                    "Validation check failed",
                    dataset=self.name,
                    check=check.name,
                    message=check.message,
                    severity=check.severity.value,
                )

        failed = [c for c in checks if not c.passed]
        errors = sum(1 for c in failed if c.severity == ValidationSeverity.ERROR)
        warnings = len(failed) - errors

        if errors or (warnings and self.strict_mode):
            status = ValidationStatus.FAILED
        elif warnings:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        logger.debug("Validation complete", dataset=self.name, status=status.value, rows=df.height)

        return ValidationResult(
            status=status,
            total_checks=len(checks),
            passed_checks=len(checks) - len(failed),
            failed_checks=errors,
            warning_count=warnings,
            checks=checks,
            started_at=started_at,
            completed_at=_utcnow(),
        )


# Pre-built validators for the warehouse snapshot
def create_users_validator() -> DataValidator:
    """Validator for users extracted from the relational store"""
    return (
        DataValidator("users")
        .add_not_null_check("user_id")
        .add_unique_check(["user_id"])
        .add_not_null_check("name", severity=ValidationSeverity.WARNING)
    )


def create_products_validator() -> DataValidator:
    """Validator for products extracted from the document store"""
    return (
        DataValidator("products")
        .add_not_null_check("product_id")
        .add_unique_check(["product_id"])
        .add_not_null_check("title", severity=ValidationSeverity.WARNING)
        .add_range_check("price", min_value=0, severity=ValidationSeverity.WARNING)
    )


def create_edges_validator(users: pl.DataFrame, products: pl.DataFrame) -> DataValidator:
    """
    Validator for purchase edges extracted from the graph store.

    Orphans are warnings: whether they are dropped or abort the load is the
    loader's decision.
    """
    return (
        DataValidator("purchase_edges")
        .add_not_null_check("user_id")
        .add_not_null_check("product_id")
        .add_unique_check(["user_id", "product_id"], severity=ValidationSeverity.WARNING)
        .add_referential_integrity_check("user_id", users, "user_id", severity=ValidationSeverity.WARNING)
        .add_referential_integrity_check("product_id", products, "product_id", severity=ValidationSeverity.WARNING)
    )
