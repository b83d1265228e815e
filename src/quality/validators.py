"""
Input Validation Module

Rule-based checks run on each input stream before any aggregation.
Implements validation patterns inspired by Great Expectations.

Features:
- Null and uniqueness checks
- Range and allowed-value checks
- Referential integrity between streams
- Custom row-level business rules
- The first offending record is kept for every failed check
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import polars as pl
import structlog

from src.config import get_settings
from src.metrics.exceptions import IntegrityError, ValidationError

logger = structlog.get_logger(__name__)
settings = get_settings()


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


class CheckCategory(str, Enum):
    """Which error a failed ERROR check raises"""
    VALIDATION = "validation"
    INTEGRITY = "integrity"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    category: CheckCategory = CheckCategory.VALIDATION
    failed_rows: int = 0
    total_rows: int = 0
    sample: Optional[Dict[str, Any]] = None


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    stream: str
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

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks that block the pipeline"""
        return [
            c for c in self.checks
            if not c.passed and c.severity == ValidationSeverity.ERROR
        ]

    def raise_for_errors(self) -> None:
        """
        Raise for the first blocking failure.

        Raises:
            IntegrityError: for a failed referential check
            ValidationError: for any other failed ERROR check
        """
        if not self.errors:
            return
        check = self.errors[0]
        error_class = IntegrityError if check.category == CheckCategory.INTEGRITY else ValidationError
        raise error_class(
            f"{self.stream}: {check.message}",
            rule=check.name,
            record=check.sample,
        )


class DataValidator:
    """
    Input validator with a fluent check suite.

    Example:
        validator = DataValidator("subscriptions")
        validator.add_not_null_check("start_date")
        validator.add_range_check("price", min_value=0)
        result = validator.validate(df)
        result.raise_for_errors()
    """

    def __init__(self, stream: str = "input", strict_mode: bool = False):
        self.stream = stream
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def _add_row_check(
        self,
        name: str,
        column: Optional[str],
        failing: Callable[[pl.DataFrame], pl.Expr],
        message: str,
        severity: ValidationSeverity,
        category: CheckCategory = CheckCategory.VALIDATION,
    ) -> "DataValidator":
        """Register a check that fails for every row matching ``failing``"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            if column is not None and column not in df.columns:
                return ValidationCheck(
                    name=name,
                    passed=False,
                    severity=severity,
                    message=f"Column '{column}' not found",
                    category=category,
                    total_rows=len(df),
                )

            offending = df.filter(failing(df))
            passed = offending.height == 0

            return ValidationCheck(
                name=name,
                passed=passed,
                severity=severity,
                message=message.format(count=offending.height) if not passed else "Check passed",
                category=category,
                failed_rows=offending.height,
                total_rows=len(df),
                sample=offending.row(0, named=True) if not passed else None,
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
            f"not_null_{column}",
            column,
            lambda df: pl.col(column).is_null(),
            f"Column '{column}' has {{count}} null values",
            severity,
        )

    def add_unique_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for uniqueness of column values"""
        return self._add_row_check(
            f"unique_{column}",
            column,
            lambda df: pl.col(column).is_duplicated() & pl.col(column).is_not_null(),
            f"Column '{column}' has {{count}} duplicated rows",
            severity,
        )

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within specified range"""
        def failing(df: pl.DataFrame) -> pl.Expr:
            condition = pl.lit(False)
            if min_value is not None:
                condition = condition | (pl.col(column) < min_value)
            if max_value is not None:
                condition = condition | (pl.col(column) > max_value)
            return condition & pl.col(column).is_not_null()

        return self._add_row_check(
            f"range_{column}",
            column,
            failing,
            f"Column '{column}' has {{count}} values outside range [{min_value}, {max_value}]",
            severity,
        )

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values in allowed set"""
        return self._add_row_check(
            f"enum_{column}",
            column,
            lambda df: ~pl.col(column).is_in(allowed_values) & pl.col(column).is_not_null(),
            f"Column '{column}' has {{count}} values outside {allowed_values}",
            severity,
        )

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every value exists in a reference stream"""
        reference_values = reference_df[reference_column].unique().to_list()
        return self._add_row_check(
            f"ref_integrity_{column}",
            column,
            lambda df: ~pl.col(column).is_in(reference_values) & pl.col(column).is_not_null(),
            f"Column '{column}' has {{count}} orphan records",
            severity,
            category=CheckCategory.INTEGRITY,
        )

    def add_row_rule(
        self,
        name: str,
        failing: pl.Expr,
        message: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add a business rule; ``failing`` selects the offending rows"""
        return self._add_row_check(name, None, lambda df: failing, message, severity)

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = datetime.utcnow()
        results = []

        logger.info(
            "Running validation checks",
            stream=self.stream,
            checks=len(self._checks),
            rows=len(df),
        )

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    stream=self.stream,
                    message=result.message,
                    severity=result.severity.value,
                    sample=result.sample,
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

        validation_result = ValidationResult(
            stream=self.stream,
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )

        logger.info(
            f"Validation complete: {status.value}",
            stream=self.stream,
            passed=passed_checks,
            failed=failed_checks,
            warnings=warning_count,
        )

        return validation_result


# Pre-built validators for the three input streams
def create_users_validator() -> DataValidator:
    """Create pre-configured validator for user reference data"""
    return (
        DataValidator("users")
        .add_not_null_check("user_id")
        .add_unique_check("user_id")
        .add_not_null_check("branch_id")
    )


def create_subscriptions_validator(
    users_df: pl.DataFrame,
    plans: Optional[List[str]] = None,
) -> DataValidator:
    """Create pre-configured validator for subscription records"""
    return (
        DataValidator("subscriptions")
        .add_not_null_check("user_id")
        .add_not_null_check("plan")
        .add_not_null_check("start_date")
        .add_not_null_check("price")
        .add_enum_check("plan", plans or list(settings.metrics.plans))
        .add_range_check("price", min_value=0)
        .add_referential_integrity_check("user_id", users_df, "user_id")
        .add_row_rule(
            "end_not_before_start",
            pl.col("end_date").is_not_null() & (pl.col("end_date") < pl.col("start_date")),
            "{count} subscriptions end before they start",
        )
    )


def create_workouts_validator(users_df: pl.DataFrame) -> DataValidator:
    """Create pre-configured validator for workout events"""
    return (
        DataValidator("workouts")
        .add_not_null_check("user_id")
        .add_not_null_check("workout_date")
        .add_referential_integrity_check("user_id", users_df, "user_id")
    )


def validate_inputs(
    users_df: pl.DataFrame,
    subscriptions_df: pl.DataFrame,
    workouts_df: pl.DataFrame,
    plans: Optional[List[str]] = None,
) -> Dict[str, ValidationResult]:
    """
    Validate all three streams, raising on the first blocking failure.

    Raises:
        ValidationError: malformed or missing required field
        IntegrityError: record referencing an unknown user
    """
    suites = [
        ("users", create_users_validator(), users_df),
        ("subscriptions", create_subscriptions_validator(users_df, plans), subscriptions_df),
        ("workouts", create_workouts_validator(users_df), workouts_df),
    ]

    results = {}
    for stream, validator, df in suites:
        result = validator.validate(df)
        result.raise_for_errors()
        results[stream] = result

    logger.info(
        "Input validation passed",
        success_rates={stream: round(r.success_rate, 1) for stream, r in results.items()},
    )
    return results
