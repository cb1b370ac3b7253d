"""
Import Validation Pipeline

DESIGN DECISION: Parsed rows are validated in two stages before anything
is stored:

STAGE 1 - SCHEMA VALIDATION:
- Required fields present (date, description, amount)
- Amount has at most two decimal places

STAGE 2 - SEMANTIC VALIDATION:
- Zero amounts
- Dates in the future (beyond the configured tolerance)
- Suspiciously old dates and very large amounts
- Duplicates of transactions already stored

Rows with errors are dropped from the import. Warnings are reported and
the row is still imported. Duplicates are reported and, when requested,
held back.

IMPORTANT: Validation NEVER silently fixes rows.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Sequence

import structlog

from bookkeeper.config import AppSettings, get_settings
from bookkeeper.models.imports import ParsedTransaction, ValidationIssue, ValidationResult
from bookkeeper.services.transactions import TransactionService, duplicate_key


logger = structlog.get_logger(__name__)

LARGE_AMOUNT = Decimal("1000000")
OLDEST_REASONABLE_YEARS = 10


class ImportValidator:
    """
    Validates parsed import rows.

    Stage 1 and stage 2 run without storage. Duplicate detection needs a
    TransactionService and is skipped without one.
    """

    def __init__(
        self,
        transactions: Optional[TransactionService] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._transactions = transactions
        self._settings = settings or get_settings().app

    def _row_number(self, row: ParsedTransaction, index: int) -> int:
        return row.row_index if row.row_index is not None else index + 1

    def _validate_schema(self, row: ParsedTransaction, number: int) -> list[ValidationIssue]:
        issues = []

        if not row.description or not row.description.strip():
            issues.append(ValidationIssue(
                row=number,
                field="description",
                issue_type="missing",
                message="Description is required",
                suggested_fix="Add a description in the source file",
            ))

        if row.amount is None:
            issues.append(ValidationIssue(
                row=number,
                field="amount",
                issue_type="missing",
                message="Amount is required",
            ))
        elif row.amount.as_tuple().exponent < -2:
            issues.append(ValidationIssue(
                row=number,
                field="amount",
                issue_type="invalid_value",
                message=f"Amount {row.amount} has more than two decimal places",
            ))

        return issues

    def _validate_semantic(self, row: ParsedTransaction, number: int) -> list[ValidationIssue]:
        issues = []
        today = date.today()

        if row.amount == 0:
            issues.append(ValidationIssue(
                row=number,
                field="amount",
                issue_type="invalid_value",
                message="Amount cannot be zero",
            ))
        elif abs(row.amount) >= LARGE_AMOUNT:
            issues.append(ValidationIssue(
                row=number,
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (${abs(row.amount):,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if row.date > max_future_date:
            issues.append(ValidationIssue(
                row=number,
                field="date",
                issue_type="future_date",
                message=f"Date ({row.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        oldest = today.replace(year=today.year - OLDEST_REASONABLE_YEARS)
        if row.date < oldest:
            issues.append(ValidationIssue(
                row=number,
                field="date",
                issue_type="suspicious_date",
                message=f"Date ({row.date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the date column was read correctly",
            ))

        return issues

    async def _find_duplicates(
        self,
        user_id: str,
        rows: Sequence[ParsedTransaction],
    ) -> set[tuple[str, str, str]]:
        if self._transactions is None or not rows:
            return set()
        duplicates = await self._transactions.find_duplicates(user_id, rows)
        return {duplicate_key(d.date, d.amount, d.description) for d in duplicates}

    async def validate(
        self,
        user_id: str,
        rows: Sequence[ParsedTransaction],
        check_duplicates: bool = True,
        skip_duplicates: bool = True,
    ) -> ValidationResult:
        """
        Run both stages over every row.

        Stage 2 only runs for rows that pass stage 1.
        """
        issues: list[ValidationIssue] = []
        passed: list[ParsedTransaction] = []
        schema_passed = True
        semantic_passed = True

        for index, row in enumerate(rows):
            number = self._row_number(row, index)
            schema_issues = self._validate_schema(row, number)
            issues.extend(schema_issues)
            if schema_issues:
                schema_passed = False
                continue

            semantic_issues = self._validate_semantic(row, number)
            issues.extend(semantic_issues)
            if any(issue.severity == "error" for issue in semantic_issues):
                semantic_passed = False
                continue
            passed.append(row)

        duplicate_keys = await self._find_duplicates(user_id, passed) if check_duplicates else set()
        valid_rows: list[ParsedTransaction] = []
        duplicate_rows: list[ParsedTransaction] = []
        for index, row in enumerate(passed):
            if duplicate_key(row.date, row.amount, row.description) in duplicate_keys:
                duplicate_rows.append(row)
                issues.append(ValidationIssue(
                    row=self._row_number(row, index),
                    field="duplicate",
                    issue_type="duplicate",
                    message=f"{row.date} {row.description} ({row.amount}) already exists",
                    severity="warning",
                    suggested_fix="Skipped" if skip_duplicates else "Imported again",
                ))
                if skip_duplicates:
                    continue
            valid_rows.append(row)

        logger.info(
            "import_validated",
            rows=len(rows),
            valid=len(valid_rows),
            duplicates=len(duplicate_rows),
            errors=sum(1 for issue in issues if issue.severity == "error"),
        )
        return ValidationResult(
            is_valid=schema_passed and semantic_passed,
            schema_passed=schema_passed,
            semantic_passed=semantic_passed,
            issues=issues,
            valid_rows=valid_rows,
            duplicate_rows=duplicate_rows,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short summary for the import screen."""
        if result.is_valid and not result.warnings:
            return f"All {len(result.valid_rows)} rows passed validation."

        lines = []
        if result.errors:
            lines.append(f"{len(result.errors)} rows were rejected:")
            lines.extend(f"  - Row {issue.row}: {issue.message}" for issue in result.errors[:10])
        if result.duplicate_rows:
            lines.append(f"{len(result.duplicate_rows)} rows look like duplicates.")
        other_warnings = [w for w in result.warnings if w.issue_type != "duplicate"]
        if other_warnings:
            lines.append(f"{len(other_warnings)} rows need a second look:")
            lines.extend(f"  - Row {issue.row}: {issue.message}" for issue in other_warnings[:10])
        lines.append(f"{len(result.valid_rows)} rows will be imported.")
        return "\n".join(lines)
