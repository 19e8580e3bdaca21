"""
Draft Validation

DESIGN DECISION: Drafts are checked before any ledger operation touches
state. Error-level issues make the operation a no-op; warnings are
reported but do not block.

Checks come in two kinds:

REQUIRED DATA:
- Positive amount (after conversion to base currency)
- Non-empty description / name
- An account reference on transactions

SANITY:
- Category in the wrong income/expense partition
- Unusually large amounts
- Dates far in the future or past
- References to accounts that no longer exist

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and lets the caller decide.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from finanza.config import AppSettings, get_settings
from finanza.currency.normalizer import round2, to_base
from finanza.models.ledger import (
    ACCOUNT_COLOR_MAX_LENGTH,
    ACCOUNT_NAME_MAX_LENGTH,
    BILL_NAME_MAX_LENGTH,
    CATEGORY_LABELS,
    DESCRIPTION_MAX_LENGTH,
    EXPENSE_CATEGORIES,
    AccountDraft,
    BillDraft,
    LedgerState,
    TransactionDraft,
    ValidationIssue,
    ValidationResult,
    categories_for,
)


class LedgerValidator:
    """Validates transaction, bill and account drafts."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    @staticmethod
    def _check_length(field: str, label: str, value: Optional[str], limit: int) -> list[ValidationIssue]:
        if value and len(value) > limit:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{label} must be at most {limit} characters",
                severity="error",
                suggested_fix=f"Shorten it by {len(value) - limit} characters",
            )]
        return []

    def _check_amount(
        self,
        amount: Optional[Decimal],
        rate: Decimal,
        is_already_base_currency: bool,
    ) -> list[ValidationIssue]:
        issues = []
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
                suggested_fix="Enter an amount greater than zero",
            ))
            return issues
        if not amount.is_finite() or amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter an amount greater than zero",
            ))
            return issues

        stored = round2(amount) if is_already_base_currency else to_base(amount, rate)
        if stored <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount {amount} rounds to zero in the base currency",
                severity="error",
                suggested_fix="Enter a larger amount",
            ))
        elif stored > Decimal(str(self._settings.max_transaction_amount)):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({stored:,.2f} in base currency) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))
        return issues

    def validate_transaction_draft(
        self,
        draft: TransactionDraft,
        state: Optional[LedgerState] = None,
        rate: Decimal = Decimal("1"),
        is_already_base_currency: bool = False,
    ) -> ValidationResult:
        """
        Validate a transaction draft.

        Args:
            draft: What the user entered
            state: Ledger used to check the account reference (optional)
            rate: Base units per display unit, for the converted-amount check
            is_already_base_currency: Skip conversion (bill settlement)
        """
        issues = self._check_amount(draft.amount, rate, is_already_base_currency)

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
                suggested_fix="Describe what this transaction was for",
            ))
        issues.extend(self._check_length(
            "description", "Description", draft.description, DESCRIPTION_MAX_LENGTH
        ))

        if not draft.account_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="An account is required",
                severity="error",
                suggested_fix="Choose the account this transaction belongs to",
            ))
        elif state is not None and state.find_account(draft.account_id) is None:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="unknown_reference",
                message=f"Account {draft.account_id} does not exist; no balance will change",
                severity="warning",
            ))

        if draft.category is not None and draft.category not in categories_for(draft.type):
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=(
                    f"Category '{CATEGORY_LABELS[draft.category]}' is not valid "
                    f"for {draft.type.value.lower()} transactions"
                ),
                severity="error",
                suggested_fix="Pick a category matching the transaction type",
            ))

        if draft.date is not None:
            if draft.date.date() > date.today() + timedelta(days=1):
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Transaction date ({draft.date.date()}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))
            elif draft.date < datetime.now() - timedelta(days=365 * 5):
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="suspicious_date",
                    message=f"Transaction date ({draft.date.date()}) seems unusually old",
                    severity="warning",
                ))

        return ValidationResult(issues=issues)

    def validate_bill_draft(
        self,
        draft: BillDraft,
        rate: Decimal = Decimal("1"),
    ) -> ValidationResult:
        issues = []
        if not draft.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Bill name is required",
                severity="error",
                suggested_fix="Name the bill (e.g., Electricity)",
            ))
        issues.extend(self._check_length("name", "Bill name", draft.name, BILL_NAME_MAX_LENGTH))
        issues.extend(self._check_amount(draft.amount, rate, is_already_base_currency=False))

        if draft.category not in EXPENSE_CATEGORIES:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message="Bills must use an expense category",
                severity="error",
            ))

        if draft.due_date < date.today() - timedelta(days=365):
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="suspicious_date",
                message=f"Due date ({draft.due_date}) is more than a year ago",
                severity="warning",
                suggested_fix="Please verify the due date",
            ))

        return ValidationResult(issues=issues)

    def validate_account_draft(self, draft: AccountDraft) -> ValidationResult:
        issues = []
        if not draft.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Account name is required",
                severity="error",
                suggested_fix="Name the account (e.g., Savings)",
            ))
        issues.extend(self._check_length("name", "Account name", draft.name, ACCOUNT_NAME_MAX_LENGTH))
        issues.extend(self._check_length("color", "Color", draft.color, ACCOUNT_COLOR_MAX_LENGTH))
        if not draft.balance.is_finite():
            issues.append(ValidationIssue(
                field="balance",
                issue_type="invalid_value",
                message="Opening balance must be a number",
                severity="error",
            ))
        return ValidationResult(issues=issues)

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Summary of a validation result for the UI.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []
        if result.has_errors:
            lines.append("❌ Please fix the following:")
            for issue in result.issues:
                if issue.severity == "error":
                    line = f"  • {issue.message}"
                    if issue.suggested_fix:
                        line += f" ({issue.suggested_fix})"
                    lines.append(line)

        if result.warnings:
            lines.append("⚠️ Please double-check:")
            for warning in result.warnings:
                lines.append(f"  • {warning}")

        return "\n".join(lines)
