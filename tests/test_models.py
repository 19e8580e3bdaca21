"""
Tests for Finanza models

Test strategy:
1. Unit tests for individual components (models, validators, ledger)
2. Integration tests for flows (with in-memory storage)
3. No real API calls in tests (use mocks)
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from finanza.models.ledger import (
    CATEGORY_LABELS,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    Account,
    AccountType,
    Bill,
    Category,
    LedgerState,
    Transaction,
    TransactionDraft,
    TransactionType,
    ValidationIssue,
    ValidationResult,
    default_category,
    new_entity_id,
)
from finanza.models.rates import RateTable, currency_symbol
from finanza.models.user import User
from finanza.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerModels:
    """Tests for ledger entity models."""

    def test_account_defaults(self):
        """Test Account defaults to BANK with zero balance."""
        account = Account(name="Savings")
        assert account.type == AccountType.BANK
        assert account.balance == Decimal("0.00")
        assert account.id

    def test_account_strips_whitespace(self):
        """Test that whitespace is stripped from account names."""
        assert Account(name="  Wallet  ").name == "Wallet"

    def test_transaction_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in (Decimal("0"), Decimal("-5")):
            with pytest.raises(ValueError):
                Transaction(
                    amount=amount,
                    category=Category.FOOD,
                    description="Lunch",
                    type=TransactionType.EXPENSE,
                    date=datetime(2024, 1, 1),
                )

    def test_transaction_requires_description(self):
        """Test that an empty description is rejected."""
        with pytest.raises(ValueError):
            Transaction(
                amount=Decimal("10"),
                category=Category.FOOD,
                description="   ",
                type=TransactionType.EXPENSE,
                date=datetime(2024, 1, 1),
            )

    def test_transaction_date_made_local(self):
        """Test that an offset-aware date is stored as naive local time."""
        tx = Transaction(
            amount=Decimal("10"),
            category=Category.FOOD,
            description="Lunch",
            type=TransactionType.EXPENSE,
            date=datetime(2024, 1, 1, 9, tzinfo=timezone.utc),
        )
        assert tx.date.tzinfo is None
        assert tx.date == datetime(2024, 1, 1, 9, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert tx.date < datetime.now()

    def test_bill_rejects_income_category(self):
        """Test that bills only accept expense categories."""
        with pytest.raises(ValueError):
            Bill(name="Salary?", amount=Decimal("10"), due_date=date(2024, 1, 1), category=Category.SALARY)

    def test_bill_defaults_unpaid(self):
        """Test that a new bill is unpaid with the bills category."""
        bill = Bill(name="Water", amount=Decimal("120"), due_date=date(2024, 1, 1))
        assert bill.is_paid is False
        assert bill.paid_at is None
        assert bill.category == Category.BILLS

    def test_initial_state_has_default_accounts(self):
        """Test the three default accounts for a new user."""
        state = LedgerState.initial()
        assert [(a.id, a.type, a.color) for a in state.accounts] == [
            ("acc1", AccountType.BANK, "indigo"),
            ("acc2", AccountType.CREDIT_CARD, "slate"),
            ("acc3", AccountType.CASH, "emerald"),
        ]
        assert all(a.balance == Decimal("0") for a in state.accounts)
        assert state.transactions == [] and state.bills == []

    def test_ledger_state_json_round_trip(self):
        """Test that the ledger blob survives JSON serialization."""
        state = LedgerState.initial()
        state.accounts[0].balance = Decimal("1234.56")
        state.bills.append(Bill(name="Rent", amount=Decimal("5000"), due_date=date(2024, 2, 1), category=Category.RENT))
        raw = json.loads(json.dumps(state.model_dump(mode="json")))
        restored = LedgerState.model_validate(raw)
        assert restored.accounts[0].balance == Decimal("1234.56")
        assert restored.bills[0].due_date == date(2024, 2, 1)

    def test_draft_accepts_plain_date(self):
        """Test that a date-picker date becomes a midnight datetime."""
        draft = TransactionDraft(date=date(2024, 3, 5))
        assert draft.date == datetime(2024, 3, 5)

    def test_entity_ids_are_increasing(self):
        """Test that ids generated back to back are unique and ordered."""
        ids = [int(new_entity_id()) for _ in range(50)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 50


class TestCategories:
    """Tests for category partitioning."""

    def test_other_in_both_partitions(self):
        """Test that 'other' is both an income and an expense category."""
        assert Category.OTHER in INCOME_CATEGORIES
        assert Category.OTHER in EXPENSE_CATEGORIES

    def test_default_category_per_type(self):
        """Test defaults are the first category of each partition."""
        assert default_category(TransactionType.INCOME) == Category.SALARY
        assert default_category(TransactionType.EXPENSE) == Category.FOOD

    def test_every_category_has_label(self):
        """Test that all categories have a display label."""
        assert set(CATEGORY_LABELS) == set(Category)
        assert CATEGORY_LABELS[Category.FOOD] == "Food"


class TestRateTable:
    """Tests for the RateTable model."""

    def test_base_currency_added(self):
        """Test that the base currency is always present at 1."""
        table = RateTable(rates={"usd": 34})
        assert table.rates["TRY"] == Decimal("1")
        assert table.rates["USD"] == Decimal("34")

    def test_rejects_non_positive_rate(self):
        """Test that zero or negative rates are rejected."""
        with pytest.raises(ValueError):
            RateTable(rates={"USD": 0})

    def test_rejects_non_numeric_rate(self):
        """Test that garbage rates are rejected."""
        with pytest.raises(ValueError):
            RateTable(rates={"USD": "abc"})

    def test_rejects_base_not_one(self):
        """Test that the base currency cannot map to anything but 1."""
        with pytest.raises(ValueError):
            RateTable(rates={"TRY": 2, "USD": 34})

    def test_unknown_currency_rate_is_one(self):
        """Test that unknown currencies convert at 1."""
        table = RateTable.default()
        assert table.rate_for("JPY") == Decimal("1")
        assert table.rate_for(None) == Decimal("1")
        assert table.rate_for("usd") == Decimal("34")

    def test_table_is_immutable(self):
        """Test that a table cannot be edited in place."""
        table = RateTable.default()
        with pytest.raises(ValueError):
            table.base_currency = "USD"

    def test_currency_symbols(self):
        """Test currency symbol lookup."""
        assert currency_symbol("TRY") == "₺"
        assert currency_symbol("cad") == "C$"
        assert currency_symbol("XYZ") == "$"


class TestUserModel:
    """Tests for the User model."""

    def test_public_copy_hides_hash(self):
        """Test that the session copy drops the password hash."""
        user = User(username="ayse", password_hash="$2b$12$abc")
        assert user.public().password_hash == ""
        assert user.public().id == user.id

    def test_hash_not_in_repr(self):
        """Test that the hash does not leak through repr()."""
        user = User(username="ayse", password_hash="secret-hash")
        assert "secret-hash" not in repr(user)


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Expense recorded",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo is timezone.utc

    def test_naive_timestamp_read_as_utc(self):
        """Test that rows stored without an offset sort alongside aware ones."""
        old = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Old row",
            timestamp=datetime.fromisoformat("2024-01-01T12:00:00"),
        )
        new = AuditEvent(event_type=AuditEventType.TRANSACTION_ADDED, description="New row")
        assert old.timestamp == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert sorted([new, old], key=lambda e: e.timestamp) == [old, new]

    def test_audit_event_to_log_dict(self):
        """Test converting audit event to log dictionary."""
        event = AuditEventBuilder.bill_deleted("u1", "b1", "Water")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "bill_deleted"
        assert log_dict["user_id"] == "u1"
        assert log_dict["entity_id"] == "b1"

    def test_audit_event_to_sheets_row(self):
        """Test converting audit event to a spreadsheet row."""
        event = AuditEventBuilder.rates_rejected({"USD": "0.03"}, "USD rate too low")
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "rates_rejected"
        assert row[3] == "warning"
        assert json.loads(row[9]) == {"rates": {"USD": "0.03"}}

    def test_draft_rejected_event_type(self):
        """Test that rejection events map to the entity's event type."""
        event = AuditEventBuilder.draft_rejected("u1", "bill", issues=[{"field": "name"}])
        assert event.event_type == AuditEventType.BILL_REJECTED
        assert event.severity == AuditSeverity.WARNING


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test error detection in validation result."""
        result = ValidationResult(issues=[
            ValidationIssue(field="amount", issue_type="missing", message="Amount is required", severity="error"),
            ValidationIssue(field="date", issue_type="future_date", message="Future date", severity="warning"),
        ])
        assert result.has_errors
        assert not result.is_valid
        assert result.error_count == 1
        assert result.warnings == ["Future date"]

    def test_validation_result_warnings_only(self):
        """Test that warnings alone do not block."""
        result = ValidationResult(issues=[
            ValidationIssue(field="date", issue_type="future_date", message="Future date", severity="warning"),
        ])
        assert result.is_valid

    def test_issue_severity_pattern(self):
        """Test that unknown severities are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")
