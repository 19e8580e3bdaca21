"""
Ledger Data Models for Finanza

These models define the schemas for everything the ledger stores:
accounts, transactions and bills, plus the drafts users fill in and the
per-user state blob that is persisted.

CRITICAL: Every monetary value on a stored entity is in the BASE currency.
The display currency is a view concern and never appears on these models.

DESIGN DECISION: Drafts are deliberately loose (everything optional).
A draft that is missing data is not a pydantic error, it is a validation
issue that turns the ledger operation into a no-op.
"""

import time
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class AccountType(str, Enum):
    """Kinds of accounts a user can hold."""
    BANK = "BANK"
    CREDIT_CARD = "CREDIT_CARD"
    CASH = "CASH"


class Category(str, Enum):
    """
    Transaction categories.

    The set is fixed and partitioned into income and expense categories
    ("other" belongs to both).
    """
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    BILLS = "bills"
    RENT = "rent"
    HEALTH = "health"
    EDUCATION = "education"
    SALARY = "salary"
    FREELANCE = "freelance"
    BONUS = "bonus"
    INVESTMENT = "investment"
    GIFT = "gift"
    OTHER = "other"


INCOME_CATEGORIES: tuple[Category, ...] = (
    Category.SALARY,
    Category.FREELANCE,
    Category.BONUS,
    Category.INVESTMENT,
    Category.GIFT,
    Category.OTHER,
)

EXPENSE_CATEGORIES: tuple[Category, ...] = (
    Category.FOOD,
    Category.TRANSPORT,
    Category.ENTERTAINMENT,
    Category.BILLS,
    Category.RENT,
    Category.HEALTH,
    Category.EDUCATION,
    Category.OTHER,
)

CATEGORY_LABELS: dict[Category, str] = {
    Category.FOOD: "Food",
    Category.TRANSPORT: "Transport",
    Category.ENTERTAINMENT: "Entertainment",
    Category.BILLS: "Bills",
    Category.RENT: "Rent",
    Category.HEALTH: "Health",
    Category.EDUCATION: "Education",
    Category.SALARY: "Salary",
    Category.FREELANCE: "Freelance",
    Category.BONUS: "Bonus",
    Category.INVESTMENT: "Investment",
    Category.GIFT: "Gift",
    Category.OTHER: "Other",
}

DEFAULT_ACCOUNT_COLOR = "indigo"

# Field limits shared by the stored models and the draft validator
ACCOUNT_NAME_MAX_LENGTH = 100
ACCOUNT_COLOR_MAX_LENGTH = 30
DESCRIPTION_MAX_LENGTH = 500
BILL_NAME_MAX_LENGTH = 200


def categories_for(transaction_type: TransactionType) -> tuple[Category, ...]:
    """Categories allowed for a transaction type."""
    if transaction_type == TransactionType.INCOME:
        return INCOME_CATEGORIES
    return EXPENSE_CATEGORIES


def default_category(transaction_type: TransactionType) -> Category:
    """First category of the matching partition."""
    return categories_for(transaction_type)[0]


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """
    Offset-aware timestamps become naive local time.

    Every stored transaction date is naive local time so dates compare
    with each other and with datetime.now().
    """
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


_last_entity_id = 0


def new_entity_id() -> str:
    """
    Generate a unique, creation-ordered identifier.

    Microsecond timestamps, bumped by one when two ids are requested
    within the same microsecond.
    """
    global _last_entity_id
    candidate = time.time_ns() // 1_000
    if candidate <= _last_entity_id:
        candidate = _last_entity_id + 1
    _last_entity_id = candidate
    return str(candidate)


# =============================================================================
# STORED ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A place money lives: bank account, credit card or cash.

    The balance is signed (credit cards go negative) and is only changed
    by ledger operations.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_entity_id,
        description="Unique account ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=ACCOUNT_NAME_MAX_LENGTH,
        description="Display name"
    )
    type: AccountType = Field(
        default=AccountType.BANK,
        description="Account type"
    )
    balance: Decimal = Field(
        default=Decimal("0.00"),
        description="Balance in base currency"
    )
    color: Optional[str] = Field(
        default=None,
        max_length=ACCOUNT_COLOR_MAX_LENGTH,
        description="Display color"
    )


class Transaction(BaseModel):
    """
    A single income or expense entry.

    CRITICAL: amount is always in the base currency, whatever currency
    the user was looking at when it was entered.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_entity_id,
        description="Unique, creation-ordered transaction ID"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount in base currency"
    )
    category: Category
    description: str = Field(
        ...,
        min_length=1,
        max_length=DESCRIPTION_MAX_LENGTH,
    )
    type: TransactionType
    date: datetime
    account_id: Optional[str] = Field(
        default=None,
        description="Account this transaction was booked against"
    )
    bill_id: Optional[str] = Field(
        default=None,
        description="Bill this transaction settled, if any"
    )

    @field_validator('date')
    @classmethod
    def date_is_local(cls, v: datetime) -> datetime:
        return to_local_naive(v)


class Bill(BaseModel):
    """
    A recurring bill to be paid.

    Lifecycle: created unpaid, marked paid exactly once by settlement.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_entity_id,
        description="Unique bill ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=BILL_NAME_MAX_LENGTH,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount in base currency"
    )
    due_date: date
    category: Category = Field(default=Category.BILLS)
    is_paid: bool = Field(default=False)
    paid_at: Optional[datetime] = Field(
        default=None,
        description="When the bill was settled"
    )

    @field_validator('category')
    @classmethod
    def category_is_expense(cls, v: Category) -> Category:
        """Bills settle as expenses, so only expense categories apply."""
        if v not in EXPENSE_CATEGORIES:
            raise ValueError(f"Bill category must be an expense category, got: {v.value}")
        return v


class UpcomingBill(Bill):
    """An unpaid bill annotated for the dashboard."""

    is_overdue: bool
    is_soon: bool


class LedgerState(BaseModel):
    """
    The per-user data blob.

    Loaded wholesale at session start, written wholesale after every
    mutation.
    """

    transactions: list[Transaction] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)

    @classmethod
    def initial(cls) -> "LedgerState":
        """State for a user with no saved data: three empty default accounts."""
        return cls(
            accounts=[
                Account(id="acc1", name="Bank Account", type=AccountType.BANK, color="indigo"),
                Account(id="acc2", name="Credit Card", type=AccountType.CREDIT_CARD, color="slate"),
                Account(id="acc3", name="Cash", type=AccountType.CASH, color="emerald"),
            ]
        )

    def find_account(self, account_id: Optional[str]) -> Optional[Account]:
        if not account_id:
            return None
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_bill(self, bill_id: str) -> Optional[Bill]:
        return next((b for b in self.bills if b.id == bill_id), None)


# =============================================================================
# DRAFTS - user input before validation
# =============================================================================

class TransactionDraft(BaseModel):
    """What the user (or the receipt scanner) filled in for a transaction."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = None
    category: Optional[Category] = None
    description: str = ""
    type: TransactionType = TransactionType.EXPENSE
    date: Optional[datetime] = None
    account_id: Optional[str] = None
    bill_id: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def date_to_datetime(cls, v):
        """Accept plain dates (as entered in a date picker)."""
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime(v.year, v.month, v.day)
        return v

    @field_validator('date')
    @classmethod
    def date_is_local(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Receipts and API callers may send offsets; drop them."""
        return to_local_naive(v)


class BillDraft(BaseModel):
    """What the user filled in for a new bill (amount in display currency)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = ""
    amount: Optional[Decimal] = None
    due_date: date = Field(default_factory=date.today)
    category: Category = Category.BILLS


class AccountDraft(BaseModel):
    """What the user filled in for a new account (balance in display currency)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = ""
    type: AccountType = AccountType.BANK
    balance: Decimal = Decimal("0")
    color: Optional[str] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found on a draft."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Result of validating a draft. Only error-level issues block."""

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# DASHBOARD MODELS
# =============================================================================

class LedgerTotals(BaseModel):
    """Income, expense and net balance over a list of transactions."""

    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class DashboardView(BaseModel):
    """Everything the dashboard renders, already in display currency."""

    currency: str
    currency_symbol: str
    totals: LedgerTotals
    category_breakdown: dict[str, Decimal]
    upcoming_bills: list[UpcomingBill]
    alert_bills: list[UpcomingBill]
    recent_transactions: list[Transaction]
    accounts: list[Account]
    total_account_balance: Decimal
