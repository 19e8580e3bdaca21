"""
Data Models Package

This package contains all Pydantic models used in Finanza.
All data flowing through the system must conform to these schemas.
"""

from finanza.models.ledger import (
    CATEGORY_LABELS,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    Account,
    AccountDraft,
    AccountType,
    Bill,
    BillDraft,
    Category,
    DashboardView,
    LedgerState,
    LedgerTotals,
    Transaction,
    TransactionDraft,
    TransactionType,
    UpcomingBill,
    ValidationIssue,
    ValidationResult,
    categories_for,
    default_category,
    new_entity_id,
)
from finanza.models.rates import (
    CURRENCY_SYMBOLS,
    DEFAULT_RATES,
    FALLBACK_RATES,
    Currency,
    RateFetchResult,
    RateTable,
    Theme,
    currency_symbol,
)
from finanza.models.user import User, UserPreferences
from finanza.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CATEGORY_LABELS",
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "Account",
    "AccountDraft",
    "AccountType",
    "Bill",
    "BillDraft",
    "Category",
    "DashboardView",
    "LedgerState",
    "LedgerTotals",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "UpcomingBill",
    "ValidationIssue",
    "ValidationResult",
    "categories_for",
    "default_category",
    "new_entity_id",
    # Currency models
    "CURRENCY_SYMBOLS",
    "DEFAULT_RATES",
    "FALLBACK_RATES",
    "Currency",
    "RateFetchResult",
    "RateTable",
    "Theme",
    "currency_symbol",
    # User models
    "User",
    "UserPreferences",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
