"""Ledger operations and dashboard aggregation."""

from finanza.ledger.dashboard import (
    DEFAULT_SOON_DAYS,
    build_dashboard,
    compute_category_breakdown,
    compute_totals,
    compute_upcoming_bills,
    recent_transactions,
    total_account_balance,
)
from finanza.ledger.operations import (
    LedgerError,
    NotFoundError,
    SettlementError,
    add_account,
    add_bill,
    add_transaction,
    apply_to_balance,
    delete_bill,
    pay_bill,
    select_settlement_account,
)

__all__ = [
    "DEFAULT_SOON_DAYS",
    "build_dashboard",
    "compute_category_breakdown",
    "compute_totals",
    "compute_upcoming_bills",
    "recent_transactions",
    "total_account_balance",
    "LedgerError",
    "NotFoundError",
    "SettlementError",
    "add_account",
    "add_bill",
    "add_transaction",
    "apply_to_balance",
    "delete_bill",
    "pay_bill",
    "select_settlement_account",
]
