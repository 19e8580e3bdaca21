"""
Dashboard Aggregation

Read-only views derived from the ledger. Everything is recomputed from
the full lists on every call; nothing is maintained incrementally.

All functions here work in whatever currency the input is in.
build_dashboard() is the one place that converts to display currency.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

from finanza.currency.normalizer import CurrencyNormalizer
from finanza.models.ledger import (
    CATEGORY_LABELS,
    Account,
    Bill,
    DashboardView,
    LedgerState,
    LedgerTotals,
    Transaction,
    TransactionType,
    UpcomingBill,
)


DEFAULT_SOON_DAYS = 5


def compute_totals(transactions: list[Transaction]) -> LedgerTotals:
    """Income, expense and income minus expense."""
    income = sum(
        (t.amount for t in transactions if t.type == TransactionType.INCOME),
        Decimal("0"),
    )
    expense = sum(
        (t.amount for t in transactions if t.type == TransactionType.EXPENSE),
        Decimal("0"),
    )
    return LedgerTotals(income=income, expense=expense, balance=income - expense)


def compute_category_breakdown(transactions: list[Transaction]) -> dict[str, Decimal]:
    """Category label -> summed EXPENSE amounts. Income is excluded."""
    breakdown: dict[str, Decimal] = {}
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        label = CATEGORY_LABELS[t.category]
        breakdown[label] = breakdown.get(label, Decimal("0")) + t.amount
    return breakdown


def _as_date(value: Union[date, datetime]) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    return value


def compute_upcoming_bills(
    bills: list[Bill],
    today: Union[date, datetime],
    soon_days: int = DEFAULT_SOON_DAYS,
) -> list[UpcomingBill]:
    """
    Unpaid bills annotated with is_overdue / is_soon, earliest due first.

    today is reduced to a calendar date; time of day is ignored.
    Overdue bills are also "soon" since their distance is negative.
    """
    today = _as_date(today)
    threshold = timedelta(days=soon_days)
    upcoming = [
        UpcomingBill(
            **bill.model_dump(),
            is_overdue=bill.due_date < today,
            is_soon=(bill.due_date - today) <= threshold,
        )
        for bill in bills
        if not bill.is_paid
    ]
    upcoming.sort(key=lambda b: b.due_date)
    return upcoming


def recent_transactions(
    transactions: list[Transaction],
    limit: Optional[int] = None,
) -> list[Transaction]:
    """Newest first, by date and then by creation order."""
    ordered = sorted(transactions, key=lambda t: (t.date, int(t.id) if t.id.isdigit() else 0), reverse=True)
    return ordered[:limit] if limit is not None else ordered


def total_account_balance(accounts: list[Account]) -> Decimal:
    return sum((a.balance for a in accounts), Decimal("0"))


def build_dashboard(
    state: LedgerState,
    normalizer: CurrencyNormalizer,
    today: Optional[Union[date, datetime]] = None,
    soon_days: int = DEFAULT_SOON_DAYS,
    recent_limit: Optional[int] = None,
) -> DashboardView:
    """
    Everything the dashboard shows, converted to the display currency.

    Aggregates are computed in base currency and converted once, so the
    display totals do not accumulate per-item rounding.
    """
    totals = compute_totals(state.transactions)
    upcoming = compute_upcoming_bills(state.bills, today or date.today(), soon_days)

    display_upcoming = [normalizer.bill(b) for b in upcoming]
    return DashboardView(
        currency=normalizer.display_currency,
        currency_symbol=normalizer.symbol,
        totals=LedgerTotals(
            income=normalizer.to_display(totals.income),
            expense=normalizer.to_display(totals.expense),
            balance=normalizer.to_display(totals.balance),
        ),
        category_breakdown={
            label: normalizer.to_display(amount)
            for label, amount in compute_category_breakdown(state.transactions).items()
        },
        upcoming_bills=display_upcoming,
        alert_bills=[b for b in display_upcoming if b.is_overdue or b.is_soon],
        recent_transactions=[
            normalizer.transaction(t)
            for t in recent_transactions(state.transactions, recent_limit)
        ],
        accounts=[normalizer.account(a) for a in state.accounts],
        total_account_balance=normalizer.to_display(total_account_balance(state.accounts)),
    )
