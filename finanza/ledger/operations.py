"""
Ledger Operations

Every change to a LedgerState goes through these functions. They mutate
the state in place and return the entity they created, or None when the
draft failed validation (the state is then untouched).

CRITICAL: A transaction and its account balance update are one unit.
Nothing that can fail runs between appending the transaction and
adjusting the balance.

DESIGN DECISION: Referential problems fail loudly. Paying or deleting a
bill that does not exist, or settling into an account that does not
exist, raises instead of silently doing nothing.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog

from finanza.currency.normalizer import round2, to_base
from finanza.models.ledger import (
    DEFAULT_ACCOUNT_COLOR,
    Account,
    AccountDraft,
    Bill,
    BillDraft,
    LedgerState,
    Transaction,
    TransactionDraft,
    TransactionType,
    ValidationResult,
    default_category,
)
from finanza.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class NotFoundError(LedgerError, LookupError):
    """A bill or account id does not exist in the ledger."""
    pass


class SettlementError(LedgerError):
    """A bill could not be settled; the bill stays unpaid."""
    pass


def _log_rejected(operation: str, result: ValidationResult) -> None:
    logger.warning(
        "ledger_draft_rejected",
        operation=operation,
        issues=[issue.model_dump() for issue in result.issues if issue.severity == "error"],
    )


def select_settlement_account(accounts: list[Account]) -> Optional[Account]:
    """
    Default account for bill settlement: the first account in the list.

    The first account is the oldest one the user still has, which for a new
    user is the default Bank Account.
    """
    return accounts[0] if accounts else None


def apply_to_balance(account: Account, transaction: Transaction) -> Decimal:
    """Add (INCOME) or subtract (EXPENSE) the amount; returns the new balance."""
    if transaction.type == TransactionType.INCOME:
        account.balance = round2(account.balance + transaction.amount)
    else:
        account.balance = round2(account.balance - transaction.amount)
    return account.balance


def add_transaction(
    state: LedgerState,
    draft: TransactionDraft,
    rate: Decimal = Decimal("1"),
    is_already_base_currency: bool = False,
    validator: Optional[LedgerValidator] = None,
) -> Optional[Transaction]:
    """
    Record a transaction and update its account balance.

    Args:
        state: Ledger to mutate
        draft: Amount (display currency unless is_already_base_currency),
               description, type, account and optional category/date
        rate: Base units per display unit
        is_already_base_currency: Store the amount as-is (bill settlement)

    Returns:
        The new transaction, or None if the draft failed validation.
    """
    validator = validator or LedgerValidator()
    result = validator.validate_transaction_draft(
        draft,
        state=state,
        rate=rate,
        is_already_base_currency=is_already_base_currency,
    )
    if not result.is_valid:
        _log_rejected("add_transaction", result)
        return None

    amount = round2(draft.amount) if is_already_base_currency else to_base(draft.amount, rate)
    transaction = Transaction(
        amount=amount,
        category=draft.category or default_category(draft.type),
        description=draft.description,
        type=draft.type,
        date=draft.date or datetime.now(),
        account_id=draft.account_id,
        bill_id=draft.bill_id,
    )

    account = state.find_account(transaction.account_id)
    state.transactions.append(transaction)
    if account is None:
        logger.warning(
            "transaction_account_missing",
            transaction_id=transaction.id,
            account_id=transaction.account_id,
        )
    else:
        apply_to_balance(account, transaction)

    logger.info(
        "transaction_added",
        transaction_id=transaction.id,
        type=transaction.type.value,
        amount=str(transaction.amount),
        account_id=transaction.account_id,
    )
    return transaction


def add_bill(
    state: LedgerState,
    draft: BillDraft,
    rate: Decimal = Decimal("1"),
    validator: Optional[LedgerValidator] = None,
) -> Optional[Bill]:
    """Add an unpaid bill; the amount is entered in display currency."""
    validator = validator or LedgerValidator()
    result = validator.validate_bill_draft(draft, rate=rate)
    if not result.is_valid:
        _log_rejected("add_bill", result)
        return None

    bill = Bill(
        name=draft.name,
        amount=to_base(draft.amount, rate),
        due_date=draft.due_date,
        category=draft.category,
        is_paid=False,
    )
    state.bills.append(bill)
    logger.info("bill_added", bill_id=bill.id, amount=str(bill.amount), due_date=bill.due_date.isoformat())
    return bill


def add_account(
    state: LedgerState,
    draft: AccountDraft,
    rate: Decimal = Decimal("1"),
    validator: Optional[LedgerValidator] = None,
) -> Optional[Account]:
    """Add an account; the opening balance is entered in display currency."""
    validator = validator or LedgerValidator()
    result = validator.validate_account_draft(draft)
    if not result.is_valid:
        _log_rejected("add_account", result)
        return None

    account = Account(
        name=draft.name,
        type=draft.type,
        balance=to_base(draft.balance, rate),
        color=draft.color or DEFAULT_ACCOUNT_COLOR,
    )
    state.accounts.append(account)
    logger.info("account_added", account_id=account.id, balance=str(account.balance))
    return account


def pay_bill(
    state: LedgerState,
    bill_id: str,
    account_id: Optional[str] = None,
    now: Optional[datetime] = None,
    validator: Optional[LedgerValidator] = None,
) -> Optional[Transaction]:
    """
    Settle an unpaid bill with one EXPENSE transaction.

    Args:
        state: Ledger to mutate
        bill_id: Bill to settle
        account_id: Account to pay from; defaults to select_settlement_account()
        now: Settlement timestamp (defaults to now)

    Returns:
        The settlement transaction, or None if the bill was already paid.

    Raises:
        NotFoundError: Unknown bill, or unknown explicit account
        SettlementError: No account to settle into; the bill stays unpaid
    """
    bill = state.find_bill(bill_id)
    if bill is None:
        raise NotFoundError(f"Bill not found: {bill_id}")
    if bill.is_paid:
        logger.info("bill_already_paid", bill_id=bill_id)
        return None

    if account_id is not None:
        account = state.find_account(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
    else:
        account = select_settlement_account(state.accounts)
        if account is None:
            raise SettlementError(f"No account available to settle bill {bill_id}")

    draft = TransactionDraft(
        amount=bill.amount,
        category=bill.category,
        description=f"{bill.name} Payment",
        type=TransactionType.EXPENSE,
        date=now or datetime.now(),
        account_id=account.id,
        bill_id=bill.id,
    )
    transaction = add_transaction(
        state,
        draft,
        is_already_base_currency=True,
        validator=validator,
    )
    if transaction is None:
        raise SettlementError(f"Settlement transaction for bill {bill_id} was rejected")

    bill.is_paid = True
    bill.paid_at = transaction.date
    logger.info("bill_paid", bill_id=bill.id, transaction_id=transaction.id, account_id=account.id)
    return transaction


def delete_bill(state: LedgerState, bill_id: str) -> Bill:
    """
    Remove a bill. Settlement transactions already recorded stay.

    Raises:
        NotFoundError: Unknown bill
    """
    bill = state.find_bill(bill_id)
    if bill is None:
        raise NotFoundError(f"Bill not found: {bill_id}")
    state.bills = [b for b in state.bills if b.id != bill_id]
    logger.info("bill_deleted", bill_id=bill_id, was_paid=bill.is_paid)
    return bill
