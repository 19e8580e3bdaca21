"""
Currency Normalizer

Converts between the base currency (what is stored) and the display
currency (what the user is looking at).

rate = base-currency units per 1 display-currency unit, so:
    to_display(base, rate) = round2(base / rate)
    to_base(display, rate) = round2(display * rate)

CRITICAL: Every conversion rounds to 2 decimal places (half-up). The
rounding is lossy: to_base(to_display(x, r), r) is only guaranteed to be
within 0.01 of x.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from finanza.models.ledger import Account, Bill, Transaction
from finanza.models.rates import RateTable, currency_symbol


Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    """Decimal from any numeric input; floats go through str() to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Number) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _check_rate(rate: Number) -> Decimal:
    rate = to_decimal(rate)
    if not rate.is_finite() or rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {rate}")
    return rate


def to_display(base_amount: Number, rate: Number) -> Decimal:
    """Base-currency amount -> display currency."""
    return round2(to_decimal(base_amount) / _check_rate(rate))


def to_base(display_amount: Number, rate: Number) -> Decimal:
    """Display-currency amount -> base currency."""
    return round2(to_decimal(display_amount) * _check_rate(rate))


class CurrencyNormalizer:
    """
    A rate table bound to one display currency.

    Produces display copies of stored entities; the stored entities are
    never modified.
    """

    def __init__(self, table: RateTable, display_currency: Optional[str] = None):
        self._table = table
        self._display_currency = (display_currency or table.base_currency).upper()
        self._rate = self._table.rate_for(self._display_currency)

    @property
    def display_currency(self) -> str:
        return self._display_currency

    @property
    def rate(self) -> Decimal:
        """Base units per 1 display unit (1 for unknown currencies)."""
        return self._rate

    @property
    def symbol(self) -> str:
        return currency_symbol(self._display_currency)

    def to_display(self, base_amount: Number) -> Decimal:
        return to_display(base_amount, self._rate)

    def to_base(self, display_amount: Number) -> Decimal:
        return to_base(display_amount, self._rate)

    def format(self, base_amount: Number) -> str:
        """Display string such as '$100.00'."""
        return f"{self.symbol}{self.to_display(base_amount):,.2f}"

    def account(self, account: Account) -> Account:
        return account.model_copy(update={"balance": self.to_display(account.balance)})

    def transaction(self, transaction: Transaction) -> Transaction:
        return transaction.model_copy(update={"amount": self.to_display(transaction.amount)})

    def bill(self, bill: Bill) -> Bill:
        """Works for UpcomingBill too; model_copy keeps the subclass."""
        return bill.model_copy(update={"amount": self.to_display(bill.amount)})
