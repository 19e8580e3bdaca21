"""Currency conversion and exchange-rate refresh."""

from finanza.currency.normalizer import (
    CurrencyNormalizer,
    round2,
    to_base,
    to_decimal,
    to_display,
)
from finanza.currency.refresh import (
    RateRefresher,
    RefreshOutcome,
    RefreshState,
)
from finanza.currency.scheduler import RATE_REFRESH_JOB_ID, RateRefreshScheduler

__all__ = [
    "CurrencyNormalizer",
    "round2",
    "to_base",
    "to_decimal",
    "to_display",
    "RateRefresher",
    "RefreshOutcome",
    "RefreshState",
    "RATE_REFRESH_JOB_ID",
    "RateRefreshScheduler",
]
