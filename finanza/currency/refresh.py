"""
Exchange Rate Refresh Policy

State machine:

    IDLE -> FETCHING -> UPDATED   (table replaced wholesale)
                     -> REJECTED  (sanity check failed, previous table kept)
                     -> FAILED    (fetch raised, previous table kept)
                     -> DISCARDED (session ended while fetching)
         -> IDLE

CRITICAL: At most one fetch is in flight. A trigger that arrives while
FETCHING is answered with SKIPPED and does nothing.

The refresher runs on a single asyncio event loop, so checking and
setting the state before the first await is enough to serialize fetches.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

import structlog

from finanza.models.rates import RateFetchResult, RateTable

if TYPE_CHECKING:
    from finanza.audit import AuditLogger


logger = structlog.get_logger(__name__)

RateFetcher = Callable[[], Awaitable[RateFetchResult]]


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class RefreshOutcome(str, Enum):
    UPDATED = "updated"
    REJECTED = "rejected"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISCARDED = "discarded"


class RateRefresher:
    """
    Owns the process-wide rate table and refreshes it from a fetcher.

    Usage:
        refresher = RateRefresher(assistant.fetch_exchange_rates)
        await refresher.refresh(trigger="startup")
        rate = refresher.table.rate_for("USD")
    """

    def __init__(
        self,
        fetcher: RateFetcher,
        table: Optional[RateTable] = None,
        sanity_currency: str = "USD",
        refresh_interval: timedelta = timedelta(hours=1),
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._fetcher = fetcher
        self._table = table or RateTable.default()
        self._sanity_currency = sanity_currency.upper()
        self._refresh_interval = refresh_interval
        self._audit = audit_logger

        self._state = RefreshState.IDLE
        self._generation = 0
        self._last_attempt_at: Optional[datetime] = None
        self._last_success_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def table(self) -> RateTable:
        return self._table

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def last_success_at(self) -> Optional[datetime]:
        return self._last_success_at

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """True if no refresh was attempted within the refresh interval."""
        if self._last_attempt_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now - self._last_attempt_at >= self._refresh_interval

    def cancel_pending(self) -> None:
        """
        Discard the result of any fetch currently in flight.

        Called when the session ends; the fetch itself is not interrupted,
        its result is simply never applied.
        """
        self._generation += 1
        if self._state == RefreshState.FETCHING:
            logger.info("rate_refresh_cancelled", generation=self._generation)

    def check_sanity(self, table: RateTable) -> Optional[str]:
        """Reason the table must be rejected, or None if it is plausible."""
        rate = table.rates.get(self._sanity_currency)
        if rate is None:
            return f"{self._sanity_currency} rate missing from fetched table"
        if rate <= Decimal("1"):
            return f"{self._sanity_currency} rate {rate} is implausible (must exceed 1)"
        return None

    async def refresh(self, trigger: str = "manual") -> RefreshOutcome:
        """
        Fetch a new table and swap it in if it passes the sanity check.

        Never raises for fetch problems; the outcome says what happened.
        """
        if self._state == RefreshState.FETCHING:
            logger.info("rate_refresh_skipped", trigger=trigger)
            return RefreshOutcome.SKIPPED

        self._state = RefreshState.FETCHING
        generation = self._generation
        self._last_attempt_at = datetime.now(timezone.utc)
        try:
            result = await self._fetcher()
        except Exception as e:
            if generation != self._generation:
                logger.info("rate_refresh_discarded", trigger=trigger, error=str(e))
                return RefreshOutcome.DISCARDED
            self._last_error = str(e)
            logger.error("rate_refresh_failed", trigger=trigger, error=str(e))
            if self._audit:
                await self._audit.log_external_service_error("exchange_rates", str(e))
            return RefreshOutcome.FAILED
        finally:
            self._state = RefreshState.IDLE

        if generation != self._generation:
            logger.info("rate_refresh_discarded", trigger=trigger)
            return RefreshOutcome.DISCARDED

        rates_for_log = {code: str(value) for code, value in result.rates.items()}
        try:
            candidate = RateTable(
                base_currency=self._table.base_currency,
                rates=result.rates,
                sources=result.sources,
            )
            reason = self.check_sanity(candidate)
        except ValueError as e:
            reason = str(e)

        if reason is not None:
            self._last_error = reason
            logger.warning("rate_refresh_rejected", trigger=trigger, reason=reason, rates=rates_for_log)
            if self._audit:
                await self._audit.log_rates_rejected(rates_for_log, reason)
            return RefreshOutcome.REJECTED

        self._table = candidate
        self._last_success_at = candidate.fetched_at
        self._last_error = None
        logger.info(
            "rate_refresh_updated",
            trigger=trigger,
            rates=rates_for_log,
            fallback_currencies=result.fallback_currencies,
        )
        if self._audit:
            await self._audit.log_rates_refreshed(rates_for_log, trigger)
        return RefreshOutcome.UPDATED
