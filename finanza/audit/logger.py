"""
Audit Logger

DESIGN DECISION: Every ledger mutation, rejected draft, rate refresh and
session change is logged. This provides:
1. Traceability of balances
2. Debugging capability for the AI and rate services
3. A history the user can look at

The audit logger:
- Is async so persistence does not block the ledger
- Never raises because the audit trail failed to persist
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finanza.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finanza.services.storage import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log
    2. An audit store (JSON lines file or Google Sheets), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finanza.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_added(
        self,
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        account_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_added(
            user_id=user_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_draft_rejected(
        self,
        user_id: str,
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a draft that failed validation (the operation was a no-op)."""
        await self.log(AuditEventBuilder.draft_rejected(
            user_id=user_id,
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_account_added(
        self,
        user_id: str,
        account_id: str,
        name: str,
        balance: str,
    ) -> None:
        await self.log(AuditEventBuilder.account_added(
            user_id=user_id,
            account_id=account_id,
            name=name,
            balance=balance,
        ))

    async def log_bill_added(
        self,
        user_id: str,
        bill_id: str,
        name: str,
        amount: str,
        due_date: str,
    ) -> None:
        await self.log(AuditEventBuilder.bill_added(
            user_id=user_id,
            bill_id=bill_id,
            name=name,
            amount=amount,
            due_date=due_date,
        ))

    async def log_bill_paid(
        self,
        user_id: str,
        bill_id: str,
        transaction_id: str,
        account_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.bill_paid(
            user_id=user_id,
            bill_id=bill_id,
            transaction_id=transaction_id,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_bill_deleted(self, user_id: str, bill_id: str, name: str) -> None:
        await self.log(AuditEventBuilder.bill_deleted(
            user_id=user_id,
            bill_id=bill_id,
            name=name,
        ))

    async def log_settlement_failed(
        self,
        user_id: str,
        bill_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_failed(
            user_id=user_id,
            bill_id=bill_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_rates_refreshed(self, rates: dict[str, str], trigger: str) -> None:
        await self.log(AuditEventBuilder.rates_refreshed(rates=rates, trigger=trigger))

    async def log_rates_rejected(self, rates: dict[str, str], reason: str) -> None:
        await self.log(AuditEventBuilder.rates_rejected(rates=rates, reason=reason))

    async def log_receipt_analyzed(
        self,
        user_id: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_analyzed(
            user_id=user_id,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_user_registered(self, user_id: str, username: str) -> None:
        await self.log(AuditEventBuilder.user_registered(user_id=user_id, username=username))

    async def log_user_logged_in(self, user_id: str, username: str) -> None:
        await self.log(AuditEventBuilder.user_logged_in(user_id=user_id, username=username))

    async def log_login_failed(self, username: str) -> None:
        await self.log(AuditEventBuilder.login_failed(username=username))

    async def log_user_logged_out(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.user_logged_out(user_id=user_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., paying a bill) and pass
    it through every event the action produces.
    """
    return uuid4()
