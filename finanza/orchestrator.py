"""
Main Orchestrator for Finanza

This module ties the components together and defines the end-to-end flows:
1. Session lifecycle (register / login / restore / logout)
2. Ledger flow (validate -> mutate -> persist whole blob -> audit)
3. Assistant flow (chat / search / receipt scanning)

DESIGN DECISION: Session state is an explicit AppSession object created at
login and closed at logout. Nothing ledger-related lives in module globals;
the only process-wide object is the RateRefresher that owns the rate table.

CRITICAL: Once a session is closed, no flow may touch its ledger. Logout
also discards any rate refresh still in flight.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import NamedTuple, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finanza.agents import (
    AssistantReply,
    FinanceAssistant,
    RateFetchError,
    ReceiptExtraction,
    ReceiptParseError,
)
from finanza.audit import AuditLogger, create_correlation_id
from finanza.config import AppSettings, get_settings
from finanza.currency import CurrencyNormalizer, RateRefresher, RateRefreshScheduler
from finanza.ledger import (
    LedgerError,
    SettlementError,
    add_account,
    add_bill,
    add_transaction,
    build_dashboard,
    delete_bill,
    pay_bill,
)
from finanza.models.ledger import (
    Account,
    AccountDraft,
    Bill,
    BillDraft,
    DashboardView,
    LedgerState,
    Transaction,
    TransactionDraft,
    ValidationResult,
)
from finanza.models.rates import Currency, RateFetchResult, RateTable, Theme
from finanza.models.user import User, UserPreferences
from finanza.services.auth import AuthenticationError, CredentialService
from finanza.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    KeyValueStoreInterface,
    LedgerRepository,
    LocalAuditStorage,
    LocalJsonStore,
    PreferencesRepository,
    StorageError,
    UserRepository,
)
from finanza.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class SessionClosedError(LedgerError):
    """The session was logged out; its ledger can no longer be changed."""
    pass


class AppSession(BaseModel):
    """
    Everything that belongs to one logged-in user.

    Created by SessionManager, closed by SessionManager.logout().
    """
    user: User
    ledger: LedgerState
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    active: bool = True
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def display_currency(self) -> str:
        return self.preferences.display_currency.value


class SessionManager:
    """
    Session lifecycle.

    Flow:
    1. register() or login() -> AppSession with the user's ledger loaded
    2. restore() picks up the session marker left by a previous run
    3. logout() closes the session, clears the marker, cancels pending refreshes
    """

    def __init__(
        self,
        credentials: CredentialService,
        users: UserRepository,
        ledgers: LedgerRepository,
        preferences: PreferencesRepository,
        refresher: Optional[RateRefresher] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._credentials = credentials
        self._users = users
        self._ledgers = ledgers
        self._preferences = preferences
        self._refresher = refresher
        self._audit_logger = audit_logger

    async def _open(self, user: User) -> AppSession:
        ledger = await self._ledgers.load(user.id)
        preferences = await self._preferences.load()
        await self._users.set_current(user)
        logger.info("session_opened", user_id=user.id)
        return AppSession(user=user.public(), ledger=ledger, preferences=preferences)

    async def register(self, username: str, email: str, password: str) -> AppSession:
        """
        Register and log in.

        Raises:
            AuthenticationError: Invalid input or username taken
        """
        user = await self._credentials.register(username, email, password)
        if self._audit_logger:
            await self._audit_logger.log_user_registered(user.id, user.username)
        return await self._open(user)

    async def login(self, username: str, password: str) -> AppSession:
        """
        Raises:
            AuthenticationError: Unknown user or wrong password
        """
        try:
            user = await self._credentials.authenticate(username, password)
        except AuthenticationError:
            if self._audit_logger:
                await self._audit_logger.log_login_failed(username.strip())
            raise
        if self._audit_logger:
            await self._audit_logger.log_user_logged_in(user.id, user.username)
        return await self._open(user)

    async def restore(self) -> Optional[AppSession]:
        """Session for the user in the session marker, if there is one."""
        user = await self._users.get_current()
        if user is None:
            return None
        return await self._open(user)

    async def logout(self, session: AppSession) -> None:
        """Close the session. Safe to call twice."""
        if not session.active:
            return
        session.active = False
        if self._refresher:
            self._refresher.cancel_pending()
        await self._users.clear_current()
        if self._audit_logger:
            await self._audit_logger.log_user_logged_out(session.user_id)
        logger.info("session_closed", user_id=session.user_id)

    async def set_display_currency(
        self,
        session: AppSession,
        currency: Union[Currency, str],
    ) -> UserPreferences:
        session.preferences = session.preferences.model_copy(
            update={"display_currency": Currency(currency)}
        )
        await self._preferences.save(session.preferences)
        return session.preferences

    async def set_theme(self, session: AppSession, theme: Union[Theme, str]) -> UserPreferences:
        session.preferences = session.preferences.model_copy(update={"theme": Theme(theme)})
        await self._preferences.save(session.preferences)
        return session.preferences


class LedgerFlow:
    """
    Ledger mutations for a session.

    Every mutation:
    1. Validates the draft (rejections are audited, state untouched)
    2. Applies the ledger operation
    3. Writes the whole ledger blob
    4. Audits the change
    """

    def __init__(
        self,
        ledgers: LedgerRepository,
        refresher: RateRefresher,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._ledgers = ledgers
        self._refresher = refresher
        self._app_settings = app_settings or get_settings().app
        self._validator = validator or LedgerValidator(self._app_settings)
        self._audit_logger = audit_logger

    @property
    def validator(self) -> LedgerValidator:
        return self._validator

    def _require_active(self, session: AppSession) -> None:
        if not session.active:
            raise SessionClosedError(f"Session for {session.user_id} is closed")

    def rate_for(self, session: AppSession) -> Decimal:
        """Base units per display unit for the session's display currency."""
        return self._refresher.table.rate_for(session.display_currency)

    def normalizer(self, session: AppSession) -> CurrencyNormalizer:
        return CurrencyNormalizer(self._refresher.table, session.display_currency)

    async def _persist(self, session: AppSession) -> None:
        try:
            await self._ledgers.save(session.user_id, session.ledger)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="save_failed",
                    error_message=str(e),
                    details={"user_id": session.user_id},
                )
            raise

    async def _reject(self, session: AppSession, entity_type: str, result: ValidationResult) -> None:
        if self._audit_logger:
            await self._audit_logger.log_draft_rejected(
                user_id=session.user_id,
                entity_type=entity_type,
                issues=[issue.model_dump() for issue in result.issues],
            )

    async def add_transaction(
        self,
        session: AppSession,
        draft: TransactionDraft,
        is_already_base_currency: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[Transaction], ValidationResult]:
        """
        Record a transaction entered in the session's display currency.

        Returns:
            (transaction or None, validation result)
        """
        self._require_active(session)
        rate = self.rate_for(session)
        result = self._validator.validate_transaction_draft(
            draft,
            state=session.ledger,
            rate=rate,
            is_already_base_currency=is_already_base_currency,
        )
        if not result.is_valid:
            await self._reject(session, "transaction", result)
            return None, result

        transaction = add_transaction(
            session.ledger,
            draft,
            rate=rate,
            is_already_base_currency=is_already_base_currency,
            validator=self._validator,
        )
        await self._persist(session)
        if self._audit_logger and transaction:
            await self._audit_logger.log_transaction_added(
                user_id=session.user_id,
                transaction_id=transaction.id,
                transaction_type=transaction.type.value,
                amount=str(transaction.amount),
                account_id=transaction.account_id,
                correlation_id=correlation_id,
            )
        return transaction, result

    async def add_bill(
        self,
        session: AppSession,
        draft: BillDraft,
    ) -> tuple[Optional[Bill], ValidationResult]:
        self._require_active(session)
        rate = self.rate_for(session)
        result = self._validator.validate_bill_draft(draft, rate=rate)
        if not result.is_valid:
            await self._reject(session, "bill", result)
            return None, result

        bill = add_bill(session.ledger, draft, rate=rate, validator=self._validator)
        await self._persist(session)
        if self._audit_logger and bill:
            await self._audit_logger.log_bill_added(
                user_id=session.user_id,
                bill_id=bill.id,
                name=bill.name,
                amount=str(bill.amount),
                due_date=bill.due_date.isoformat(),
            )
        return bill, result

    async def add_account(
        self,
        session: AppSession,
        draft: AccountDraft,
    ) -> tuple[Optional[Account], ValidationResult]:
        self._require_active(session)
        rate = self.rate_for(session)
        result = self._validator.validate_account_draft(draft)
        if not result.is_valid:
            await self._reject(session, "account", result)
            return None, result

        account = add_account(session.ledger, draft, rate=rate, validator=self._validator)
        await self._persist(session)
        if self._audit_logger and account:
            await self._audit_logger.log_account_added(
                user_id=session.user_id,
                account_id=account.id,
                name=account.name,
                balance=str(account.balance),
            )
        return account, result

    async def pay_bill(
        self,
        session: AppSession,
        bill_id: str,
        account_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        """
        Settle a bill.

        Returns the settlement transaction, or None if the bill was already paid.

        Raises:
            NotFoundError: Unknown bill or account
            SettlementError: No account to settle into
        """
        self._require_active(session)
        correlation_id = create_correlation_id()
        try:
            transaction = pay_bill(
                session.ledger,
                bill_id,
                account_id=account_id,
                validator=self._validator,
            )
        except SettlementError as e:
            if self._audit_logger:
                await self._audit_logger.log_settlement_failed(
                    user_id=session.user_id,
                    bill_id=bill_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        if transaction is None:
            return None

        await self._persist(session)
        if self._audit_logger:
            await self._audit_logger.log_transaction_added(
                user_id=session.user_id,
                transaction_id=transaction.id,
                transaction_type=transaction.type.value,
                amount=str(transaction.amount),
                account_id=transaction.account_id,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_bill_paid(
                user_id=session.user_id,
                bill_id=bill_id,
                transaction_id=transaction.id,
                account_id=transaction.account_id,
                correlation_id=correlation_id,
            )
        return transaction

    async def delete_bill(self, session: AppSession, bill_id: str) -> Bill:
        """
        Raises:
            NotFoundError: Unknown bill
        """
        self._require_active(session)
        bill = delete_bill(session.ledger, bill_id)
        await self._persist(session)
        if self._audit_logger:
            await self._audit_logger.log_bill_deleted(session.user_id, bill.id, bill.name)
        return bill

    def dashboard(
        self,
        session: AppSession,
        today: Optional[Union[date, datetime]] = None,
    ) -> DashboardView:
        """Dashboard in the session's display currency."""
        return build_dashboard(
            session.ledger,
            self.normalizer(session),
            today=today,
            soon_days=self._app_settings.bill_soon_threshold_days,
            recent_limit=self._app_settings.recent_transactions_limit,
        )


class AssistantFlow:
    """
    Assistant features for a session.

    Receipt scanning produces a draft; recording it goes through the
    LedgerFlow like any other transaction.
    """

    def __init__(
        self,
        assistant: FinanceAssistant,
        ledger_flow: LedgerFlow,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._assistant = assistant
        self._ledger_flow = ledger_flow
        self._audit_logger = audit_logger
        self._app_settings = app_settings or get_settings().app

    async def ask(self, session: AppSession, prompt: str) -> AssistantReply:
        if not session.active:
            raise SessionClosedError(f"Session for {session.user_id} is closed")
        reply = await self._assistant.answer(prompt)
        if reply.is_fallback and self._audit_logger:
            await self._audit_logger.log_external_service_error(
                service="gemini_search" if reply.used_search else "gemini_chat",
                error_message="Assistant returned the fallback message",
            )
        return reply

    async def scan_receipt(
        self,
        session: AppSession,
        image_bytes: bytes,
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptExtraction:
        """
        Read a receipt for review.

        Raises:
            ReceiptParseError: Image too large, unreadable, or not understood
        """
        if not session.active:
            raise SessionClosedError(f"Session for {session.user_id} is closed")
        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            raise ReceiptParseError(
                f"Receipt image is larger than {self._app_settings.max_upload_size_mb} MB"
            )
        try:
            extraction = await self._assistant.analyze_receipt(image_bytes)
        except ReceiptParseError as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini_receipt",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise
        if self._audit_logger:
            await self._audit_logger.log_receipt_analyzed(
                user_id=session.user_id,
                amount=str(extraction.amount),
                category=extraction.category.value,
                correlation_id=correlation_id,
            )
        return extraction

    async def record_receipt(
        self,
        session: AppSession,
        image_bytes: bytes,
        account_id: Optional[str],
    ) -> tuple[Optional[Transaction], ValidationResult, ReceiptExtraction]:
        """Scan a receipt and record it as an expense in the display currency."""
        correlation_id = create_correlation_id()
        extraction = await self.scan_receipt(session, image_bytes, correlation_id=correlation_id)
        transaction, result = await self._ledger_flow.add_transaction(
            session,
            extraction.to_draft(account_id),
            correlation_id=correlation_id,
        )
        return transaction, result, extraction


class AppComponents(NamedTuple):
    session_manager: SessionManager
    ledger_flow: LedgerFlow
    assistant_flow: Optional[AssistantFlow]
    refresher: RateRefresher
    scheduler: RateRefreshScheduler
    audit_logger: AuditLogger


async def _assistant_unavailable() -> RateFetchResult:
    raise RateFetchError("Assistant is not configured (set GEMINI_API_KEY)")


def create_app_components(
    store: Optional[KeyValueStoreInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    assistant: Optional[FinanceAssistant] = None,
    use_assistant: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        store: Key/value store. Built from StorageSettings when None.
        audit_storage: Audit store. Built from StorageSettings when None.
        assistant: Finance assistant. Built from GeminiSettings when None.
        use_assistant: Set to False to run without Gemini (tests, offline).
    """
    settings = get_settings()
    storage_settings = settings.storage
    currency_settings = settings.currency
    app_settings = settings.app

    if store is None or audit_storage is None:
        if storage_settings.backend == "google_sheets":
            sheets_client = GoogleSheetsClient()
            store = store or GoogleSheetsKeyValueStore(sheets_client)
            audit_storage = audit_storage or GoogleSheetsAuditStorage(sheets_client)
        else:
            store = store or LocalJsonStore(storage_settings.data_path)
            audit_storage = audit_storage or LocalAuditStorage(storage_settings.audit_log_path)

    audit_logger = AuditLogger(audit_storage)

    if assistant is None and use_assistant:
        try:
            assistant = FinanceAssistant()
        except Exception as e:
            # Gemini not configured - continue without the assistant
            logger.warning("assistant_not_configured", error=str(e))
            assistant = None

    refresher = RateRefresher(
        fetcher=assistant.fetch_exchange_rates if assistant else _assistant_unavailable,
        table=RateTable.default(currency_settings.base_currency),
        sanity_currency=currency_settings.sanity_currency,
        refresh_interval=timedelta(seconds=currency_settings.refresh_interval_seconds),
        audit_logger=audit_logger,
    )
    scheduler = RateRefreshScheduler(
        refresher,
        interval_seconds=currency_settings.refresh_interval_seconds,
    )

    users = UserRepository(store)
    ledgers = LedgerRepository(store)
    session_manager = SessionManager(
        credentials=CredentialService(users),
        users=users,
        ledgers=ledgers,
        preferences=PreferencesRepository(store),
        refresher=refresher,
        audit_logger=audit_logger,
    )
    ledger_flow = LedgerFlow(
        ledgers=ledgers,
        refresher=refresher,
        audit_logger=audit_logger,
        app_settings=app_settings,
    )
    assistant_flow = (
        AssistantFlow(assistant, ledger_flow, audit_logger, app_settings)
        if assistant
        else None
    )

    return AppComponents(
        session_manager=session_manager,
        ledger_flow=ledger_flow,
        assistant_flow=assistant_flow,
        refresher=refresher,
        scheduler=scheduler,
        audit_logger=audit_logger,
    )
