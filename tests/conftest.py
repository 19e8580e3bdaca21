"""Shared fixtures. No test talks to Gemini, Google Sheets or the network."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from finanza.audit import AuditLogger
from finanza.config import AppSettings
from finanza.currency import RateRefresher
from finanza.models.ledger import LedgerState
from finanza.models.rates import RateFetchResult, RateTable
from finanza.orchestrator import LedgerFlow, SessionManager
from finanza.services.auth import CredentialService
from finanza.services.storage import (
    InMemoryKeyValueStore,
    LedgerRepository,
    PreferencesRepository,
    UserRepository,
)
from finanza.validation import LedgerValidator


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def validator(app_settings):
    return LedgerValidator(app_settings)


@pytest.fixture
def state():
    return LedgerState.initial()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def rate_fetcher():
    return AsyncMock(return_value=RateFetchResult(rates={
        "USD": Decimal("35"),
        "EUR": Decimal("38"),
        "GBP": Decimal("45"),
        "CAD": Decimal("26"),
    }))


@pytest.fixture
def refresher(rate_fetcher):
    return RateRefresher(
        fetcher=rate_fetcher,
        table=RateTable.default(),
        refresh_interval=timedelta(hours=1),
    )


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def session_manager(store, refresher, audit_logger):
    users = UserRepository(store)
    return SessionManager(
        credentials=CredentialService(users),
        users=users,
        ledgers=LedgerRepository(store),
        preferences=PreferencesRepository(store),
        refresher=refresher,
        audit_logger=audit_logger,
    )


@pytest.fixture
def ledger_flow(store, refresher, validator, audit_logger, app_settings):
    return LedgerFlow(
        ledgers=LedgerRepository(store),
        refresher=refresher,
        validator=validator,
        audit_logger=audit_logger,
        app_settings=app_settings,
    )
