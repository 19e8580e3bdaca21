"""
Tests for the key/value stores, audit storage and repositories.

Google Sheets is exercised through a mocked client only.
"""

import json
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from finanza.models.audit import AuditEventBuilder
from finanza.models.ledger import LedgerState, Transaction, TransactionType, Category
from finanza.models.rates import Currency, Theme
from finanza.models.user import User, UserPreferences
from finanza.services.auth import hash_password
from finanza.services.storage import (
    CURRENT_USER_KEY,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    LedgerRepository,
    LocalAuditStorage,
    LocalJsonStore,
    PreferencesRepository,
    StorageError,
    UserRepository,
    ledger_key,
)


class TestInMemoryStore:
    """Tests for the in-memory key/value store."""

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self, store):
        """Test that an absent key reads as None."""
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_values_are_copies(self, store):
        """Test that mutating a read value does not change the store."""
        await store.set("k", {"a": [1]})
        value = await store.get("k")
        value["a"].append(2)
        assert await store.get("k") == {"a": [1]}

    @pytest.mark.asyncio
    async def test_rejects_non_json(self, store):
        """Test that values a real backend could not hold are rejected."""
        with pytest.raises(StorageError):
            await store.set("k", {"when": datetime.now()})

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Test delete reports whether the key existed."""
        await store.set("k", 1)
        assert await store.delete("k") is True
        assert await store.delete("k") is False


class TestLocalJsonStore:
    """Tests for the JSON file store."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        """Test that values survive a fresh store instance."""
        path = tmp_path / "data" / "store.json"
        await LocalJsonStore(path).set("greeting", {"text": "merhaba"})

        assert await LocalJsonStore(path).get("greeting") == {"text": "merhaba"}
        assert json.loads(path.read_text(encoding="utf-8")) == {"greeting": {"text": "merhaba"}}
        assert not path.with_suffix(".json.tmp").exists()

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        """Test that a store without a file has no keys."""
        assert await LocalJsonStore(tmp_path / "none.json").get("k") is None

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path):
        """Test that a corrupt file is reported, not silently reset."""
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            await LocalJsonStore(path).get("k")

    @pytest.mark.asyncio
    async def test_non_object_file_raises(self, tmp_path):
        """Test that a file holding a list is rejected."""
        path = tmp_path / "store.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(StorageError):
            await LocalJsonStore(path).get("k")

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path):
        """Test that delete removes only the given key."""
        store = LocalJsonStore(tmp_path / "store.json")
        await store.set("a", 1)
        await store.set("b", 2)
        assert await store.delete("a") is True
        assert await store.get("a") is None
        assert await store.get("b") == 2


class TestLocalAuditStorage:
    """Tests for the JSON-lines audit log."""

    @pytest.mark.asyncio
    async def test_append_and_read(self, tmp_path):
        """Test events are read back newest first and filtered by user."""
        storage = LocalAuditStorage(tmp_path / "audit.jsonl")
        await storage.append_event(AuditEventBuilder.user_logged_in("u1", "ayse"))
        await storage.append_event(AuditEventBuilder.user_logged_out("u2"))
        await storage.append_event(AuditEventBuilder.bill_deleted("u1", "b1", "Water"))

        events = await storage.get_recent_events(user_id="u1")
        assert [e.event_type.value for e in events] == ["bill_deleted", "user_logged_in"]
        assert len(await storage.get_recent_events(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_correlation_lookup(self, tmp_path):
        """Test fetching the events of one correlated operation."""
        from uuid import uuid4

        storage = LocalAuditStorage(tmp_path / "audit.jsonl")
        correlation_id = uuid4()
        await storage.append_event(AuditEventBuilder.transaction_added(
            "u1", "t1", "EXPENSE", "10.00", "acc1", correlation_id=correlation_id,
        ))
        await storage.append_event(AuditEventBuilder.bill_paid(
            "u1", "b1", "t1", "acc1", correlation_id=correlation_id,
        ))
        await storage.append_event(AuditEventBuilder.user_logged_out("u1"))

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type.value for e in events] == ["transaction_added", "bill_paid"]

    @pytest.mark.asyncio
    async def test_bad_lines_skipped(self, tmp_path):
        """Test that a damaged line does not hide the rest of the log."""
        path = tmp_path / "audit.jsonl"
        storage = LocalAuditStorage(path)
        await storage.append_event(AuditEventBuilder.user_logged_out("u1"))
        with path.open("a", encoding="utf-8") as f:
            f.write("garbage\n")
        assert len(await storage.get_recent_events()) == 1


class TestGoogleSheetsStore:
    """Tests for the Sheets key/value store with a mocked worksheet."""

    def _store(self, rows):
        sheet = MagicMock()
        sheet.get_all_values.return_value = rows
        client = MagicMock()
        client.get_store_sheet.return_value = sheet
        return GoogleSheetsKeyValueStore(client=client), sheet

    @pytest.mark.asyncio
    async def test_get_decodes_json(self):
        """Test reading a JSON value from its row."""
        store, _ = self._store([
            ["key", "value_json", "updated_at"],
            ["finanza_preferences", '{"theme": "dark"}', "2024-01-01T00:00:00"],
        ])
        assert await store.get("finanza_preferences") == {"theme": "dark"}
        assert await store.get("other") is None

    @pytest.mark.asyncio
    async def test_set_appends_new_key(self):
        """Test that a new key is appended as a row."""
        store, sheet = self._store([["key", "value_json", "updated_at"]])
        await store.set("k", {"a": 1})
        row = sheet.append_row.call_args.args[0]
        assert row[0] == "k"
        assert json.loads(row[1]) == {"a": 1}

    @pytest.mark.asyncio
    async def test_set_updates_existing_row(self):
        """Test that an existing key is overwritten in place."""
        store, sheet = self._store([
            ["key", "value_json", "updated_at"],
            ["a", "1", ""],
            ["k", "1", ""],
        ])
        await store.set("k", 2)
        sheet.append_row.assert_not_called()
        assert sheet.update.call_args.kwargs["range_name"] == "A3:C3"

    @pytest.mark.asyncio
    async def test_corrupt_cell_raises(self):
        """Test that a corrupt cell surfaces as a storage error."""
        store, _ = self._store([["key", "value_json", "updated_at"], ["k", "{oops", ""]])
        with pytest.raises(StorageError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        """Test that gspread failures become StorageError."""
        store, sheet = self._store([])
        sheet.get_all_values.side_effect = RuntimeError("quota")
        with pytest.raises(StorageError):
            await store.get("k")


class TestGoogleSheetsAuditStorage:
    """Tests for the Sheets audit log with a mocked worksheet."""

    @pytest.mark.asyncio
    async def test_rows_round_trip(self):
        """Test that an appended row can be read back as the same event."""
        event = AuditEventBuilder.rates_refreshed({"USD": "35"}, "scheduled")
        sheet = MagicMock()
        sheet.get_all_values.return_value = [["event_id"], event.to_sheets_row()]
        client = MagicMock()
        client.get_audit_sheet.return_value = sheet
        storage = GoogleSheetsAuditStorage(client=client)

        assert await storage.append_event(event) is True
        events = await storage.get_recent_events()
        assert events[0].event_id == event.event_id
        assert events[0].details == {"rates": {"USD": "35"}, "trigger": "scheduled"}

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self):
        """Test that audit persistence problems never raise."""
        client = MagicMock()
        client.get_audit_sheet.side_effect = RuntimeError("offline")
        storage = GoogleSheetsAuditStorage(client=client)
        assert await storage.append_event(AuditEventBuilder.user_logged_out("u1")) is False


class TestLedgerRepository:
    """Tests for per-user ledger blobs."""

    @pytest.mark.asyncio
    async def test_new_user_gets_initial_state(self, store):
        """Test that a user with no data starts with the default accounts."""
        state = await LedgerRepository(store).load("u1")
        assert [a.id for a in state.accounts] == ["acc1", "acc2", "acc3"]

    @pytest.mark.asyncio
    async def test_save_and_load(self, store):
        """Test that a saved ledger loads back identically."""
        repo = LedgerRepository(store)
        state = LedgerState.initial()
        state.transactions.append(Transaction(
            amount=Decimal("12.50"),
            category=Category.FOOD,
            description="Simit",
            type=TransactionType.EXPENSE,
            date=datetime(2024, 1, 1, 8, 0),
            account_id="acc3",
        ))
        await repo.save("u1", state)

        loaded = await repo.load("u1")
        assert loaded == state
        assert await repo.load("u2") == LedgerState.initial()

    @pytest.mark.asyncio
    async def test_invalid_blob_raises(self, store):
        """Test that an invalid stored ledger is reported."""
        await store.set(ledger_key("u1"), {"accounts": [{"name": ""}]})
        with pytest.raises(StorageError):
            await LedgerRepository(store).load("u1")


class TestUserRepository:
    """Tests for users and the current-user marker."""

    @pytest.mark.asyncio
    async def test_duplicate_username(self, store):
        """Test that usernames are unique."""
        repo = UserRepository(store)
        await repo.add(User(username="ayse", password_hash="x"))
        with pytest.raises(DuplicateError):
            await repo.add(User(username="ayse", password_hash="y"))

    @pytest.mark.asyncio
    async def test_current_marker_has_no_hash(self, store):
        """Test that the session marker never stores the password hash."""
        repo = UserRepository(store)
        user = User(username="ayse", password_hash=hash_password("secret"))
        await repo.set_current(user)

        assert (await store.get(CURRENT_USER_KEY))["password_hash"] == ""
        current = await repo.get_current()
        assert current.id == user.id

        await repo.clear_current()
        assert await repo.get_current() is None


class TestPreferencesRepository:
    """Tests for installation preferences."""

    @pytest.mark.asyncio
    async def test_defaults(self, store):
        """Test the defaults when nothing is saved."""
        prefs = await PreferencesRepository(store).load()
        assert prefs.theme == Theme.LIGHT
        assert prefs.display_currency == Currency.TRY

    @pytest.mark.asyncio
    async def test_save_and_load(self, store):
        """Test that preferences persist."""
        repo = PreferencesRepository(store)
        await repo.save(UserPreferences(theme=Theme.DARK, display_currency=Currency.EUR))
        prefs = await repo.load()
        assert prefs.theme == Theme.DARK
        assert prefs.display_currency == Currency.EUR
