"""
Tests for the finance assistant.

The Gemini models are MagicMocks; no test makes an API call.
"""

from datetime import datetime
from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from finanza.agents import (
    FinanceAssistant,
    RateFetchError,
    ReceiptExtraction,
    ReceiptParseError,
    detect_image_mime,
    extract_sources,
    needs_search,
    parse_rates_text,
    parse_receipt_payload,
)
from finanza.config import GeminiSettings
from finanza.models.ledger import Category, TransactionType
from finanza.models.rates import FALLBACK_RATES


def _image_bytes(fmt: str) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (8, 8), color="white").save(buf, format=fmt)
    return buf.getvalue()


def _response(text, uris=()):
    chunks = [SimpleNamespace(web=SimpleNamespace(uri=uri, title=f"Source {i}")) for i, uri in enumerate(uris)]
    candidate = SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=chunks))
    return SimpleNamespace(text=text, candidates=[candidate])


def _assistant(language="en", chat_response=None, search_response=None):
    model = MagicMock()
    search_model = MagicMock()
    for mock, response in ((model, chat_response), (search_model, search_response)):
        if isinstance(response, Exception):
            mock.generate_content_async = AsyncMock(side_effect=response)
        else:
            mock.generate_content_async = AsyncMock(return_value=response)
    settings = GeminiSettings(api_key="test-key", language=language)
    return FinanceAssistant(settings=settings, model=model, search_model=search_model), model, search_model


class TestReceiptParsing:
    """Tests for parse_receipt_payload."""

    def test_parses_json_answer(self):
        """Test a well-formed answer."""
        extraction = parse_receipt_payload(
            '{"amount": 142.75, "category": "food", "description": "Migros", "date": "2024-03-02"}'
        )
        assert extraction.amount == Decimal("142.75")
        assert extraction.category == Category.FOOD
        assert extraction.description == "Migros"
        assert extraction.date == datetime(2024, 3, 2)

    def test_json_inside_prose(self):
        """Test that surrounding text and code fences are ignored."""
        extraction = parse_receipt_payload('```json\n{"amount": "12.5", "category": "transport"}\n```')
        assert extraction.amount == Decimal("12.5")
        assert extraction.category == Category.TRANSPORT
        assert extraction.description == "Receipt"

    def test_unknown_category_becomes_other(self):
        """Test that categories outside the set map to other."""
        assert parse_receipt_payload('{"amount": 5, "category": "groceries"}').category == Category.OTHER

    def test_income_category_becomes_other(self):
        """Test that a receipt can never be classified as income."""
        assert parse_receipt_payload('{"amount": 5, "category": "salary"}').category == Category.OTHER

    def test_bad_date_ignored(self):
        """Test that an unreadable date is dropped instead of failing."""
        assert parse_receipt_payload('{"amount": 5, "date": "yesterday"}').date is None

    def test_offset_date_becomes_local(self):
        """Test that a receipt date with an offset reaches the draft as naive local time."""
        extraction = parse_receipt_payload(
            '{"amount": 12.5, "category": "food", "date": "2024-05-01T10:00:00+03:00"}'
        )
        draft = extraction.to_draft("acc1")
        assert draft.date.tzinfo is None
        assert draft.date == extraction.date.astimezone().replace(tzinfo=None)

    @pytest.mark.parametrize("payload", [
        "no json here",
        '{"amount": "abc"}',
        '{"amount": 0}',
        '{"amount": -3}',
        '{"category": "food"}',
    ])
    def test_unusable_answers(self, payload):
        """Test that answers without a positive amount raise."""
        with pytest.raises(ReceiptParseError):
            parse_receipt_payload(payload)

    def test_to_draft(self):
        """Test the reviewable expense draft."""
        draft = ReceiptExtraction(amount=Decimal("9.99"), category=Category.HEALTH).to_draft("acc3")
        assert draft.type == TransactionType.EXPENSE
        assert draft.account_id == "acc3"
        assert draft.category == Category.HEALTH


class TestRateParsing:
    """Tests for parse_rates_text."""

    def test_all_currencies_found(self):
        """Test parsing one rate per line."""
        result = parse_rates_text("USD: 34.52\nEUR: 37.10\nGBP = 44.01\nCAD - 25.3")
        assert result.rates == {
            "USD": Decimal("34.52"),
            "EUR": Decimal("37.10"),
            "GBP": Decimal("44.01"),
            "CAD": Decimal("25.3"),
        }
        assert result.fallback_currencies == []

    def test_missing_currency_uses_fallback(self):
        """Test that a currency absent from the text gets its fallback value."""
        result = parse_rates_text("usd 34.5 and eur: 37")
        assert result.rates["USD"] == Decimal("34.5")
        assert result.rates["EUR"] == Decimal("37")
        assert result.rates["GBP"] == FALLBACK_RATES["GBP"]
        assert result.fallback_currencies == ["GBP", "CAD"]


class TestRouting:
    """Tests for needs_search."""

    @pytest.mark.parametrize("prompt,expected", [
        ("What is the inflation rate?", True),
        ("Gold price today", True),
        ("Any news on interest rates", True),
        ("Help me plan a budget", False),
    ])
    def test_keywords(self, prompt, expected):
        """Test keyword routing."""
        assert needs_search(prompt) is expected


class TestImageDetection:
    """Tests for detect_image_mime."""

    def test_png(self):
        """Test that a PNG is recognized."""
        assert detect_image_mime(_image_bytes("PNG")) == "image/png"

    def test_jpeg(self):
        """Test that a JPEG is recognized."""
        assert detect_image_mime(_image_bytes("JPEG")) == "image/jpeg"

    def test_unsupported_format(self):
        """Test that GIFs are rejected."""
        with pytest.raises(ReceiptParseError):
            detect_image_mime(_image_bytes("GIF"))

    def test_not_an_image(self):
        """Test that arbitrary bytes are rejected."""
        with pytest.raises(ReceiptParseError):
            detect_image_mime(b"%PDF-1.4 not an image")


class TestExtractSources:
    """Tests for grounding metadata extraction."""

    def test_sources(self):
        """Test that web chunks become sources."""
        sources = extract_sources(_response("x", uris=["https://a.example", "https://b.example"]))
        assert [s.uri for s in sources] == ["https://a.example", "https://b.example"]

    def test_no_candidates(self):
        """Test that a response without candidates has no sources."""
        assert extract_sources(SimpleNamespace(candidates=[])) == []


class TestFinanceAssistant:
    """Tests for FinanceAssistant with mocked models."""

    @pytest.mark.asyncio
    async def test_chat(self):
        """Test a plain chat answer."""
        assistant, model, _ = _assistant(chat_response=_response("Spend less on coffee."))
        reply = await assistant.answer("How can I save money?")
        assert reply.text == "Spend less on coffee."
        assert not reply.used_search and not reply.is_fallback
        model.generate_content_async.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_chat_failure_returns_fallback(self):
        """Test that an API error becomes the fallback message."""
        assistant, _, _ = _assistant(language="tr", chat_response=RuntimeError("quota"))
        reply = await assistant.chat("Merhaba")
        assert reply.is_fallback
        assert reply.text == "Üzgünüm, bir hata oluştu."

    @pytest.mark.asyncio
    async def test_search_with_sources(self):
        """Test that search prompts use grounded search."""
        assistant, model, search_model = _assistant(
            search_response=_response("Gold is up.", uris=["https://news.example"])
        )
        reply = await assistant.answer("What is the gold price?")
        assert reply.used_search
        assert reply.sources[0].uri == "https://news.example"
        assert search_model.generate_content_async.await_args.kwargs["tools"] == "google_search_retrieval"
        model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_analyze_receipt(self):
        """Test receipt analysis sends the image with its mime type."""
        assistant, model, _ = _assistant(
            chat_response=_response('{"amount": 55.9, "category": "food", "description": "Cafe"}')
        )
        extraction = await assistant.analyze_receipt(_image_bytes("PNG"))
        assert extraction.amount == Decimal("55.9")
        parts = model.generate_content_async.await_args.args[0]
        assert parts[0]["mime_type"] == "image/png"

    @pytest.mark.asyncio
    async def test_analyze_receipt_api_error(self):
        """Test that a failed call raises ReceiptParseError."""
        assistant, _, _ = _assistant(chat_response=RuntimeError("timeout"))
        with pytest.raises(ReceiptParseError):
            await assistant.analyze_receipt(_image_bytes("PNG"))

    @pytest.mark.asyncio
    async def test_fetch_exchange_rates(self):
        """Test a successful rate lookup."""
        assistant, _, _ = _assistant(search_response=_response(
            "USD: 34.6\nEUR: 37.5\nGBP: 44.2\nCAD: 25.4", uris=["https://rates.example"]
        ))
        result = await assistant.fetch_exchange_rates()
        assert result.rates["USD"] == Decimal("34.6")
        assert result.sources == ["https://rates.example"]

    @pytest.mark.asyncio
    async def test_fetch_exchange_rates_failure(self):
        """Test that a failed lookup raises instead of inventing a table."""
        assistant, _, _ = _assistant(search_response=RuntimeError("offline"))
        with pytest.raises(RateFetchError):
            await assistant.fetch_exchange_rates()

    @pytest.mark.asyncio
    async def test_fetch_exchange_rates_empty(self):
        """Test that an empty answer is a failure."""
        assistant, _, _ = _assistant(search_response=_response(""))
        with pytest.raises(RateFetchError):
            await assistant.fetch_exchange_rates()
