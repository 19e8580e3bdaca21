"""
Finance Assistant (Gemini)

DESIGN DECISION: The assistant is a thin collaborator. It never touches
the ledger itself; it returns plain data (a receipt extraction, a reply,
a rate fetch result) and the orchestrator decides what to do with it.

CRITICAL BOUNDARIES:

1. RECEIPT ANALYSIS:
   - CAN: Read amount, category, description and date off a receipt image
   - CANNOT: Record a transaction (the caller runs it through the ledger)
   - Unknown categories become "other"

2. CHAT / SEARCH:
   - No ledger interaction at all
   - Failures turn into a fallback message, never an exception

3. EXCHANGE RATES:
   - Grounded search, parsed with a regex per currency
   - A currency missing from the answer gets a fixed fallback value
   - A failed API call raises RateFetchError; the refresher keeps its table

No call is retried. A single failure surfaces immediately.
"""

import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Any, Optional

import google.generativeai as genai
import structlog
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from finanza.config import GeminiSettings, get_settings
from finanza.models.ledger import (
    EXPENSE_CATEGORIES,
    Category,
    TransactionDraft,
    TransactionType,
)
from finanza.models.rates import FALLBACK_RATES, RateFetchResult


logger = structlog.get_logger(__name__)

SEARCH_KEYWORDS = ("current", "what is", "news", "price")

FALLBACK_MESSAGES = {
    "en": "Sorry, an error occurred.",
    "tr": "Üzgünüm, bir hata oluştu.",
}

RATE_CURRENCIES = ("USD", "EUR", "GBP", "CAD")

SUPPORTED_IMAGE_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


class AssistantError(Exception):
    """Base exception for assistant operations."""
    pass


class ReceiptParseError(AssistantError):
    """The receipt image or the model's answer could not be used."""
    pass


class RateFetchError(AssistantError):
    """The exchange-rate lookup failed as a whole."""
    pass


class GroundingSource(BaseModel):
    """A web page the model's grounded answer was based on."""

    uri: str
    title: Optional[str] = None


class AssistantReply(BaseModel):
    text: str
    sources: list[GroundingSource] = Field(default_factory=list)
    used_search: bool = False
    is_fallback: bool = False


class ReceiptExtraction(BaseModel):
    """What the model read off a receipt."""

    amount: Decimal = Field(gt=0)
    category: Category = Category.OTHER
    description: str = "Receipt"
    date: Optional[datetime] = None

    def to_draft(self, account_id: Optional[str]) -> TransactionDraft:
        """Expense draft the user can review before it is recorded."""
        return TransactionDraft(
            amount=self.amount,
            category=self.category,
            description=self.description,
            type=TransactionType.EXPENSE,
            date=self.date,
            account_id=account_id,
        )


# =============================================================================
# PARSING HELPERS (pure, no API calls)
# =============================================================================

def needs_search(prompt: str) -> bool:
    """Prompts about current events go to grounded search instead of chat."""
    lowered = prompt.lower()
    return any(keyword in lowered for keyword in SEARCH_KEYWORDS)


def detect_image_mime(image_bytes: bytes) -> str:
    """
    Sniff the image type with Pillow.

    Raises:
        ReceiptParseError: Not an image, or not JPEG/PNG/WEBP
    """
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise ReceiptParseError(f"Uploaded file is not a readable image: {e}")
    if fmt not in SUPPORTED_IMAGE_FORMATS:
        raise ReceiptParseError(f"Unsupported image format: {fmt}")
    return SUPPORTED_IMAGE_FORMATS[fmt]


def _parse_receipt_date(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(value.strip()[:10]), datetime.min.time())
    except ValueError:
        return None


def parse_receipt_payload(text: str) -> ReceiptExtraction:
    """
    Turn the model's JSON answer into a ReceiptExtraction.

    Raises:
        ReceiptParseError: No JSON object, or no usable amount
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ReceiptParseError("Model response did not contain a JSON object")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise ReceiptParseError(f"Model response was not valid JSON: {e}")

    try:
        amount = Decimal(str(data.get("amount")))
    except InvalidOperation:
        raise ReceiptParseError(f"Receipt amount is not a number: {data.get('amount')!r}")
    if not amount.is_finite() or amount <= 0:
        raise ReceiptParseError(f"Receipt amount must be positive, got {amount}")

    category_str = str(data.get("category") or "other").strip().lower()
    try:
        category = Category(category_str)
    except ValueError:
        category = Category.OTHER
    if category not in EXPENSE_CATEGORIES:
        category = Category.OTHER

    description = str(data.get("description") or "").strip() or "Receipt"

    return ReceiptExtraction(
        amount=amount,
        category=category,
        description=description[:500],
        date=_parse_receipt_date(data.get("date")),
    )


def parse_rates_text(
    text: str,
    currencies: tuple[str, ...] = RATE_CURRENCIES,
) -> RateFetchResult:
    """
    Pull "<CODE>: <number>" pairs out of free text.

    Each currency not found in the text gets its FALLBACK_RATES value.
    The base currency is added by RateTable itself.
    """
    rates: dict[str, Decimal] = {}
    fallbacks: list[str] = []
    for code in currencies:
        match = re.search(rf"{code}[:=\s-]+(\d+(\.\d+)?)", text, re.IGNORECASE)
        if match:
            rates[code] = Decimal(match.group(1))
        else:
            rates[code] = FALLBACK_RATES[code]
            fallbacks.append(code)
    return RateFetchResult(rates=rates, fallback_currencies=fallbacks)


def extract_sources(response: Any) -> list[GroundingSource]:
    """Grounding chunks from a response, if the model returned any."""
    try:
        candidate = response.candidates[0]
    except (AttributeError, IndexError, TypeError):
        return []
    metadata = getattr(candidate, "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    sources = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if uri:
            sources.append(GroundingSource(uri=uri, title=getattr(web, "title", None) or None))
    return sources


# =============================================================================
# ASSISTANT
# =============================================================================

class FinanceAssistant:
    """
    Gemini-backed assistant.

    Models can be injected for testing; otherwise they are built from
    GeminiSettings.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
        search_model: Any = None,
    ):
        self._settings = settings or get_settings().gemini
        if model is None or search_model is None:
            genai.configure(api_key=self._settings.api_key)
        generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        self._model = model or genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=generation_config,
            system_instruction=(
                "You are a helpful personal finance assistant. "
                f"Please respond in {self._language_name(self._settings.language)}."
            ),
        )
        self._search_model = search_model or genai.GenerativeModel(
            model_name=self._settings.fast_model_name,
            generation_config=generation_config,
            system_instruction=(
                "You are a financial researcher. "
                f"Respond in {self._language_name(self._settings.language)}."
            ),
        )

    @staticmethod
    def _language_name(language: str) -> str:
        return "Turkish" if language == "tr" else "English"

    def _fallback_message(self) -> str:
        return FALLBACK_MESSAGES.get(self._settings.language, FALLBACK_MESSAGES["en"])

    async def analyze_receipt(self, image_bytes: bytes) -> ReceiptExtraction:
        """
        Read a receipt image.

        Raises:
            ReceiptParseError: Bad image, failed call, or unusable answer
        """
        mime_type = detect_image_mime(image_bytes)
        categories = ", ".join(c.value for c in EXPENSE_CATEGORIES)
        prompt = (
            "Extract details from this receipt. "
            f"Use language: {self._settings.language}. "
            f"Return total amount, category (from: {categories}), "
            "date (YYYY-MM-DD) and merchant name as description. "
            'Respond with ONLY a JSON object: {"amount": 0.0, "category": "", '
            '"description": "", "date": ""}'
        )
        try:
            response = await self._model.generate_content_async(
                [{"mime_type": mime_type, "data": image_bytes}, prompt],
                generation_config={"response_mime_type": "application/json"},
            )
            text = response.text
        except Exception as e:
            logger.error("receipt_analysis_failed", error=str(e))
            raise ReceiptParseError(f"Receipt analysis failed: {e}")

        extraction = parse_receipt_payload(text or "")
        logger.info(
            "receipt_analyzed",
            amount=str(extraction.amount),
            category=extraction.category.value,
        )
        return extraction

    async def chat(self, prompt: str) -> AssistantReply:
        """Plain chat. Errors become the fallback message."""
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text
        except Exception as e:
            logger.error("assistant_chat_failed", error=str(e))
            return AssistantReply(text=self._fallback_message(), is_fallback=True)
        if not text:
            return AssistantReply(text=self._fallback_message(), is_fallback=True)
        return AssistantReply(text=text)

    async def search(self, prompt: str) -> AssistantReply:
        """Grounded web search. Errors become the fallback message."""
        try:
            response = await self._search_model.generate_content_async(
                prompt,
                tools="google_search_retrieval",
            )
            text = response.text
        except Exception as e:
            logger.error("assistant_search_failed", error=str(e))
            return AssistantReply(text=self._fallback_message(), used_search=True, is_fallback=True)
        return AssistantReply(
            text=text or self._fallback_message(),
            sources=extract_sources(response),
            used_search=True,
            is_fallback=not text,
        )

    async def answer(self, prompt: str) -> AssistantReply:
        """Route to search for current-events prompts, chat otherwise."""
        if needs_search(prompt):
            return await self.search(prompt)
        return await self.chat(prompt)

    async def fetch_exchange_rates(self) -> RateFetchResult:
        """
        Look up today's rates against TRY via grounded search.

        Raises:
            RateFetchError: The call failed or returned nothing
        """
        pairs = ", ".join(f"1 {code} to TRY" for code in RATE_CURRENCIES)
        prompt = (
            f"Search for current exchange rates for {pairs}. "
            "Provide the latest rates clearly in text, one per line as CODE: rate."
        )
        try:
            response = await self._search_model.generate_content_async(
                prompt,
                tools="google_search_retrieval",
            )
            text = response.text
        except Exception as e:
            raise RateFetchError(f"Exchange rate lookup failed: {e}")
        if not text:
            raise RateFetchError("Exchange rate lookup returned no text")

        result = parse_rates_text(text)
        result.sources = [s.uri for s in extract_sources(response)]
        if result.fallback_currencies:
            logger.warning("rate_fallback_used", currencies=result.fallback_currencies)
        return result
