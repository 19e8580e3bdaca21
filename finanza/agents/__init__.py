"""AI Agents package."""

from finanza.agents.ai_agents import (
    AssistantError,
    AssistantReply,
    FinanceAssistant,
    GroundingSource,
    RateFetchError,
    ReceiptExtraction,
    ReceiptParseError,
    detect_image_mime,
    extract_sources,
    needs_search,
    parse_rates_text,
    parse_receipt_payload,
)

__all__ = [
    "AssistantError",
    "AssistantReply",
    "FinanceAssistant",
    "GroundingSource",
    "RateFetchError",
    "ReceiptExtraction",
    "ReceiptParseError",
    "detect_image_mime",
    "extract_sources",
    "needs_search",
    "parse_rates_text",
    "parse_receipt_payload",
]
