"""Draft validation package."""

from finanza.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
