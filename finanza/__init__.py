"""
Finanza - Source Package

A personal finance tracker: income/expense transactions, recurring bills,
multiple accounts, multi-currency display and a Gemini assistant.

DESIGN PRINCIPLES:
1. Every stored amount is in the base currency
2. A transaction and its balance update are one unit
3. Fail loudly on missing bills/accounts, quietly on incomplete drafts
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finanza Team"
