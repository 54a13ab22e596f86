"""
Ledger Agent - Source Package

A personal finance ledger with a conversational assistant. Users add,
query and delete income and expense transactions through a form or by
chatting in English or Chinese.

DESIGN PRINCIPLES:
1. The model proposes tool calls, the executor validates them, the store decides
2. Never guess a category; ask when the wording does not imply one
3. Fail visibly, but never show raw backend errors to the user
4. Every chat turn is auditable through one correlation id
5. Storage backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Agent Team"
