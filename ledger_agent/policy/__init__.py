"""Policy: language, category inference, formatting and the system instruction."""

from ledger_agent.policy.categories import (
    CATEGORY_KEYWORDS,
    suggest_category,
    suggest_kind,
)
from ledger_agent.policy.formatting import format_currency
from ledger_agent.policy.instructions import build_system_instruction
from ledger_agent.policy.language import (
    contains_cjk,
    detect_input_script,
    detect_reply_language,
    is_simplified_chinese,
)
from ledger_agent.policy.messages import get_message

__all__ = [
    "CATEGORY_KEYWORDS",
    "suggest_category",
    "suggest_kind",
    "format_currency",
    "build_system_instruction",
    "contains_cjk",
    "detect_input_script",
    "detect_reply_language",
    "is_simplified_chinese",
    "get_message",
]
