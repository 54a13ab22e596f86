"""
Reply Language Policy

Decides which language the assistant answers in:
- any Han character in the message: Traditional Chinese, whether the
  user wrote Simplified or Traditional
- Latin letters and no Han characters: English
- nothing to go on (empty, digits, emoji): Traditional Chinese

is_simplified_chinese is a character-list heuristic. It only says
"Simplified" when Simplified-only markers appear and no Traditional-only
markers do, so it misses Simplified text that happens to avoid the
listed characters. Mixed text counts as Traditional. detect_input_script
uses it to record which variant the user wrote in.
"""

import re
from typing import Optional

from ledger_agent.models.chat import ReplyLanguage


CJK_PATTERN = re.compile(r"[\u4e00-\u9fff]")
LATIN_PATTERN = re.compile(r"[A-Za-z]")

# Pairs in the same order: each Simplified marker has its Traditional form
SIMPLIFIED_MARKERS = "这个们为来对发与说时过动会国产业经关电视机学习"
TRADITIONAL_MARKERS = "這個們為來對發與說時過動會國產業經關電視機學習"

# Characters shared by both scripts say nothing about the variant
_SHARED = set(SIMPLIFIED_MARKERS) & set(TRADITIONAL_MARKERS)
_SIMPLIFIED_ONLY = set(SIMPLIFIED_MARKERS) - _SHARED
_TRADITIONAL_ONLY = set(TRADITIONAL_MARKERS) - _SHARED


def contains_cjk(text: str) -> bool:
    return bool(CJK_PATTERN.search(text or ""))


def is_simplified_chinese(text: str) -> bool:
    """True only for text with Simplified-only markers and no Traditional-only ones."""
    characters = set(text or "")
    has_simplified = bool(characters & _SIMPLIFIED_ONLY)
    has_traditional = bool(characters & _TRADITIONAL_ONLY)
    return has_simplified and not has_traditional


def detect_reply_language(text: str) -> ReplyLanguage:
    """Language the assistant should answer a message in."""
    if contains_cjk(text):
        return ReplyLanguage.TRADITIONAL_CHINESE
    if LATIN_PATTERN.search(text or ""):
        return ReplyLanguage.ENGLISH
    return ReplyLanguage.TRADITIONAL_CHINESE


def detect_input_script(text: str) -> Optional[str]:
    """
    Chinese variant the user wrote in: "zh-CN", "zh-TW", or None when
    the message has no Han characters.

    Recorded in the audit trail; the reply language does not depend on it.
    """
    if not contains_cjk(text):
        return None
    return "zh-CN" if is_simplified_chinese(text) else "zh-TW"
