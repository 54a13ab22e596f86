"""
Category Keywords

Phrases that unambiguously imply a category. This table is policy data:
it is rendered into the system instruction so the model can infer a
category from wording like "lunch" or "午餐", and the entry form uses it
to pre-select a category. When nothing matches, the category must be
asked for, never guessed.
"""

import re
from typing import Optional

from ledger_agent.models.transaction import TransactionKind


# category -> keywords, checked in this order
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Food": (
        "午餐", "早餐", "晚餐", "吃飯", "宵夜", "飲料", "咖啡",
        "lunch", "breakfast", "dinner", "meal", "groceries", "coffee", "snack",
    ),
    "Transport": (
        "打車", "計程車", "公車", "捷運", "加油", "高鐵",
        "taxi", "uber", "bus", "metro", "subway", "gas station", "fuel", "parking",
    ),
    "Utilities": (
        "水電", "電費", "水費", "電話費", "網路",
        "electric bill", "electricity", "water bill", "phone bill", "internet",
    ),
    "Salary": (
        "薪水", "薪資", "獎金",
        "salary", "paycheck", "wage", "bonus",
    ),
    "Entertainment": (
        "電影", "遊戲", "KTV", "演唱會",
        "movie", "cinema", "game", "concert", "netflix", "karaoke",
    ),
    "Shopping": (
        "買衣服", "購物", "網購",
        "clothes", "shopping", "shoes",
    ),
    "Health": (
        "看醫生", "買藥", "掛號", "牙醫",
        "doctor", "medicine", "pharmacy", "dentist", "hospital",
    ),
    "Rent": (
        "房租", "租金",
        "rent",
    ),
}

# Keywords that imply income rather than expense
INCOME_CATEGORIES = frozenset({"Salary"})


def _matches(keyword: str, lowered: str) -> bool:
    # Latin keywords must match whole words ("rent" is not in "parents")
    if keyword.isascii():
        return re.search(rf"(?<![a-z]){re.escape(keyword.lower())}(?![a-z])", lowered) is not None
    return keyword.lower() in lowered


def suggest_category(text: str) -> Optional[str]:
    """The first category whose keyword appears in the text, or None."""
    lowered = (text or "").lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        for keyword in keywords:
            if _matches(keyword, lowered):
                return category
    return None


def suggest_kind(category: str) -> TransactionKind:
    return TransactionKind.INCOME if category in INCOME_CATEGORIES else TransactionKind.EXPENSE


def keyword_table_lines() -> list[str]:
    """One '"a/b/c" -> Category' line per category, for the system instruction."""
    return [
        f'"{"/".join(keywords)}" -> {category}'
        for category, keywords in CATEGORY_KEYWORDS.items()
    ]
