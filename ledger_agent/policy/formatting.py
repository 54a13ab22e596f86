"""Money formatting shared by the instruction text and the views."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union


def format_currency(amount: Union[Decimal, float, int, str], symbol: str = "$") -> str:
    """
    Thousands-grouped, two decimals, symbol first: 1234.5 -> "$1,234.50".
    Negative amounts keep the sign in front of the symbol.
    """
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
