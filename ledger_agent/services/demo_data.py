"""
Demo Data Generator

Produces plausible synthetic transactions so a fresh ledger has
something to chat about. The ledger store calls this on its daily
reseed.

Structural guarantees (what tests rely on):
- every day from three months before today through today is covered
- the 1st of each month has a Salary income and a Rent expense
- the 15th of each month has a Salary income at half the usual range
- other days are skipped entirely about 35% of the time
- a non-skipped day has 1-3 expenses other than Rent
- about 8% of non-skipped days get one non-salary income

Exact amounts and descriptions are random. Pass a seeded random.Random
to make the output reproducible.
"""

import calendar
import random
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from ledger_agent.models.transaction import (
    Transaction,
    TransactionKind,
    allowed_categories,
)


TRAILING_MONTHS = 3
SKIP_DAY_PROBABILITY = 0.35
OTHER_INCOME_PROBABILITY = 0.08
MAX_DAILY_EXPENSES = 3

EXPENSE_DESCRIPTIONS: dict[str, list[str]] = {
    "Food": ["Lunch at restaurant", "Grocery shopping", "Coffee shop", "Dinner takeout", "Breakfast", "Snacks"],
    "Transport": ["Uber ride", "Gas station", "Bus ticket", "Metro card", "Parking fee", "Taxi"],
    "Shopping": ["Clothes", "Shoes", "Online order", "Household items"],
    "Entertainment": ["Movie tickets", "Netflix subscription", "Concert", "Video game", "Spotify", "Books"],
    "Health": ["Pharmacy", "Doctor visit", "Gym membership", "Vitamins", "Dental checkup"],
    "Utilities": ["Electric bill", "Water bill", "Internet bill", "Phone bill", "Gas bill"],
    "Rent": ["Monthly rent", "Rent payment"],
    "Education": ["Online course", "Textbook", "Workshop fee"],
    "Travel": ["Train ticket", "Hotel night", "Airport shuttle"],
    "Other": ["Gift", "Repair", "Miscellaneous"],
}

INCOME_DESCRIPTIONS: dict[str, list[str]] = {
    "Salary": ["Monthly salary", "Salary deposit", "Paycheck"],
    "Investment": ["Stock dividend", "Interest income", "Investment return"],
    "Bonus": ["Year-end bonus", "Performance bonus", "Holiday bonus"],
    "Freelance": ["Freelance work", "Consulting gig"],
    "Gift": ["Gift received", "Red envelope"],
    "Other": ["Refund", "Side income"],
}

# (min, max) whole amounts per category
EXPENSE_AMOUNTS: dict[str, tuple[int, int]] = {
    "Food": (8, 80),
    "Transport": (5, 50),
    "Utilities": (30, 200),
    "Rent": (800, 2000),
    "Entertainment": (10, 100),
    "Health": (20, 300),
    "Other": (10, 150),
}
DEFAULT_EXPENSE_AMOUNT = (10, 100)

INCOME_AMOUNTS: dict[str, tuple[int, int]] = {
    "Salary": (3000, 8000),
    "Investment": (50, 500),
    "Bonus": (500, 3000),
    "Other": (100, 1000),
}
DEFAULT_INCOME_AMOUNT = (50, 500)


def subtract_months(day: date, months: int) -> date:
    """Same day-of-month N months earlier, clamped to the month's length."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _amount(rng: random.Random, low: int, high: int) -> Decimal:
    return Decimal(rng.randint(low, high))


def _make(
    rng: random.Random,
    day: date,
    sequence: int,
    kind: TransactionKind,
    category: str,
    amount: Decimal,
    descriptions: dict[str, list[str]],
) -> Transaction:
    # created_at follows generation order within a day so ties sort stably
    created_at = datetime.combine(day, time(12), tzinfo=timezone.utc) + timedelta(seconds=sequence)
    pool = descriptions.get(category) or [kind.value.title()]
    return Transaction(
        date=day,
        kind=kind,
        category=category,
        amount=amount,
        description=rng.choice(pool),
        created_at=created_at,
    )


def generate_demo_transactions(
    today: date,
    rng: Optional[random.Random] = None,
) -> list[Transaction]:
    """
    Generate demo transactions for the trailing window ending today.

    Args:
        today: Last day of the window (inclusive)
        rng: Random source; a fresh unseeded one is used if omitted

    Returns:
        Transactions in chronological order
    """
    rng = rng or random.Random()
    income_choices = [c for c in allowed_categories(TransactionKind.INCOME) if c != "Salary"]
    expense_choices = [c for c in allowed_categories(TransactionKind.EXPENSE) if c != "Rent"]

    transactions: list[Transaction] = []
    day = subtract_months(today, TRAILING_MONTHS)
    while day <= today:
        special = day.day in (1, 15)
        if not special and rng.random() < SKIP_DAY_PROBABILITY:
            day += timedelta(days=1)
            continue

        sequence = 0

        if special:
            low, high = INCOME_AMOUNTS["Salary"]
            if day.day == 15:
                low, high = low // 2, high // 2
            transactions.append(_make(
                rng, day, sequence, TransactionKind.INCOME, "Salary",
                _amount(rng, low, high), INCOME_DESCRIPTIONS,
            ))
            sequence += 1

            if day.day == 1:
                low, high = EXPENSE_AMOUNTS["Rent"]
                transactions.append(_make(
                    rng, day, sequence, TransactionKind.EXPENSE, "Rent",
                    _amount(rng, low, high), EXPENSE_DESCRIPTIONS,
                ))
                sequence += 1

        if rng.random() < OTHER_INCOME_PROBABILITY:
            category = rng.choice(income_choices)
            low, high = INCOME_AMOUNTS.get(category, DEFAULT_INCOME_AMOUNT)
            transactions.append(_make(
                rng, day, sequence, TransactionKind.INCOME, category,
                _amount(rng, low, high), INCOME_DESCRIPTIONS,
            ))
            sequence += 1

        for _ in range(rng.randint(1, MAX_DAILY_EXPENSES)):
            category = rng.choice(expense_choices)
            low, high = EXPENSE_AMOUNTS.get(category, DEFAULT_EXPENSE_AMOUNT)
            transactions.append(_make(
                rng, day, sequence, TransactionKind.EXPENSE, category,
                _amount(rng, low, high), EXPENSE_DESCRIPTIONS,
            ))
            sequence += 1

        day += timedelta(days=1)

    return transactions
