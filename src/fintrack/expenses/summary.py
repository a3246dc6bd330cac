"""Spending summaries over a list of expenses."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from fintrack.expenses.store import Expense


@dataclass
class CategoryTotal:
    category: str
    amount: Decimal


@dataclass
class SpendingSummary:
    """Totals for a reporting period, shaped for the spending-summary email."""

    period: str
    total_spent: Decimal
    transaction_count: int
    top_categories: list[CategoryTotal] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "period": self.period,
            "totalSpent": float(self.total_spent),
            "transactionCount": self.transaction_count,
            "topCategories": [
                {"category": c.category, "amount": float(c.amount)} for c in self.top_categories
            ],
        }


def category_totals(expenses: Iterable[Expense]) -> dict[str, Decimal]:
    """Sum expense amounts per category."""
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for expense in expenses:
        totals[expense.category] += expense.amount
    return dict(totals)


def summarize(
    expenses: Iterable[Expense],
    period: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    top_n: int = 3,
) -> SpendingSummary:
    """
    Summarize spending between ``start`` and ``end`` inclusive.

    Categories are ranked by amount spent, ties broken alphabetically.

    Args:
        expenses: Expenses to consider
        period: Label for the period (e.g. "October 2026")
        start: First included date (unbounded if None)
        end: Last included date (unbounded if None)
        top_n: Number of categories to report

    Returns:
        SpendingSummary for the period
    """
    if top_n < 0:
        raise ValueError(f"top_n must be >= 0, got {top_n}")

    selected = [
        e for e in expenses
        if (start is None or e.date >= start) and (end is None or e.date <= end)
    ]

    totals = category_totals(selected)
    ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))

    return SpendingSummary(
        period=period,
        total_spent=sum((e.amount for e in selected), Decimal("0")),
        transaction_count=len(selected),
        top_categories=[CategoryTotal(category=c, amount=a) for c, a in ranked[:top_n]],
    )
