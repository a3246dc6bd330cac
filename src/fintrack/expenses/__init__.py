"""Expense logging and spending summaries."""

from fintrack.expenses.store import Expense, ExpenseInput, ExpenseStore
from fintrack.expenses.summary import SpendingSummary, category_totals, summarize

__all__ = [
    "Expense",
    "ExpenseInput",
    "ExpenseStore",
    "SpendingSummary",
    "category_totals",
    "summarize",
]
