"""Per-user expense store mirroring the expenses table."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

import asyncpg

from fintrack.auth import AuthUser
from fintrack.db.models import Table
from fintrack.db.results import NOT_AUTHENTICATED, MutationResult

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("amount", "category", "date", "notes")


@dataclass
class Expense:
    """One logged expense."""

    id: str
    amount: Decimal
    category: str
    date: date
    notes: Optional[str] = None


@dataclass
class ExpenseInput:
    """Fields supplied when logging a new expense."""

    amount: Decimal
    category: str
    date: date
    notes: Optional[str] = None


def _expense_from_row(row) -> Expense:
    return Expense(
        id=str(row["id"]),
        amount=row["amount"],
        category=row["category"],
        date=row["date"],
        notes=row["notes"] or None,
    )


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def _validate(amount: Optional[Decimal], category: Optional[str]) -> None:
    if amount is not None and _to_decimal(amount) <= 0:
        raise ValueError("Amount must be greater than zero")
    if category is not None and not category.strip():
        raise ValueError("Category is required")


class ExpenseStore:
    """
    Expenses of one user.

    ``expenses`` holds the user's rows newest first and is kept in step
    with each successful mutation without refetching. Store errors are
    recorded in ``error`` and returned, never raised.
    """

    def __init__(self, pool: asyncpg.Pool, user: Optional[AuthUser]):
        self._pool = pool
        self.user = user
        self.expenses: list[Expense] = []
        self.loading = False
        self.error: Optional[str] = None

    async def fetch(self) -> list[Expense]:
        """Load all of the user's expenses, newest date first."""
        if self.user is None:
            self.expenses = []
            return self.expenses

        self.loading = True
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT id, amount, category, date, notes
                    FROM {Table.EXPENSES}
                    WHERE user_id = $1
                    ORDER BY date DESC, created_at DESC
                    """,
                    self.user.id,
                )
            self.expenses = [_expense_from_row(row) for row in rows]
            self.error = None
        except asyncpg.PostgresError as e:
            logger.error(f"Failed to load expenses for {self.user.id}: {e}")
            self.error = str(e)
        finally:
            self.loading = False

        return self.expenses

    async def add(self, expense: ExpenseInput) -> MutationResult[Expense]:
        """Insert an expense and prepend it to the local list."""
        if self.user is None:
            return MutationResult(error=NOT_AUTHENTICATED)

        try:
            _validate(expense.amount, expense.category)
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO {Table.EXPENSES} (user_id, amount, category, date, notes)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING id, amount, category, date, notes
                    """,
                    self.user.id,
                    _to_decimal(expense.amount),
                    expense.category,
                    expense.date,
                    expense.notes or None,
                )
        except (asyncpg.PostgresError, ValueError) as e:
            return self._fail("add", e)

        created = _expense_from_row(row)
        self.expenses.insert(0, created)
        logger.info(f"Added expense {created.id} for user {self.user.id}")
        return MutationResult(data=created)

    async def update(self, expense_id: str, **updates) -> MutationResult[Expense]:
        """
        Update some fields of one of the user's expenses.

        Accepts any of ``amount``, ``category``, ``date`` and ``notes``;
        fields not passed keep their stored value.
        """
        if self.user is None:
            return MutationResult(error=NOT_AUTHENTICATED)

        unknown = set(updates) - set(UPDATABLE_FIELDS)
        if unknown:
            return self._fail("update", ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}"))
        if not updates:
            return self._fail("update", ValueError("No fields to update"))

        if "notes" in updates:
            updates["notes"] = updates["notes"] or None

        try:
            if "amount" in updates:
                updates["amount"] = _to_decimal(updates["amount"])
            _validate(updates.get("amount"), updates.get("category"))
            columns = list(updates)
            assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=3))
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE {Table.EXPENSES}
                    SET {assignments}, updated_at = now()
                    WHERE id = $1 AND user_id = $2
                    RETURNING id, amount, category, date, notes
                    """,
                    expense_id,
                    self.user.id,
                    *(updates[col] for col in columns),
                )
            if row is None:
                raise ValueError(f"Expense {expense_id} not found")
        except (asyncpg.PostgresError, ValueError) as e:
            return self._fail("update", e)

        updated = _expense_from_row(row)
        self.expenses = [updated if exp.id == updated.id else exp for exp in self.expenses]
        return MutationResult(data=updated)

    async def delete(self, expense_id: str) -> MutationResult[None]:
        """Delete one of the user's expenses and drop it from the local list."""
        if self.user is None:
            return MutationResult(error=NOT_AUTHENTICATED)

        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    f"DELETE FROM {Table.EXPENSES} WHERE id = $1 AND user_id = $2",
                    expense_id,
                    self.user.id,
                )
        except asyncpg.PostgresError as e:
            return self._fail("delete", e)

        self.expenses = [exp for exp in self.expenses if exp.id.lower() != expense_id.lower()]
        logger.info(f"Deleted expense {expense_id} for user {self.user.id}")
        return MutationResult()

    def _fail(self, action: str, error: Exception) -> MutationResult:
        message = str(error) or "An error occurred"
        logger.warning(f"Expense {action} failed for user {self.user.id}: {message}")
        self.error = message
        return MutationResult(error=message)
