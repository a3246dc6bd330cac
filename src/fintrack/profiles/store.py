"""Per-user profile store with lazy creation of a default profile."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

import asyncpg

from fintrack.auth import AuthUser
from fintrack.db.models import Table
from fintrack.db.results import NOT_AUTHENTICATED, MutationResult

logger = logging.getLogger(__name__)

DEFAULT_BIO = "Financial wellness enthusiast focused on smart spending and saving goals."
DEFAULT_GOALS = ["Build Emergency Fund", "Save for Vacation", "Invest in Retirement"]

EDITABLE_FIELDS = (
    "display_name",
    "phone",
    "location",
    "bio",
    "monthly_income",
    "savings_goal",
    "financial_goals",
    "avatar_url",
)

_COLUMNS = (
    "id, user_id, display_name, phone, location, bio, monthly_income, "
    "savings_goal, financial_goals, avatar_url, created_at, updated_at"
)


@dataclass
class UserProfile:
    id: str
    user_id: str
    display_name: str
    phone: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    savings_goal: Optional[Decimal] = None
    financial_goals: list[str] = field(default_factory=list)
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def _profile_from_row(row) -> UserProfile:
    return UserProfile(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        display_name=row["display_name"],
        phone=row["phone"],
        location=row["location"],
        bio=row["bio"],
        monthly_income=row["monthly_income"],
        savings_goal=row["savings_goal"],
        financial_goals=list(row["financial_goals"] or []),
        avatar_url=row["avatar_url"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def default_display_name(email: Optional[str]) -> str:
    """Local part of the email address, or "User"."""
    local = (email or "").split("@", 1)[0].strip()
    return local or "User"


class ProfileStore:
    """Profile of one user; ``profile`` mirrors the stored row."""

    def __init__(self, pool: asyncpg.Pool, user: Optional[AuthUser]):
        self._pool = pool
        self.user = user
        self.profile: Optional[UserProfile] = None
        self.loading = False
        self.error: Optional[str] = None

    async def fetch(self) -> Optional[UserProfile]:
        """
        Load the user's profile, creating a default one on first read.

        Two first reads racing each other both try to insert; the loser
        hits the unique constraint on user_id and reads the winner's row.
        """
        if self.user is None:
            self.profile = None
            return None

        self.loading = True
        try:
            async with self._pool.acquire() as conn:
                row = await self._select(conn)
                if row is None:
                    try:
                        row = await conn.fetchrow(
                            f"""
                            INSERT INTO {Table.USER_PROFILES}
                                (user_id, display_name, bio, financial_goals)
                            VALUES ($1, $2, $3, $4)
                            RETURNING {_COLUMNS}
                            """,
                            self.user.id,
                            default_display_name(self.user.email),
                            DEFAULT_BIO,
                            DEFAULT_GOALS,
                        )
                        logger.info(f"Created default profile for user {self.user.id}")
                    except asyncpg.UniqueViolationError:
                        row = await self._select(conn)

            self.profile = _profile_from_row(row) if row else None
            self.error = None
        except asyncpg.PostgresError as e:
            logger.error(f"Failed to load profile for {self.user.id}: {e}")
            self.error = str(e)
        finally:
            self.loading = False

        return self.profile

    async def update(self, **updates) -> MutationResult[UserProfile]:
        """Update editable profile fields; requires a loaded profile."""
        if self.user is None or self.profile is None:
            return MutationResult(error=f"{NOT_AUTHENTICATED} or profile not loaded")

        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            return self._fail(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not updates:
            return self._fail("No fields to update")
        if "display_name" in updates and not (updates["display_name"] or "").strip():
            return self._fail("Display name is required")

        columns = list(updates)
        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))

        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE {Table.USER_PROFILES}
                    SET {assignments}, updated_at = now()
                    WHERE user_id = $1
                    RETURNING {_COLUMNS}
                    """,
                    self.user.id,
                    *(updates[col] for col in columns),
                )
        except asyncpg.PostgresError as e:
            return self._fail(str(e))

        if row is None:
            return self._fail("Profile not found")

        self.profile = _profile_from_row(row)
        return MutationResult(data=self.profile)

    async def _select(self, conn):
        return await conn.fetchrow(
            f"SELECT {_COLUMNS} FROM {Table.USER_PROFILES} WHERE user_id = $1",
            self.user.id,
        )

    def _fail(self, message: str) -> MutationResult:
        logger.warning(f"Profile update failed for user {self.user.id}: {message}")
        self.error = message
        return MutationResult(error=message)
