"""Database access: connection pool, table names and migrations."""

from fintrack.db.pool import close_pool, get_pool

__all__ = ["close_pool", "get_pool"]
