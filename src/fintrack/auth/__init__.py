"""Authentication of callers through the managed auth provider."""

from fintrack.auth.provider import AuthError, AuthUser, get_user, parse_bearer

__all__ = ["AuthError", "AuthUser", "get_user", "parse_bearer"]
