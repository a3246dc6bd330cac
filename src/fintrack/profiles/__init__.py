"""User profiles."""

from fintrack.profiles.store import ProfileStore, UserProfile, default_display_name

__all__ = ["ProfileStore", "UserProfile", "default_display_name"]
