"""Personal-finance backend: expenses, profiles, notifications and billing."""

__version__ = "0.1.0"
