"""Result type shared by the per-user data stores."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

NOT_AUTHENTICATED = "User not authenticated"


@dataclass
class MutationResult(Generic[T]):
    """Outcome of a store mutation: the stored value or an error message."""

    data: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
