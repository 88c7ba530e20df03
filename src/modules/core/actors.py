"""Verified caller identity handed to the service layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Actor:
    """Identity plus role flag of whoever invokes a use-case.

    ``is_elevated`` grants access to orders owned by other actors.
    """

    id: str
    is_elevated: bool = False

    @classmethod
    def from_user(cls, user: Any) -> Actor:
        """Build an actor from an authenticated Django user."""
        return cls(id=str(user.pk), is_elevated=bool(user.is_staff))

    @property
    def role(self) -> str:
        return "admin" if self.is_elevated else "customer"

    def owns(self, owner_id: Any) -> bool:
        return str(owner_id) == self.id

    def can_access(self, owner_id: Any) -> bool:
        return self.is_elevated or self.owns(owner_id)
