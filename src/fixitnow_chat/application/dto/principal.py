from __future__ import annotations

from dataclasses import dataclass

from fixitnow_chat.domain.value_objects.enums import UserRole


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """Authenticated user as seen by the auth provider."""

    id: int
    name: str | None = None
    role: UserRole = UserRole.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def display_name(self) -> str:
        return self.name or f"User {self.id}"
