"""Principal abstraction for the already-authenticated caller."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable

from .core.enums import RoleName


@dataclass(frozen=True)
class Actor:
    """Identity and role set handed to the engine by upstream authentication."""

    id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def with_roles(cls, actor_id: str, roles: Iterable[str]) -> "Actor":
        return cls(id=actor_id, roles=frozenset(str(role).lower() for role in roles))

    def has_role(self, role: RoleName | str) -> bool:
        value = role.value if isinstance(role, RoleName) else str(role)
        return value.lower() in self.roles

    @property
    def is_admin(self) -> bool:
        """Admins may perform any booking action."""
        return self.has_role(RoleName.ADMIN)

    @property
    def can_read_all(self) -> bool:
        """Admins and support staff may read every booking."""
        return self.is_admin or self.has_role(RoleName.SUPPORT)
