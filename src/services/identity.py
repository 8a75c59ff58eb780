"""Actor identity supplied by the caller's identity provider.

The service layer performs no authentication. Every mutating operation
receives an Actor carrying an opaque id, used for audit columns, and a
coarse role tag used for release decisions.
"""

from dataclasses import dataclass
from typing import Optional, Union

from src.models.enums import UserRole
from src.utils.constants import RELEASE_DECISION_ROLES


@dataclass(frozen=True)
class Actor:
    """Authenticated actor.

    Attributes:
        id: Opaque actor identifier stored in checked_by/approved_by columns
        role: user | manager | admin

    Raises:
        ValueError: If id is empty or role is not a known role
    """

    id: str
    role: str = UserRole.USER.value

    def __post_init__(self) -> None:
        """Validate and normalize the role tag."""
        if not self.id or not str(self.id).strip():
            raise ValueError("Actor id is required")
        try:
            role = UserRole(self.role).value
        except ValueError:
            raise ValueError(f"Unknown role '{self.role}'")
        object.__setattr__(self, "id", str(self.id).strip())
        object.__setattr__(self, "role", role)

    @property
    def can_decide_release(self) -> bool:
        """True for roles allowed to approve, reject or hold a release."""
        return self.role in RELEASE_DECISION_ROLES


def actor_id(actor: Optional[Union[Actor, str]]) -> Optional[str]:
    """Audit id for an Actor, a bare id string, or None."""
    if actor is None:
        return None
    if isinstance(actor, Actor):
        return actor.id
    return str(actor)
