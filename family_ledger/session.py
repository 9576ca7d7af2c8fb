"""Explicit session passed to every user-initiated operation."""

from dataclasses import dataclass
from typing import Optional

from family_ledger.models.ledger import Profile, Role


@dataclass(frozen=True)
class Session:
    """The signed-in family and the profile currently acting."""

    family_id: str
    profile: Profile
    user_id: Optional[str] = None

    @property
    def profile_id(self) -> str:
        return self.profile.id

    @property
    def role(self) -> Role:
        return self.profile.role

    @property
    def is_admin(self) -> bool:
        return self.profile.is_admin
