"""
Authenticated caller of the review API.

Built once per request by ``app.middleware.jwt_auth`` and stored on
``g.actor``.  Challenge-scoped resource roles are NOT part of the actor;
they are resolved lazily per challenge by the directory lookups.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Actor:
    member_id: str | None = None
    handle: str | None = None
    roles: tuple[str, ...] = ()
    scopes: tuple[str, ...] = ()
    is_machine: bool = False
    is_admin: bool = False
    claims: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_privileged(self) -> bool:
        """Machine tokens and platform admins bypass challenge-scoped checks."""
        return self.is_machine or self.is_admin

    @property
    def actor_id(self) -> str | None:
        """Identity written to audit rows; None when it cannot be resolved."""
        if self.member_id:
            return str(self.member_id)
        if self.handle:
            return self.handle
        if self.is_machine:
            return "System"
        return None

    def has_role(self, role: str) -> bool:
        wanted = role.lower()
        return any(r.lower() == wanted for r in self.roles)
