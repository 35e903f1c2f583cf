"""
contract_conduit.auth.models

Authenticated identity injected into endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass

AGENT_ROLE = "agent"
ADMIN_ROLE = "admin"


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated caller. `subject` is the agent's user id.
    """

    subject: str
    roles: frozenset[str]
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    def owns(self, owner_id: str | None) -> bool:
        # Admins see everything; rows without an owner are visible to nobody else.
        return self.is_admin or (owner_id is not None and owner_id == self.subject)
