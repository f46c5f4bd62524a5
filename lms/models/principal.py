from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

KNOWN_ROLES = frozenset({"admin", "instructor", "user"})
STAFF_ROLES = frozenset({"admin", "instructor"})


@dataclass(frozen=True, slots=True)
class Principal:
    """The caller behind a validated bearer token.

    Progress, attempts and certificates are keyed by ``user_id``.  Roles
    outside KNOWN_ROLES are dropped when the principal is built.
    """

    user_id: UUID
    roles: frozenset[str]

    @staticmethod
    def from_claims(claims: Mapping[str, Any]) -> Principal:
        """Raises ValueError when ``sub`` is not a UUID."""
        subject = claims.get("sub")
        if not isinstance(subject, str):
            raise ValueError("token subject must be a string")
        return Principal(
            user_id=UUID(subject),
            roles=_known(claims.get("roles") or ()),
        )

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return not self.roles.isdisjoint(roles)


def _known(roles: Iterable[str]) -> frozenset[str]:
    return frozenset(r for r in roles if r in KNOWN_ROLES)
