"""
Authenticated principal.

The engine never verifies credentials itself: the JWT middleware
(docflow.middleware.jwt_auth) decodes the bearer token and stores a
Principal on ``flask.g``. Services take the Principal as an explicit argument.
"""

from dataclasses import dataclass

from flask import g

from docflow.core.exceptions import AuthenticationRequired
from docflow.models import Role


@dataclass(frozen=True)
class Principal:
    """The acting user: opaque id plus one fixed role."""

    id: str
    role: Role

    @classmethod
    def of(cls, principal_id, role) -> "Principal":
        """Build from raw values (token claims, test fixtures)."""
        return cls(id=str(principal_id), role=role if isinstance(role, Role) else Role(role))

    def has_role(self, minimum: Role) -> bool:
        return self.role.at_least(minimum)


def current_principal() -> Principal:
    """Return the principal for this request or raise AuthenticationRequired."""
    principal = getattr(g, "principal", None)
    if principal is None:
        raise AuthenticationRequired()
    return principal
