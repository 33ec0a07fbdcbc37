"""Principal abstraction for the authenticated caller."""

from __future__ import annotations

from dataclasses import dataclass

from conekt.domain.participants import Role


@dataclass(frozen=True)
class UserPrincipal:
    """Authenticated user as supplied by the auth provider."""

    user_id: str
    role: Role
