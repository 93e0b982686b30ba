"""Request context and role checks.

Identity is resolved once at the edge and passed explicitly into each
operation; nothing below the API layer looks up an ambient session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


@dataclass(frozen=True)
class RequestContext:
    """Who is calling."""

    user_id: str
    roles: frozenset[Role] = field(default_factory=frozenset)

    @classmethod
    def from_values(cls, user_id: str, roles: Iterable[str]) -> "RequestContext":
        parsed = set()
        for role in roles:
            role = role.strip().lower()
            if role in Role._value2member_map_:
                parsed.add(Role(role))
        return cls(user_id=user_id, roles=frozenset(parsed))


def has_role(ctx: RequestContext, role: Role) -> bool:
    return role in ctx.roles


def has_any_role(ctx: RequestContext, *roles: Role) -> bool:
    return any(role in ctx.roles for role in roles)


def can_configure(ctx: RequestContext) -> bool:
    """Suppliers, marketplaces and settings are admin-only."""
    return has_role(ctx, Role.ADMIN)


def can_run_sync(ctx: RequestContext) -> bool:
    return has_any_role(ctx, Role.ADMIN, Role.MANAGER)
