from __future__ import annotations

from typing import Iterable, Set

from inventaris.domain.contracts import (
    ROLE_ADMIN_DEPT,
    ROLE_ADMIN_INDIRECT,
    ROLE_ADMIN_PRODUKSI,
    ROLE_HRGA,
    ROLE_SUPERVISOR,
    Actor,
)
from inventaris.errors import UnauthorizedError


VALID_ROLES: Set[str] = {
    ROLE_ADMIN_PRODUKSI,
    ROLE_ADMIN_INDIRECT,
    ROLE_ADMIN_DEPT,
    ROLE_SUPERVISOR,
    ROLE_HRGA,
}

ADMIN_ROLES: Set[str] = {ROLE_ADMIN_PRODUKSI, ROLE_ADMIN_INDIRECT, ROLE_ADMIN_DEPT}


def normalize_role(role: str | None, default: str = "") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role)
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    normalized_role = normalize_role(role)
    allowed = normalize_allowed_roles(allowed_roles)
    return bool(normalized_role) and (not allowed or normalized_role in allowed)


def require_roles(actor: Actor | None, *allowed_roles: str) -> str:
    role = normalize_role(getattr(actor, "role", None))
    if actor is not None and has_any_role(role, allowed_roles):
        return role
    raise UnauthorizedError(
        details=f"role {getattr(actor, 'role', None)!r} may not perform this action",
        payload={"required_roles": sorted(normalize_allowed_roles(allowed_roles))},
    )
