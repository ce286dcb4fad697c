from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Mapping

from inventaris.domain.contracts import (
    ROLE_ADMIN_DEPT,
    ROLE_ADMIN_INDIRECT,
    ROLE_ADMIN_PRODUKSI,
    ROLE_HRGA,
    ROLE_SUPERVISOR,
    Actor,
    Department,
)


DEFAULT_SCOPE_WIDENING: Mapping[str, FrozenSet[str]] = {
    "QC": frozenset({"QC", "QA", "PP"}),
}

_CATEGORY_BY_ROLE = {
    ROLE_ADMIN_PRODUKSI: "production",
    ROLE_ADMIN_INDIRECT: "indirect",
}


@dataclass(frozen=True)
class DepartmentScope:
    codes: FrozenSet[str] = frozenset()
    unrestricted: bool = False

    def contains(self, dept_code: str | None) -> bool:
        if self.unrestricted:
            return True
        return bool(dept_code) and dept_code in self.codes

    def as_filter(self) -> FrozenSet[str] | None:
        return None if self.unrestricted else self.codes

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and not self.codes

    def to_dict(self) -> dict:
        return {"unrestricted": self.unrestricted, "codes": sorted(self.codes)}


UNRESTRICTED = DepartmentScope(unrestricted=True)
EMPTY = DepartmentScope()


def resolve_scope(
    actor: Actor,
    departments: Iterable[Department],
    widening: Mapping[str, Iterable[str]] | None = None,
) -> DepartmentScope:
    """Department codes an actor may view and act on.

    Rules are evaluated in role priority order: category admins get every
    department of their category, department admins and supervisors get
    their own assignments (supervisors widened through ``widening``) and
    HRGA is unrestricted. Anything else resolves to the empty scope.
    """
    role = str(actor.role or "").strip()

    category = _CATEGORY_BY_ROLE.get(role)
    if category is not None:
        return DepartmentScope(
            codes=frozenset(dept.code for dept in departments if dept.category == category)
        )

    if role == ROLE_ADMIN_DEPT:
        return DepartmentScope(codes=actor.assigned_departments)

    if role == ROLE_SUPERVISOR:
        rules = DEFAULT_SCOPE_WIDENING if widening is None else widening
        codes = set()
        for code in actor.assigned_departments:
            codes.add(code)
            codes.update(rules.get(code, ()))
        return DepartmentScope(codes=frozenset(codes))

    if role == ROLE_HRGA:
        return UNRESTRICTED

    return EMPTY


def parse_widening(raw: object) -> dict[str, frozenset[str]]:
    """Parse ``QC=QC|QA|PP;X=X|Y`` (or an already-built mapping)."""
    if isinstance(raw, Mapping):
        return {str(key).strip(): frozenset(str(v).strip() for v in values) for key, values in raw.items()}
    parsed: dict[str, frozenset[str]] = {}
    for chunk in str(raw or "").split(";"):
        if "=" not in chunk:
            continue
        key, _, values = chunk.partition("=")
        key = key.strip()
        codes = frozenset(code.strip() for code in values.split("|") if code.strip())
        if key:
            parsed[key] = codes | {key}
    return parsed
