from __future__ import annotations

import uuid
from typing import Iterable

from werkzeug.security import check_password_hash, generate_password_hash

from inventaris.domain.contracts import Actor
from inventaris.errors import ValidationError
from inventaris.infrastructure.repositories.inventory import DepartmentRepository, UserRepository
from inventaris.policies import normalize_role


class AuthService:
    def __init__(
        self,
        repository: UserRepository | None = None,
        departments: DepartmentRepository | None = None,
    ) -> None:
        self.repository = repository or UserRepository()
        self.departments = departments or DepartmentRepository()

    def login(self, db, email: str, password: str) -> Actor | None:
        normalized_email = (email or "").strip().lower()
        if not normalized_email or not password:
            return None
        db_user = self.repository.get_by_email(db, normalized_email)
        if not db_user or not check_password_hash(db_user["password_hash"], password):
            return None
        return self.repository.load_actor(db, db_user["id"])

    def load_actor(self, db, user_id: str | None) -> Actor | None:
        if not user_id:
            return None
        return self.repository.load_actor(db, str(user_id))

    def register_user(
        self,
        db,
        *,
        email: str,
        password: str,
        role: str,
        full_name: str | None = None,
        primary_department: str | None = None,
        departments: Iterable[str] = (),
        user_id: str | None = None,
    ) -> Actor:
        normalized_email = (email or "").strip().lower()
        normalized_role = normalize_role(role)
        if not normalized_email or not password:
            raise ValidationError(message_key="auth_missing_credentials")
        if not normalized_role:
            raise ValidationError(details=f"unknown role {role!r}")
        if self.repository.get_by_email(db, normalized_email) is not None:
            raise ValidationError(details=f"email {normalized_email} already registered")
        codes = {code for code in departments if code}
        if primary_department:
            codes.add(primary_department)
        unknown = sorted(code for code in codes if self.departments.get(db, code) is None)
        if unknown:
            raise ValidationError(message_key="department_not_found", payload={"departments": unknown})

        new_id = user_id or str(uuid.uuid4())
        with db.transaction():
            self.repository.create_user(
                db,
                user_id=new_id,
                email=normalized_email,
                password_hash=generate_password_hash(password),
                role=normalized_role,
                full_name=(full_name or "").strip() or None,
                primary_department=primary_department,
                departments=codes,
            )
        return self.repository.load_actor(db, new_id)
