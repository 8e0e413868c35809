"""
User management within an organization

Only presidentes invite, change roles and (de)activate. A deactivated user
keeps id and history; approvals or executions they made stay valid.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from tesoreria.auth import generate_temporary_password, hash_password
from tesoreria.domain.context import Role, TenantContext
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.domain.permissions import Action, ensure_allowed
from tesoreria.infrastructure.db.models import User
from tesoreria.utils.validation import is_valid_email

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Usuario no encontrado"
_ROLE_VALUES = {r.value for r in Role}


def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "organization_id": user.organization_id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at,
    }


def list_users(db: Session, ctx: TenantContext) -> list[User]:
    ensure_allowed(Action.READ_USERS, ctx.role)
    return (
        db.query(User)
        .filter(User.organization_id == ctx.organization_id)
        .order_by(User.created_at.asc(), User.id.asc())
        .all()
    )


def get_user(db: Session, ctx: TenantContext, user_id: int) -> User:
    ensure_allowed(Action.READ_USERS, ctx.role)
    user = db.query(User).filter(
        User.id == user_id,
        User.organization_id == ctx.organization_id,
    ).first()
    if not user:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return user


class _UserAdminUseCase:
    def __init__(self, db: Session):
        self.db = db

    def _require_presidente(self, ctx: TenantContext) -> User:
        ensure_allowed(Action.MANAGE_USERS, ctx.role)
        actor = self.db.query(User).filter(
            User.id == ctx.user_id,
            User.organization_id == ctx.organization_id,
        ).first()
        if not actor or not actor.is_active:
            raise ForbiddenError("Usuario inactivo")
        return actor


class InviteUserUseCase(_UserAdminUseCase):
    """
    Invitar un usuario a la organización

    Returns:
        (user, contraseña temporal en texto plano, mostrada una sola vez)
    """

    def execute(self, ctx: TenantContext, email: str | None, name: str | None, role: str | None) -> tuple[User, str]:
        self._require_presidente(ctx)

        email = (email or "").strip().lower()
        name = (name or "").strip()
        errors: dict[str, str] = {}
        if not email:
            errors["email"] = "El email es requerido"
        elif not is_valid_email(email):
            errors["email"] = "El formato del email no es válido"
        if not name:
            errors["name"] = "El nombre es requerido"
        if role not in _ROLE_VALUES:
            errors["role"] = "Rol no válido. Debe ser: delegado, presidente o secretaria"
        if errors:
            message = next(iter(errors.values())) if len(errors) == 1 else "Email, nombre y rol son requeridos"
            raise ValidationError(message, fields=errors)

        existing = self.db.query(User.id).filter(
            User.organization_id == ctx.organization_id,
            User.email == email,
        ).first()
        if existing:
            raise ConflictError("Ya existe un usuario con ese email")

        temporary_password = generate_temporary_password()
        user = User(
            organization_id=ctx.organization_id,
            email=email,
            name=name,
            role=role,
            password_hash=hash_password(temporary_password),
            is_active=True,
        )
        self.db.add(user)
        self.db.commit()
        logger.info("User #%s invited to organization #%s as %s", user.id, ctx.organization_id, role)
        return user, temporary_password


class ChangeUserRoleUseCase(_UserAdminUseCase):
    def execute(self, ctx: TenantContext, user_id: int, role: str | None) -> User:
        actor = self._require_presidente(ctx)
        if role not in _ROLE_VALUES:
            raise ValidationError(
                "Rol no válido. Debe ser: delegado, presidente o secretaria",
                fields={"role": "Rol no válido"},
            )
        user = get_user(self.db, ctx, user_id)
        if user.id == actor.id:
            raise ValidationError("No puede cambiar su propio rol")

        user.role = role
        user.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        logger.info("User #%s role changed to %s by user #%s", user.id, role, actor.id)
        return user


class SetUserActiveUseCase(_UserAdminUseCase):
    """Activar / desactivar (no a sí mismo)"""

    def execute(self, ctx: TenantContext, user_id: int, is_active: bool) -> User:
        actor = self._require_presidente(ctx)
        user = get_user(self.db, ctx, user_id)
        if user.id == actor.id and not is_active:
            raise ValidationError("No puede desactivarse a sí mismo")

        user.is_active = is_active
        user.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        logger.info("User #%s %s by user #%s", user.id, "activated" if is_active else "deactivated", actor.id)
        return user
