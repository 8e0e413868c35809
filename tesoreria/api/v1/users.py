"""
User management endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_db, get_tenant_context
from tesoreria.application.users import (
    ChangeUserRoleUseCase,
    InviteUserUseCase,
    SetUserActiveUseCase,
    get_user,
    list_users,
    serialize_user,
)
from tesoreria.domain.context import TenantContext


router = APIRouter(prefix="/api/v1/users", tags=["users"])


class InviteUserRequest(BaseModel):
    email: str | None = None
    name: str | None = None
    role: str | None = None


class ChangeRoleRequest(BaseModel):
    role: str | None = None


@router.get("")
def read_users(
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"users": [serialize_user(u) for u in list_users(db, ctx)]}


@router.get("/{user_id}")
def read_user(
    user_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"user": serialize_user(get_user(db, ctx, user_id))}


@router.post("/invite", status_code=201)
def invite_user(
    req: InviteUserRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Invitar usuario; la contraseña temporal se devuelve una sola vez"""
    user, temporary_password = InviteUserUseCase(db).execute(ctx, req.email, req.name, req.role)
    return {"user": serialize_user(user), "temporary_password": temporary_password}


@router.put("/{user_id}/role")
def change_role(
    user_id: int,
    req: ChangeRoleRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"user": serialize_user(ChangeUserRoleUseCase(db).execute(ctx, user_id, req.role))}


@router.put("/{user_id}/activate")
def activate_user(
    user_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"user": serialize_user(SetUserActiveUseCase(db).execute(ctx, user_id, True))}


@router.put("/{user_id}/deactivate")
def deactivate_user(
    user_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"user": serialize_user(SetUserActiveUseCase(db).execute(ctx, user_id, False))}
