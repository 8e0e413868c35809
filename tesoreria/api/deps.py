"""
FastAPI dependencies (DB session, authentication, tenant context)
"""
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from tesoreria.domain.context import TenantContext
from tesoreria.infrastructure.attachments.storage import AttachmentStore, LocalAttachmentStore
from tesoreria.infrastructure.db.models import User
from tesoreria.infrastructure.db.session import get_db as _get_db


# Re-export get_db
get_db = _get_db


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Usuario de la sesión (cookie firmada)

    Raises:
        HTTPException(401): sin sesión o usuario inexistente
        HTTPException(403): usuario desactivado
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No autenticado"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        request.session.clear()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario no encontrado"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tu cuenta ha sido desactivada"
        )

    return user


def get_tenant_context(user: User = Depends(get_current_user)) -> TenantContext:
    return TenantContext.of(user.id, user.organization_id, user.role)


def get_attachment_store() -> AttachmentStore:
    return LocalAttachmentStore()
