"""
Notification inbox endpoints
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_db, get_tenant_context
from tesoreria.application.notifications import (
    ListNotificationsUseCase,
    MarkAllNotificationsReadUseCase,
    MarkNotificationReadUseCase,
    unread_count,
)
from tesoreria.domain.context import TenantContext


router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    reference_type: str | None
    reference_id: int | None
    is_read: bool
    created_at: datetime


@router.get("")
def list_notifications(
    is_read: bool | None = None,
    page: int | None = None,
    limit: int | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    result = ListNotificationsUseCase(db).execute(ctx, is_read=is_read, page=page, limit=limit)
    return {
        "notifications": [NotificationResponse.model_validate(n) for n in result.items],
        "unread_count": result.extra["unread_count"],
        "pagination": result.pagination(),
    }


@router.get("/unread-count")
def get_unread_count(
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"unread_count": unread_count(db, ctx)}


@router.put("/read-all")
def mark_all_read(
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    updated = MarkAllNotificationsReadUseCase(db).execute(ctx)
    return {"message": "Todas las notificaciones marcadas como leídas", "updated": updated}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return MarkNotificationReadUseCase(db).execute(ctx, notification_id)
