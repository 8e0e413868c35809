"""
Notification fan-out and inbox use cases.

- NotificationFanout: writes one row per recipient per event, inside the
  caller's transaction (flush only, never commits)
- List / unread count / mark read: read and mutate only rows owned by the
  calling user, inside the caller's organization
"""
import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from tesoreria.config import get_settings
from tesoreria.domain.context import Role, TenantContext
from tesoreria.domain.errors import ForbiddenError, NotFoundError
from tesoreria.domain.notification import render
from tesoreria.infrastructure.db.models import NotificationModel, User
from tesoreria.utils.pagination import Page, PageRequest

logger = logging.getLogger(__name__)


class NotificationFanout:
    """
    Crea notificaciones para una lista de destinatarios.

    Recipients are resolved by the caller at event time (recipients_by_role),
    so later role changes never alter past notifications.
    """

    def __init__(self, db: Session):
        self.db = db

    def recipients_by_role(self, organization_id: int, role: Role | str) -> list[int]:
        """IDs of active users with `role` in the organization."""
        rows = (
            self.db.query(User.id)
            .filter(
                User.organization_id == organization_id,
                User.role == Role(role).value,
                User.is_active.is_(True),
            )
            .order_by(User.id)
            .all()
        )
        return [row.id for row in rows]

    def notify(
        self,
        organization_id: int,
        template_code: str,
        recipients: Iterable[int],
        reference_type: str | None,
        reference_id: int | None,
        **ctx,
    ) -> list[NotificationModel]:
        """
        Crear una notificación por destinatario

        Args:
            organization_id: organización del evento (todas las filas quedan en ella)
            template_code: clave de domain.notification.TEMPLATES
            recipients: IDs de usuarios; duplicados se ignoran
            reference_type: tipo de entidad referenciada ("payment_request")
            reference_id: ID de la entidad
            **ctx: valores para formatear título y mensaje

        Returns:
            Notificaciones creadas (flush, sin commit)
        """
        type_, title, message = render(template_code, **ctx)

        created: list[NotificationModel] = []
        seen: set[int] = set()
        for user_id in recipients:
            if user_id is None or user_id in seen:
                continue
            seen.add(user_id)
            notif = NotificationModel(
                organization_id=organization_id,
                user_id=user_id,
                type=type_,
                title=title,
                message=message,
                reference_type=reference_type,
                reference_id=reference_id,
                is_read=False,
            )
            self.db.add(notif)
            created.append(notif)

        if created:
            self.db.flush()
            logger.debug("%s: %d notifications for %s #%s", template_code, len(created), reference_type, reference_id)
        return created


class ListNotificationsUseCase:
    """Bandeja del usuario: más recientes primero, con contador de no leídas"""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        ctx: TenantContext,
        is_read: bool | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page:
        page_req = PageRequest.build(page, limit, max_limit=get_settings().NOTIFICATIONS_MAX_PAGE_SIZE)

        query = self.db.query(NotificationModel).filter(
            NotificationModel.organization_id == ctx.organization_id,
            NotificationModel.user_id == ctx.user_id,
        )
        if is_read is not None:
            query = query.filter(NotificationModel.is_read.is_(is_read))

        total = query.count()
        items = (
            query.order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .offset(page_req.offset)
            .limit(page_req.limit)
            .all()
        )
        return Page(
            items=items,
            total=total,
            page=page_req.page,
            limit=page_req.limit,
            extra={"unread_count": unread_count(self.db, ctx)},
        )


def unread_count(db: Session, ctx: TenantContext) -> int:
    return (
        db.query(NotificationModel)
        .filter(
            NotificationModel.organization_id == ctx.organization_id,
            NotificationModel.user_id == ctx.user_id,
            NotificationModel.is_read.is_(False),
        )
        .count()
    )


class MarkNotificationReadUseCase:
    """Marcar una notificación como leída (solo el destinatario)"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: TenantContext, notification_id: int) -> NotificationModel:
        notif = (
            self.db.query(NotificationModel)
            .filter(
                NotificationModel.id == notification_id,
                NotificationModel.organization_id == ctx.organization_id,
            )
            .first()
        )
        if not notif:
            raise NotFoundError("Notificación no encontrada")
        if notif.user_id != ctx.user_id:
            raise ForbiddenError("No puede modificar notificaciones de otro usuario")

        if not notif.is_read:
            notif.is_read = True
            self.db.commit()
        return notif


class MarkAllNotificationsReadUseCase:
    """Marcar todas las notificaciones del usuario como leídas"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: TenantContext) -> int:
        """Returns: cantidad de filas actualizadas"""
        result = self.db.execute(
            update(NotificationModel)
            .where(
                NotificationModel.organization_id == ctx.organization_id,
                NotificationModel.user_id == ctx.user_id,
                NotificationModel.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount
