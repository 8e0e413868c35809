"""
Reminder sweep: recordatorios for payment requests stuck in pendiente.

Usage (cron / systemd timer / manual):
    python -m tesoreria.application.reminders

Or call ReminderSweepUseCase(db).execute() from the scheduler.

A request older than REMINDER_AGING_DAYS (by updated_at) gets one recordatorio
per active presidente, unless an unread recordatorio for it already exists.
Each request is handled in its own transaction: the row is re-read FOR UPDATE
and must still be pendiente, which serializes concurrent sweeps and skips
requests approved or rejected mid-sweep. A failure on one request is logged
and the sweep moves on.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from tesoreria.application.notifications import NotificationFanout
from tesoreria.config import get_settings
from tesoreria.domain.context import Role
from tesoreria.domain.notification import (
    REFERENCE_PAYMENT_REQUEST,
    UNKNOWN_CREATOR,
    NotificationType,
)
from tesoreria.domain.payment_request import PaymentRequestStatus
from tesoreria.infrastructure.db.models import NotificationModel, PaymentRequestModel, User

logger = logging.getLogger(__name__)


class ReminderSweepUseCase:
    """Use case: Recordatorios de solicitudes pendientes"""

    def __init__(self, db: Session):
        self.db = db
        self.fanout = NotificationFanout(db)

    def execute(self, now: datetime | None = None, aging_days: int | None = None) -> dict[str, int]:
        """
        Returns:
            {"checked": solicitudes envejecidas encontradas,
             "reminders_created": notificaciones creadas}
        """
        now = now or datetime.now(timezone.utc)
        if aging_days is None:
            aging_days = get_settings().REMINDER_AGING_DAYS
        cutoff = now - timedelta(days=aging_days)

        candidates = [
            row.id
            for row in self.db.query(PaymentRequestModel.id)
            .filter(
                PaymentRequestModel.status == PaymentRequestStatus.PENDIENTE.value,
                PaymentRequestModel.updated_at <= cutoff,
            )
            .order_by(PaymentRequestModel.id)
            .all()
        ]

        created = 0
        for request_id in candidates:
            try:
                created += self._remind(request_id, aging_days)
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Reminder for payment request #%s failed", request_id)

        if created:
            logger.info(
                "Reminder sweep: %d notifications for %d aged requests", created, len(candidates)
            )
        return {"checked": len(candidates), "reminders_created": created}

    def _remind(self, request_id: int, aging_days: int) -> int:
        pr = (
            self.db.query(PaymentRequestModel)
            .filter(
                PaymentRequestModel.id == request_id,
                PaymentRequestModel.status == PaymentRequestStatus.PENDIENTE.value,
            )
            .with_for_update()
            .first()
        )
        if pr is None:
            return 0
        if self._has_unread_reminder(pr):
            return 0

        creator = self.db.get(User, pr.created_by)
        notifications = self.fanout.notify(
            pr.organization_id,
            "REQUEST_REMINDER",
            self.fanout.recipients_by_role(pr.organization_id, Role.PRESIDENTE),
            REFERENCE_PAYMENT_REQUEST,
            pr.id,
            description=pr.description,
            creator=creator.name if creator else UNKNOWN_CREATOR,
            days=aging_days,
        )
        return len(notifications)

    def _has_unread_reminder(self, pr: PaymentRequestModel) -> bool:
        return (
            self.db.query(NotificationModel.id)
            .filter(
                NotificationModel.organization_id == pr.organization_id,
                NotificationModel.type == NotificationType.RECORDATORIO.value,
                NotificationModel.reference_type == REFERENCE_PAYMENT_REQUEST,
                NotificationModel.reference_id == pr.id,
                NotificationModel.is_read.is_(False),
            )
            .first()
            is not None
        )


if __name__ == "__main__":
    from tesoreria.infrastructure.db.session import session_scope

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    with session_scope() as db:
        result = ReminderSweepUseCase(db).execute()
        logger.info("Checked %d request(s), created %d reminder(s)", result["checked"], result["reminders_created"])
