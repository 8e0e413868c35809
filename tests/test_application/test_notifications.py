"""
Tests for the notification inbox and the reminder sweep.

Covers:
  - Fan-out: one row per recipient, duplicates collapsed
  - Inbox: only the caller's rows, unread counter, mark read / read-all
  - Ownership: another user's notification is Forbidden, another org's is NotFound
  - Reminder sweep: aged pendiente requests only, idempotent while unread,
    skips requests approved mid-sweep, isolates per-request failures
"""
from datetime import datetime, timedelta, timezone

import pytest

from tesoreria.application.notifications import (
    ListNotificationsUseCase,
    MarkAllNotificationsReadUseCase,
    MarkNotificationReadUseCase,
    NotificationFanout,
    unread_count,
)
from tesoreria.application.payment_requests import (
    ApprovePaymentRequestUseCase,
    CreatePaymentRequestUseCase,
)
from tesoreria.application.reminders import ReminderSweepUseCase
from tesoreria.domain.context import Role
from tesoreria.domain.errors import ForbiddenError, NotFoundError
from tesoreria.infrastructure.db.models import NotificationModel, User


def _second_presidente(db, tenant) -> User:
    user = User(
        organization_id=tenant.org.id,
        email=f"vice@org{tenant.org.id}.cl",
        password_hash="x",
        name="Vice Presidente",
        role=Role.PRESIDENTE.value,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def _submit(db, tenant, description="Arriendo de sillas"):
    return CreatePaymentRequestUseCase(db).execute(
        tenant.delegado_ctx,
        amount=12000,
        description=description,
        beneficiary="Eventos Sur",
        submit=True,
    )


def _reminders(db, request_id):
    return (
        db.query(NotificationModel)
        .filter(
            NotificationModel.type == "recordatorio",
            NotificationModel.reference_id == request_id,
        )
        .all()
    )


class TestFanout:
    def test_one_row_per_recipient(self, db_session, tenant):
        fanout = NotificationFanout(db_session)
        created = fanout.notify(
            tenant.org.id,
            "REQUEST_APPROVED_CREATOR",
            [tenant.delegado.id, tenant.delegado.id, None, tenant.secretaria.id],
            "payment_request",
            1,
            description="Pintura",
        )
        db_session.commit()
        assert len(created) == 2
        assert {n.user_id for n in created} == {tenant.delegado.id, tenant.secretaria.id}
        assert all(n.is_read is False for n in created)

    def test_recipients_by_role_skips_inactive(self, db_session, tenant):
        second = _second_presidente(db_session, tenant)
        tenant.presidente.is_active = False
        db_session.commit()
        assert NotificationFanout(db_session).recipients_by_role(tenant.org.id, Role.PRESIDENTE) == [second.id]


class TestInbox:
    def test_list_only_own_rows(self, db_session, tenant):
        pr = _submit(db_session, tenant)
        ApprovePaymentRequestUseCase(db_session).execute(tenant.presidente_ctx, pr.id)

        page = ListNotificationsUseCase(db_session).execute(tenant.delegado_ctx)
        assert page.total == 1
        assert page.items[0].type == "solicitud_aprobada"
        assert page.extra["unread_count"] == 1

    def test_mark_read(self, db_session, tenant):
        _submit(db_session, tenant)
        notif = db_session.query(NotificationModel).filter_by(user_id=tenant.presidente.id).one()

        MarkNotificationReadUseCase(db_session).execute(tenant.presidente_ctx, notif.id)
        assert notif.is_read is True
        assert unread_count(db_session, tenant.presidente_ctx) == 0

        unread = ListNotificationsUseCase(db_session).execute(tenant.presidente_ctx, is_read=False)
        assert unread.total == 0

    def test_cannot_mark_someone_elses(self, db_session, tenant):
        _submit(db_session, tenant)
        notif = db_session.query(NotificationModel).filter_by(user_id=tenant.presidente.id).one()
        with pytest.raises(ForbiddenError):
            MarkNotificationReadUseCase(db_session).execute(tenant.delegado_ctx, notif.id)

    def test_other_organization_is_not_found(self, db_session, make_tenant):
        a = make_tenant("CPP A")
        b = make_tenant("CPP B")
        _submit(db_session, a)
        notif = db_session.query(NotificationModel).filter_by(user_id=a.presidente.id).one()
        with pytest.raises(NotFoundError):
            MarkNotificationReadUseCase(db_session).execute(b.presidente_ctx, notif.id)

    def test_mark_all(self, db_session, tenant):
        _submit(db_session, tenant, "Uno")
        _submit(db_session, tenant, "Dos")
        assert MarkAllNotificationsReadUseCase(db_session).execute(tenant.presidente_ctx) == 2
        assert unread_count(db_session, tenant.presidente_ctx) == 0
        assert MarkAllNotificationsReadUseCase(db_session).execute(tenant.presidente_ctx) == 0

    def test_limit_is_capped(self, db_session, tenant):
        page = ListNotificationsUseCase(db_session).execute(tenant.presidente_ctx, limit=5000)
        assert page.limit == 200


class TestReminderSweep:
    def test_fresh_requests_are_ignored(self, db_session, tenant):
        _submit(db_session, tenant)
        result = ReminderSweepUseCase(db_session).execute(aging_days=3)
        assert result == {"checked": 0, "reminders_created": 0}

    def test_aged_request_gets_one_reminder_per_presidente(self, db_session, tenant, age_request):
        _second_presidente(db_session, tenant)
        pr = _submit(db_session, tenant)
        age_request(pr.id, days=4)

        result = ReminderSweepUseCase(db_session).execute(aging_days=3)
        assert result == {"checked": 1, "reminders_created": 2}

        reminders = _reminders(db_session, pr.id)
        assert len(reminders) == 2
        assert "3 días" in reminders[0].message
        assert tenant.delegado.name in reminders[0].message

    def test_idempotent_while_unread(self, db_session, tenant, age_request):
        pr = _submit(db_session, tenant)
        age_request(pr.id)

        sweep = ReminderSweepUseCase(db_session)
        assert sweep.execute(aging_days=3)["reminders_created"] == 1
        assert sweep.execute(aging_days=3)["reminders_created"] == 0
        assert len(_reminders(db_session, pr.id)) == 1

    def test_reminds_again_after_read(self, db_session, tenant, age_request):
        pr = _submit(db_session, tenant)
        age_request(pr.id)
        sweep = ReminderSweepUseCase(db_session)
        sweep.execute(aging_days=3)

        MarkAllNotificationsReadUseCase(db_session).execute(tenant.presidente_ctx)
        assert sweep.execute(aging_days=3)["reminders_created"] == 1

    def test_non_pending_requests_are_ignored(self, db_session, tenant, age_request):
        pr = _submit(db_session, tenant)
        ApprovePaymentRequestUseCase(db_session).execute(tenant.presidente_ctx, pr.id)
        age_request(pr.id)
        assert ReminderSweepUseCase(db_session).execute(aging_days=3)["checked"] == 0

    def test_request_approved_mid_sweep_is_skipped(self, db_session, tenant, age_request, monkeypatch):
        pr = _submit(db_session, tenant)
        age_request(pr.id)

        original = ReminderSweepUseCase._remind

        def approve_first(self, request_id, aging_days):
            ApprovePaymentRequestUseCase(db_session).execute(tenant.presidente_ctx, request_id)
            return original(self, request_id, aging_days)

        monkeypatch.setattr(ReminderSweepUseCase, "_remind", approve_first)
        result = ReminderSweepUseCase(db_session).execute(aging_days=3)
        assert result == {"checked": 1, "reminders_created": 0}
        assert _reminders(db_session, pr.id) == []

    def test_failure_on_one_request_does_not_stop_the_sweep(self, db_session, tenant, age_request, monkeypatch):
        first = _submit(db_session, tenant, "Uno")
        second = _submit(db_session, tenant, "Dos")
        age_request(first.id)
        age_request(second.id)

        original = ReminderSweepUseCase._has_unread_reminder

        def flaky(self, pr):
            if pr.id == first.id:
                raise RuntimeError("db hiccup")
            return original(self, pr)

        monkeypatch.setattr(ReminderSweepUseCase, "_has_unread_reminder", flaky)
        result = ReminderSweepUseCase(db_session).execute(aging_days=3)
        assert result == {"checked": 2, "reminders_created": 1}
        assert _reminders(db_session, first.id) == []
        assert len(_reminders(db_session, second.id)) == 1

    def test_explicit_now(self, db_session, tenant):
        pr = _submit(db_session, tenant)
        later = datetime.now(timezone.utc) + timedelta(days=10)
        result = ReminderSweepUseCase(db_session).execute(now=later, aging_days=3)
        assert result["checked"] == 1
        assert len(_reminders(db_session, pr.id)) == 1
