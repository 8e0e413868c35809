"""
Tests for the background reminder job wrapper
"""
from sqlalchemy.orm import sessionmaker

from tesoreria.application import scheduler
from tesoreria.application.payment_requests import CreatePaymentRequestUseCase
from tesoreria.application.reminders import ReminderSweepUseCase
from tesoreria.infrastructure.db import session as db_session_module
from tesoreria.infrastructure.db.models import NotificationModel


def test_job_runs_sweep_in_its_own_session(db_engine, db_session, tenant, age_request, monkeypatch):
    pr = CreatePaymentRequestUseCase(db_session).execute(
        tenant.delegado_ctx, amount=9000, description="Arriendo", beneficiary="Salón", submit=True,
    )
    age_request(pr.id, days=10)

    monkeypatch.setattr(db_session_module, "get_session_factory", lambda: sessionmaker(bind=db_engine))
    scheduler._run_reminder_sweep()

    assert db_session.query(NotificationModel).filter_by(type="recordatorio").count() == 1


def test_job_logs_and_swallows_failures(db_engine, monkeypatch, caplog):
    def boom(self, now=None, aging_days=None):
        raise RuntimeError("database is down")

    monkeypatch.setattr(db_session_module, "get_session_factory", lambda: sessionmaker(bind=db_engine))
    monkeypatch.setattr(ReminderSweepUseCase, "execute", boom)

    scheduler._run_reminder_sweep()

    assert "Reminder sweep job failed" in caplog.text


def test_shutdown_when_not_running():
    scheduler.shutdown_scheduler()
    assert not scheduler.scheduler.running
