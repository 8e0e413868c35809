"""
Tests for ledger use cases (movimientos manuales)
"""
from datetime import date

import pytest

from tesoreria.application.payment_requests import (
    ApprovePaymentRequestUseCase,
    CreatePaymentRequestUseCase,
    ExecutePaymentRequestUseCase,
)
from tesoreria.application.transactions import (
    CreateTransactionUseCase,
    DeleteTransactionUseCase,
    EditTransactionUseCase,
    GetTransactionAuditTrailUseCase,
    ListTransactionsUseCase,
)
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.infrastructure.db.models import TransactionModel


def _income(db, tenant, amount=50000, description="Cuota marzo", **kwargs):
    kwargs.setdefault("date", "2026-03-02")
    return CreateTransactionUseCase(db).execute(
        tenant.secretaria_ctx,
        type="ingreso",
        amount=amount,
        category_id=tenant.ingreso_category.id,
        description=description,
        **kwargs,
    )


def _executed_entry(db, tenant) -> TransactionModel:
    pr = CreatePaymentRequestUseCase(db).execute(
        tenant.delegado_ctx, amount=8000, description="Globos", beneficiary="Cotillón", submit=True,
    )
    ApprovePaymentRequestUseCase(db).execute(tenant.presidente_ctx, pr.id)
    ExecutePaymentRequestUseCase(db).execute(tenant.secretaria_ctx, pr.id, proof_reference="1/c.pdf")
    return db.get(TransactionModel, pr.transaction_id)


class TestCreateTransaction:
    def test_create_income(self, db_session, tenant):
        tx = _income(db_session, tenant, payer_name=" Ana Pérez ", payer_rut="12.345.678-5")
        assert tx.id is not None
        assert tx.source == "manual"
        assert tx.date == date(2026, 3, 2)
        assert tx.payer_name == "Ana Pérez"
        assert tx.created_by == tenant.secretaria.id

        trail = GetTransactionAuditTrailUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)
        assert [e["action"] for e in trail] == ["created"]
        assert trail[0]["changes"]["amount"] == 50000

    def test_every_role_may_record(self, db_session, tenant):
        tx = CreateTransactionUseCase(db_session).execute(
            tenant.delegado_ctx, type="egreso", amount=3000, date="2026-03-03", description="Café",
        )
        assert tx.created_by == tenant.delegado.id

    def test_invalid_rut(self, db_session, tenant):
        with pytest.raises(ValidationError) as exc:
            _income(db_session, tenant, payer_rut="12.345.678-9")
        assert "payer_rut" in exc.value.fields

    def test_missing_fields(self, db_session, tenant):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionUseCase(db_session).execute(tenant.secretaria_ctx, type=None, amount=None, date=None)
        assert set(exc.value.fields) == {"type", "amount", "date"}

    def test_category_must_match_type(self, db_session, tenant):
        with pytest.raises(ValidationError) as exc:
            CreateTransactionUseCase(db_session).execute(
                tenant.secretaria_ctx, type="ingreso", amount=100, date="2026-03-01",
                category_id=tenant.egreso_category.id,
            )
        assert exc.value.fields == {"category_id": "Categoría no válida"}

    def test_duplicate_within_window(self, db_session, tenant):
        _income(db_session, tenant)
        with pytest.raises(ConflictError):
            _income(db_session, tenant)
        assert db_session.query(TransactionModel).count() == 1

    def test_different_description_is_not_duplicate(self, db_session, tenant):
        _income(db_session, tenant)
        _income(db_session, tenant, description="Cuota abril")
        assert db_session.query(TransactionModel).count() == 2

    def test_inactive_user_cannot_record(self, db_session, tenant):
        tenant.secretaria.is_active = False
        db_session.commit()
        with pytest.raises(ForbiddenError):
            _income(db_session, tenant)


class TestEditTransaction:
    def test_edit_records_diff(self, db_session, tenant):
        tx = _income(db_session, tenant)
        EditTransactionUseCase(db_session).execute(
            tenant.presidente_ctx, tx.id, {"amount": 55000, "date": "2026-03-05"}
        )
        assert tx.amount == 55000
        assert tx.edited_by == tenant.presidente.id

        trail = GetTransactionAuditTrailUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)
        edited = trail[-1]
        assert edited["action"] == "edited"
        assert edited["changes"] == {
            "amount": {"from": 50000, "to": 55000},
            "date": {"from": "2026-03-02", "to": "2026-03-05"},
        }
        assert edited["user_name"] == tenant.presidente.name

    def test_no_op_edit_writes_nothing(self, db_session, tenant):
        tx = _income(db_session, tenant)
        EditTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id, {"amount": 50000})
        trail = GetTransactionAuditTrailUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)
        assert len(trail) == 1
        assert tx.edited_by is None

    def test_type_is_not_editable(self, db_session, tenant):
        tx = _income(db_session, tenant)
        with pytest.raises(ValidationError):
            EditTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id, {"type": "egreso"})

    def test_invalid_amount(self, db_session, tenant):
        tx = _income(db_session, tenant)
        with pytest.raises(ValidationError):
            EditTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id, {"amount": -1})

    def test_payment_request_entry_is_immutable(self, db_session, tenant):
        tx = _executed_entry(db_session, tenant)
        with pytest.raises(ConflictError):
            EditTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id, {"amount": 1})
        with pytest.raises(ConflictError):
            DeleteTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)


class TestDeleteTransaction:
    def test_soft_delete_keeps_audit(self, db_session, tenant):
        tx = _income(db_session, tenant)
        DeleteTransactionUseCase(db_session).execute(tenant.presidente_ctx, tx.id)

        assert tx.deleted_at is not None
        assert tx.deleted_by == tenant.presidente.id
        assert ListTransactionsUseCase(db_session).execute(tenant.secretaria_ctx).total == 0

        trail = GetTransactionAuditTrailUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)
        assert [e["action"] for e in trail] == ["created", "deleted"]
        assert trail[-1]["changes"]["snapshot"]["amount"] == 50000

    def test_deleted_entry_cannot_be_edited(self, db_session, tenant):
        tx = _income(db_session, tenant)
        DeleteTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)
        with pytest.raises(NotFoundError):
            EditTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id, {"amount": 1})

    def test_other_organization(self, db_session, make_tenant):
        a = make_tenant("CPP A")
        b = make_tenant("CPP B")
        tx = _income(db_session, a)
        with pytest.raises(NotFoundError):
            DeleteTransactionUseCase(db_session).execute(b.presidente_ctx, tx.id)
        with pytest.raises(NotFoundError):
            GetTransactionAuditTrailUseCase(db_session).execute(b.presidente_ctx, tx.id)


class TestListTransactions:
    def test_filters(self, db_session, tenant):
        _income(db_session, tenant, amount=10000, description="Rifa", date="2026-01-15")
        _income(db_session, tenant, amount=20000, description="Cuota", date="2026-02-15")
        CreateTransactionUseCase(db_session).execute(
            tenant.secretaria_ctx, type="egreso", amount=5000, date="2026-02-20",
            description="Fotocopias", beneficiary="Librería Central",
        )

        use_case = ListTransactionsUseCase(db_session)
        ctx = tenant.delegado_ctx
        assert use_case.execute(ctx).total == 3
        assert use_case.execute(ctx, type="ingreso").total == 2
        assert use_case.execute(ctx, date_from="2026-02-01").total == 2
        assert use_case.execute(ctx, amount_min=6000, amount_max=15000).total == 1
        assert use_case.execute(ctx, search="librería").total == 1

        page = use_case.execute(ctx, sort_by="amount", sort_order="asc")
        assert [item["amount"] for item in page.items] == [5000, 10000, 20000]
        assert page.items[1]["category_name"] == "Cuota Mensual"

    def test_default_order_is_newest_date_first(self, db_session, tenant):
        _income(db_session, tenant, amount=1, description="a", date="2026-01-01")
        _income(db_session, tenant, amount=2, description="b", date="2026-03-01")
        items = ListTransactionsUseCase(db_session).execute(tenant.secretaria_ctx).items
        assert [item["amount"] for item in items] == [2, 1]

    def test_bad_date_filter(self, db_session, tenant):
        with pytest.raises(ValidationError):
            ListTransactionsUseCase(db_session).execute(tenant.secretaria_ctx, date_from="01/02/2026")
