"""
Tests for category use cases
"""
import pytest

from tesoreria.application.categories import (
    CreateCategoryUseCase,
    DeleteCategoryUseCase,
    EnsureDefaultCategoriesUseCase,
    ListCategoriesUseCase,
    UpdateCategoryUseCase,
    get_category,
)
from tesoreria.application.transactions import CreateTransactionUseCase, DeleteTransactionUseCase
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.infrastructure.db.models import Category, Organization


class TestDefaultCategories:
    def test_new_organization_gets_defaults(self, db_session):
        org = Organization(name="CPP Nuevo")
        db_session.add(org)
        db_session.flush()

        created = EnsureDefaultCategoriesUseCase(db_session).execute(org.id)
        assert created == 10
        assert db_session.query(Category).filter_by(organization_id=org.id, type="egreso").count() == 5
        assert all(c.is_default for c in db_session.query(Category).filter_by(organization_id=org.id))

    def test_idempotent(self, db_session, tenant):
        # tenant already has "Materiales" (egreso) and "Cuota Mensual" (ingreso)
        assert EnsureDefaultCategoriesUseCase(db_session).execute(tenant.org.id) == 8
        assert EnsureDefaultCategoriesUseCase(db_session).execute(tenant.org.id) == 0


class TestCategoryCrud:
    def test_create_and_list(self, db_session, tenant):
        category = CreateCategoryUseCase(db_session).execute(tenant.presidente_ctx, name=" Kermesse ", type="ingreso")
        assert category.name == "Kermesse"

        names = [c.name for c in ListCategoriesUseCase(db_session).execute(tenant.delegado_ctx, type="ingreso")]
        assert names == ["Cuota Mensual", "Kermesse"]

    def test_only_presidente_manages(self, db_session, tenant):
        with pytest.raises(ForbiddenError):
            CreateCategoryUseCase(db_session).execute(tenant.secretaria_ctx, name="X", type="egreso")

    def test_duplicate_name(self, db_session, tenant):
        with pytest.raises(ConflictError):
            CreateCategoryUseCase(db_session).execute(tenant.presidente_ctx, name="Materiales", type="egreso")

    def test_same_name_other_type_allowed(self, db_session, tenant):
        category = CreateCategoryUseCase(db_session).execute(tenant.presidente_ctx, name="Materiales", type="ingreso")
        assert category.type == "ingreso"

    @pytest.mark.parametrize("name,type_", [("", "egreso"), ("x" * 101, "egreso"), ("Ok", "otro")])
    def test_invalid_input(self, db_session, tenant, name, type_):
        with pytest.raises(ValidationError):
            CreateCategoryUseCase(db_session).execute(tenant.presidente_ctx, name=name, type=type_)

    def test_rename(self, db_session, tenant):
        category = UpdateCategoryUseCase(db_session).execute(
            tenant.presidente_ctx, tenant.egreso_category.id, name="Útiles"
        )
        assert category.name == "Útiles"

    def test_type_cannot_change(self, db_session, tenant):
        with pytest.raises(ValidationError):
            UpdateCategoryUseCase(db_session).execute(
                tenant.presidente_ctx, tenant.egreso_category.id, name="Materiales", type="ingreso"
            )

    def test_other_organization(self, db_session, make_tenant):
        a = make_tenant("CPP A")
        b = make_tenant("CPP B")
        with pytest.raises(NotFoundError):
            get_category(db_session, b.presidente_ctx, a.egreso_category.id)


class TestDeleteCategory:
    def test_unreferenced(self, db_session, tenant):
        category_id = tenant.egreso_category.id
        DeleteCategoryUseCase(db_session).execute(tenant.presidente_ctx, category_id)
        assert db_session.query(Category).filter_by(id=category_id).first() is None

    def test_referenced_by_deleted_entry_still_blocks(self, db_session, tenant):
        tx = CreateTransactionUseCase(db_session).execute(
            tenant.secretaria_ctx, type="ingreso", amount=1000, date="2026-03-01",
            category_id=tenant.ingreso_category.id,
        )
        DeleteTransactionUseCase(db_session).execute(tenant.secretaria_ctx, tx.id)
        with pytest.raises(ConflictError):
            DeleteCategoryUseCase(db_session).execute(tenant.presidente_ctx, tenant.ingreso_category.id)


class TestInactivePresidente:
    def test_cannot_create_rename_or_delete(self, db_session, tenant):
        category = CreateCategoryUseCase(db_session).execute(tenant.presidente_ctx, name="Rifa", type="ingreso")
        tenant.presidente.is_active = False
        db_session.commit()

        with pytest.raises(ForbiddenError, match="Usuario inactivo"):
            CreateCategoryUseCase(db_session).execute(tenant.presidente_ctx, name="Nueva", type="egreso")
        with pytest.raises(ForbiddenError, match="Usuario inactivo"):
            UpdateCategoryUseCase(db_session).execute(tenant.presidente_ctx, category.id, name="Bingo")
        with pytest.raises(ForbiddenError, match="Usuario inactivo"):
            DeleteCategoryUseCase(db_session).execute(tenant.presidente_ctx, category.id)

        assert get_category(db_session, tenant.delegado_ctx, category.id).name == "Rifa"
        assert db_session.query(Category).filter_by(name="Nueva").count() == 0
