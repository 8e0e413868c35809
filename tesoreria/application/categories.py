"""
Category use cases - categorías de ingresos y egresos

Mutations are presidente-only. A category still referenced by any ledger
entry (deleted ones included) or payment request cannot be deleted.
"""
import logging

from sqlalchemy.orm import Session

from tesoreria.domain.category import MAX_NAME_LENGTH, CategoryType, default_categories
from tesoreria.domain.context import TenantContext
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.domain.permissions import Action, ensure_allowed
from tesoreria.infrastructure.db.models import Category, PaymentRequestModel, TransactionModel, User

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Categoría no encontrada"


def _validate_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("El nombre es requerido", fields={"name": "El nombre es requerido"})
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"El nombre no puede superar {MAX_NAME_LENGTH} caracteres",
            fields={"name": "Nombre demasiado largo"},
        )
    return name


def _require_manager(db: Session, ctx: TenantContext) -> User:
    """Presidente role, and the actor row must still be active."""
    ensure_allowed(Action.MANAGE_CATEGORIES, ctx.role)
    actor = db.query(User).filter(
        User.id == ctx.user_id,
        User.organization_id == ctx.organization_id,
    ).first()
    if not actor or not actor.is_active:
        raise ForbiddenError("Usuario inactivo")
    return actor


class EnsureDefaultCategoriesUseCase:
    """
    Use case: Crear las categorías por defecto de una organización

    Idempotente: las que ya existen (org, nombre, tipo) se omiten.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, organization_id: int) -> int:
        created = 0
        for name, category_type in default_categories():
            existing = self.db.query(Category).filter(
                Category.organization_id == organization_id,
                Category.name == name,
                Category.type == category_type.value,
            ).first()
            if not existing:
                self.db.add(Category(
                    organization_id=organization_id,
                    name=name,
                    type=category_type.value,
                    is_default=True,
                ))
                created += 1
        self.db.flush()
        return created


class ListCategoriesUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: TenantContext, type: str | None = None) -> list[Category]:
        ensure_allowed(Action.READ_CATEGORIES, ctx.role)
        query = self.db.query(Category).filter(Category.organization_id == ctx.organization_id)
        if type:
            query = query.filter(Category.type == type)
        return query.order_by(Category.type, Category.name).all()


def get_category(db: Session, ctx: TenantContext, category_id: int) -> Category:
    ensure_allowed(Action.READ_CATEGORIES, ctx.role)
    category = db.query(Category).filter(
        Category.id == category_id,
        Category.organization_id == ctx.organization_id,
    ).first()
    if not category:
        raise NotFoundError(NOT_FOUND_MESSAGE)
    return category


class CreateCategoryUseCase:
    """Use case: Crear categoría (solo presidente)"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: TenantContext, name: str | None, type: str | None) -> Category:
        _require_manager(self.db, ctx)
        name = _validate_name(name)
        if type not in (CategoryType.INGRESO.value, CategoryType.EGRESO.value):
            raise ValidationError("Tipo debe ser ingreso o egreso", fields={"type": "Tipo no válido"})

        self._ensure_unique(ctx.organization_id, name, type)
        category = Category(organization_id=ctx.organization_id, name=name, type=type)
        self.db.add(category)
        self.db.commit()
        logger.info("Category #%s '%s' (%s) created", category.id, name, type)
        return category

    def _ensure_unique(self, organization_id: int, name: str, type_: str, exclude_id: int | None = None) -> None:
        query = self.db.query(Category.id).filter(
            Category.organization_id == organization_id,
            Category.name == name,
            Category.type == type_,
        )
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first() is not None:
            raise ConflictError("Ya existe una categoría con ese nombre")


class UpdateCategoryUseCase(CreateCategoryUseCase):
    """Use case: Renombrar categoría (el tipo no cambia)"""

    def execute(self, ctx: TenantContext, category_id: int, name: str | None, type: str | None = None) -> Category:
        _require_manager(self.db, ctx)
        category = get_category(self.db, ctx, category_id)
        if type is not None and type != category.type:
            raise ValidationError(
                "No se puede cambiar el tipo de una categoría",
                fields={"type": "El tipo no se puede modificar"},
            )
        name = _validate_name(name)
        self._ensure_unique(ctx.organization_id, name, category.type, exclude_id=category.id)
        category.name = name
        self.db.commit()
        return category


class DeleteCategoryUseCase:
    """Use case: Eliminar categoría sin referencias"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, ctx: TenantContext, category_id: int) -> None:
        _require_manager(self.db, ctx)
        category = get_category(self.db, ctx, category_id)

        tx_refs = self.db.query(TransactionModel).filter(TransactionModel.category_id == category.id).count()
        pr_refs = self.db.query(PaymentRequestModel).filter(PaymentRequestModel.category_id == category.id).count()
        if tx_refs or pr_refs:
            raise ConflictError(
                f"No se puede eliminar: la categoría tiene {tx_refs} movimientos "
                f"y {pr_refs} solicitudes asociadas"
            )

        self.db.delete(category)
        self.db.commit()
        logger.info("Category #%s deleted", category_id)
