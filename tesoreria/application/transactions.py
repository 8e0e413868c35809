"""
Ledger use cases (movimientos)

Manual entries are created, edited and soft-deleted here. Entries written by
the execution of a payment request (source=payment_request) are immutable:
edit and delete are refused with ConflictError. Every mutation appends an
audit entry in the same transaction.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from tesoreria.config import get_settings
from tesoreria.domain.context import TenantContext
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.domain.permissions import Action, ensure_allowed
from tesoreria.domain.transaction import (
    EDITABLE_FIELDS,
    TransactionAudit,
    TransactionSource,
    validate_transaction_fields,
)
from tesoreria.infrastructure.audit.repository import ENTITY_TRANSACTION, AuditLogRepository
from tesoreria.infrastructure.db.models import Category, TransactionModel, User
from tesoreria.utils.pagination import Page, PageRequest
from tesoreria.utils.validation import (
    escape_like,
    is_positive_int,
    normalize_search,
    parse_iso_date,
    validate_rut,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Transacción no encontrada"

SORTABLE_COLUMNS = {
    "date": TransactionModel.date,
    "amount": TransactionModel.amount,
    "created_at": TransactionModel.created_at,
    "description": TransactionModel.description,
}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class _LedgerUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.audit_repo = AuditLogRepository(db)

    def _actor(self, ctx: TenantContext, action: Action) -> User:
        ensure_allowed(action, ctx.role)
        actor = (
            self.db.query(User)
            .filter(User.id == ctx.user_id, User.organization_id == ctx.organization_id)
            .first()
        )
        if not actor or not actor.is_active:
            raise ForbiddenError("Usuario inactivo")
        return actor

    def _load(self, ctx: TenantContext, transaction_id: int, include_deleted: bool = False) -> TransactionModel:
        query = self.db.query(TransactionModel).filter(
            TransactionModel.id == transaction_id,
            TransactionModel.organization_id == ctx.organization_id,
        )
        if not include_deleted:
            query = query.filter(TransactionModel.deleted_at.is_(None))
        tx = query.first()
        if not tx:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return tx

    def _category_matches(self, ctx: TenantContext, category_id: int, type_: str) -> bool:
        return (
            self.db.query(Category.id)
            .filter(
                Category.id == category_id,
                Category.organization_id == ctx.organization_id,
                Category.type == type_,
            )
            .first()
            is not None
        )


class CreateTransactionUseCase(_LedgerUseCase):
    """Registrar un ingreso o egreso manual"""

    def execute(
        self,
        ctx: TenantContext,
        type: str | None,
        amount: Any,
        date: str | date | None,
        category_id: int | None = None,
        description: str | None = None,
        payer_name: str | None = None,
        payer_rut: str | None = None,
        beneficiary: str | None = None,
    ) -> TransactionModel:
        """
        Crear movimiento

        Raises:
            ValidationError: tipo/monto/fecha/RUT/categoría inválidos
            ConflictError: mismo registro del mismo usuario dentro de la ventana de duplicados
        """
        actor = self._actor(ctx, Action.CREATE_TRANSACTION)

        errors = validate_transaction_fields(type, amount, date, payer_rut)
        if category_id is not None and "type" not in errors:
            if not self._category_matches(ctx, category_id, type):
                errors["category_id"] = "Categoría no válida"
        if errors:
            message = next(iter(errors.values())) if len(errors) == 1 else "Campos requeridos faltantes o inválidos"
            raise ValidationError(message, fields=errors)

        description = _clean(description)
        now = datetime.now(timezone.utc)
        self._ensure_not_duplicate(ctx, type, amount, description, now)

        tx = TransactionModel(
            organization_id=ctx.organization_id,
            type=type,
            amount=amount,
            category_id=category_id,
            description=description,
            date=parse_iso_date(date),
            payer_name=_clean(payer_name),
            payer_rut=_clean(payer_rut),
            beneficiary=_clean(beneficiary),
            source=TransactionSource.MANUAL.value,
            created_by=actor.id,
            created_at=now,
        )
        try:
            self.db.add(tx)
            self.db.flush()
            self.audit_repo.append_entry(
                organization_id=ctx.organization_id,
                entity_type=ENTITY_TRANSACTION,
                entity_id=tx.id,
                action="created",
                changes=TransactionAudit.snapshot(tx),
                user_id=actor.id,
                occurred_at=now,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Transaction #%s (%s %s) created by user #%s", tx.id, tx.type, tx.amount, actor.id)
        return tx

    def _ensure_not_duplicate(
        self,
        ctx: TenantContext,
        type_: str,
        amount: int,
        description: str | None,
        now: datetime,
    ) -> None:
        window = timedelta(seconds=get_settings().DUPLICATE_WINDOW_SECONDS)
        query = self.db.query(TransactionModel.id).filter(
            TransactionModel.organization_id == ctx.organization_id,
            TransactionModel.type == type_,
            TransactionModel.amount == amount,
            TransactionModel.created_by == ctx.user_id,
            TransactionModel.deleted_at.is_(None),
            TransactionModel.created_at > now - window,
        )
        if description is None:
            query = query.filter(TransactionModel.description.is_(None))
        else:
            query = query.filter(TransactionModel.description == description)
        if query.first() is not None:
            raise ConflictError(
                "Registro duplicado detectado. Por favor espere unos segundos antes de intentar nuevamente."
            )


class EditTransactionUseCase(_LedgerUseCase):
    """Editar un movimiento manual; registra el diff {campo: {from, to}}"""

    def execute(self, ctx: TenantContext, transaction_id: int, changes: dict[str, Any]) -> TransactionModel:
        actor = self._actor(ctx, Action.EDIT_TRANSACTION)
        tx = self._load(ctx, transaction_id)
        if tx.source != TransactionSource.MANUAL.value:
            raise ConflictError(
                "Los movimientos generados por solicitudes de pago no se pueden editar"
            )

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "Campos no editables: " + ", ".join(sorted(unknown)),
                fields={name: "Campo no editable" for name in sorted(unknown)},
            )

        errors: dict[str, str] = {}
        updates: dict[str, Any] = {}
        for name, value in changes.items():
            if name == "amount":
                if not is_positive_int(value):
                    errors["amount"] = "Monto debe ser un número entero positivo"
                else:
                    updates["amount"] = value
            elif name == "date":
                parsed = parse_iso_date(value)
                if parsed is None:
                    errors["date"] = "La fecha ingresada no es válida"
                else:
                    updates["date"] = parsed
            elif name == "payer_rut":
                value = _clean(value)
                if value and not validate_rut(value):
                    errors["payer_rut"] = "El RUT ingresado no es válido. Formato: 12.345.678-9"
                else:
                    updates["payer_rut"] = value
            elif name == "category_id":
                if value is not None and not self._category_matches(ctx, value, tx.type):
                    errors["category_id"] = "Categoría no válida"
                else:
                    updates["category_id"] = value
            else:
                updates[name] = _clean(value)
        if errors:
            message = next(iter(errors.values())) if len(errors) == 1 else "Campos inválidos"
            raise ValidationError(message, fields=errors)

        before = TransactionAudit.snapshot(tx)
        for name, value in updates.items():
            setattr(tx, name, value)
        diff = TransactionAudit.diff(before, TransactionAudit.snapshot(tx))
        if not diff:
            return tx

        now = datetime.now(timezone.utc)
        tx.edited_by = actor.id
        tx.edited_at = now
        try:
            self.audit_repo.append_entry(
                organization_id=ctx.organization_id,
                entity_type=ENTITY_TRANSACTION,
                entity_id=tx.id,
                action="edited",
                changes=diff,
                user_id=actor.id,
                occurred_at=now,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return tx


class DeleteTransactionUseCase(_LedgerUseCase):
    """Eliminación lógica (deleted_at); la fila queda para auditoría"""

    def execute(self, ctx: TenantContext, transaction_id: int) -> None:
        actor = self._actor(ctx, Action.DELETE_TRANSACTION)
        tx = self._load(ctx, transaction_id)
        if tx.source != TransactionSource.MANUAL.value:
            raise ConflictError(
                "Los movimientos generados por solicitudes de pago no se pueden eliminar"
            )

        now = datetime.now(timezone.utc)
        tx.deleted_at = now
        tx.deleted_by = actor.id
        try:
            self.audit_repo.append_entry(
                organization_id=ctx.organization_id,
                entity_type=ENTITY_TRANSACTION,
                entity_id=tx.id,
                action="deleted",
                changes={"deleted": True, "snapshot": TransactionAudit.snapshot(tx)},
                user_id=actor.id,
                occurred_at=now,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Transaction #%s deleted by user #%s", tx.id, actor.id)


class GetTransactionAuditTrailUseCase(_LedgerUseCase):
    """Historial de auditoría (también para movimientos eliminados)"""

    def execute(self, ctx: TenantContext, transaction_id: int) -> list[dict[str, Any]]:
        ensure_allowed(Action.READ_TRANSACTIONS, ctx.role)
        tx = self._load(ctx, transaction_id, include_deleted=True)
        entries = self.audit_repo.list_for_entity(ctx.organization_id, ENTITY_TRANSACTION, tx.id)
        user_ids = {e.user_id for e in entries if e.user_id}
        names = {
            row.id: row.name
            for row in self.db.query(User.id, User.name).filter(User.id.in_(user_ids)).all()
        } if user_ids else {}
        return [
            {
                "id": e.id,
                "transaction_id": tx.id,
                "action": e.action,
                "user_id": e.user_id,
                "user_name": names.get(e.user_id),
                "changes": e.changes,
                "created_at": e.created_at,
            }
            for e in entries
        ]


def serialize_transactions(db: Session, items: list[TransactionModel]) -> list[dict[str, Any]]:
    user_ids = {u for tx in items for u in (tx.created_by, tx.edited_by) if u}
    category_ids = {tx.category_id for tx in items if tx.category_id}
    names = {
        row.id: row.name for row in db.query(User.id, User.name).filter(User.id.in_(user_ids)).all()
    } if user_ids else {}
    categories = {
        row.id: row.name for row in db.query(Category.id, Category.name).filter(Category.id.in_(category_ids)).all()
    } if category_ids else {}
    return [
        {
            "id": tx.id,
            "organization_id": tx.organization_id,
            "type": tx.type,
            "amount": tx.amount,
            "category_id": tx.category_id,
            "category_name": categories.get(tx.category_id),
            "description": tx.description,
            "date": tx.date,
            "payer_name": tx.payer_name,
            "payer_rut": tx.payer_rut,
            "beneficiary": tx.beneficiary,
            "source": tx.source,
            "payment_request_id": tx.payment_request_id,
            "created_by": tx.created_by,
            "created_by_name": names.get(tx.created_by),
            "edited_by": tx.edited_by,
            "edited_by_name": names.get(tx.edited_by),
            "edited_at": tx.edited_at,
            "created_at": tx.created_at,
        }
        for tx in items
    ]


class ListTransactionsUseCase:
    """Listado filtrado; los eliminados nunca aparecen"""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        ctx: TenantContext,
        type: str | None = None,
        category_id: int | None = None,
        date_from: str | date | None = None,
        date_to: str | date | None = None,
        amount_min: int | None = None,
        amount_max: int | None = None,
        search: str | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page:
        ensure_allowed(Action.READ_TRANSACTIONS, ctx.role)
        page_req = PageRequest.build(page, limit)

        query = self.db.query(TransactionModel).filter(
            TransactionModel.organization_id == ctx.organization_id,
            TransactionModel.deleted_at.is_(None),
        )
        if type:
            query = query.filter(TransactionModel.type == type)
        if category_id:
            query = query.filter(TransactionModel.category_id == category_id)

        start = parse_iso_date(date_from) if date_from else None
        end = parse_iso_date(date_to) if date_to else None
        if date_from and start is None:
            raise ValidationError("Fecha desde no válida", fields={"from": "Formato de fecha inválido"})
        if date_to and end is None:
            raise ValidationError("Fecha hasta no válida", fields={"to": "Formato de fecha inválido"})
        if start:
            query = query.filter(TransactionModel.date >= start)
        if end:
            query = query.filter(TransactionModel.date <= end)

        if amount_min is not None:
            query = query.filter(TransactionModel.amount >= amount_min)
        if amount_max is not None:
            query = query.filter(TransactionModel.amount <= amount_max)

        term = normalize_search(search)
        if term:
            pattern = f"%{escape_like(term)}%"
            query = query.filter(
                TransactionModel.description.ilike(pattern, escape="\\")
                | TransactionModel.payer_name.ilike(pattern, escape="\\")
                | TransactionModel.beneficiary.ilike(pattern, escape="\\")
            )

        total = query.count()

        column = SORTABLE_COLUMNS.get(sort_by or "", TransactionModel.date)
        if sort_order == "asc":
            query = query.order_by(column.asc(), TransactionModel.id.asc())
        else:
            query = query.order_by(column.desc(), TransactionModel.id.desc())
        items = query.offset(page_req.offset).limit(page_req.limit).all()

        return Page(
            items=serialize_transactions(self.db, items),
            total=total,
            page=page_req.page,
            limit=page_req.limit,
        )
