r"""
Payment request lifecycle engine (solicitudes de pago).

    borrador --submit--> pendiente --approve--> aprobado --execute--> ejecutado
                                   \--reject--> rechazado

Every operation:
  1. loads the request filtered by the caller's organization (NotFoundError)
  2. checks the permission table for ctx.role and re-loads the actor, who must
     still be active (ForbiddenError)
  3. checks the current state (ConflictError)
  4. validates the payload (ValidationError)
  5. moves the status with a compare-and-swap UPDATE ... WHERE status = expected,
     so of two concurrent callers exactly one wins and the other gets ConflictError
  6. appends the audit entry, the notifications and (execute) the ledger entry,
     then commits once; any failure rolls the whole unit back
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, BinaryIO, Iterator
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tesoreria.application.notifications import NotificationFanout
from tesoreria.config import get_settings
from tesoreria.domain.category import CategoryType
from tesoreria.domain.context import Role, TenantContext
from tesoreria.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tesoreria.domain.notification import REFERENCE_PAYMENT_REQUEST, UNKNOWN_CREATOR
from tesoreria.domain.payment_request import (
    EDITABLE_STATES,
    TRANSITIONS,
    PaymentRequestAudit,
    PaymentRequestStatus,
    Transition,
    state_fields_of,
    validate_request_fields,
    validate_state_payload,
)
from tesoreria.domain.permissions import Action, ensure_allowed
from tesoreria.domain.transaction import TransactionAudit, TransactionSource, TransactionType
from tesoreria.infrastructure.attachments.storage import AttachmentStore, LocalAttachmentStore
from tesoreria.infrastructure.audit.repository import (
    ENTITY_PAYMENT_REQUEST,
    ENTITY_TRANSACTION,
    AuditLogRepository,
)
from tesoreria.infrastructure.db.models import (
    AuditEntry,
    Category,
    PaymentRequestModel,
    TransactionModel,
    User,
)
from tesoreria.utils.pagination import Page, PageRequest
from tesoreria.utils.validation import escape_like, normalize_search

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Solicitud no encontrada"
PROOF_REQUIRED_MESSAGE = "El comprobante de pago es obligatorio para ejecutar la solicitud"

SORTABLE_COLUMNS = {
    "created_at": PaymentRequestModel.created_at,
    "amount": PaymentRequestModel.amount,
    "status": PaymentRequestModel.status,
    "description": PaymentRequestModel.description,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProofFile:
    """Uploaded proof of payment, stored only after every guard has passed"""
    filename: str
    stream: BinaryIO


class _LifecycleUseCase:
    """Shared loading, guard and compare-and-swap helpers"""

    def __init__(self, db: Session):
        self.db = db
        self.audit_repo = AuditLogRepository(db)
        self.fanout = NotificationFanout(db)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _load(self, ctx: TenantContext, request_id: int) -> PaymentRequestModel:
        pr = (
            self.db.query(PaymentRequestModel)
            .filter(
                PaymentRequestModel.id == request_id,
                PaymentRequestModel.organization_id == ctx.organization_id,
            )
            .first()
        )
        if not pr:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return pr

    def _authorize(self, ctx: TenantContext, action: Action) -> User:
        """Permission table, then the actor row: deactivated users cannot act."""
        ensure_allowed(action, ctx.role)
        actor = (
            self.db.query(User)
            .filter(User.id == ctx.user_id, User.organization_id == ctx.organization_id)
            .first()
        )
        if not actor or not actor.is_active:
            raise ForbiddenError("Usuario inactivo")
        return actor

    @staticmethod
    def _guard(pr: PaymentRequestModel, transition: Transition) -> None:
        if pr.status != transition.source.value:
            raise ConflictError(transition.conflict_message)

    def _compare_and_swap(
        self,
        pr: PaymentRequestModel,
        expected: PaymentRequestStatus,
        conflict_message: str,
        **values: Any,
    ) -> None:
        """
        UPDATE payment_requests SET ... WHERE id = :id AND status = :expected

        Raises:
            ConflictError: another caller changed the status first
        """
        result = self.db.execute(
            update(PaymentRequestModel)
            .where(
                PaymentRequestModel.id == pr.id,
                PaymentRequestModel.organization_id == pr.organization_id,
                PaymentRequestModel.status == expected.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(conflict_message)
        self.db.expire(pr)
        validate_state_payload(pr.status, state_fields_of(pr))

    def _apply(self, pr: PaymentRequestModel, transition: Transition, **values: Any) -> None:
        self._compare_and_swap(
            pr,
            transition.source,
            transition.conflict_message,
            status=transition.target.value,
            **values,
        )

    def _record(
        self,
        pr: PaymentRequestModel,
        action: str,
        changes: dict[str, Any],
        user_id: int,
        occurred_at: datetime,
    ) -> None:
        self.audit_repo.append_entry(
            organization_id=pr.organization_id,
            entity_type=ENTITY_PAYMENT_REQUEST,
            entity_id=pr.id,
            action=action,
            changes=changes,
            user_id=user_id,
            occurred_at=occurred_at,
        )

    def _user_name(self, user_id: int | None) -> str | None:
        if user_id is None:
            return None
        user = self.db.get(User, user_id)
        return user.name if user else None

    def _validate_fields(
        self,
        ctx: TenantContext,
        amount: Any,
        description: str | None,
        beneficiary: str | None,
        category_id: int | None,
    ) -> None:
        errors = validate_request_fields(amount, description, beneficiary)
        if category_id is not None:
            category = (
                self.db.query(Category)
                .filter(
                    Category.id == category_id,
                    Category.organization_id == ctx.organization_id,
                    Category.type == CategoryType.EGRESO.value,
                )
                .first()
            )
            if not category:
                errors["category_id"] = "Categoría no válida"
        if errors:
            message = next(iter(errors.values())) if len(errors) == 1 else "Campos inválidos"
            raise ValidationError(message, fields=errors)

    def _submit(self, pr: PaymentRequestModel, actor: User, now: datetime) -> None:
        """borrador -> pendiente, audit entry, solicitud_creada to every active presidente"""
        transition = TRANSITIONS[Action.SUBMIT_PAYMENT_REQUEST]
        self._guard(pr, transition)
        self._apply(pr, transition, updated_at=now)
        self._record(
            pr,
            transition.audit_action,
            PaymentRequestAudit.transition(transition, comment="Solicitud enviada para aprobación"),
            actor.id,
            now,
        )
        self.fanout.notify(
            pr.organization_id,
            "REQUEST_SUBMITTED",
            self.fanout.recipients_by_role(pr.organization_id, Role.PRESIDENTE),
            REFERENCE_PAYMENT_REQUEST,
            pr.id,
            creator=self._user_name(pr.created_by) or UNKNOWN_CREATOR,
            description=pr.description,
        )
        logger.info("Payment request #%s borrador -> pendiente by user #%s", pr.id, actor.id)


class CreatePaymentRequestUseCase(_LifecycleUseCase):
    """Crear solicitud en borrador (o enviarla de inmediato con submit=True)"""

    def execute(
        self,
        ctx: TenantContext,
        amount: Any,
        description: str | None,
        beneficiary: str | None,
        category_id: int | None = None,
        submit: bool = False,
    ) -> PaymentRequestModel:
        with self._unit_of_work():
            actor = self._authorize(ctx, Action.CREATE_PAYMENT_REQUEST)
            self._validate_fields(ctx, amount, description, beneficiary, category_id)

            now = _utcnow()
            pr = PaymentRequestModel(
                organization_id=ctx.organization_id,
                amount=amount,
                description=description.strip(),
                beneficiary=beneficiary.strip(),
                category_id=category_id,
                status=PaymentRequestStatus.BORRADOR.value,
                created_by=actor.id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(pr)
            self.db.flush()
            self._record(
                pr,
                "created",
                PaymentRequestAudit.created(
                    pr.status, pr.amount, pr.description, pr.beneficiary, pr.category_id
                ),
                actor.id,
                now,
            )
            logger.info("Payment request #%s created by user #%s", pr.id, actor.id)

            if submit:
                self._submit(pr, actor, now)
        return pr


class EditPaymentRequestUseCase(_LifecycleUseCase):
    """Editar un borrador (solo su creador)"""

    def execute(
        self,
        ctx: TenantContext,
        request_id: int,
        amount: Any,
        description: str | None,
        beneficiary: str | None,
        category_id: int | None = None,
    ) -> PaymentRequestModel:
        with self._unit_of_work():
            pr = self._load(ctx, request_id)
            actor = self._authorize(ctx, Action.EDIT_PAYMENT_REQUEST)
            if pr.created_by != actor.id:
                raise ForbiddenError("Solo el creador puede editar esta solicitud")
            if PaymentRequestStatus(pr.status) not in EDITABLE_STATES:
                raise ConflictError("Solo se pueden editar borradores")
            self._validate_fields(ctx, amount, description, beneficiary, category_id)

            before = {
                "amount": pr.amount,
                "description": pr.description,
                "beneficiary": pr.beneficiary,
                "category_id": pr.category_id,
            }
            after = {
                "amount": amount,
                "description": description.strip(),
                "beneficiary": beneficiary.strip(),
                "category_id": category_id,
            }
            now = _utcnow()
            self._compare_and_swap(
                pr,
                PaymentRequestStatus.BORRADOR,
                "Solo se pueden editar borradores",
                updated_at=now,
                **after,
            )
            self._record(pr, "edited", PaymentRequestAudit.edited(before, after), actor.id, now)
        return pr


class SubmitPaymentRequestUseCase(_LifecycleUseCase):
    """Enviar borrador a aprobación (solo su creador)"""

    def execute(self, ctx: TenantContext, request_id: int) -> PaymentRequestModel:
        with self._unit_of_work():
            pr = self._load(ctx, request_id)
            actor = self._authorize(ctx, Action.SUBMIT_PAYMENT_REQUEST)
            if pr.created_by != actor.id:
                raise ForbiddenError("Solo el creador puede enviar esta solicitud")
            self._submit(pr, actor, _utcnow())
        return pr


class ApprovePaymentRequestUseCase(_LifecycleUseCase):
    """
    Aprobar (solo presidente)

    Notifica al creador y a todas las secretarias activas.
    """

    def execute(self, ctx: TenantContext, request_id: int, comment: str | None = None) -> PaymentRequestModel:
        transition = TRANSITIONS[Action.APPROVE_PAYMENT_REQUEST]
        with self._unit_of_work():
            pr = self._load(ctx, request_id)
            actor = self._authorize(ctx, transition.action)
            self._guard(pr, transition)

            now = _utcnow()
            self._apply(pr, transition, approved_by=actor.id, approved_at=now, updated_at=now)
            self._record(
                pr,
                transition.audit_action,
                PaymentRequestAudit.transition(transition, comment=(comment or "").strip() or "Solicitud aprobada"),
                actor.id,
                now,
            )

            self.fanout.notify(
                pr.organization_id,
                "REQUEST_APPROVED_CREATOR",
                [pr.created_by],
                REFERENCE_PAYMENT_REQUEST,
                pr.id,
                description=pr.description,
            )
            secretarias = [
                uid for uid in self.fanout.recipients_by_role(pr.organization_id, Role.SECRETARIA)
                if uid != pr.created_by
            ]
            self.fanout.notify(
                pr.organization_id,
                "REQUEST_APPROVED_TREASURY",
                secretarias,
                REFERENCE_PAYMENT_REQUEST,
                pr.id,
                description=pr.description,
            )
            logger.info("Payment request #%s pendiente -> aprobado by user #%s", pr.id, actor.id)
        return pr


class RejectPaymentRequestUseCase(_LifecycleUseCase):
    """Rechazar con comentario obligatorio (solo presidente)"""

    def execute(self, ctx: TenantContext, request_id: int, comment: str | None) -> PaymentRequestModel:
        transition = TRANSITIONS[Action.REJECT_PAYMENT_REQUEST]
        with self._unit_of_work():
            pr = self._load(ctx, request_id)
            actor = self._authorize(ctx, transition.action)
            self._guard(pr, transition)

            comment = (comment or "").strip()
            if not comment:
                raise ValidationError(
                    "El comentario es obligatorio al rechazar una solicitud",
                    fields={"comment": "El comentario es obligatorio"},
                )

            now = _utcnow()
            self._apply(
                pr,
                transition,
                rejected_by=actor.id,
                rejected_at=now,
                rejection_comment=comment,
                updated_at=now,
            )
            self._record(
                pr,
                transition.audit_action,
                PaymentRequestAudit.transition(transition, comment=comment),
                actor.id,
                now,
            )
            self.fanout.notify(
                pr.organization_id,
                "REQUEST_REJECTED",
                [pr.created_by],
                REFERENCE_PAYMENT_REQUEST,
                pr.id,
                description=pr.description,
                comment=comment,
            )
            logger.info("Payment request #%s pendiente -> rechazado by user #%s", pr.id, actor.id)
        return pr


class ExecutePaymentRequestUseCase(_LifecycleUseCase):
    """
    Ejecutar el pago (solo secretaria)

    Requires a proof of payment. In one transaction: status -> ejecutado,
    egreso ledger entry (source=payment_request) linked both ways, audit
    entries and notifications to the creator, the approver and the other
    active presidentes.
    """

    def __init__(self, db: Session, store: AttachmentStore | None = None):
        super().__init__(db)
        self.store = store

    def execute(
        self,
        ctx: TenantContext,
        request_id: int,
        proof_reference: str | None = None,
        proof_file: ProofFile | None = None,
        comment: str | None = None,
    ) -> PaymentRequestModel:
        transition = TRANSITIONS[Action.EXECUTE_PAYMENT_REQUEST]
        store = self.store
        stored_reference: str | None = None
        try:
            with self._unit_of_work():
                pr = self._load(ctx, request_id)
                actor = self._authorize(ctx, transition.action)
                self._guard(pr, transition)

                if proof_file is not None and proof_file.filename:
                    store = store or LocalAttachmentStore()
                    stored_reference = store.save(ctx.organization_id, proof_file.filename, proof_file.stream)
                    proof_reference = stored_reference
                if not proof_reference or not proof_reference.strip():
                    raise ValidationError(PROOF_REQUIRED_MESSAGE, fields={"comprobante": PROOF_REQUIRED_MESSAGE})

                now = _utcnow()
                tx = self._create_ledger_entry(pr, actor, now)
                self._apply(
                    pr,
                    transition,
                    executed_by=actor.id,
                    executed_at=now,
                    transaction_id=tx.id,
                    proof_reference=proof_reference.strip(),
                    updated_at=now,
                )
                self._record(
                    pr,
                    transition.audit_action,
                    PaymentRequestAudit.transition(
                        transition,
                        comment=(comment or "").strip() or "Pago ejecutado",
                        transaction_id=tx.id,
                    ),
                    actor.id,
                    now,
                )
                self._notify_executed(pr)
                logger.info(
                    "Payment request #%s aprobado -> ejecutado by user #%s (transaction #%s)",
                    pr.id, actor.id, tx.id,
                )
        except Exception:
            # the file is orphaned once the transaction is gone
            if stored_reference:
                store.delete(stored_reference)
            raise
        return pr

    def _create_ledger_entry(self, pr: PaymentRequestModel, actor: User, now: datetime) -> TransactionModel:
        today = now.astimezone(ZoneInfo(get_settings().TIMEZONE)).date()
        tx = TransactionModel(
            organization_id=pr.organization_id,
            type=TransactionType.EGRESO.value,
            amount=pr.amount,
            category_id=pr.category_id,
            description=pr.description,
            date=today,
            beneficiary=pr.beneficiary,
            source=TransactionSource.PAYMENT_REQUEST.value,
            payment_request_id=pr.id,
            created_by=actor.id,
            created_at=now,
        )
        self.db.add(tx)
        try:
            self.db.flush()
        except IntegrityError:
            # payment_request_id is unique: another execution already wrote the entry
            raise ConflictError(TRANSITIONS[Action.EXECUTE_PAYMENT_REQUEST].conflict_message)
        self.audit_repo.append_entry(
            organization_id=pr.organization_id,
            entity_type=ENTITY_TRANSACTION,
            entity_id=tx.id,
            action="created",
            changes=TransactionAudit.snapshot(tx),
            user_id=actor.id,
            occurred_at=now,
        )
        return tx

    def _notify_executed(self, pr: PaymentRequestModel) -> None:
        notified = {pr.created_by}
        self.fanout.notify(
            pr.organization_id,
            "REQUEST_EXECUTED_CREATOR",
            [pr.created_by],
            REFERENCE_PAYMENT_REQUEST,
            pr.id,
            description=pr.description,
        )
        if pr.approved_by and pr.approved_by not in notified:
            notified.add(pr.approved_by)
            self.fanout.notify(
                pr.organization_id,
                "REQUEST_EXECUTED_APPROVER",
                [pr.approved_by],
                REFERENCE_PAYMENT_REQUEST,
                pr.id,
                description=pr.description,
            )
        others = [
            uid for uid in self.fanout.recipients_by_role(pr.organization_id, Role.PRESIDENTE)
            if uid not in notified
        ]
        self.fanout.notify(
            pr.organization_id,
            "REQUEST_EXECUTED_PRESIDENTE",
            others,
            REFERENCE_PAYMENT_REQUEST,
            pr.id,
            description=pr.description,
        )


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

def _names(db: Session, user_ids: set[int]) -> dict[int, str]:
    if not user_ids:
        return {}
    rows = db.query(User.id, User.name).filter(User.id.in_(user_ids)).all()
    return {row.id: row.name for row in rows}


def serialize_payment_requests(db: Session, items: list[PaymentRequestModel]) -> list[dict[str, Any]]:
    """Plain dicts with category and actor display names resolved in two queries."""
    user_ids: set[int] = set()
    category_ids: set[int] = set()
    for pr in items:
        user_ids.update(u for u in (pr.created_by, pr.approved_by, pr.rejected_by, pr.executed_by) if u)
        if pr.category_id:
            category_ids.add(pr.category_id)

    names = _names(db, user_ids)
    categories: dict[int, str] = {}
    if category_ids:
        categories = {
            row.id: row.name
            for row in db.query(Category.id, Category.name).filter(Category.id.in_(category_ids)).all()
        }

    result = []
    for pr in items:
        result.append({
            "id": pr.id,
            "organization_id": pr.organization_id,
            "amount": pr.amount,
            "description": pr.description,
            "beneficiary": pr.beneficiary,
            "category_id": pr.category_id,
            "category_name": categories.get(pr.category_id),
            "status": pr.status,
            "created_by": pr.created_by,
            "created_by_name": names.get(pr.created_by),
            "approved_by": pr.approved_by,
            "approved_by_name": names.get(pr.approved_by),
            "approved_at": pr.approved_at,
            "rejected_by": pr.rejected_by,
            "rejected_by_name": names.get(pr.rejected_by),
            "rejected_at": pr.rejected_at,
            "rejection_comment": pr.rejection_comment,
            "executed_by": pr.executed_by,
            "executed_by_name": names.get(pr.executed_by),
            "executed_at": pr.executed_at,
            "transaction_id": pr.transaction_id,
            "proof_reference": pr.proof_reference,
            "created_at": pr.created_at,
            "updated_at": pr.updated_at,
        })
    return result


class GetPaymentRequestUseCase(_LifecycleUseCase):
    """Detalle de una solicitud con su línea de tiempo (auditoría)"""

    def execute(self, ctx: TenantContext, request_id: int) -> dict[str, Any]:
        ensure_allowed(Action.READ_PAYMENT_REQUESTS, ctx.role)
        pr = self._load(ctx, request_id)
        detail = serialize_payment_requests(self.db, [pr])[0]

        entries: list[AuditEntry] = self.audit_repo.list_for_entity(
            ctx.organization_id, ENTITY_PAYMENT_REQUEST, pr.id
        )
        names = _names(self.db, {e.user_id for e in entries if e.user_id})
        detail["events"] = [
            {
                "id": e.id,
                "action": e.action,
                "user_id": e.user_id,
                "user_name": names.get(e.user_id),
                "changes": e.changes,
                "created_at": e.created_at,
            }
            for e in entries
        ]
        return detail


class ListPaymentRequestsUseCase:
    """Listado filtrado, ordenado y paginado, siempre dentro de la organización"""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        ctx: TenantContext,
        status: str | None = None,
        created_by: int | None = None,
        category_id: int | None = None,
        beneficiary: str | None = None,
        search: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page:
        ensure_allowed(Action.READ_PAYMENT_REQUESTS, ctx.role)
        page_req = PageRequest.build(page, limit)

        query = self.db.query(PaymentRequestModel).filter(
            PaymentRequestModel.organization_id == ctx.organization_id
        )
        if status:
            if status not in {s.value for s in PaymentRequestStatus}:
                raise ValidationError("Estado no válido", fields={"status": "Estado no válido"})
            query = query.filter(PaymentRequestModel.status == status)
        if created_by:
            query = query.filter(PaymentRequestModel.created_by == created_by)
        if category_id:
            query = query.filter(PaymentRequestModel.category_id == category_id)

        beneficiary_term = normalize_search(beneficiary)
        if beneficiary_term:
            query = query.filter(
                PaymentRequestModel.beneficiary.ilike(f"%{escape_like(beneficiary_term)}%", escape="\\")
            )
        term = normalize_search(search)
        if term:
            pattern = f"%{escape_like(term)}%"
            query = query.filter(
                PaymentRequestModel.description.ilike(pattern, escape="\\")
                | PaymentRequestModel.beneficiary.ilike(pattern, escape="\\")
            )
        if date_from:
            query = query.filter(PaymentRequestModel.created_at >= date_from)
        if date_to:
            query = query.filter(PaymentRequestModel.created_at <= date_to)

        total = query.count()

        column = SORTABLE_COLUMNS.get(sort_by or "", PaymentRequestModel.created_at)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        tiebreak = PaymentRequestModel.id.asc() if sort_order == "asc" else PaymentRequestModel.id.desc()
        items = (
            query.order_by(ordering, tiebreak)
            .offset(page_req.offset)
            .limit(page_req.limit)
            .all()
        )
        return Page(
            items=serialize_payment_requests(self.db, items),
            total=total,
            page=page_req.page,
            limit=page_req.limit,
        )
