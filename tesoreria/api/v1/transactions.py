"""
Ledger API endpoints (movimientos)
"""
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_db, get_tenant_context
from tesoreria.application.transactions import (
    CreateTransactionUseCase,
    DeleteTransactionUseCase,
    EditTransactionUseCase,
    GetTransactionAuditTrailUseCase,
    ListTransactionsUseCase,
    serialize_transactions,
)
from tesoreria.domain.context import TenantContext


router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


class CreateTransactionRequest(BaseModel):
    type: str | None = None
    amount: Any = None
    date: str | None = None
    category_id: int | None = None
    description: str | None = None
    payer_name: str | None = None
    payer_rut: str | None = None
    beneficiary: str | None = None


class EditTransactionRequest(BaseModel):
    amount: Any = None
    date: str | None = None
    category_id: int | None = None
    description: str | None = None
    payer_name: str | None = None
    payer_rut: str | None = None
    beneficiary: str | None = None


@router.get("")
def list_transactions(
    type: str | None = None,
    category_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    amount_min: int | None = None,
    amount_max: int | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    limit: int | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    result = ListTransactionsUseCase(db).execute(
        ctx,
        type=type,
        category_id=category_id,
        date_from=date_from,
        date_to=date_to,
        amount_min=amount_min,
        amount_max=amount_max,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return {"transactions": result.items, "pagination": result.pagination()}


@router.post("", status_code=201)
def create_transaction(
    req: CreateTransactionRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Registrar ingreso/egreso manual"""
    tx = CreateTransactionUseCase(db).execute(ctx, **req.model_dump())
    return serialize_transactions(db, [tx])[0]


@router.put("/{transaction_id}")
def edit_transaction(
    transaction_id: int,
    req: EditTransactionRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Editar (solo los campos enviados)"""
    tx = EditTransactionUseCase(db).execute(ctx, transaction_id, req.model_dump(exclude_unset=True))
    return serialize_transactions(db, [tx])[0]


@router.delete("/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    DeleteTransactionUseCase(db).execute(ctx, transaction_id)
    return {"message": "Transacción eliminada"}


@router.get("/{transaction_id}/audit")
def transaction_audit(
    transaction_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return {"audit_log": GetTransactionAuditTrailUseCase(db).execute(ctx, transaction_id)}
