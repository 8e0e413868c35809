"""
Payment request API endpoints (solicitudes de pago)
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_attachment_store, get_db, get_tenant_context
from tesoreria.application.payment_requests import (
    ApprovePaymentRequestUseCase,
    CreatePaymentRequestUseCase,
    EditPaymentRequestUseCase,
    ExecutePaymentRequestUseCase,
    GetPaymentRequestUseCase,
    ListPaymentRequestsUseCase,
    ProofFile,
    RejectPaymentRequestUseCase,
    SubmitPaymentRequestUseCase,
)
from tesoreria.domain.context import TenantContext
from tesoreria.infrastructure.attachments.storage import AttachmentStore


router = APIRouter(prefix="/api/v1/payment-requests", tags=["payment-requests"])


# === Request models ===

class PaymentRequestFields(BaseModel):
    # amount stays untyped here: the engine reports bad amounts as field errors
    amount: Any = None
    description: str | None = None
    beneficiary: str | None = None
    category_id: int | None = None


class CreatePaymentRequestRequest(PaymentRequestFields):
    submit: bool = False


class ApproveRequest(BaseModel):
    comment: str | None = None


class RejectRequest(BaseModel):
    comment: str | None = None


# === Helper function ===

def _detail(db: Session, ctx: TenantContext, request_id: int) -> dict:
    return GetPaymentRequestUseCase(db).execute(ctx, request_id)


# === Endpoints ===

@router.get("")
def list_payment_requests(
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
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Listado filtrado y paginado"""
    result = ListPaymentRequestsUseCase(db).execute(
        ctx,
        status=status,
        created_by=created_by,
        category_id=category_id,
        beneficiary=beneficiary,
        search=search,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return {"payment_requests": result.items, "pagination": result.pagination()}


@router.get("/{request_id}")
def get_payment_request(
    request_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return _detail(db, ctx, request_id)


@router.post("", status_code=201)
def create_payment_request(
    req: CreatePaymentRequestRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Crear solicitud (borrador, o pendiente con submit=true)"""
    pr = CreatePaymentRequestUseCase(db).execute(
        ctx,
        amount=req.amount,
        description=req.description,
        beneficiary=req.beneficiary,
        category_id=req.category_id,
        submit=req.submit,
    )
    return _detail(db, ctx, pr.id)


@router.put("/{request_id}")
def edit_payment_request(
    request_id: int,
    req: PaymentRequestFields,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    EditPaymentRequestUseCase(db).execute(
        ctx,
        request_id,
        amount=req.amount,
        description=req.description,
        beneficiary=req.beneficiary,
        category_id=req.category_id,
    )
    return _detail(db, ctx, request_id)


@router.post("/{request_id}/submit")
def submit_payment_request(
    request_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    SubmitPaymentRequestUseCase(db).execute(ctx, request_id)
    return _detail(db, ctx, request_id)


@router.post("/{request_id}/approve")
def approve_payment_request(
    request_id: int,
    req: ApproveRequest | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    ApprovePaymentRequestUseCase(db).execute(ctx, request_id, comment=req.comment if req else None)
    return _detail(db, ctx, request_id)


@router.post("/{request_id}/reject")
def reject_payment_request(
    request_id: int,
    req: RejectRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    RejectPaymentRequestUseCase(db).execute(ctx, request_id, comment=req.comment)
    return _detail(db, ctx, request_id)


@router.post("/{request_id}/execute")
def execute_payment_request(
    request_id: int,
    comment: str | None = Form(None),
    comprobante: UploadFile | None = File(None),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
    store: AttachmentStore = Depends(get_attachment_store),
):
    """
    Ejecutar el pago (multipart: comment, comprobante)

    A missing comprobante reaches the engine as None and fails there with 400.
    """
    proof = ProofFile(filename=comprobante.filename, stream=comprobante.file) if comprobante else None
    ExecutePaymentRequestUseCase(db, store=store).execute(
        ctx,
        request_id,
        proof_file=proof,
        comment=comment,
    )
    return _detail(db, ctx, request_id)
