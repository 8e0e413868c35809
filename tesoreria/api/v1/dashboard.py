"""
Dashboard endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_db, get_tenant_context
from tesoreria.application.dashboard import DashboardService
from tesoreria.domain.context import TenantContext


router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("/summary")
def summary(ctx: TenantContext = Depends(get_tenant_context), db: Session = Depends(get_db)):
    return DashboardService(db).get_summary(ctx)


@router.get("/chart")
def chart(ctx: TenantContext = Depends(get_tenant_context), db: Session = Depends(get_db)):
    return {"months": DashboardService(db).get_chart(ctx)}


@router.get("/categories")
def expense_categories(ctx: TenantContext = Depends(get_tenant_context), db: Session = Depends(get_db)):
    return {"categories": DashboardService(db).get_expense_by_category(ctx)}
