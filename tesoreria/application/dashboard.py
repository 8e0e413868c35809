"""
Dashboard: aggregated treasury view.

Pure read-layer: no mutations. Soft-deleted ledger entries never count.
Blocks:
  1. Summary (balance, totals, current/previous month, pending counters)
  2. Chart (income/expense per month, last 6 months)
  3. Expense distribution by egreso category
"""
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from tesoreria.config import get_settings
from tesoreria.domain.context import TenantContext
from tesoreria.domain.payment_request import PaymentRequestStatus
from tesoreria.domain.permissions import Action, ensure_allowed
from tesoreria.domain.transaction import TransactionType
from tesoreria.infrastructure.db.models import Category, PaymentRequestModel, TransactionModel

_MONTH_SHORT_ES = {
    1: "ene", 2: "feb", 3: "mar", 4: "abr", 5: "may", 6: "jun",
    7: "jul", 8: "ago", 9: "sept", 10: "oct", 11: "nov", 12: "dic",
}

CHART_MONTHS = 6


def _month_start(d: date, shift: int = 0) -> date:
    """First day of the month `shift` months away from d's month."""
    index = d.year * 12 + (d.month - 1) + shift
    return date(index // 12, index % 12 + 1, 1)


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


class DashboardService:
    def __init__(self, db: Session):
        self.db = db

    def _sum(self, organization_id: int, type_: TransactionType, start: date | None = None, end: date | None = None) -> int:
        query = self.db.query(func.coalesce(func.sum(TransactionModel.amount), 0)).filter(
            TransactionModel.organization_id == organization_id,
            TransactionModel.type == type_.value,
            TransactionModel.deleted_at.is_(None),
        )
        if start is not None:
            query = query.filter(TransactionModel.date >= start)
        if end is not None:
            query = query.filter(TransactionModel.date < end)
        return int(query.scalar() or 0)

    def _count_requests(self, organization_id: int, status: PaymentRequestStatus) -> int:
        return (
            self.db.query(PaymentRequestModel)
            .filter(
                PaymentRequestModel.organization_id == organization_id,
                PaymentRequestModel.status == status.value,
            )
            .count()
        )

    # ------------------------------------------------------------------
    # 1. Summary
    # ------------------------------------------------------------------

    def get_summary(self, ctx: TenantContext, today: date | None = None) -> dict[str, int]:
        ensure_allowed(Action.READ_DASHBOARD, ctx.role)
        today = today or local_today()
        org = ctx.organization_id

        month_start = _month_start(today)
        next_month = _month_start(today, 1)
        prev_month = _month_start(today, -1)

        income_total = self._sum(org, TransactionType.INGRESO)
        expense_total = self._sum(org, TransactionType.EGRESO)
        return {
            "balance": income_total - expense_total,
            "income_total": income_total,
            "expense_total": expense_total,
            "month_income": self._sum(org, TransactionType.INGRESO, month_start, next_month),
            "month_expense": self._sum(org, TransactionType.EGRESO, month_start, next_month),
            "prev_month_income": self._sum(org, TransactionType.INGRESO, prev_month, month_start),
            "prev_month_expense": self._sum(org, TransactionType.EGRESO, prev_month, month_start),
            "pending_approval": self._count_requests(org, PaymentRequestStatus.PENDIENTE),
            "pending_execution": self._count_requests(org, PaymentRequestStatus.APROBADO),
        }

    # ------------------------------------------------------------------
    # 2. Chart
    # ------------------------------------------------------------------

    def get_chart(self, ctx: TenantContext, today: date | None = None) -> list[dict]:
        """
        Returns:
            [{month: "2026-05", label: "may 2026", income, expense}, ...] oldest first
        """
        ensure_allowed(Action.READ_DASHBOARD, ctx.role)
        today = today or local_today()
        months = []
        for shift in range(-(CHART_MONTHS - 1), 1):
            start = _month_start(today, shift)
            end = _month_start(today, shift + 1)
            months.append({
                "month": f"{start.year}-{start.month:02d}",
                "label": f"{_MONTH_SHORT_ES[start.month]} {start.year}",
                "income": self._sum(ctx.organization_id, TransactionType.INGRESO, start, end),
                "expense": self._sum(ctx.organization_id, TransactionType.EGRESO, start, end),
            })
        return months

    # ------------------------------------------------------------------
    # 3. Expense distribution
    # ------------------------------------------------------------------

    def get_expense_by_category(self, ctx: TenantContext) -> list[dict]:
        ensure_allowed(Action.READ_DASHBOARD, ctx.role)
        total = func.sum(TransactionModel.amount)
        rows = (
            self.db.query(Category.id, Category.name, total.label("total"))
            .join(TransactionModel, TransactionModel.category_id == Category.id)
            .filter(
                Category.organization_id == ctx.organization_id,
                Category.type == TransactionType.EGRESO.value,
                TransactionModel.organization_id == ctx.organization_id,
                TransactionModel.type == TransactionType.EGRESO.value,
                TransactionModel.deleted_at.is_(None),
            )
            .group_by(Category.id, Category.name)
            .having(total > 0)
            .order_by(total.desc(), Category.name)
            .all()
        )
        return [{"id": row.id, "name": row.name, "total": int(row.total)} for row in rows]
