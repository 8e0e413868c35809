"""
Category API endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from tesoreria.api.deps import get_db, get_tenant_context
from tesoreria.application.categories import (
    CreateCategoryUseCase,
    DeleteCategoryUseCase,
    ListCategoriesUseCase,
    UpdateCategoryUseCase,
    get_category,
)
from tesoreria.domain.context import TenantContext


router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


class CreateCategoryRequest(BaseModel):
    name: str | None = None
    type: str | None = None


class UpdateCategoryRequest(BaseModel):
    name: str | None = None
    type: str | None = None


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    name: str
    type: str
    is_default: bool


@router.get("", response_model=list[CategoryResponse])
def list_categories(
    type: str | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return ListCategoriesUseCase(db).execute(ctx, type=type)


@router.get("/{category_id}", response_model=CategoryResponse)
def read_category(
    category_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return get_category(db, ctx, category_id)


@router.post("", response_model=CategoryResponse, status_code=201)
def create_category(
    req: CreateCategoryRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return CreateCategoryUseCase(db).execute(ctx, name=req.name, type=req.type)


@router.put("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    req: UpdateCategoryRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return UpdateCategoryUseCase(db).execute(ctx, category_id, name=req.name, type=req.type)


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    DeleteCategoryUseCase(db).execute(ctx, category_id)
    return {"message": "Categoría eliminada"}
