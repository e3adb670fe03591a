from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.errors import to_http_exception
from app.dependencies import get_current_admin
from app.models import User, get_db
from app.schemas.products import (
    CategoryResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductStatsResponse,
    ProductUpdateRequest,
)
from app.services import catalog_service
from app.services.audit import log_admin_action
from app.services.exceptions import OrderError

router = APIRouter()
categories_router = APIRouter()


@categories_router.get(
    "",
    response_model=list[CategoryResponse],
    summary="List categories",
)
def list_categories(
    db: Annotated[Session, Depends(get_db)],
):
    return catalog_service.list_categories(db)


@router.get(
    "",
    response_model=list[ProductResponse],
    summary="List products",
)
def list_products(
    db: Annotated[Session, Depends(get_db)],
    category: Annotated[str | None, Query(description="Category slug")] = None,
    in_stock: Annotated[bool, Query()] = False,
):
    """Returns catalog products, optionally limited to one category or to in-stock items."""
    return catalog_service.list_products(db, category_slug=category, in_stock_only=in_stock)


@router.get(
    "/stats",
    response_model=ProductStatsResponse,
    summary="Inventory statistics (admin)",
)
def product_stats(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    return ProductStatsResponse(**catalog_service.product_stats(db))


@router.get(
    "/{slug}",
    response_model=ProductResponse,
    summary="Get product by slug",
)
def get_product(
    slug: str,
    db: Annotated[Session, Depends(get_db)],
):
    try:
        return catalog_service.get_product_by_slug(db, slug)
    except OrderError as e:
        raise to_http_exception(e)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create product (admin)",
)
def create_product(
    body: ProductCreateRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    try:
        product = catalog_service.create_product(db, body.model_dump())
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(admin, "product.create", product_id=product.id, slug=product.slug)
    return product


@router.patch(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update product (admin)",
)
def update_product(
    product_id: int,
    body: ProductUpdateRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """Partial update. Writing stock keeps in_stock in sync."""
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    try:
        product = catalog_service.update_product(db, product_id, changes)
    except OrderError as e:
        raise to_http_exception(e)
    log_admin_action(admin, "product.update", product_id=product.id, fields=sorted(changes))
    return product
