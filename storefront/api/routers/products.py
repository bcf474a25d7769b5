# storefront/api/routers/products.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import Actor, require_admin, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import ProductCreate, ProductOut, ProductPage, RestockIn
from storefront.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/", response_model=ProductPage)
def list_products(
    q: str | None = Query(None, max_length=100),
    limit: int = Query(20, gt=0, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return ProductService(db).search_products(q, limit, offset)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    try:
        return ProductService(db).get_product(product_id)
    except ShopError as e:
        raise to_http_error(e)


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(
    payload: ProductCreate,
    admin: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return ProductService(db).create_product(payload)
    except ShopError as e:
        raise to_http_error(e)


@router.post("/{product_id}/restock", response_model=ProductOut)
def restock_product(
    product_id: int,
    payload: RestockIn,
    admin: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        return ProductService(db).restock(product_id, payload.quantity)
    except ShopError as e:
        raise to_http_error(e)
