# storefront/api/routers/orders.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import Actor, get_current_actor, require_admin, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import OrderCreate, OrderOut, OrderPage, OrderStatusIn
from storefront.domain.status import OrderStatus
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Places an order from the caller's cart.
    Stock is reserved and the cart emptied in the same transaction.
    """
    svc = get_service(db)
    try:
        return svc.create_order_from_cart(actor.user_id, payload.address.model_dump())
    except ShopError as e:
        raise to_http_error(e)


@router.get("/", response_model=OrderPage)
def list_orders(
    status: OrderStatus | None = None,
    limit: int = Query(10, gt=0, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return get_service(db).list_user_orders(actor.user_id, status, limit, offset)


@router.get("/admin/all", response_model=OrderPage)
def list_all_orders(
    status: OrderStatus | None = None,
    limit: int = Query(20, gt=0, le=100),
    offset: int = Query(0, ge=0),
    admin: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return get_service(db).list_all_orders(status, limit, offset)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.get_order(order_id, actor.user_id, actor.role)
    except ShopError as e:
        raise to_http_error(e)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.cancel(order_id, actor.user_id, actor.role)
    except ShopError as e:
        raise to_http_error(e)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Cancel (owner/admin) or ship/deliver (admin)."""
    svc = get_service(db)
    try:
        return svc.update_status(order_id, payload.status, actor.user_id, actor.role)
    except ShopError as e:
        raise to_http_error(e)
