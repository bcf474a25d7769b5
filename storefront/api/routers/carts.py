#storefront/api/routers/carts.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import Actor, get_current_actor, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import (
    ItemIn,
    ItemQuantityIn,
    CartOut,
)
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session):
    return CartService(db=db)


@router.get("/", response_model=CartOut)
def get_cart(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return get_service(db).get_cart(actor.user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.add_product(
            user_id=actor.user_id,
            product_id=payload.product_id,
            quantity=payload.quantity,
        )
    except ShopError as e:
        raise to_http_error(e)


@router.patch("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: ItemQuantityIn,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.update_quantity(actor.user_id, product_id, payload.quantity)
    except ShopError as e:
        raise to_http_error(e)


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.remove_product(actor.user_id, product_id)
    except ShopError as e:
        raise to_http_error(e)


@router.delete("/", response_model=CartOut)
def clear_cart(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    svc = get_service(db)
    try:
        return svc.clear_cart(actor.user_id)
    except ShopError as e:
        raise to_http_error(e)
