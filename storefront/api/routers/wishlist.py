#storefront/api/routers/wishlist.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import Actor, get_current_actor, to_http_error
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import CartOut, WishlistItemIn, WishlistOut
from storefront.services.wishlist_service import WishlistService

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


def get_service(db: Session):
    return WishlistService(db=db)


@router.get("/", response_model=WishlistOut)
def get_wishlist(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return get_service(db).get_wishlist(actor.user_id)


@router.post("/items", response_model=WishlistOut, status_code=201)
def add_item(
    payload: WishlistItemIn,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.add_product(actor.user_id, payload.product_id)
    except ShopError as e:
        raise to_http_error(e)


@router.delete("/items/{product_id}", response_model=WishlistOut)
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


@router.post("/items/move-to-cart", response_model=CartOut)
def move_to_cart(
    payload: WishlistItemIn,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        return svc.move_to_cart(actor.user_id, payload.product_id)
    except ShopError as e:
        raise to_http_error(e)
